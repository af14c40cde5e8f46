# SPDX-FileCopyrightText: Copyright (c) 2026 The Graftplan Developers
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Uniform-grid spatial hash over 3-D points.

Space is partitioned into cubes of side ``cell_size``. Each point's integer cell
coordinate ``floor(p / cell_size)`` is folded into a single 64-bit key with the
classic large-prime multiply-xor hash, so no dense 3-D array is ever allocated.
Distinct cells may share a key; every query post-filters candidates by true
Euclidean distance, so collisions only cost time.

Example:

    index = SpatialIndex(vertices, cell_size=0.05)
    nearby = index.query_radius((0.1, 0.2, 0.0), radius=0.1)
    patch = index.connected_region(seed=0, radius=0.02)
"""

from __future__ import annotations

import math
from collections import deque

import numpy as np

from ..core.concurrency import CancellationToken, check_cancelled
from ..core.types import points_array, to_point3

# Hash primes (Teschner et al., "Optimized Spatial Hashing for Collision Detection")
_HASH_PRIME_X = np.int64(73856093)
_HASH_PRIME_Y = np.int64(19349663)
_HASH_PRIME_Z = np.int64(83492791)

_EMPTY = np.zeros(0, dtype=np.int64)


def spatial_hash(cells: np.ndarray) -> np.ndarray:
    """Hash (N, 3) integer cell coordinates into (N,) int64 keys.

    Integer overflow wraps, which is the intended mixing behavior.
    """
    cells = np.asarray(cells, dtype=np.int64).reshape(-1, 3)
    with np.errstate(over="ignore"):
        return (cells[:, 0] * _HASH_PRIME_X) ^ (cells[:, 1] * _HASH_PRIME_Y) ^ (cells[:, 2] * _HASH_PRIME_Z)


class SpatialIndex:
    """Hashed uniform grid supporting radius queries and flood fill.

    Args:
        points: Sequence of points or an (N, 3) array.
        cell_size: Side length of a grid cell. Queries are fastest when this is
            close to the typical query radius.

    Raises:
        ValueError: If ``cell_size`` is not positive.
    """

    def __init__(self, points, cell_size: float):
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")

        positions = points_array(points).copy()
        positions.flags.writeable = False

        self.points = positions
        self.cell_size = float(cell_size)
        self.inv_cell_size = 1.0 / self.cell_size
        self._buckets: dict[int, np.ndarray] = {}

        if len(positions) == 0:
            return

        keys = spatial_hash(self._cell_of(positions))
        order = np.argsort(keys, kind="stable")
        sorted_keys = keys[order]
        unique_keys, starts = np.unique(sorted_keys, return_index=True)
        ends = np.append(starts[1:], len(sorted_keys))
        for key, start, end in zip(unique_keys, starts, ends):
            self._buckets[int(key)] = order[start:end]

    @classmethod
    def build(cls, points, cell_size: float) -> SpatialIndex:
        return cls(points, cell_size)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def num_buckets(self) -> int:
        return len(self._buckets)

    def _cell_of(self, positions: np.ndarray) -> np.ndarray:
        return np.floor(positions * self.inv_cell_size).astype(np.int64)

    def _candidates(self, center: np.ndarray, radius: float) -> np.ndarray:
        span = max(1, math.ceil(radius * self.inv_cell_size))
        # Scanning every point is cheaper than enumerating a window this large
        if (2 * span + 1) ** 3 >= len(self.points):
            return np.arange(len(self.points), dtype=np.int64)

        base = self._cell_of(center.reshape(1, 3))[0]
        steps = np.arange(-span, span + 1, dtype=np.int64)
        offsets = np.stack(np.meshgrid(steps, steps, steps, indexing="ij"), axis=-1).reshape(-1, 3)
        keys = np.unique(spatial_hash(base + offsets))

        buckets = [self._buckets[k] for k in keys.tolist() if k in self._buckets]
        if not buckets:
            return _EMPTY
        if len(buckets) == 1:
            return buckets[0]
        # Colliding keys can pull the same bucket in twice
        return np.unique(np.concatenate(buckets))

    def query_radius_array(self, center, radius: float) -> np.ndarray:
        """Return sorted indices of points within ``radius`` of ``center``.

        Raises:
            ValueError: If ``radius`` is not positive.
        """
        if radius <= 0:
            raise ValueError(f"radius must be positive, got {radius}")
        if len(self.points) == 0:
            return _EMPTY

        center = np.asarray(to_point3(center), dtype=np.float64)
        candidates = self._candidates(center, radius)
        if len(candidates) == 0:
            return _EMPTY

        offsets = self.points[candidates] - center
        dist_sq = np.einsum("ij,ij->i", offsets, offsets)
        return np.sort(candidates[dist_sq <= radius * radius])

    def query_radius(self, center, radius: float) -> set[int]:
        """Return the set of point indices within ``radius`` of ``center``."""
        return {int(i) for i in self.query_radius_array(center, radius)}

    def neighbors(self, index: int, radius: float) -> np.ndarray:
        """Indices within ``radius`` of point ``index``, excluding the point itself."""
        found = self.query_radius_array(self.points[index], radius)
        return found[found != index]

    def connected_region(
        self,
        seed: int,
        radius: float,
        max_points: int | None = None,
        cancel: CancellationToken | None = None,
    ) -> set[int]:
        """Flood fill from ``seed`` through chains of points at most ``radius`` apart.

        Every point enters the queue at most once, so the traversal visits at
        most ``len(self)`` points.

        Args:
            seed: Index of the starting point.
            radius: Maximum hop distance between consecutive points.
            max_points: Optional cap on the region size.
            cancel: Optional cancellation token polled once per visited point.

        Returns:
            Indices of every point reachable from ``seed``, including ``seed``.
        """
        if not (0 <= seed < len(self.points)):
            raise IndexError(f"seed {seed} out of range for {len(self.points)} points")
        if radius <= 0:
            raise ValueError(f"radius must be positive, got {radius}")

        visited = {int(seed)}
        queue = deque([int(seed)])
        limit = len(self.points) if max_points is None else min(max_points, len(self.points))

        while queue and len(visited) < limit:
            check_cancelled(cancel)
            current = queue.popleft()
            for neighbor in self.query_radius_array(self.points[current], radius).tolist():
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                queue.append(neighbor)
                if len(visited) >= limit:
                    break

        return visited
