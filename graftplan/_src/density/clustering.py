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

"""Threshold-layered DBSCAN clustering of density samples.

Thresholds are processed from highest to lowest. Each pass clusters the samples
at or above the threshold that no earlier pass has claimed, so dense cores are
extracted first and a surface patch never ends up in two regions.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence

import numpy as np

from ..core.concurrency import CancellationToken, check_cancelled
from ..core.types import DensityPoint
from ..geometry.spatial_index import SpatialIndex

logger = logging.getLogger(__name__)

_UNASSIGNED = -1


def dbscan(
    positions: np.ndarray,
    epsilon: float,
    min_neighbors: int,
    cancel: CancellationToken | None = None,
) -> list[np.ndarray]:
    """Density-based clustering of an (N, 3) position array.

    A point is a core point when at least ``min_neighbors`` other points lie
    within ``epsilon``. Clusters grow through core points only; border points
    join the first cluster that reaches them but do not expand it. Points
    reached by no cluster are noise.

    Neighbor queries go through a :class:`SpatialIndex` with cell size
    ``epsilon``. Each point is queued at most once, so expansion is bounded by N.

    Returns:
        One index array per cluster, in discovery order.
    """
    if epsilon <= 0:
        raise ValueError(f"epsilon must be positive, got {epsilon}")
    if min_neighbors < 1:
        raise ValueError(f"min_neighbors must be >= 1, got {min_neighbors}")

    count = len(positions)
    if count == 0:
        return []

    index = SpatialIndex(positions, cell_size=epsilon)
    labels = np.full(count, _UNASSIGNED, dtype=np.int64)
    visited = np.zeros(count, dtype=bool)
    clusters: list[np.ndarray] = []

    for seed in range(count):
        if visited[seed]:
            continue
        check_cancelled(cancel)
        visited[seed] = True

        seed_neighbors = index.neighbors(seed, epsilon)
        if len(seed_neighbors) < min_neighbors:
            continue

        cluster_id = len(clusters)
        labels[seed] = cluster_id
        members = [seed]
        queue = deque()
        for n in seed_neighbors.tolist():
            if labels[n] == _UNASSIGNED:
                labels[n] = cluster_id
                members.append(n)
                queue.append(n)

        while queue:
            current = queue.popleft()
            if visited[current]:
                # Already classified as noise: stays a border point
                continue
            visited[current] = True
            current_neighbors = index.neighbors(current, epsilon)
            if len(current_neighbors) < min_neighbors:
                continue
            for n in current_neighbors.tolist():
                if labels[n] == _UNASSIGNED:
                    labels[n] = cluster_id
                    members.append(n)
                    queue.append(n)

        clusters.append(np.asarray(sorted(members), dtype=np.int64))

    return clusters


class DensityClusterer:
    """Groups density samples into candidate regions.

    Args:
        min_cluster_size: Minimum neighbor count for a core point and minimum
            member count for a kept cluster.
        epsilon: Neighborhood radius in domain units.
    """

    def __init__(self, min_cluster_size: int = 10, epsilon: float = 0.1):
        if min_cluster_size < 1:
            raise ValueError(f"min_cluster_size must be >= 1, got {min_cluster_size}")
        if epsilon <= 0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        self.min_cluster_size = min_cluster_size
        self.epsilon = epsilon

    def cluster(
        self,
        points: Sequence[DensityPoint],
        density_thresholds: Sequence[float],
        min_cluster_size: int | None = None,
        epsilon: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[tuple[DensityPoint, ...]]:
        """Cluster ``points`` at each density threshold in turn.

        Args:
            points: Density samples.
            density_thresholds: Density cut-offs; sorted descending before use.
            min_cluster_size: Overrides the instance setting.
            epsilon: Overrides the instance setting.
            cancel: Optional cancellation token polled between seeds.

        Returns:
            Clusters in extraction order (highest threshold first). Each point
            appears in at most one cluster.
        """
        min_size = self.min_cluster_size if min_cluster_size is None else min_cluster_size
        eps = self.epsilon if epsilon is None else epsilon
        if min_size < 1:
            raise ValueError(f"min_cluster_size must be >= 1, got {min_size}")

        points = tuple(points)
        if not points:
            return []

        positions = np.asarray([tuple(p.position) for p in points], dtype=np.float64)
        densities = np.asarray([p.density for p in points], dtype=np.float64)
        available = np.ones(len(points), dtype=bool)
        clusters: list[tuple[DensityPoint, ...]] = []

        for threshold in sorted(density_thresholds, reverse=True):
            check_cancelled(cancel)
            candidates = np.flatnonzero(available & (densities >= threshold))
            if len(candidates) == 0:
                continue

            found = 0
            for local in dbscan(positions[candidates], eps, min_size, cancel=cancel):
                if len(local) < min_size:
                    continue
                members = candidates[local]
                available[members] = False
                clusters.append(tuple(points[i] for i in members.tolist()))
                found += 1

            logger.debug(
                "threshold %.3f: %d candidates, %d clusters, %d points left",
                threshold,
                len(candidates),
                found,
                int(available.sum()),
            )

        return clusters
