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

"""Inverse-distance-weighted density interpolation onto a regular grid.

The grid covers the unit square with ``n = round(1 / resolution)`` cells per
axis; ``grid[row, col]`` is sampled at the cell center
``((col + 0.5) / n, (row + 0.5) / n)`` using the (x, y) of each sample.

Two backends compute the raw grid with identical float64 arithmetic:

- :class:`WarpInterpolationBackend` launches one Warp thread per cell.
- :class:`SequentialInterpolationBackend` visits cells one at a time with NumPy.

The backend is chosen once per invocation by :func:`select_interpolation_backend`.
Regional blending and 3x3 smoothing are applied afterwards, identically for both.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

import numpy as np
import warp as wp

from ..core.concurrency import CancellationToken, check_cancelled
from ..core.errors import InterpolationFailure
from ..core.types import DensityPoint, SegmentedRegion
from ..geometry.polygon import points_in_polygon

logger = logging.getLogger(__name__)

# Samples closer than this to a cell center (domain units) set the cell directly
NEAR_POINT_TOLERANCE = 1e-3

SMOOTHING_KERNEL = np.array(
    [
        [0.0625, 0.125, 0.0625],
        [0.125, 0.25, 0.125],
        [0.0625, 0.125, 0.0625],
    ]
)


def grid_size_for(resolution: float) -> int:
    """Number of cells per axis for a resolution in (0, 1]."""
    if not (0.0 < resolution <= 1.0):
        raise ValueError(f"resolution must be in (0, 1], got {resolution}")
    return max(1, int(round(1.0 / resolution)))


def cell_centers(grid_size: int) -> np.ndarray:
    """(grid_size * grid_size, 2) cell-center coordinates in row-major order."""
    axis = (np.arange(grid_size, dtype=np.float64) + 0.5) / grid_size
    ys, xs = np.meshgrid(axis, axis, indexing="ij")
    return np.stack([xs.ravel(), ys.ravel()], axis=1)


# -----------------------------------------------------------------------------
# Backends
# -----------------------------------------------------------------------------


@wp.kernel
def _idw_grid_kernel(
    positions: wp.array(dtype=wp.vec2d),
    densities: wp.array(dtype=wp.float64),
    grid_size: int,
    near_tolerance: wp.float64,
    out_grid: wp.array2d(dtype=wp.float64),
):
    """Inverse-distance-squared weighting for one grid cell per thread."""
    row, col = wp.tid()

    inv_n = wp.float64(1.0) / wp.float64(grid_size)
    cx = (wp.float64(col) + wp.float64(0.5)) * inv_n
    cy = (wp.float64(row) + wp.float64(0.5)) * inv_n
    near_sq = near_tolerance * near_tolerance

    # Declare as dynamic variables for loop mutation
    total_weight = wp.float64(0.0)
    weighted_sum = wp.float64(0.0)
    near_found = int(0)
    near_value = wp.float64(0.0)

    for i in range(positions.shape[0]):
        if near_found == 0:
            p = positions[i]
            dx = p[0] - cx
            dy = p[1] - cy
            dist_sq = dx * dx + dy * dy
            if dist_sq < near_sq:
                # First sample in input order wins
                near_found = 1
                near_value = densities[i]
            else:
                weight = wp.float64(1.0) / dist_sq
                total_weight += weight
                weighted_sum += weight * densities[i]

    if near_found == 1:
        out_grid[row, col] = near_value
    elif total_weight > wp.float64(0.0):
        out_grid[row, col] = weighted_sum / total_weight
    else:
        out_grid[row, col] = wp.float64(0.0)


class InterpolationBackend:
    """Strategy interface for computing the raw IDW grid."""

    name = "base"

    @classmethod
    def is_available(cls, device=None) -> bool:
        return True

    def interpolate(
        self,
        positions: np.ndarray,
        densities: np.ndarray,
        grid_size: int,
        cancel: CancellationToken | None = None,
    ) -> np.ndarray:
        """Return a (grid_size, grid_size) float64 grid.

        Args:
            positions: (N, 2) sample coordinates.
            densities: (N,) sample densities.
            grid_size: Cells per axis.
            cancel: Optional cancellation token.
        """
        raise NotImplementedError


class SequentialInterpolationBackend(InterpolationBackend):
    """Cell-by-cell NumPy evaluation for hosts without an accelerator."""

    name = "sequential"

    def interpolate(self, positions, densities, grid_size, cancel=None):
        grid = np.zeros((grid_size, grid_size), dtype=np.float64)
        if len(positions) == 0:
            return grid

        near_sq = NEAR_POINT_TOLERANCE * NEAR_POINT_TOLERANCE
        centers = (np.arange(grid_size, dtype=np.float64) + 0.5) / grid_size
        for row in range(grid_size):
            check_cancelled(cancel)
            cy = centers[row]
            for col in range(grid_size):
                dx = positions[:, 0] - centers[col]
                dy = positions[:, 1] - cy
                dist_sq = dx * dx + dy * dy
                near = np.flatnonzero(dist_sq < near_sq)
                if len(near):
                    grid[row, col] = densities[near[0]]
                    continue
                weights = 1.0 / dist_sq
                grid[row, col] = np.sum(weights * densities) / np.sum(weights)
        return grid


class WarpInterpolationBackend(InterpolationBackend):
    """Evaluates every cell in parallel with a Warp kernel.

    Args:
        device: Warp device. Defaults to ``"cuda"``.
    """

    name = "warp"

    def __init__(self, device=None):
        self.device = wp.get_device(device if device is not None else "cuda")

    @classmethod
    def is_available(cls, device=None) -> bool:
        if device is None:
            return wp.is_cuda_available()
        try:
            wp.get_device(device)
        except (RuntimeError, ValueError):
            return False
        return True

    def interpolate(self, positions, densities, grid_size, cancel=None):
        check_cancelled(cancel)
        if len(positions) == 0:
            return np.zeros((grid_size, grid_size), dtype=np.float64)

        with wp.ScopedDevice(self.device):
            wp_positions = wp.array(np.ascontiguousarray(positions, dtype=np.float64), dtype=wp.vec2d)
            wp_densities = wp.array(np.ascontiguousarray(densities, dtype=np.float64), dtype=wp.float64)
            out_grid = wp.zeros((grid_size, grid_size), dtype=wp.float64)

            wp.launch(
                _idw_grid_kernel,
                dim=(grid_size, grid_size),
                inputs=[wp_positions, wp_densities, grid_size, wp.float64(NEAR_POINT_TOLERANCE)],
                outputs=[out_grid],
            )
            wp.synchronize_device(self.device)
            result = out_grid.numpy()

        # Discard finished work if the caller went away meanwhile
        check_cancelled(cancel)
        return result


def select_interpolation_backend(device=None, prefer_accelerated: bool = True) -> InterpolationBackend:
    """Pick the interpolation backend for one invocation.

    Args:
        device: Explicit Warp device for the accelerated path (e.g. ``"cpu"`` or
            ``"cuda:0"``). ``None`` uses CUDA when available.
        prefer_accelerated: Set False to force the sequential backend.
    """
    if prefer_accelerated and WarpInterpolationBackend.is_available(device):
        backend = WarpInterpolationBackend(device)
    else:
        backend = SequentialInterpolationBackend()
    logger.debug("selected %s interpolation backend", backend.name)
    return backend


# -----------------------------------------------------------------------------
# Post-processing
# -----------------------------------------------------------------------------


def apply_regional_blending(grid: np.ndarray, regions: Sequence[SegmentedRegion]) -> np.ndarray:
    """Blend each cell inside a region toward that region's mean density.

    A cell inside several regions is blended toward the mean of their means:
    ``(cell + mean(region_means)) / 2``.
    """
    grid_size = grid.shape[0]
    if not regions:
        return grid.copy()

    centers = cell_centers(grid_size)
    mean_sum = np.zeros(len(centers), dtype=np.float64)
    hits = np.zeros(len(centers), dtype=np.int64)
    for region in regions:
        inside = points_in_polygon(centers, region.boundary)
        mean_sum[inside] += region.mean_density
        hits[inside] += 1

    flat = grid.reshape(-1).copy()
    covered = hits > 0
    flat[covered] = 0.5 * (flat[covered] + mean_sum[covered] / hits[covered])
    return flat.reshape(grid.shape)


def smooth_grid(grid: np.ndarray) -> np.ndarray:
    """Apply the 3x3 Gaussian kernel to interior cells; border cells are copied."""
    smoothed = grid.copy()
    rows, cols = grid.shape
    if rows < 3 or cols < 3:
        return smoothed

    interior = np.zeros((rows - 2, cols - 2), dtype=np.float64)
    for dy in range(3):
        for dx in range(3):
            interior += SMOOTHING_KERNEL[dy, dx] * grid[dy : rows - 2 + dy, dx : cols - 2 + dx]
    smoothed[1:-1, 1:-1] = interior
    return smoothed


def positive_range(grid: np.ndarray) -> tuple[float, float]:
    """(min, max) over strictly positive cells; (0, 0) if there are none."""
    positive = grid[grid > 0.0]
    if positive.size == 0:
        return 0.0, 0.0
    return float(positive.min()), float(positive.max())


class InterpolationResult(NamedTuple):
    grid: np.ndarray
    max_density: float
    min_density: float


class DensityInterpolator:
    """Converts sparse density samples into a smoothed density grid.

    Args:
        backend: Backend to use. ``None`` selects one per call with
            :func:`select_interpolation_backend`.
        device: Warp device passed to backend selection.
    """

    def __init__(self, backend: InterpolationBackend | None = None, device=None):
        self.backend = backend
        self.device = device

    def interpolate(
        self,
        points: Sequence[DensityPoint],
        resolution: float,
        regions: Sequence[SegmentedRegion] = (),
        smoothing_factor: float = 1.0,
        cancel: CancellationToken | None = None,
    ) -> InterpolationResult:
        """Interpolate, blend toward region means, and smooth.

        Args:
            points: Density samples on the unit domain.
            resolution: Cell size as a fraction of the unit domain.
            regions: Segmented regions used for blending.
            smoothing_factor: 1.0 applies the full 3x3 smoothing, 0.0 none.
            cancel: Optional cancellation token.

        Returns:
            ``(grid, max_density, min_density)`` with the range taken over
            strictly positive cells.

        Raises:
            InterpolationFailure: If the backend fails or produces non-finite values.
        """
        if not (0.0 <= smoothing_factor <= 1.0):
            raise ValueError(f"smoothing_factor must be in [0, 1], got {smoothing_factor}")
        grid_size = grid_size_for(resolution)

        points = tuple(points)
        positions = np.asarray([(p.position.x, p.position.y) for p in points], dtype=np.float64).reshape(-1, 2)
        densities = np.asarray([p.density for p in points], dtype=np.float64)

        backend = self.backend if self.backend is not None else select_interpolation_backend(self.device)
        try:
            raw = backend.interpolate(positions, densities, grid_size, cancel=cancel)
        except RuntimeError as exc:
            raise InterpolationFailure(f"{backend.name} backend failed: {exc}") from exc
        if not np.all(np.isfinite(raw)):
            raise InterpolationFailure(f"{backend.name} backend produced non-finite densities")

        check_cancelled(cancel)
        blended = apply_regional_blending(raw, regions)
        smoothed = smooth_grid(blended)
        if smoothing_factor < 1.0:
            smoothed = smoothing_factor * smoothed + (1.0 - smoothing_factor) * blended

        min_density, max_density = positive_range(smoothed)
        logger.debug(
            "interpolated %d samples onto %dx%d grid with %s backend",
            len(points),
            grid_size,
            grid_size,
            backend.name,
        )
        return InterpolationResult(smoothed, max_density, min_density)
