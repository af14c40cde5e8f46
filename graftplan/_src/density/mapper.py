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

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Executor
from typing import Protocol, runtime_checkable

import numpy as np

from ..core.concurrency import CancellationToken, run_offloaded
from ..core.errors import AnalysisFailure
from ..core.types import DensityMap, DensityPoint, DensityPreferences, DensityRegion, ScanData, SegmentedRegion
from ..geometry.polygon import points_in_polygon
from .clustering import DensityClusterer
from .interpolation import DensityInterpolator, cell_centers, grid_size_for
from .segmentation import RegionSegmenter

logger = logging.getLogger(__name__)

# Normalized cell counts at or below this are treated as detector noise
FEATURE_NOISE_FLOOR = 0.1


@runtime_checkable
class DensityAnalyzer(Protocol):
    """Extracts density samples from a scan (feature detection lives outside this package)."""

    async def analyze_density(self, scan: ScanData, resolution: float) -> Sequence[DensityPoint]: ...


def density_points_from_features(feature_centers, resolution: float) -> list[DensityPoint]:
    """Bin detected feature centers into a grid and emit one sample per busy cell.

    Counts are normalized by the busiest cell; cells at or below
    :data:`FEATURE_NOISE_FLOOR` are dropped. Confidence is ``min(1.2 * density, 1)``.

    Args:
        feature_centers: (N, 2) feature centers on the unit domain.
        resolution: Cell size as a fraction of the unit domain.

    Returns:
        Samples positioned at cell centers, in row-major cell order.
    """
    grid_size = grid_size_for(resolution)
    centers = np.asarray(feature_centers, dtype=np.float64).reshape(-1, 2)
    if len(centers) == 0:
        return []

    cells = np.floor(centers * grid_size).astype(np.int64)
    in_domain = np.all((centers >= 0.0) & (centers <= 1.0), axis=1)
    cells = np.clip(cells[in_domain], 0, grid_size - 1)
    counts = np.zeros((grid_size, grid_size), dtype=np.int64)
    np.add.at(counts, (cells[:, 1], cells[:, 0]), 1)
    if counts.max() == 0:
        return []

    normalized = counts / counts.max()
    rows, cols = np.nonzero(normalized > FEATURE_NOISE_FLOOR)
    points = []
    for row, col in zip(rows.tolist(), cols.tolist()):
        density = float(normalized[row, col])
        points.append(
            DensityPoint(
                position=((col + 0.5) / grid_size, (row + 0.5) / grid_size, 0.0),
                density=density,
                confidence=min(density * 1.2, 1.0),
            )
        )
    return points


def region_average_density(grid: np.ndarray, region: SegmentedRegion) -> float:
    """Mean of grid cells whose centers fall inside the region.

    Falls back to the region's member mean when the boundary covers no cell center.
    """
    inside = points_in_polygon(cell_centers(grid.shape[0]), region.boundary)
    if not np.any(inside):
        return region.mean_density
    return float(grid.reshape(-1)[inside].mean())


class DensityMapper:
    """Builds a :class:`DensityMap` from a scan.

    Stages run in order (analysis, clustering, segmentation, interpolation);
    the blocking ones are offloaded to ``executor`` and share one cancellation
    token, so cancelling :meth:`generate_density_map` abandons the in-flight stage.

    Args:
        analyzer: Source of density samples.
        clusterer: Clusterer; a default :class:`DensityClusterer` if omitted.
        segmenter: Segmenter; a default :class:`RegionSegmenter` if omitted.
        interpolator: Interpolator; a default :class:`DensityInterpolator` if omitted.
        executor: Executor for blocking stages; the loop default if omitted.
    """

    def __init__(
        self,
        analyzer: DensityAnalyzer,
        clusterer: DensityClusterer | None = None,
        segmenter: RegionSegmenter | None = None,
        interpolator: DensityInterpolator | None = None,
        executor: Executor | None = None,
    ):
        self.analyzer = analyzer
        self.clusterer = clusterer if clusterer is not None else DensityClusterer()
        self.segmenter = segmenter if segmenter is not None else RegionSegmenter()
        self.interpolator = interpolator if interpolator is not None else DensityInterpolator()
        self.executor = executor

    async def generate_density_map(
        self,
        scan: ScanData,
        resolution: float,
        preferences: DensityPreferences,
        cancel: CancellationToken | None = None,
        executor: Executor | None = None,
    ) -> DensityMap:
        """Run the density chain for one scan.

        ``executor`` overrides the mapper default for this call.

        Raises:
            AnalysisFailure: If the analyzer yields no density samples.
            InsufficientPointsError: If a cluster cannot form a boundary.
            InterpolationFailure: If the grid cannot be computed.
            PlanningCancelled: If ``cancel`` is tripped while a stage runs.
        """
        # Reject a bad resolution before calling out to the analyzer
        grid_size_for(resolution)
        token = cancel if cancel is not None else CancellationToken()
        if executor is None:
            executor = self.executor

        points = tuple(await self.analyzer.analyze_density(scan, resolution))
        if not points:
            raise AnalysisFailure("density analysis produced no samples")
        token.raise_if_cancelled()

        clusters = await run_offloaded(
            self.clusterer.cluster,
            points,
            preferences.density_thresholds,
            min_cluster_size=preferences.min_cluster_size,
            epsilon=preferences.min_region_size,
            token=token,
            executor=executor,
        )
        token.raise_if_cancelled()
        segmented = self.segmenter.segment(clusters, target_densities=preferences.target_densities)

        result = await run_offloaded(
            self.interpolator.interpolate,
            points,
            resolution,
            segmented,
            smoothing_factor=preferences.smoothing_factor,
            token=token,
            executor=executor,
        )

        regions = []
        for region in segmented:
            average = region_average_density(result.grid, region)
            target = region.target_density if region.target_density is not None else average
            regions.append(DensityRegion(region.name, region.boundary, average, target))

        logger.info(
            "density map: %d samples, %d regions, range [%.3f, %.3f]",
            len(points),
            len(regions),
            result.min_density,
            result.max_density,
        )
        return DensityMap(resolution, result.grid, result.min_density, result.max_density, tuple(regions))
