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

import numpy as np

from ..core.errors import InsufficientPointsError
from ..core.types import DensityPoint, SegmentedRegion
from ..geometry.polygon import convex_hull

logger = logging.getLogger(__name__)


def region_name(index: int) -> str:
    """Generated name for the ``index``-th (0-based) region."""
    return f"Region_{index + 1}"


class RegionSegmenter:
    """Turns density clusters into named regions with convex-hull boundaries."""

    def segment(
        self,
        clusters: Sequence[Sequence[DensityPoint]],
        names: Sequence[str] | None = None,
        target_densities: dict[str, float] | None = None,
    ) -> tuple[SegmentedRegion, ...]:
        """Build one :class:`SegmentedRegion` per cluster.

        Every cluster is checked before any region is built.

        Args:
            clusters: Clusters of density samples.
            names: Optional region names, one per cluster. Generated names
                (``Region_1``, ``Region_2``, ...) are used otherwise.
            target_densities: Optional target density per region name.

        Returns:
            Regions in cluster order, with mean density, population variance of
            the member densities, and the hull of member positions as boundary.

        Raises:
            InsufficientPointsError: If a cluster has fewer than 3 points or its
                points are collinear.
            ValueError: If ``names`` has the wrong length or repeats a name.
        """
        clusters = [tuple(c) for c in clusters]
        for i, cluster in enumerate(clusters):
            if len(cluster) < 3:
                raise InsufficientPointsError(f"Cluster {i} has {len(cluster)} points; at least 3 are required")

        if names is None:
            names = [region_name(i) for i in range(len(clusters))]
        else:
            names = list(names)
            if len(names) != len(clusters):
                raise ValueError(f"Got {len(names)} names for {len(clusters)} clusters")
            if len(set(names)) != len(names):
                raise ValueError("Region names must be unique")

        targets = target_densities or {}
        regions = []
        for name, cluster in zip(names, clusters):
            densities = np.asarray([p.density for p in cluster], dtype=np.float64)
            boundary = convex_hull([p.position for p in cluster])
            regions.append(
                SegmentedRegion(
                    name=name,
                    boundary=boundary,
                    mean_density=float(densities.mean()),
                    density_variance=float(densities.var()),
                    target_density=targets.get(name),
                )
            )

        logger.debug("segmented %d regions", len(regions))
        return tuple(regions)
