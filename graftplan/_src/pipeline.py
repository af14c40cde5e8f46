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

from .core.concurrency import CancellationToken, gather_or_cancel
from .core.types import (
    DensityPreferences,
    GraftCalculation,
    GraftPreferences,
    MeasurementRegion,
    Measurements,
    ScanData,
    TreatmentPlanData,
)
from .density.mapper import DensityMapper
from .planning.allocation import GraftAllocator
from .planning.measurement import MeasurementEngine

logger = logging.getLogger(__name__)


class PlanningPipeline:
    """Produces treatment-plan data for one scan per :meth:`run` call.

    The density chain (clustering, segmentation, interpolation) and the
    measurement chain (measurement, allocation) share no data and run
    concurrently. If either fails, the other is cancelled and the first error
    propagates. Cancelling :meth:`run` trips the invocation's token so that
    offloaded workers stop at their next check.

    Args:
        density_mapper: Density chain.
        measurement_engine: Region measurement stage.
        graft_allocator: Allocation stage. Defaults to a :class:`GraftAllocator`
            with zero existing density.
        executor: If given, used for every offloaded stage of a run instead of
            the stages' own executors. The stages themselves are not modified.
    """

    def __init__(
        self,
        density_mapper: DensityMapper,
        measurement_engine: MeasurementEngine,
        graft_allocator: GraftAllocator | None = None,
        executor: Executor | None = None,
    ):
        self.density_mapper = density_mapper
        self.measurement_engine = measurement_engine
        self.graft_allocator = graft_allocator if graft_allocator is not None else GraftAllocator()
        self.executor = executor

    async def _measure_and_allocate(
        self,
        scan: ScanData,
        regions: Sequence[MeasurementRegion],
        preferences: GraftPreferences,
        token: CancellationToken,
    ) -> tuple[Measurements, GraftCalculation]:
        measurements = await self.measurement_engine.measurements(scan, regions, cancel=token, executor=self.executor)
        token.raise_if_cancelled()
        calculation = await self.graft_allocator.allocate(measurements, preferences)
        return measurements, calculation

    async def run(
        self,
        scan: ScanData,
        resolution: float,
        density_preferences: DensityPreferences,
        measurement_regions: Sequence[MeasurementRegion],
        graft_preferences: GraftPreferences,
    ) -> TreatmentPlanData:
        """Run both chains and combine their results.

        Returns:
            The density map, measurements and graft calculation of this scan.
            Nothing is returned if any stage fails or the call is cancelled.
        """
        token = CancellationToken()
        density_map, (measurements, calculation) = await gather_or_cancel(
            self.density_mapper.generate_density_map(
                scan, resolution, density_preferences, cancel=token, executor=self.executor
            ),
            self._measure_and_allocate(scan, measurement_regions, graft_preferences, token),
            token=token,
        )
        logger.info(
            "treatment plan: %d regions, %d grafts needed, %d allocated",
            len(density_map.regions),
            calculation.total_grafts,
            calculation.allocated_grafts,
        )
        return TreatmentPlanData(density_map, measurements, calculation)
