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

import asyncio
import gc
import math
import unittest
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from graftplan._src.core.concurrency import CancellationToken, gather_or_cancel, run_offloaded
from graftplan._src.core.errors import (
    AnalysisFailure,
    InsufficientDonorAreaWarning,
    PlanningCancelled,
    SegmentationFailure,
)
from graftplan._src.core.types import (
    DensityPoint,
    DensityPreferences,
    DetectedRegion,
    GraftPreferences,
    GraftType,
    MeasurementRegion,
    RegionType,
    ScanData,
    ZonePreference,
)
from graftplan._src.density.interpolation import DensityInterpolator, SequentialInterpolationBackend
from graftplan._src.density.mapper import DensityMapper, density_points_from_features
from graftplan._src.pipeline import PlanningPipeline
from graftplan._src.planning.allocation import ConstantDensityEstimator, GraftAllocator
from graftplan._src.planning.measurement import MeasurementEngine, MeshAnalyzer


def _ring(center, radius, count, density):
    return [
        DensityPoint(
            (
                center[0] + radius * math.cos(2.0 * math.pi * k / count),
                center[1] + radius * math.sin(2.0 * math.pi * k / count),
                0.0,
            ),
            density,
        )
        for k in range(count)
    ]


def _scan():
    vertices = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (1.0, 1.0, 0.0), (0.0, 1.0, 0.0)]
    return ScanData(vertices=vertices, indices=[0, 1, 2, 0, 2, 3])


def _square(x0, y0, size):
    return [(x0, y0, 0.0), (x0 + size, y0, 0.0), (x0 + size, y0 + size, 0.0), (x0, y0 + size, 0.0)]


class StaticAnalyzer:
    def __init__(self, points):
        self.points = points

    async def analyze_density(self, scan, resolution):
        return list(self.points)


class BlockingAnalyzer:
    """Never finishes; records whether it was cancelled."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def analyze_density(self, scan, resolution):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class RecordingExecutor(ThreadPoolExecutor):
    def __init__(self):
        super().__init__(max_workers=2)
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs):
        self.submitted += 1
        return super().submit(fn, *args, **kwargs)


class StaticDetector:
    def __init__(self, failure=None):
        self.failure = failure

    async def detect(self, scan, request):
        if self.failure is not None:
            raise self.failure
        if request.type == RegionType.recipient():
            return DetectedRegion(request.type, _square(0.0, 0.0, 10.0), confidence=1.0)
        return DetectedRegion(request.type, _square(0.0, 0.0, 5.0), confidence=1.0)


DENSITY_PREFERENCES = DensityPreferences(
    target_densities={"Region_1": 0.95},
    min_region_size=0.1,
    density_thresholds=(0.5,),
    min_cluster_size=5,
)

GRAFT_PREFERENCES = GraftPreferences(
    target_density=40.0,
    max_donor_density=60.0,
    type_distribution={GraftType.SINGLE: 0.25, GraftType.DOUBLE: 0.5, GraftType.TRIPLE: 0.25},
    zone_preferences=(
        ZonePreference("hairline", priority=1, boundary=_square(0.0, 0.0, 5.0)),
        ZonePreference("crown", priority=2, boundary=_square(5.0, 5.0, 5.0), target_density=30.0),
    ),
)

REQUESTS = (
    MeasurementRegion(RegionType.recipient(), (0.0, 0.0, 0.0), 100.0),
    MeasurementRegion(RegionType.donor(), (0.0, 0.0, 0.0), 25.0),
)


def _mapper(analyzer):
    return DensityMapper(analyzer, interpolator=DensityInterpolator(SequentialInterpolationBackend()))


def _pipeline(analyzer, detector=None, executor=None):
    return PlanningPipeline(
        _mapper(analyzer),
        MeasurementEngine(detector or StaticDetector(), MeshAnalyzer(device="cpu")),
        GraftAllocator(ConstantDensityEstimator(10.0)),
        executor=executor,
    )


class TestDensityPointsFromFeatures(unittest.TestCase):
    def test_counts_normalized(self):
        features = [(0.1, 0.1)] * 4 + [(0.6, 0.1)] * 2 + [(0.9, 0.9)]
        points = density_points_from_features(features, 0.5)

        self.assertEqual(len(points), 3)
        by_cell = {(p.position.x, p.position.y): p for p in points}
        self.assertEqual(by_cell[(0.25, 0.25)].density, 1.0)
        self.assertEqual(by_cell[(0.75, 0.25)].density, 0.5)
        self.assertAlmostEqual(by_cell[(0.75, 0.25)].confidence, 0.6)
        self.assertEqual(by_cell[(0.75, 0.75)].density, 0.25)

    def test_noise_floor(self):
        features = [(0.1, 0.1)] * 20 + [(0.9, 0.9)]
        points = density_points_from_features(features, 0.5)
        self.assertEqual(len(points), 1)

    def test_empty(self):
        self.assertEqual(density_points_from_features([], 0.1), [])


class TestRunOffloaded(unittest.IsolatedAsyncioTestCase):
    async def test_passes_token(self):
        token = CancellationToken()

        def work(value, cancel=None):
            return value * 2, cancel

        result, seen = await run_offloaded(work, 21, token=token)
        self.assertEqual(result, 42)
        self.assertIs(seen, token)

    async def test_cancelled_token_refused(self):
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(PlanningCancelled):
            await run_offloaded(lambda cancel=None: None, token=token)


class TestGatherOrCancel(unittest.IsolatedAsyncioTestCase):
    async def test_results_in_argument_order(self):
        async def delayed(value, delay):
            await asyncio.sleep(delay)
            return value

        self.assertEqual(await gather_or_cancel(delayed("a", 0.02), delayed("b", 0.0)), ["a", "b"])
        self.assertEqual(await gather_or_cancel(), [])

    async def test_failure_cancels_siblings_and_trips_token(self):
        analyzer = BlockingAnalyzer()
        token = CancellationToken()

        async def fail():
            await analyzer.started.wait()
            raise SegmentationFailure("no model")

        with self.assertRaises(SegmentationFailure):
            await gather_or_cancel(analyzer.analyze_density(None, 0.1), fail(), token=token)
        self.assertTrue(analyzer.cancelled)
        self.assertTrue(token.cancelled)

    async def test_every_failure_retrieved(self):
        reported = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))

        async def fail(message):
            raise SegmentationFailure(message)

        with self.assertRaises(SegmentationFailure) as ctx:
            await gather_or_cancel(fail("first"), fail("second"))
        self.assertEqual(str(ctx.exception), "first")

        del ctx
        gc.collect()
        self.assertEqual(reported, [])


class TestDensityMapper(unittest.IsolatedAsyncioTestCase):
    async def test_generate_density_map(self):
        points = _ring((0.25, 0.25), 0.05, 8, 0.9) + _ring((0.75, 0.75), 0.05, 8, 0.6)
        density_map = await _mapper(StaticAnalyzer(points)).generate_density_map(_scan(), 0.1, DENSITY_PREFERENCES)

        self.assertEqual(density_map.grid.shape, (10, 10))
        self.assertEqual(density_map.resolution, 0.1)
        self.assertTrue(np.all(density_map.grid >= density_map.min_density))
        self.assertTrue(np.all(density_map.grid <= density_map.max_density))
        self.assertEqual([r.name for r in density_map.regions], ["Region_1", "Region_2"])

        first = density_map.region("Region_1")
        second = density_map.region("Region_2")
        self.assertEqual(first.target_density, 0.95)
        self.assertEqual(second.target_density, second.average_density)
        self.assertGreater(first.average_density, second.average_density)
        with self.assertRaises(KeyError):
            density_map.region("Region_3")

    async def test_no_samples(self):
        with self.assertRaises(AnalysisFailure):
            await _mapper(StaticAnalyzer([])).generate_density_map(_scan(), 0.1, DENSITY_PREFERENCES)

    async def test_cancelled_before_start(self):
        token = CancellationToken()
        token.cancel()
        points = _ring((0.25, 0.25), 0.05, 8, 0.9)
        with self.assertRaises(PlanningCancelled):
            await _mapper(StaticAnalyzer(points)).generate_density_map(
                _scan(), 0.1, DENSITY_PREFERENCES, cancel=token
            )


class TestPlanningPipeline(unittest.IsolatedAsyncioTestCase):
    async def test_run(self):
        points = _ring((0.25, 0.25), 0.05, 8, 0.9) + _ring((0.75, 0.75), 0.05, 8, 0.6)
        with RecordingExecutor() as executor, self.assertWarns(InsufficientDonorAreaWarning):
            pipeline = _pipeline(StaticAnalyzer(points), executor=executor)
            plan = await pipeline.run(_scan(), 0.1, DENSITY_PREFERENCES, REQUESTS, GRAFT_PREFERENCES)

        # Clustering, interpolation and mesh analysis ran on the pipeline executor
        self.assertEqual(executor.submitted, 3)
        self.assertIsNone(pipeline.density_mapper.executor)
        self.assertIsNone(pipeline.measurement_engine.executor)

        self.assertEqual(len(plan.density_map.regions), 2)
        self.assertAlmostEqual(plan.measurements.recipient_area, 100.0)
        self.assertAlmostEqual(plan.measurements.donor_area, 25.0)
        self.assertAlmostEqual(plan.measurements.total_area, 1.0)

        calculation = plan.graft_calculation
        self.assertEqual(calculation.total_grafts, 3000)
        self.assertEqual(calculation.max_grafts, 1500)
        self.assertTrue(calculation.donor_limited)
        self.assertEqual([zone.name for zone in calculation.zones], ["hairline", "crown"])
        self.assertEqual([zone.graft_count for zone in calculation.zones], [1000, 500])
        self.assertEqual(calculation.allocated_grafts, calculation.max_grafts)
        self.assertLessEqual(calculation.allocated_grafts, calculation.total_grafts)

    async def test_failure_cancels_other_chain(self):
        analyzer = BlockingAnalyzer()
        pipeline = _pipeline(analyzer, detector=StaticDetector(failure=SegmentationFailure("no model")))
        with self.assertRaises(SegmentationFailure):
            await pipeline.run(_scan(), 0.1, DENSITY_PREFERENCES, REQUESTS, GRAFT_PREFERENCES)
        self.assertTrue(analyzer.cancelled)

    async def test_both_chains_fail(self):
        reported = []
        asyncio.get_running_loop().set_exception_handler(lambda loop, context: reported.append(context))
        pipeline = _pipeline(StaticAnalyzer([]), detector=StaticDetector(failure=SegmentationFailure("no model")))

        with self.assertRaises(AnalysisFailure):
            await pipeline.run(_scan(), 0.1, DENSITY_PREFERENCES, REQUESTS, GRAFT_PREFERENCES)

        gc.collect()
        self.assertEqual(reported, [])

    async def test_cancellation(self):
        analyzer = BlockingAnalyzer()
        pipeline = _pipeline(analyzer)
        task = asyncio.ensure_future(pipeline.run(_scan(), 0.1, DENSITY_PREFERENCES, REQUESTS, GRAFT_PREFERENCES))
        await analyzer.started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertTrue(analyzer.cancelled)


if __name__ == "__main__":
    unittest.main(verbosity=2)
