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

import unittest

import numpy as np

from graftplan._src.core.concurrency import CancellationToken
from graftplan._src.core.errors import PlanningCancelled
from graftplan._src.geometry.spatial_index import SpatialIndex, spatial_hash


def _brute_force(points, center, radius):
    d = np.linalg.norm(points - np.asarray(center), axis=1)
    return set(np.flatnonzero(d <= radius).tolist())


class TestSpatialIndex(unittest.TestCase):
    def test_matches_brute_force(self):
        rng = np.random.default_rng(42)
        points = rng.uniform(-1.0, 1.0, size=(500, 3))
        index = SpatialIndex(points, cell_size=0.1)
        self.assertEqual(len(index), 500)

        for radius in (0.05, 0.1, 0.25, 0.7):
            for center in rng.uniform(-1.0, 1.0, size=(10, 3)):
                self.assertEqual(index.query_radius(center, radius), _brute_force(points, center, radius))

    def test_radius_larger_than_cell(self):
        points = np.array([[0.0, 0.0, 0.0], [0.35, 0.0, 0.0], [0.0, 0.0, 0.39], [1.0, 1.0, 1.0]])
        index = SpatialIndex.build(points, cell_size=0.1)
        self.assertEqual(index.query_radius((0.0, 0.0, 0.0), 0.4), {0, 1, 2})

    def test_radius_far_larger_than_cell(self):
        # A 1001^3 cell window must not be enumerated
        index = SpatialIndex([(0.0, 0.0, 0.0), (0.3, 0.0, 0.0), (0.9, 0.0, 0.0)], cell_size=0.001)
        self.assertEqual(index.query_radius((0.0, 0.0, 0.0), 0.5), {0, 1})
        self.assertEqual(index.connected_region(0, 0.5), {0, 1})

    def test_negative_coordinates(self):
        points = [(-0.01, -0.01, -0.01), (0.01, 0.01, 0.01)]
        index = SpatialIndex(points, cell_size=1.0)
        self.assertEqual(index.query_radius((0.0, 0.0, 0.0), 0.05), {0, 1})

    def test_query_results_sorted(self):
        points = np.random.default_rng(1).uniform(0.0, 1.0, size=(100, 3))
        found = SpatialIndex(points, 0.2).query_radius_array((0.5, 0.5, 0.5), 0.4)
        np.testing.assert_array_equal(found, np.sort(found))

    def test_accepts_2d_points(self):
        index = SpatialIndex([(0.0, 0.0), (0.5, 0.0)], cell_size=0.25)
        self.assertEqual(index.query_radius((0.0, 0.0), 0.1), {0})

    def test_empty_index(self):
        index = SpatialIndex([], cell_size=0.1)
        self.assertEqual(len(index), 0)
        self.assertEqual(index.num_buckets, 0)
        self.assertEqual(index.query_radius((0.0, 0.0, 0.0), 1.0), set())

    def test_rejects_non_positive_radius(self):
        index = SpatialIndex([(0.0, 0.0, 0.0)], cell_size=0.1)
        with self.assertRaises(ValueError):
            index.query_radius((0.0, 0.0, 0.0), 0.0)
        with self.assertRaises(ValueError):
            index.query_radius((0.0, 0.0, 0.0), -1.0)

    def test_rejects_non_positive_cell_size(self):
        with self.assertRaises(ValueError):
            SpatialIndex([(0.0, 0.0, 0.0)], cell_size=0.0)

    def test_neighbors_excludes_self(self):
        index = SpatialIndex([(0.0, 0.0, 0.0), (0.05, 0.0, 0.0), (0.5, 0.0, 0.0)], cell_size=0.1)
        np.testing.assert_array_equal(index.neighbors(0, 0.1), [1])

    def test_spatial_hash_deterministic(self):
        cells = np.array([[0, 0, 0], [1, 2, 3], [-4, 5, -6]])
        np.testing.assert_array_equal(spatial_hash(cells), spatial_hash(cells.copy()))
        self.assertEqual(int(spatial_hash(np.array([[1, 0, 0]]))[0]), 73856093)


class TestConnectedRegion(unittest.TestCase):
    def setUp(self):
        # Two chains along x separated by a gap wider than the hop radius
        chain_a = [(0.1 * i, 0.0, 0.0) for i in range(10)]
        chain_b = [(2.0 + 0.1 * i, 0.0, 0.0) for i in range(5)]
        self.index = SpatialIndex(chain_a + chain_b, cell_size=0.1)

    def test_flood_fill_follows_chain(self):
        self.assertEqual(self.index.connected_region(0, 0.11), set(range(10)))
        self.assertEqual(self.index.connected_region(12, 0.11), set(range(10, 15)))

    def test_small_radius_isolates_seed(self):
        self.assertEqual(self.index.connected_region(3, 0.05), {3})

    def test_max_points(self):
        region = self.index.connected_region(0, 0.11, max_points=4)
        self.assertEqual(len(region), 4)
        self.assertIn(0, region)

    def test_invalid_seed(self):
        with self.assertRaises(IndexError):
            self.index.connected_region(99, 0.1)

    def test_cancelled(self):
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(PlanningCancelled):
            self.index.connected_region(0, 0.11, cancel=token)


if __name__ == "__main__":
    unittest.main(verbosity=2)
