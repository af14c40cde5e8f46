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

import math
import unittest

import numpy as np

from graftplan._src.core.concurrency import CancellationToken
from graftplan._src.core.errors import PlanningCancelled
from graftplan._src.core.types import DensityPoint
from graftplan._src.density.clustering import DensityClusterer, dbscan


def _disc(center, radius, count, density, rng):
    points = []
    for _ in range(count):
        r = radius * math.sqrt(rng.uniform())
        theta = rng.uniform(0.0, 2.0 * math.pi)
        points.append(DensityPoint((center[0] + r * math.cos(theta), center[1] + r * math.sin(theta), 0.0), density))
    return points


NOISE_POSITIONS = [(0.9, 0.9), (0.9, 0.1), (0.1, 0.9), (0.55, 0.95), (0.95, 0.5)]


class TestDbscan(unittest.TestCase):
    def test_border_points_do_not_expand(self):
        # Five mutual neighbors form the core; 5 borders it and 6 is only reachable through 5
        positions = np.array(
            [
                [0.0, 0.0, 0.0],
                [0.045, 0.0, 0.0],
                [-0.045, 0.0, 0.0],
                [0.0, 0.045, 0.0],
                [0.0, -0.045, 0.0],
                [0.13, 0.0, 0.0],
                [0.22, 0.0, 0.0],
            ]
        )
        clusters = dbscan(positions, epsilon=0.1, min_neighbors=4)
        self.assertEqual(len(clusters), 1)
        self.assertEqual(clusters[0].tolist(), [0, 1, 2, 3, 4, 5])

    def test_all_noise(self):
        positions = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        self.assertEqual(dbscan(positions, epsilon=0.1, min_neighbors=1), [])

    def test_invalid_epsilon(self):
        with self.assertRaises(ValueError):
            dbscan(np.zeros((3, 3)), epsilon=0.0, min_neighbors=2)


class TestDensityClusterer(unittest.TestCase):
    def test_cluster_with_noise(self):
        rng = np.random.default_rng(0)
        cluster = _disc((0.3, 0.3), 0.05, 10, 0.9, rng)
        noise = [DensityPoint((x, y, 0.0), 0.9) for x, y in NOISE_POSITIONS]

        clusters = DensityClusterer().cluster(cluster + noise, [0.5], min_cluster_size=5, epsilon=0.1)

        self.assertEqual(len(clusters), 1)
        self.assertEqual(len(clusters[0]), 10)
        self.assertEqual(set(clusters[0]), set(cluster))

    def test_thresholds_processed_high_to_low(self):
        rng = np.random.default_rng(1)
        dense = _disc((0.2, 0.2), 0.04, 8, 0.9, rng)
        sparse = _disc((0.7, 0.7), 0.04, 8, 0.4, rng)

        clusters = DensityClusterer(min_cluster_size=5, epsilon=0.1).cluster(dense + sparse, [0.3, 0.8])

        self.assertEqual(len(clusters), 2)
        self.assertEqual(set(clusters[0]), set(dense))
        self.assertEqual(set(clusters[1]), set(sparse))

    def test_points_claimed_once(self):
        rng = np.random.default_rng(2)
        points = _disc((0.5, 0.5), 0.04, 12, 0.9, rng)

        clusters = DensityClusterer(min_cluster_size=5, epsilon=0.1).cluster(points, [0.8, 0.5, 0.2])

        self.assertEqual(len(clusters), 1)
        self.assertEqual(len(clusters[0]), 12)

    def test_small_clusters_discarded(self):
        rng = np.random.default_rng(3)
        points = _disc((0.5, 0.5), 0.04, 4, 0.9, rng)
        self.assertEqual(DensityClusterer(min_cluster_size=5, epsilon=0.1).cluster(points, [0.5]), [])

    def test_below_threshold_ignored(self):
        rng = np.random.default_rng(4)
        points = _disc((0.5, 0.5), 0.04, 10, 0.3, rng)
        self.assertEqual(DensityClusterer(min_cluster_size=5).cluster(points, [0.5]), [])

    def test_empty_input(self):
        self.assertEqual(DensityClusterer().cluster([], [0.5]), [])

    def test_cancelled(self):
        rng = np.random.default_rng(5)
        points = _disc((0.5, 0.5), 0.04, 10, 0.9, rng)
        token = CancellationToken()
        token.cancel()
        with self.assertRaises(PlanningCancelled):
            DensityClusterer(min_cluster_size=5).cluster(points, [0.5], cancel=token)

    def test_invalid_configuration(self):
        with self.assertRaises(ValueError):
            DensityClusterer(min_cluster_size=0)
        with self.assertRaises(ValueError):
            DensityClusterer(epsilon=-0.1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
