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

"""ASV benchmarks for density interpolation and clustering.

Compares the Warp-accelerated IDW grid against the sequential NumPy fallback on
the same random samples, and times threshold-layered clustering, which is
backed by the spatial hash.
"""

import numpy as np
import warp as wp
from asv_runner.benchmarks.mark import skip_benchmark_if

wp.config.quiet = True

from graftplan import DensityPoint
from graftplan._src.density.clustering import DensityClusterer
from graftplan._src.density.interpolation import SequentialInterpolationBackend, WarpInterpolationBackend


def random_samples(count: int, seed: int = 0):
    """Return ``(positions, densities)`` for ``count`` samples on the unit square."""
    rng = np.random.default_rng(seed)
    return rng.uniform(0.0, 1.0, size=(count, 2)), rng.uniform(0.1, 1.0, size=count)


class InterpolationBackends:
    """IDW grid computation per backend."""

    repeat = 3
    number = 1

    params = [
        [64, 128],
        [500, 2000],
    ]
    param_names = ["grid_size", "num_points"]

    def setup(self, grid_size, num_points):
        self.positions, self.densities = random_samples(num_points)
        if wp.get_cuda_device_count() > 0:
            self.warp_backend = WarpInterpolationBackend("cuda:0")
            # Compile the kernel outside the timed region
            self.warp_backend.interpolate(self.positions, self.densities, 4)

    @skip_benchmark_if(wp.get_cuda_device_count() == 0)
    def time_warp(self, grid_size, num_points):
        self.warp_backend.interpolate(self.positions, self.densities, grid_size)

    def time_sequential(self, grid_size, num_points):
        SequentialInterpolationBackend().interpolate(self.positions, self.densities, grid_size)


class Clustering:
    repeat = 3
    number = 1

    params = [[1000, 5000]]
    param_names = ["num_points"]

    def setup(self, num_points):
        positions, densities = random_samples(num_points, seed=1)
        self.points = [DensityPoint((x, y, 0.0), float(d)) for (x, y), d in zip(positions, densities)]
        self.clusterer = DensityClusterer(min_cluster_size=10, epsilon=0.03)

    def time_cluster(self, num_points):
        self.clusterer.cluster(self.points, [0.8, 0.5, 0.2])

    def track_num_clusters(self, num_points):
        return len(self.clusterer.cluster(self.points, [0.8, 0.5, 0.2]))
