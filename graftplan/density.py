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

from ._src.density.clustering import DensityClusterer, dbscan
from ._src.density.interpolation import (
    NEAR_POINT_TOLERANCE,
    SMOOTHING_KERNEL,
    DensityInterpolator,
    InterpolationBackend,
    InterpolationResult,
    SequentialInterpolationBackend,
    WarpInterpolationBackend,
    apply_regional_blending,
    select_interpolation_backend,
    smooth_grid,
)
from ._src.density.mapper import DensityAnalyzer, DensityMapper, density_points_from_features
from ._src.density.segmentation import RegionSegmenter

__all__ = [
    "NEAR_POINT_TOLERANCE",
    "SMOOTHING_KERNEL",
    "DensityAnalyzer",
    "DensityClusterer",
    "DensityInterpolator",
    "DensityMapper",
    "InterpolationBackend",
    "InterpolationResult",
    "RegionSegmenter",
    "SequentialInterpolationBackend",
    "WarpInterpolationBackend",
    "apply_regional_blending",
    "dbscan",
    "density_points_from_features",
    "select_interpolation_backend",
    "smooth_grid",
]
