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

from ._src.pipeline import PlanningPipeline
from ._src.planning.allocation import (
    ConstantDensityEstimator,
    ExistingDensityEstimator,
    GraftAllocator,
    distribute_by_priority,
    optimize_zones,
)
from ._src.planning.measurement import (
    MeasurementEngine,
    MeshAnalyzer,
    RegionDetector,
    compute_vertex_normals,
    select_region,
)

__all__ = [
    "ConstantDensityEstimator",
    "ExistingDensityEstimator",
    "GraftAllocator",
    "MeasurementEngine",
    "MeshAnalyzer",
    "PlanningPipeline",
    "RegionDetector",
    "compute_vertex_normals",
    "distribute_by_priority",
    "optimize_zones",
    "select_region",
]
