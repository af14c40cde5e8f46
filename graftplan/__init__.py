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

__version__ = "0.1.0"

# ==================================================================================
# core
# ==================================================================================
from ._src.core.concurrency import CancellationToken
from ._src.core.errors import (
    AllocationError,
    AnalysisFailure,
    ComputationError,
    GeometryError,
    InsufficientDonorAreaWarning,
    InsufficientPointsError,
    InterpolationFailure,
    InvalidAreaError,
    InvalidDensityError,
    InvalidRegionError,
    NonSimplePolygonError,
    OptimizationFailure,
    PlanningCancelled,
    PlanningError,
    SegmentationFailure,
)
from ._src.core.types import (
    Boundary,
    CustomMeasurement,
    DensityMap,
    DensityPoint,
    DensityPreferences,
    DensityRegion,
    DetectedRegion,
    GraftCalculation,
    GraftPreferences,
    GraftType,
    GraftZone,
    MeasurementRegion,
    Measurements,
    MeshMetrics,
    Point3,
    RegionKind,
    RegionMetrics,
    RegionType,
    ScanData,
    SegmentedRegion,
    TreatmentPlanData,
    ZonePreference,
)

__all__ = [
    "AllocationError",
    "AnalysisFailure",
    "Boundary",
    "CancellationToken",
    "ComputationError",
    "CustomMeasurement",
    "DensityMap",
    "DensityPoint",
    "DensityPreferences",
    "DensityRegion",
    "DetectedRegion",
    "GeometryError",
    "GraftCalculation",
    "GraftPreferences",
    "GraftType",
    "GraftZone",
    "InsufficientDonorAreaWarning",
    "InsufficientPointsError",
    "InterpolationFailure",
    "InvalidAreaError",
    "InvalidDensityError",
    "InvalidRegionError",
    "MeasurementRegion",
    "Measurements",
    "MeshMetrics",
    "NonSimplePolygonError",
    "OptimizationFailure",
    "PlanningCancelled",
    "PlanningError",
    "Point3",
    "RegionKind",
    "RegionMetrics",
    "RegionType",
    "ScanData",
    "SegmentationFailure",
    "SegmentedRegion",
    "TreatmentPlanData",
    "ZonePreference",
    "__version__",
]

# ==================================================================================
# submodules
# ==================================================================================
from . import density, geometry, planning  # noqa: E402

__all__ += ["density", "geometry", "planning"]
