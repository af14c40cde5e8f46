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

"""Value types shared by every stage of the planning core.

All types are immutable. Stages consume them by value and return new
instances; grids and mesh buffers are stored as read-only numpy arrays.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import NamedTuple

import numpy as np


class Point3(NamedTuple):
    """A 3-D coordinate."""

    x: float
    y: float
    z: float = 0.0


Boundary = tuple[Point3, ...]


def to_point3(value) -> Point3:
    """Coerce a Point3, 2- or 3-sequence, or numpy row into a :class:`Point3`."""
    if isinstance(value, Point3):
        return value
    coords = [float(c) for c in value]
    if len(coords) == 2:
        coords.append(0.0)
    if len(coords) != 3:
        raise ValueError(f"Expected 2 or 3 coordinates, got {len(coords)}")
    return Point3(*coords)


def to_boundary(points: Iterable) -> Boundary:
    return tuple(to_point3(p) for p in points)


def points_array(points: Iterable) -> np.ndarray:
    """Return an (N, 3) float64 array for a sequence of points or an (N, 2|3) array."""
    if isinstance(points, np.ndarray):
        arr = np.asarray(points, dtype=np.float64)
        if arr.size == 0:
            return np.zeros((0, 3), dtype=np.float64)
        arr = arr.reshape(len(arr), -1)
        if arr.shape[1] == 2:
            arr = np.hstack([arr, np.zeros((len(arr), 1))])
        if arr.shape[1] != 3:
            raise ValueError(f"Expected (N, 2) or (N, 3) points, got shape {arr.shape}")
        return arr
    arr = np.asarray([tuple(to_point3(p)) for p in points], dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return arr


def _frozen_array(values, dtype=np.float64) -> np.ndarray:
    arr = np.array(values, dtype=dtype, copy=True)
    arr.flags.writeable = False
    return arr


# -----------------------------------------------------------------------------
# Scan input
# -----------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ScanData:
    """Surface mesh of a captured scan.

    Attributes:
        vertices: (N, 3) vertex positions.
        indices: (M,) flattened triangle indices, length a multiple of 3.
        normals: Optional (N, 3) per-vertex normals.
        confidence: Optional (N,) per-vertex capture confidence in [0, 1].
    """

    vertices: np.ndarray
    indices: np.ndarray
    normals: np.ndarray | None = None
    confidence: np.ndarray | None = None

    def __post_init__(self):
        vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        indices = np.asarray(self.indices, dtype=np.int32).reshape(-1)
        if len(indices) % 3 != 0:
            raise ValueError(f"Indices length must be a multiple of 3, got {len(indices)}")
        if len(indices) and (indices.min() < 0 or indices.max() >= len(vertices)):
            raise ValueError("Indices reference vertices outside the vertex array")
        object.__setattr__(self, "vertices", _frozen_array(vertices))
        object.__setattr__(self, "indices", _frozen_array(indices, dtype=np.int32))
        if self.normals is not None:
            normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
            if normals.shape != vertices.shape:
                raise ValueError(f"normals shape {normals.shape} does not match vertices {vertices.shape}")
            object.__setattr__(self, "normals", _frozen_array(normals))
        if self.confidence is not None:
            confidence = np.asarray(self.confidence, dtype=np.float64).reshape(-1)
            if confidence.shape[0] != vertices.shape[0]:
                raise ValueError("confidence must hold one value per vertex")
            object.__setattr__(self, "confidence", _frozen_array(confidence))

    @property
    def num_vertices(self) -> int:
        return len(self.vertices)

    @property
    def num_triangles(self) -> int:
        return len(self.indices) // 3

    @property
    def triangles(self) -> np.ndarray:
        """(M, 3) view of the triangle indices."""
        return self.indices.reshape(-1, 3)


@dataclass(frozen=True)
class DensityPoint:
    """A density sample produced by feature analysis.

    Attributes:
        position: Location on the unit planning domain (x, y in [0, 1]).
        density: Normalized coverage in [0, 1].
        confidence: Detection confidence in [0, 1].
    """

    position: Point3
    density: float
    confidence: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "position", to_point3(self.position))
        if not (0.0 <= self.density <= 1.0):
            raise ValueError(f"density must be in [0, 1], got {self.density}")
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")


# -----------------------------------------------------------------------------
# Density map
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SegmentedRegion:
    """A cluster turned into a named region with a convex boundary."""

    name: str
    boundary: Boundary
    mean_density: float
    density_variance: float
    target_density: float | None = None

    def __post_init__(self):
        object.__setattr__(self, "boundary", to_boundary(self.boundary))


@dataclass(frozen=True)
class DensityRegion:
    """A region of the final density map.

    ``average_density`` is measured on the interpolated grid; ``target_density``
    comes from preferences and defaults to the average.
    """

    name: str
    boundary: Boundary
    average_density: float
    target_density: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        object.__setattr__(self, "boundary", to_boundary(self.boundary))


@dataclass(frozen=True, eq=False)
class DensityMap:
    """Dense density grid over the unit domain.

    ``grid[row, col]`` holds the density at the cell centered on
    ``((col + 0.5) / n, (row + 0.5) / n)``. Zero cells carry no data and are
    excluded from ``min_density``/``max_density``.
    """

    resolution: float
    grid: np.ndarray
    min_density: float
    max_density: float
    regions: tuple[DensityRegion, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "grid", _frozen_array(self.grid))
        object.__setattr__(self, "regions", tuple(self.regions))

    @property
    def grid_size(self) -> int:
        return self.grid.shape[0]

    def region(self, name: str) -> DensityRegion:
        for region in self.regions:
            if region.name == name:
                return region
        raise KeyError(name)


@dataclass(frozen=True)
class DensityPreferences:
    """Configuration for density map generation.

    Attributes:
        target_densities: Target density per region name.
        min_region_size: Neighborhood radius used when clustering, in domain units.
        smoothing_factor: Blend between the raw (0.0) and smoothed (1.0) grid.
        density_thresholds: Density cut-offs, processed from highest to lowest.
        min_cluster_size: Minimum neighbors/members for a cluster (>= 3).
    """

    target_densities: Mapping[str, float] = field(default_factory=dict)
    min_region_size: float = 0.1
    smoothing_factor: float = 1.0
    density_thresholds: Sequence[float] = (0.5,)
    min_cluster_size: int = 10

    def __post_init__(self):
        object.__setattr__(self, "target_densities", dict(self.target_densities))
        object.__setattr__(self, "density_thresholds", tuple(float(t) for t in self.density_thresholds))
        if self.min_region_size <= 0:
            raise ValueError(f"min_region_size must be positive, got {self.min_region_size}")
        if not (0.0 <= self.smoothing_factor <= 1.0):
            raise ValueError(f"smoothing_factor must be in [0, 1], got {self.smoothing_factor}")
        if not self.density_thresholds:
            raise ValueError("density_thresholds must not be empty")
        if self.min_cluster_size < 3:
            raise ValueError(f"min_cluster_size must be >= 3, got {self.min_cluster_size}")


# -----------------------------------------------------------------------------
# Measurements
# -----------------------------------------------------------------------------


class RegionKind(enum.Enum):
    RECIPIENT = "recipient"
    DONOR = "donor"
    CUSTOM = "custom"


@dataclass(frozen=True)
class RegionType:
    """Kind of a measurement region; custom regions carry a name and unit."""

    kind: RegionKind
    name: str | None = None
    unit: str | None = None

    def __post_init__(self):
        if self.kind is RegionKind.CUSTOM and not self.name:
            raise ValueError("custom regions require a name")

    @classmethod
    def recipient(cls) -> RegionType:
        return cls(RegionKind.RECIPIENT)

    @classmethod
    def donor(cls) -> RegionType:
        return cls(RegionKind.DONOR)

    @classmethod
    def custom(cls, name: str, unit: str = "cm²") -> RegionType:
        return cls(RegionKind.CUSTOM, name=name, unit=unit)


@dataclass(frozen=True)
class MeasurementRegion:
    """A caller request to measure a region near ``expected_location``."""

    type: RegionType
    expected_location: Point3
    approximate_size: float
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "expected_location", to_point3(self.expected_location))


@dataclass(frozen=True)
class DetectedRegion:
    """A measurement region resolved on the mesh by a region detector."""

    type: RegionType
    boundary: Boundary
    confidence: float
    notes: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "boundary", to_boundary(self.boundary))


@dataclass(frozen=True)
class CustomMeasurement:
    name: str
    value: float
    unit: str
    notes: str | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class Measurements:
    total_area: float
    recipient_area: float
    donor_area: float
    scalp_thickness: float
    custom_measurements: tuple[CustomMeasurement, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "custom_measurements", tuple(self.custom_measurements))


@dataclass(frozen=True, eq=False)
class MeshMetrics:
    """Whole-mesh metrics.

    Attributes:
        total_area: Sum of triangle areas.
        average_thickness: Mean inward ray-hit distance over vertices that hit.
        vertex_normals: (N, 3) unit vertex normals.
        curvature_map: (32, 32) curvature proxy binned over x, y in [-1, 1].
    """

    total_area: float
    average_thickness: float
    vertex_normals: np.ndarray
    curvature_map: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, "vertex_normals", _frozen_array(self.vertex_normals))
        object.__setattr__(self, "curvature_map", _frozen_array(self.curvature_map))


@dataclass(frozen=True)
class RegionMetrics:
    area: float
    perimeter: float
    centroid: Point3
    average_curvature: float


# -----------------------------------------------------------------------------
# Graft allocation
# -----------------------------------------------------------------------------


class GraftType(enum.Enum):
    """Follicular unit grafts by strand count."""

    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    QUADRUPLE = "quadruple"


@dataclass(frozen=True)
class ZonePreference:
    """A zone the caller wants grafted.

    Lower ``priority`` values are served first.
    """

    name: str
    priority: int
    boundary: Boundary
    target_density: float | None = None
    type_distribution: Mapping[GraftType, float] | None = None

    def __post_init__(self):
        object.__setattr__(self, "boundary", to_boundary(self.boundary))
        if self.type_distribution is not None:
            object.__setattr__(self, "type_distribution", dict(self.type_distribution))


def _validate_type_distribution(distribution: Mapping[GraftType, float]):
    for graft_type, fraction in distribution.items():
        if fraction < 0:
            raise ValueError(f"type fraction for {graft_type.value} must be >= 0, got {fraction}")
    total = sum(distribution.values())
    if total > 1.0 + 1e-9:
        raise ValueError(f"type distribution fractions must sum to <= 1, got {total}")


@dataclass(frozen=True)
class GraftPreferences:
    """Configuration for graft allocation.

    Densities are in grafts per unit area; ``type_distribution`` fractions sum to
    at most one and are consumed in ``type_priorities`` order.
    """

    target_density: float
    max_donor_density: float
    type_distribution: Mapping[GraftType, float] = field(default_factory=dict)
    type_priorities: Sequence[GraftType] = tuple(GraftType)
    zone_preferences: Sequence[ZonePreference] = ()

    def __post_init__(self):
        object.__setattr__(self, "type_distribution", dict(self.type_distribution))
        object.__setattr__(self, "type_priorities", tuple(self.type_priorities))
        object.__setattr__(self, "zone_preferences", tuple(self.zone_preferences))
        _validate_type_distribution(self.type_distribution)
        for zone in self.zone_preferences:
            if zone.type_distribution is not None:
                _validate_type_distribution(zone.type_distribution)


@dataclass(frozen=True)
class GraftZone:
    name: str
    area: float
    density: float
    distribution: Mapping[GraftType, int]
    priority: int
    boundary: Boundary
    graft_count: int = 0
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        object.__setattr__(self, "boundary", to_boundary(self.boundary))
        object.__setattr__(self, "distribution", dict(self.distribution))


@dataclass(frozen=True)
class GraftCalculation:
    """Result of graft allocation.

    Attributes:
        total_grafts: Grafts needed to reach the target density.
        density: Target density used.
        distribution: Donor-capacity bound count per graft type.
        zones: Zones that received a share of the budget, in service order.
        max_grafts: Donor capacity (``floor(donor_area * max_donor_density)``).
        issues: Soft warnings raised during allocation.
    """

    total_grafts: int
    density: float
    distribution: Mapping[GraftType, int]
    zones: tuple[GraftZone, ...] = ()
    max_grafts: int = 0
    issues: tuple[Warning, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "distribution", dict(self.distribution))
        object.__setattr__(self, "zones", tuple(self.zones))
        object.__setattr__(self, "issues", tuple(self.issues))

    @property
    def allocated_grafts(self) -> int:
        return sum(zone.graft_count for zone in self.zones)

    @property
    def donor_limited(self) -> bool:
        return bool(self.issues)


@dataclass(frozen=True)
class TreatmentPlanData:
    """Outputs of one planning pipeline invocation."""

    density_map: DensityMap
    measurements: Measurements
    graft_calculation: GraftCalculation
