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

"""Mesh and region measurements.

:class:`MeshAnalyzer` derives whole-mesh metrics (surface area, thickness,
normals, a coarse curvature map). :class:`MeasurementEngine` resolves caller
region requests through a :class:`RegionDetector` and measures the resulting
boundaries by ear-clipping triangulation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import Executor
from typing import Protocol, runtime_checkable

import numpy as np
import warp as wp

from ..core.concurrency import CancellationToken, check_cancelled, gather_or_cancel, run_offloaded
from ..core.errors import AnalysisFailure, GeometryError, InvalidRegionError
from ..core.types import (
    Boundary,
    CustomMeasurement,
    DetectedRegion,
    MeasurementRegion,
    Measurements,
    MeshMetrics,
    RegionKind,
    RegionMetrics,
    ScanData,
    points_array,
)
from ..geometry.polygon import points_in_polygon, polygon_area, polygon_centroid, polygon_perimeter
from ..geometry.spatial_index import SpatialIndex

logger = logging.getLogger(__name__)

CURVATURE_MAP_SIZE = 32
"""Cells per axis of :attr:`MeshMetrics.curvature_map`."""

MAX_THICKNESS_DISTANCE = 20.0
"""Longest inward ray considered when measuring thickness (scan units)."""


def triangle_areas(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Area of each (M, 3) triangle over an (N, 3) vertex array."""
    if len(triangles) == 0:
        return np.zeros(0, dtype=np.float64)
    a = vertices[triangles[:, 0]]
    b = vertices[triangles[:, 1]]
    c = vertices[triangles[:, 2]]
    return 0.5 * np.linalg.norm(np.cross(b - a, c - a), axis=1)


def compute_vertex_normals(vertices: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals; vertices with no incident area get a zero normal."""
    normals = np.zeros((len(vertices), 3), dtype=np.float64)
    if len(triangles):
        a = vertices[triangles[:, 0]]
        b = vertices[triangles[:, 1]]
        c = vertices[triangles[:, 2]]
        face_normals = np.cross(b - a, c - a)
        for k in range(3):
            np.add.at(normals, triangles[:, k], face_normals)
    lengths = np.linalg.norm(normals, axis=1)
    nonzero = lengths > 0.0
    normals[nonzero] /= lengths[nonzero, None]
    return normals


def curvature_map(vertices: np.ndarray, normals: np.ndarray, size: int = CURVATURE_MAP_SIZE) -> np.ndarray:
    """Bin ``|1 - n . normalize(v)|`` by vertex x, y over [-1, 1].

    Each cell holds the mean over the vertices binned into it; empty cells are zero.
    Vertices at the origin or outside the square are skipped.
    """
    result = np.zeros((size, size), dtype=np.float64)
    lengths = np.linalg.norm(vertices, axis=1)
    valid = lengths > 0.0
    if not np.any(valid):
        return result

    v = vertices[valid]
    n = normals[valid]
    values = np.abs(1.0 - np.einsum("ij,ij->i", n, v / lengths[valid, None]))
    bins = np.floor((v[:, :2] + 1.0) * (size - 1) / 2.0).astype(np.int64)
    in_map = np.all((bins >= 0) & (bins < size), axis=1)
    bins = bins[in_map]
    values = values[in_map]

    counts = np.zeros((size, size), dtype=np.int64)
    np.add.at(result, (bins[:, 1], bins[:, 0]), values)
    np.add.at(counts, (bins[:, 1], bins[:, 0]), 1)
    filled = counts > 0
    result[filled] /= counts[filled]
    return result


def curvature_cell_centers(size: int = CURVATURE_MAP_SIZE) -> np.ndarray:
    """(size * size, 2) x, y centers of curvature map cells in row-major order."""
    axis = 2.0 * (np.arange(size, dtype=np.float64) + 0.5) / (size - 1) - 1.0
    ys, xs = np.meshgrid(axis, axis, indexing="ij")
    return np.stack([xs.ravel(), ys.ravel()], axis=1)


@wp.kernel
def _inward_thickness_kernel(
    mesh: wp.uint64,
    points: wp.array(dtype=wp.vec3),
    normals: wp.array(dtype=wp.vec3),
    offset: float,
    max_dist: float,
    out_thickness: wp.array(dtype=float),
):
    """Distance from each vertex to the opposite surface along its inward normal."""
    tid = wp.tid()
    n = normals[tid]
    if wp.length(n) == 0.0:
        out_thickness[tid] = -1.0
        return

    direction = -wp.normalize(n)
    # Start just below the surface to skip the vertex's own triangles
    origin = points[tid] + direction * offset
    query = wp.mesh_query_ray(mesh, origin, direction, max_dist)
    if query.result:
        out_thickness[tid] = query.t + offset
    else:
        out_thickness[tid] = -1.0


class MeshAnalyzer:
    """Whole-mesh metrics for a scan.

    Args:
        device: Warp device for the ray casts. Defaults to Warp's default device.
        max_distance: Longest inward ray considered a thickness sample.
    """

    def __init__(self, device=None, max_distance: float = MAX_THICKNESS_DISTANCE):
        if max_distance <= 0:
            raise ValueError(f"max_distance must be positive, got {max_distance}")
        self.device = wp.get_device(device)
        self.max_distance = max_distance

    def thickness_samples(self, vertices: np.ndarray, triangles: np.ndarray, normals: np.ndarray) -> np.ndarray:
        """Per-vertex inward ray-hit distance, ``-1`` where the ray misses."""
        if len(vertices) == 0:
            return np.zeros(0, dtype=np.float64)
        extent = float(np.max(np.ptp(vertices, axis=0)))
        offset = max(extent * 1e-5, 1e-7)

        with wp.ScopedDevice(self.device):
            wp_points = wp.array(vertices.astype(np.float32), dtype=wp.vec3)
            wp_normals = wp.array(normals.astype(np.float32), dtype=wp.vec3)
            wp_indices = wp.array(triangles.reshape(-1).astype(np.int32), dtype=wp.int32)
            mesh = wp.Mesh(points=wp_points, indices=wp_indices)
            out = wp.full(len(vertices), -1.0, dtype=float)
            wp.launch(
                _inward_thickness_kernel,
                dim=len(vertices),
                inputs=[mesh.id, wp_points, wp_normals, offset, float(self.max_distance)],
                outputs=[out],
            )
            wp.synchronize_device(self.device)
            return out.numpy().astype(np.float64)

    def analyze(self, scan: ScanData, cancel: CancellationToken | None = None) -> MeshMetrics:
        """Compute :class:`MeshMetrics` for ``scan``.

        Scan-supplied normals are used as given; otherwise area-weighted normals
        are computed from the triangles.

        Raises:
            AnalysisFailure: If the scan has no triangles.
        """
        if scan.num_triangles == 0:
            raise AnalysisFailure("scan mesh has no triangles")

        vertices = scan.vertices
        triangles = scan.triangles
        if scan.normals is not None:
            normals = np.array(scan.normals, dtype=np.float64)
        else:
            normals = compute_vertex_normals(vertices, triangles)

        total_area = float(np.sum(triangle_areas(vertices, triangles)))
        check_cancelled(cancel)

        samples = self.thickness_samples(vertices, triangles, normals)
        hits = samples[samples >= 0.0]
        average_thickness = float(hits.mean()) if hits.size else 0.0
        check_cancelled(cancel)

        logger.debug(
            "mesh analysis: %d triangles, area %.4f, %d/%d thickness hits",
            scan.num_triangles,
            total_area,
            hits.size,
            len(samples),
        )
        return MeshMetrics(total_area, average_thickness, normals, curvature_map(vertices, normals))


def select_region(
    scan: ScanData,
    seed_vertex: int,
    radius: float,
    cell_size: float | None = None,
    cancel: CancellationToken | None = None,
) -> set[int]:
    """Vertices reachable from ``seed_vertex`` through hops of at most ``radius``.

    A fresh :class:`SpatialIndex` is built per call and discarded afterwards.
    """
    index = SpatialIndex(scan.vertices, cell_size if cell_size is not None else radius)
    return index.connected_region(seed_vertex, radius, cancel=cancel)


@runtime_checkable
class RegionDetector(Protocol):
    """Resolves a measurement request to a region on the scan mesh.

    Implementations return ``None`` when nothing matches and raise
    :class:`SegmentationFailure` when detection itself fails.
    """

    async def detect(self, scan: ScanData, request: MeasurementRegion) -> DetectedRegion | None: ...


class MeasurementEngine:
    """Area, thickness and curvature measurements for scan regions.

    Args:
        detector: Region detection collaborator.
        mesh_analyzer: Analyzer for whole-mesh metrics; created on first use if omitted.
        executor: Executor for mesh analysis; the loop default if omitted.
    """

    def __init__(
        self,
        detector: RegionDetector,
        mesh_analyzer: MeshAnalyzer | None = None,
        executor: Executor | None = None,
    ):
        self.detector = detector
        self._mesh_analyzer = mesh_analyzer
        self.executor = executor

    @property
    def mesh_analyzer(self) -> MeshAnalyzer:
        if self._mesh_analyzer is None:
            self._mesh_analyzer = MeshAnalyzer()
        return self._mesh_analyzer

    def area(self, boundary: Iterable) -> float:
        """Area enclosed by ``boundary``.

        Raises:
            InvalidRegionError: If the boundary has fewer than 3 points or is not
                a simple polygon.
        """
        pts = points_array(boundary)
        if len(pts) < 3:
            raise InvalidRegionError(f"Region boundary needs at least 3 points, got {len(pts)}")
        try:
            return polygon_area(pts)
        except GeometryError as exc:
            raise InvalidRegionError(f"Region boundary is not a valid polygon: {exc}") from exc

    async def measurements(
        self,
        scan: ScanData,
        regions: Sequence[MeasurementRegion],
        cancel: CancellationToken | None = None,
        executor: Executor | None = None,
    ) -> Measurements:
        """Resolve ``regions`` on ``scan`` and aggregate their areas.

        Recipient and donor areas are summed; each custom region yields one
        :class:`CustomMeasurement`. Requests the detector cannot match are skipped.
        Every resolved boundary is measured before anything is aggregated.
        If one detection fails the others are cancelled. ``executor`` overrides
        the engine default for this call.

        Raises:
            InvalidRegionError: If a resolved boundary is invalid.
            SegmentationFailure: Propagated from the detector.
            AnalysisFailure: If the mesh cannot be analyzed.
        """
        token = cancel if cancel is not None else CancellationToken()
        detections = await gather_or_cancel(*(self.detector.detect(scan, request) for request in regions))
        token.raise_if_cancelled()

        resolved = []
        for request, detected in zip(regions, detections):
            if detected is None:
                logger.debug("no region detected for %s request", request.type.kind.value)
                continue
            resolved.append((request, detected, self.area(detected.boundary)))

        metrics = await run_offloaded(
            self.mesh_analyzer.analyze,
            scan,
            token=token,
            executor=executor if executor is not None else self.executor,
        )

        recipient_area = 0.0
        donor_area = 0.0
        custom = []
        for request, detected, area in resolved:
            kind = detected.type.kind
            if kind is RegionKind.RECIPIENT:
                recipient_area += area
            elif kind is RegionKind.DONOR:
                donor_area += area
            else:
                notes = detected.notes if detected.notes is not None else request.notes
                custom.append(CustomMeasurement(detected.type.name, area, detected.type.unit, notes))

        return Measurements(
            total_area=metrics.total_area,
            recipient_area=recipient_area,
            donor_area=donor_area,
            scalp_thickness=metrics.average_thickness,
            custom_measurements=tuple(custom),
        )

    def region_metrics(self, boundary: Boundary, mesh_metrics: MeshMetrics | None = None) -> RegionMetrics:
        """Area, perimeter, centroid and mean curvature of a region.

        ``average_curvature`` is the mean of the curvature map cells whose
        centers lie inside the boundary, or 0 without ``mesh_metrics``.
        """
        area = self.area(boundary)
        average_curvature = 0.0
        if mesh_metrics is not None:
            size = mesh_metrics.curvature_map.shape[0]
            inside = points_in_polygon(curvature_cell_centers(size), boundary)
            if np.any(inside):
                average_curvature = float(mesh_metrics.curvature_map.reshape(-1)[inside].mean())
        return RegionMetrics(
            area=area,
            perimeter=polygon_perimeter(boundary),
            centroid=polygon_centroid(boundary),
            average_curvature=average_curvature,
        )

    def selection_area(self, scan: ScanData, vertices: Iterable[int]) -> float:
        """Total area of triangles whose three vertices are all selected."""
        selected = np.zeros(scan.num_vertices, dtype=bool)
        selected[np.fromiter((int(v) for v in vertices), dtype=np.int64)] = True
        triangles = scan.triangles
        full = np.all(selected[triangles], axis=1)
        return float(np.sum(triangle_areas(scan.vertices, triangles[full])))
