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

"""Planar polygon utilities: convex hull, ear-clipping area, containment.

Boundaries are sequences of 3-D points. Hulls and containment work on the
(x, y) projection. Area and triangulation work in the polygon's best-fit plane
(Newell normal), so boundaries that are not parallel to the xy-plane are
measured correctly. Ears are measured in that plane, which makes the area of a
slightly non-planar boundary independent of which diagonals get clipped.
"""

from __future__ import annotations

import numpy as np
from shapely.geometry import LinearRing

from ..core.errors import InsufficientPointsError, NonSimplePolygonError
from ..core.types import Boundary, Point3, points_array, to_point3

# Relative tolerance for collinearity tests, scaled by the polygon extent
_COLLINEAR_EPS = 1e-12


def _cross2(o: np.ndarray, a: np.ndarray, b: np.ndarray) -> float:
    return float((a[0] - o[0]) * (b[1] - o[1]) - (a[1] - o[1]) * (b[0] - o[0]))


def _as_boundary(points: np.ndarray) -> Boundary:
    return tuple(Point3(float(p[0]), float(p[1]), float(p[2])) for p in points)


def _dedupe_ring(points: np.ndarray) -> np.ndarray:
    """Drop consecutive duplicates, including a closing point equal to the first."""
    if len(points) == 0:
        return points
    keep = np.ones(len(points), dtype=bool)
    keep[1:] = np.any(points[1:] != points[:-1], axis=1)
    points = points[keep]
    if len(points) > 1 and np.all(points[0] == points[-1]):
        points = points[:-1]
    return points


# -----------------------------------------------------------------------------
# Convex hull
# -----------------------------------------------------------------------------


def convex_hull(points) -> Boundary:
    """Compute the convex hull of points projected onto the xy-plane.

    Graham scan: the anchor is the point with the lowest y (ties: lowest x), the
    remaining points are sorted by polar angle around it (ties: nearest first),
    and the sweep pops while the last three points do not make a left turn.

    Args:
        points: Sequence of points or an (N, 3) array.

    Returns:
        Hull vertices in counter-clockwise order, keeping each vertex's z.

    Raises:
        InsufficientPointsError: Fewer than 3 points, or all points collinear.
    """
    pts = points_array(points)
    if len(pts) < 3:
        raise InsufficientPointsError(f"Convex hull needs at least 3 points, got {len(pts)}")

    anchor_idx = int(np.lexsort((pts[:, 0], pts[:, 1]))[0])
    anchor = pts[anchor_idx]
    rest = np.delete(pts, anchor_idx, axis=0)

    rel = rest[:, :2] - anchor[:2]
    angles = np.arctan2(rel[:, 1], rel[:, 0])
    dist_sq = np.einsum("ij,ij->i", rel, rel)
    order = np.lexsort((dist_sq, angles))

    hull = [anchor]
    for p in rest[order]:
        while len(hull) >= 2 and _cross2(hull[-2], hull[-1], p) <= 0.0:
            hull.pop()
        hull.append(p)

    # A collinear tail can survive the sweep when its last point is pushed
    while len(hull) >= 3 and _cross2(hull[-2], hull[-1], hull[0]) <= 0.0:
        hull.pop()

    if len(hull) < 3:
        raise InsufficientPointsError("Convex hull is degenerate: all points are collinear")

    return _as_boundary(np.asarray(hull))


# -----------------------------------------------------------------------------
# Plane projection
# -----------------------------------------------------------------------------


def newell_normal(points: np.ndarray) -> np.ndarray:
    """Unnormalized polygon normal by Newell's method; its length is twice the area."""
    nxt = np.roll(points, -1, axis=0)
    return np.array(
        [
            np.sum((points[:, 1] - nxt[:, 1]) * (points[:, 2] + nxt[:, 2])),
            np.sum((points[:, 2] - nxt[:, 2]) * (points[:, 0] + nxt[:, 0])),
            np.sum((points[:, 0] - nxt[:, 0]) * (points[:, 1] + nxt[:, 1])),
        ]
    )


def project_to_plane(boundary) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Project a boundary into its best-fit plane.

    Returns:
        Tuple ``(coords, origin, u, v)`` where ``coords`` is (N, 2) and
        ``origin + coords[:, 0:1] * u + coords[:, 1:2] * v`` reconstructs the
        projected points.

    Raises:
        NonSimplePolygonError: If the boundary spans no area.
    """
    pts = points_array(boundary)
    origin = pts.mean(axis=0)
    normal = newell_normal(pts)
    length = float(np.linalg.norm(normal))
    extent = float(np.max(np.ptp(pts, axis=0))) if len(pts) else 0.0
    if length <= _COLLINEAR_EPS * max(extent * extent, 1e-300):
        raise NonSimplePolygonError("Boundary is degenerate (zero area)")
    normal /= length

    # Keep x/y axes when the polygon lies parallel to the xy-plane
    if abs(normal[2]) > 0.9:
        u = np.array([1.0, 0.0, 0.0]) - normal[0] * normal
    else:
        u = np.array([0.0, 0.0, 1.0]) - normal[2] * normal
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)

    rel = pts - origin
    coords = np.stack([rel @ u, rel @ v], axis=1)
    return coords, origin, u, v


def is_simple_polygon(boundary) -> bool:
    """True if the boundary ring has >= 3 distinct vertices and does not self-intersect."""
    pts = _dedupe_ring(points_array(boundary))
    if len(pts) < 3:
        return False
    try:
        coords, _, _, _ = project_to_plane(pts)
    except NonSimplePolygonError:
        return False
    return bool(LinearRing(coords).is_simple)


# -----------------------------------------------------------------------------
# Ear clipping
# -----------------------------------------------------------------------------


def _points_in_triangle(p: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """Vectorized closed point-in-triangle test for a CCW triangle."""
    d1 = (b[0] - a[0]) * (p[:, 1] - a[1]) - (b[1] - a[1]) * (p[:, 0] - a[0])
    d2 = (c[0] - b[0]) * (p[:, 1] - b[1]) - (c[1] - b[1]) * (p[:, 0] - b[0])
    d3 = (a[0] - c[0]) * (p[:, 1] - c[1]) - (a[1] - c[1]) * (p[:, 0] - c[0])
    return (d1 >= 0.0) & (d2 >= 0.0) & (d3 >= 0.0)


def _ear_clip(coords: np.ndarray) -> list[tuple[int, int, int]]:
    """Triangulate a simple CCW polygon, returning index triples.

    Each pass removes one vertex, so the outer loop runs at most N - 3 times.

    Raises:
        NonSimplePolygonError: If a pass finds no ear.
    """
    remaining = list(range(len(coords)))
    triangles: list[tuple[int, int, int]] = []
    extent = float(np.max(np.ptp(coords, axis=0)))
    eps = _COLLINEAR_EPS * extent * extent

    while len(remaining) > 3:
        count = len(remaining)
        clipped = False
        for k in range(count):
            i_prev = remaining[(k - 1) % count]
            i_cur = remaining[k]
            i_next = remaining[(k + 1) % count]
            a, b, c = coords[i_prev], coords[i_cur], coords[i_next]
            turn = _cross2(a, b, c)

            if abs(turn) <= eps:
                # Collinear vertex: contributes no area
                remaining.pop(k)
                clipped = True
                break
            if turn < 0.0:
                continue

            others = [j for j in remaining if j not in (i_prev, i_cur, i_next)]
            if others and np.any(_points_in_triangle(coords[others], a, b, c)):
                continue

            triangles.append((i_prev, i_cur, i_next))
            remaining.pop(k)
            clipped = True
            break

        if not clipped:
            raise NonSimplePolygonError("No ear found; boundary is not a simple polygon")

    a, b, c = (coords[i] for i in remaining)
    if abs(_cross2(a, b, c)) > eps:
        triangles.append(tuple(remaining))
    return triangles


def _prepare(boundary) -> tuple[np.ndarray, np.ndarray]:
    pts = _dedupe_ring(points_array(boundary))
    if len(pts) < 3:
        raise InsufficientPointsError(f"Polygon needs at least 3 distinct vertices, got {len(pts)}")
    coords, _, _, _ = project_to_plane(pts)
    if not LinearRing(coords).is_simple:
        raise NonSimplePolygonError("Boundary self-intersects")
    signed = 0.5 * float(np.sum(coords[:, 0] * np.roll(coords[:, 1], -1) - np.roll(coords[:, 0], -1) * coords[:, 1]))
    if signed < 0.0:
        pts = pts[::-1].copy()
        coords = coords[::-1].copy()
    return pts, coords


def triangulate(boundary) -> list[tuple[Point3, Point3, Point3]]:
    """Split a simple polygon into triangles by ear clipping.

    Raises:
        InsufficientPointsError: Fewer than 3 distinct vertices.
        NonSimplePolygonError: Self-intersecting or zero-area boundary.
    """
    pts, coords = _prepare(boundary)
    return [tuple(to_point3(pts[i]) for i in tri) for tri in _ear_clip(coords)]


def _triangle_areas(coords: np.ndarray, triangles: list[tuple[int, int, int]]) -> np.ndarray:
    """Signed areas of index triangles over (N, 2) plane coordinates."""
    if not triangles:
        return np.zeros(0)
    tri = np.asarray(triangles, dtype=np.int64)
    e1 = coords[tri[:, 1]] - coords[tri[:, 0]]
    e2 = coords[tri[:, 2]] - coords[tri[:, 0]]
    return 0.5 * (e1[:, 0] * e2[:, 1] - e1[:, 1] * e2[:, 0])


def polygon_area(boundary) -> float:
    """Area of a simple polygon, via ear-clipping triangulation.

    The result is non-negative and independent of winding order and of the
    starting vertex.

    Raises:
        InsufficientPointsError: Fewer than 3 distinct vertices.
        NonSimplePolygonError: Self-intersecting or zero-area boundary.
    """
    _, coords = _prepare(boundary)
    return abs(float(np.sum(_triangle_areas(coords, _ear_clip(coords)))))


def polygon_perimeter(boundary) -> float:
    pts = _dedupe_ring(points_array(boundary))
    if len(pts) < 2:
        return 0.0
    return float(np.sum(np.linalg.norm(np.roll(pts, -1, axis=0) - pts, axis=1)))


def polygon_centroid(boundary) -> Point3:
    """Area-weighted centroid of a simple polygon."""
    pts, coords = _prepare(boundary)
    triangles = _ear_clip(coords)
    areas = _triangle_areas(coords, triangles)
    centers = np.asarray([pts[list(tri)].mean(axis=0) for tri in triangles])
    return to_point3(np.sum(centers * areas[:, None], axis=0) / np.sum(areas))


# -----------------------------------------------------------------------------
# Containment
# -----------------------------------------------------------------------------


def points_in_polygon(xy, boundary) -> np.ndarray:
    """Even-odd ray casting for many query points at once.

    Args:
        xy: (N, 2) query coordinates.
        boundary: Polygon boundary; only x and y are used.

    Returns:
        (N,) boolean mask. Membership of points exactly on an edge is unspecified.
    """
    query = np.asarray(xy, dtype=np.float64).reshape(-1, 2)
    poly = points_array(boundary)[:, :2]
    inside = np.zeros(len(query), dtype=bool)
    if len(poly) < 3:
        return inside

    px, py = query[:, 0], query[:, 1]
    j = len(poly) - 1
    for i in range(len(poly)):
        xi, yi = poly[i]
        xj, yj = poly[j]
        straddles = (yi > py) != (yj > py)
        if yj != yi:
            x_cross = (xj - xi) * (py - yi) / (yj - yi) + xi
            inside ^= straddles & (px < x_cross)
        j = i
    return inside


def point_in_polygon(point, boundary) -> bool:
    """Even-odd ray casting test of a single point against a boundary's xy projection."""
    p = to_point3(point)
    return bool(points_in_polygon(np.array([[p.x, p.y]]), boundary)[0])

