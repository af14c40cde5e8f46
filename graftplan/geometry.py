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

from ._src.geometry.polygon import (
    convex_hull,
    is_simple_polygon,
    newell_normal,
    point_in_polygon,
    points_in_polygon,
    polygon_area,
    polygon_centroid,
    polygon_perimeter,
    project_to_plane,
    triangulate,
)
from ._src.geometry.spatial_index import SpatialIndex, spatial_hash

__all__ = [
    "SpatialIndex",
    "convex_hull",
    "is_simple_polygon",
    "newell_normal",
    "point_in_polygon",
    "points_in_polygon",
    "polygon_area",
    "polygon_centroid",
    "polygon_perimeter",
    "project_to_plane",
    "spatial_hash",
    "triangulate",
]
