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

"""Exception hierarchy for the planning core.

Geometry and allocation precondition errors also derive from :class:`ValueError`
so callers that only validate arguments can keep catching that.
"""


class PlanningError(Exception):
    """Base class for every error raised by graftplan."""


# -----------------------------------------------------------------------------
# Geometry preconditions
# -----------------------------------------------------------------------------


class GeometryError(PlanningError, ValueError):
    """A boundary or point set does not satisfy a geometric precondition."""


class InsufficientPointsError(GeometryError):
    """Fewer points than the operation needs (e.g. < 3 for a hull)."""


class InvalidRegionError(GeometryError):
    """A resolved region boundary cannot describe an area."""


class NonSimplePolygonError(GeometryError):
    """A boundary self-intersects or collapses to zero area."""


# -----------------------------------------------------------------------------
# Allocation preconditions
# -----------------------------------------------------------------------------


class AllocationError(PlanningError, ValueError):
    """Numeric inputs to graft allocation are out of range."""


class InvalidAreaError(AllocationError):
    pass


class InvalidDensityError(AllocationError):
    pass


# -----------------------------------------------------------------------------
# Downstream computation failures (fatal to a pipeline invocation)
# -----------------------------------------------------------------------------


class ComputationError(PlanningError):
    """A computation stage could not complete."""


class OptimizationFailure(ComputationError):
    pass


class SegmentationFailure(ComputationError):
    pass


class AnalysisFailure(ComputationError):
    pass


class InterpolationFailure(ComputationError):
    pass


class PlanningCancelled(PlanningError):
    """Raised inside worker code once its cancellation token has been tripped."""


# -----------------------------------------------------------------------------
# Soft signals
# -----------------------------------------------------------------------------


class InsufficientDonorAreaWarning(UserWarning):
    """Donor capacity cannot cover the requested number of grafts.

    Allocation still completes; the shortfall is reported on the result.
    """

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        self.shortfall = max(0, requested - available)
        super().__init__(
            f"Donor area supports {available} grafts but {requested} were requested (shortfall {self.shortfall})"
        )
