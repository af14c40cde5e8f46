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

from __future__ import annotations

import logging
import math
import warnings
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from ..core.errors import (
    GeometryError,
    InsufficientDonorAreaWarning,
    InvalidAreaError,
    InvalidDensityError,
    OptimizationFailure,
)
from ..core.types import GraftCalculation, GraftPreferences, GraftType, GraftZone, Measurements
from ..geometry.polygon import polygon_area

logger = logging.getLogger(__name__)


def _floor(value: float) -> int:
    # Never rounds up, so counts stay within area * density
    return int(math.floor(value))


@runtime_checkable
class ExistingDensityEstimator(Protocol):
    """Estimates grafts per unit area already present in the recipient region."""

    async def estimate(self, area: float, preferences: GraftPreferences) -> float: ...


class ConstantDensityEstimator:
    """Estimator returning a fixed, externally measured density."""

    def __init__(self, density: float = 0.0):
        self.density = density

    async def estimate(self, area: float, preferences: GraftPreferences) -> float:
        return self.density


def distribute_by_priority(
    total: int,
    fractions: Mapping[GraftType, float],
    priorities: Sequence[GraftType],
) -> dict[GraftType, int]:
    """Split ``total`` by type, first come first served in ``priorities`` order.

    Each type nominally gets ``floor(total * fraction)`` but never more than what
    earlier types left over. Types missing from ``fractions`` get zero.
    """
    distribution = {}
    remaining = total
    for graft_type in priorities:
        nominal = _floor(total * fractions.get(graft_type, 0.0))
        count = min(nominal, remaining)
        distribution[graft_type] = count
        remaining -= count
    return distribution


def total_grafts_needed(recipient_area: float, target_density: float, existing_density: float) -> int:
    """Grafts needed to raise ``recipient_area`` from the existing to the target density.

    Raises:
        InvalidAreaError: If ``recipient_area`` is not positive.
        InvalidDensityError: If ``target_density`` is not positive or
            ``existing_density`` is negative.
    """
    if recipient_area <= 0:
        raise InvalidAreaError(f"recipient area must be positive, got {recipient_area}")
    if target_density <= 0:
        raise InvalidDensityError(f"target density must be positive, got {target_density}")
    if existing_density < 0:
        raise InvalidDensityError(f"existing density must be >= 0, got {existing_density}")
    return _floor(recipient_area * max(0.0, target_density - existing_density))


def donor_capacity(donor_area: float, max_donor_density: float) -> int:
    """Most grafts the donor region can supply.

    Raises:
        InvalidAreaError: If ``donor_area`` is not positive.
        InvalidDensityError: If ``max_donor_density`` is not positive.
    """
    if donor_area <= 0:
        raise InvalidAreaError(f"donor area must be positive, got {donor_area}")
    if max_donor_density <= 0:
        raise InvalidDensityError(f"max donor density must be positive, got {max_donor_density}")
    return _floor(donor_area * max_donor_density)


def optimize_zones(budget: int, preferences: GraftPreferences) -> tuple[GraftZone, ...]:
    """Hand out ``budget`` grafts to preferred zones in ascending priority order.

    Each zone receives ``min(floor(area * density), remaining)``. Zones reached
    after the budget is spent are left out of the result.

    Raises:
        OptimizationFailure: If any zone boundary does not enclose a valid area.
        InvalidDensityError: If a zone overrides the density with a non-positive value.
    """
    ordered = sorted(preferences.zone_preferences, key=lambda zone: zone.priority)

    # Measure every zone before allocating anything
    areas = []
    for zone in ordered:
        if zone.target_density is not None and zone.target_density <= 0:
            raise InvalidDensityError(f"zone {zone.name!r} target density must be positive, got {zone.target_density}")
        try:
            area = polygon_area(zone.boundary)
        except GeometryError as exc:
            raise OptimizationFailure(f"zone {zone.name!r} has no valid area: {exc}") from exc
        if area <= 0:
            raise OptimizationFailure(f"zone {zone.name!r} has zero area")
        areas.append(area)

    zones = []
    remaining = budget
    for zone, area in zip(ordered, areas):
        if remaining <= 0:
            break
        density = zone.target_density if zone.target_density is not None else preferences.target_density
        count = min(_floor(area * density), remaining)
        remaining -= count
        fractions = zone.type_distribution if zone.type_distribution is not None else preferences.type_distribution
        zones.append(
            GraftZone(
                name=zone.name,
                area=area,
                density=density,
                distribution=distribute_by_priority(count, fractions, preferences.type_priorities),
                priority=zone.priority,
                boundary=zone.boundary,
                graft_count=count,
            )
        )

    skipped = len(ordered) - len(zones)
    if skipped:
        logger.debug("graft budget exhausted, %d zone(s) left out", skipped)
    return tuple(zones)


class GraftAllocator:
    """Computes graft totals, the donor-bound type split, and per-zone allocations.

    Args:
        estimator: Source of the existing recipient density. Defaults to zero.
    """

    def __init__(self, estimator: ExistingDensityEstimator | None = None):
        self.estimator = estimator if estimator is not None else ConstantDensityEstimator()

    async def allocate(self, measurements: Measurements, preferences: GraftPreferences) -> GraftCalculation:
        """Estimate the existing density, then :meth:`compute` the allocation."""
        existing = await self.estimator.estimate(measurements.recipient_area, preferences)
        return self.compute(measurements, preferences, existing)

    def compute(
        self,
        measurements: Measurements,
        preferences: GraftPreferences,
        existing_density: float,
    ) -> GraftCalculation:
        """Allocate grafts for a known existing density.

        The zone budget is the smaller of the grafts needed and the donor
        capacity. When the need exceeds capacity an
        :class:`InsufficientDonorAreaWarning` is emitted and recorded in
        ``issues``; the partial allocation is still returned.

        Raises:
            InvalidAreaError: Non-positive recipient or donor area.
            InvalidDensityError: Non-positive target or donor density, or a
                negative existing density.
            OptimizationFailure: A zone boundary is invalid.
        """
        total = total_grafts_needed(measurements.recipient_area, preferences.target_density, existing_density)
        max_grafts = donor_capacity(measurements.donor_area, preferences.max_donor_density)
        distribution = distribute_by_priority(max_grafts, preferences.type_distribution, preferences.type_priorities)

        issues = []
        if total > max_grafts:
            issue = InsufficientDonorAreaWarning(total, max_grafts)
            logger.warning("%s", issue)
            warnings.warn(issue, stacklevel=2)
            issues.append(issue)

        zones = optimize_zones(min(total, max_grafts), preferences)
        logger.info(
            "allocated %d of %d grafts across %d zone(s), donor capacity %d",
            sum(zone.graft_count for zone in zones),
            total,
            len(zones),
            max_grafts,
        )
        return GraftCalculation(
            total_grafts=total,
            density=preferences.target_density,
            distribution=distribution,
            zones=zones,
            max_grafts=max_grafts,
            issues=tuple(issues),
        )
