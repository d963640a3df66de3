"""Static catalog definitions for membership plans and durations."""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple, Union

from .exceptions import MembershipValidationError
from .models import MembershipDuration, PlanType


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan tier, its category cap and list prices."""

    plan_type: PlanType
    display_name: str
    max_courses: int
    benefits: Tuple[str, ...]
    prices: Dict[MembershipDuration, int]

    def price_for(self, duration: MembershipDuration) -> int:
        return self.prices[duration]


DURATION_MONTHS: Dict[MembershipDuration, int] = {
    MembershipDuration.MONTHLY: 1,
    MembershipDuration.QUARTERLY: 3,
    MembershipDuration.HALF_YEARLY: 6,
    MembershipDuration.YEARLY: 12,
}

_SHARED_BENEFITS = (
    "Access to LIVE Q&A Doubt Clearing Sessions",
    "Community access",
    "Access to free courses",
)

PLAN_CATALOG: Dict[PlanType, PlanDefinition] = {
    PlanType.SILVER: PlanDefinition(
        plan_type=PlanType.SILVER,
        display_name="Silver",
        max_courses=1,
        benefits=(
            "Access to all self-paced blended courses within any Single-Category",
            *_SHARED_BENEFITS,
            "Special discount on all live courses",
            "Placement Assistance",
        ),
        prices={
            MembershipDuration.MONTHLY: 999,
            MembershipDuration.QUARTERLY: 2499,
            MembershipDuration.HALF_YEARLY: 3999,
            MembershipDuration.YEARLY: 4999,
        },
    ),
    PlanType.GOLD: PlanDefinition(
        plan_type=PlanType.GOLD,
        display_name="Gold",
        max_courses=3,
        benefits=(
            "Access to all self-paced blended courses within any 03-Categories",
            *_SHARED_BENEFITS,
            "Minimum 15% discount on all live courses",
            "Career Counselling",
            "Placement Assistance",
        ),
        prices={
            MembershipDuration.MONTHLY: 1999,
            MembershipDuration.QUARTERLY: 3999,
            MembershipDuration.HALF_YEARLY: 5999,
            MembershipDuration.YEARLY: 6999,
        },
    ),
}


def parse_plan_type(value: Union[PlanType, str]) -> PlanType:
    """Coerce a caller supplied tier, rejecting anything outside the catalog."""

    if isinstance(value, PlanType):
        return value
    try:
        return PlanType(str(value).strip().lower())
    except ValueError as exc:
        raise MembershipValidationError(
            f"Invalid plan type {value!r}. Must be silver or gold."
        ) from exc


def get_plan_definition(plan_type: Union[PlanType, str]) -> PlanDefinition:
    return PLAN_CATALOG[parse_plan_type(plan_type)]


def max_courses_for_plan(plan_type: Union[PlanType, str]) -> int:
    """Return how many categories the tier allows."""

    return get_plan_definition(plan_type).max_courses


def months_for_duration(duration: Union[MembershipDuration, str, None]) -> Optional[int]:
    """Return the month count for a duration label, or ``None`` when unknown."""

    if duration is None:
        return None
    if not isinstance(duration, MembershipDuration):
        try:
            duration = MembershipDuration(str(duration))
        except ValueError:
            return None
    return DURATION_MONTHS.get(duration)


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping to the end of shorter months."""
    month = start.month - 1 + months
    year = start.year + month // 12
    month = month % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return start.replace(year=year, month=month, day=min(start.day, last_day))


def pricing_table() -> Dict[str, Dict[str, int]]:
    return {
        plan.plan_type.value: {
            duration.value: plan.price_for(duration) for duration in plan.prices
        }
        for plan in PLAN_CATALOG.values()
    }


__all__ = [
    "DURATION_MONTHS",
    "PLAN_CATALOG",
    "PlanDefinition",
    "add_months",
    "get_plan_definition",
    "max_courses_for_plan",
    "months_for_duration",
    "parse_plan_type",
    "pricing_table",
]
