"""Membership domain package: plan catalog, lifecycle engine and persistence."""

from .catalog import (
    PLAN_CATALOG,
    PlanDefinition,
    add_months,
    get_plan_definition,
    max_courses_for_plan,
    months_for_duration,
)
from .exceptions import (
    MembershipError,
    MembershipNotFoundError,
    MembershipStorageError,
    MembershipValidationError,
)
from .models import (
    CategorySummary,
    EnrolledCourseSummary,
    Membership,
    MembershipAuditEvent,
    MembershipAuditEventType,
    MembershipCounts,
    MembershipDuration,
    MembershipState,
    MembershipStats,
    MembershipView,
    PlanType,
    RenewQuote,
    StudentMemberships,
    StudentSummary,
)
from .service import (
    MembershipEventLogger,
    MembershipRepository,
    MembershipService,
    PlatformDirectory,
)

__all__ = [
    "CategorySummary",
    "EnrolledCourseSummary",
    "Membership",
    "MembershipAuditEvent",
    "MembershipAuditEventType",
    "MembershipCounts",
    "MembershipDuration",
    "MembershipError",
    "MembershipEventLogger",
    "MembershipNotFoundError",
    "MembershipRepository",
    "MembershipService",
    "MembershipState",
    "MembershipStats",
    "MembershipStorageError",
    "MembershipValidationError",
    "MembershipView",
    "PLAN_CATALOG",
    "PlanDefinition",
    "PlanType",
    "PlatformDirectory",
    "RenewQuote",
    "StudentMemberships",
    "StudentSummary",
    "add_months",
    "get_plan_definition",
    "max_courses_for_plan",
    "months_for_duration",
]
