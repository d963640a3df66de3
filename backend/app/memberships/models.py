"""Domain models for category-limited memberships."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


STATUS_SUCCESS = "success"


class PlanType(str, Enum):
    """Plan tiers that determine how many categories a membership covers."""

    SILVER = "silver"
    GOLD = "gold"


class MembershipDuration(str, Enum):
    """Billing period labels accepted for a membership."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half-yearly"
    YEARLY = "yearly"


class MembershipState(str, Enum):
    """Logical state derived from the expiry timestamp."""

    ACTIVE = "active"
    EXPIRED = "expired"


class MembershipAuditEventType(str, Enum):
    """Audit event categories emitted by the membership engine."""

    CREATED = "membership_created"
    RENEWED = "membership_renewed"
    UPGRADED = "membership_upgraded"
    UPDATED = "membership_updated"
    DELETED = "membership_deleted"


def _ensure_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class Membership(BaseModel):
    """Persisted membership record."""

    id: str
    student_id: str
    category_ids: List[str] = Field(default_factory=list)
    amount: float = Field(gt=0)
    plan_type: PlanType
    max_courses: int = Field(ge=1)
    duration: MembershipDuration
    start_date: datetime
    expiry_date: datetime
    status: str = STATUS_SUCCESS
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("start_date", "expiry_date", "created_at", "updated_at")
    @classmethod
    def _aware_timestamps(cls, value: datetime) -> datetime:
        return _ensure_aware(value)

    @model_validator(mode="after")
    def _window_is_positive(self) -> "Membership":
        if self.expiry_date <= self.start_date:
            raise ValueError("expiry_date must be after start_date")
        return self

    def is_expired_at(self, now: datetime) -> bool:
        """Return ``True`` once ``now`` has reached the expiry timestamp."""
        return self.expiry_date <= _ensure_aware(now)

    def state_at(self, now: datetime) -> MembershipState:
        if self.is_expired_at(now):
            return MembershipState.EXPIRED
        return MembershipState.ACTIVE


class StudentSummary(BaseModel):
    """Display fields joined onto a membership for its student."""

    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class CategorySummary(BaseModel):
    """Display fields joined onto a membership for each category."""

    id: str
    category_name: str
    course_fee: Optional[float] = None

    model_config = ConfigDict(frozen=True)


class EnrolledCourseSummary(BaseModel):
    """Self-paced enrollment consumed under a membership."""

    id: str
    student_id: str
    course_id: str
    course_title: Optional[str] = None
    category_id: Optional[str] = None
    is_self_paced: bool = True
    enrolled_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class MembershipView(BaseModel):
    """Membership joined with student and category summaries for display."""

    membership: Membership
    state: MembershipState
    student: Optional[StudentSummary] = None
    categories: List[CategorySummary] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class StudentMemberships(BaseModel):
    """A student's memberships together with their self-paced enrollments."""

    memberships: List[MembershipView]
    enrolled_courses: List[EnrolledCourseSummary] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class MembershipCounts(BaseModel):
    """Active/expired partition for a student.

    ``self_paced_enrollment_count`` counts enrollments, not memberships.
    """

    student_id: str
    active_count: int
    expired_count: int
    self_paced_enrollment_count: int

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> int:
        return self.active_count + self.expired_count


class RenewQuote(BaseModel):
    """Price for renewing an expired membership."""

    amount: float
    membership_id: str

    model_config = ConfigDict(frozen=True)


class MembershipStats(BaseModel):
    """Aggregate membership report for administrators."""

    total: int
    active: int
    expired: int
    by_plan: Dict[PlanType, int] = Field(default_factory=dict)
    expiring_within_days: int
    expiring_soon: List[Membership] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


class MembershipAuditEvent(BaseModel):
    """Structured audit event for membership state transitions."""

    event_type: MembershipAuditEventType
    membership_id: str
    student_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)
