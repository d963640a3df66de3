"""API schemas for membership endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..memberships import (
    CategorySummary,
    EnrolledCourseSummary,
    MembershipCounts,
    MembershipDuration,
    MembershipState,
    MembershipStats,
    MembershipView,
    PlanDefinition,
    PlanType,
    RenewQuote,
    StudentMemberships,
    StudentSummary,
)


class CreateMembershipRequest(BaseModel):
    student_id: str
    category_ids: List[str]
    amount: float
    plan_type: str
    duration: str

    model_config = ConfigDict(populate_by_name=True)


class UpdateMembershipRequest(BaseModel):
    """Patch accepted by the update endpoint; unknown fields are rejected."""

    category_ids: Optional[List[str]] = None
    amount: Optional[float] = None
    plan_type: Optional[str] = None
    duration: Optional[str] = None
    status: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def to_patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class UpgradeMembershipRequest(BaseModel):
    plan_type: str


class MembershipOut(BaseModel):
    """Wire representation of a membership joined with display summaries."""

    id: str
    student_id: str
    student: Optional[StudentSummary] = None
    category_ids: List[str]
    categories: List[CategorySummary] = Field(default_factory=list)
    amount: float
    plan_type: PlanType
    max_courses: int
    duration: MembershipDuration
    start_date: datetime
    expiry_date: datetime
    status: str
    state: MembershipState
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: MembershipView) -> "MembershipOut":
        membership = view.membership
        return cls(
            id=membership.id,
            student_id=membership.student_id,
            student=view.student,
            category_ids=list(membership.category_ids),
            categories=list(view.categories),
            amount=membership.amount,
            plan_type=membership.plan_type,
            max_courses=membership.max_courses,
            duration=membership.duration,
            start_date=membership.start_date,
            expiry_date=membership.expiry_date,
            status=membership.status,
            state=view.state,
            created_at=membership.created_at,
            updated_at=membership.updated_at,
        )


class MembershipResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: MembershipOut

    @classmethod
    def from_view(cls, view: MembershipView, *, message: Optional[str] = None) -> "MembershipResponse":
        return cls(message=message, data=MembershipOut.from_view(view))


class MembershipListResponse(BaseModel):
    success: bool = True
    data: List[MembershipOut]

    @classmethod
    def from_views(cls, views: List[MembershipView]) -> "MembershipListResponse":
        return cls(data=[MembershipOut.from_view(view) for view in views])


class StudentMembershipsResponse(BaseModel):
    success: bool = True
    data: List[MembershipOut]
    enrolled_courses: List[EnrolledCourseSummary] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: StudentMemberships) -> "StudentMembershipsResponse":
        return cls(
            data=[MembershipOut.from_view(view) for view in result.memberships],
            enrolled_courses=list(result.enrolled_courses),
        )


class MembershipCountsResponse(BaseModel):
    """Counts for a student.

    ``totalSelfPacedMemberships`` keeps its historical name but counts
    self-paced enrollments.
    """

    success: bool = True
    total_self_paced_memberships: int = Field(alias="totalSelfPacedMemberships")
    active_memberships_count: int = Field(alias="activeMembershipsCount")
    expired_memberships_count: int = Field(alias="expiredMembershipsCount")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_counts(cls, counts: MembershipCounts) -> "MembershipCountsResponse":
        return cls(
            total_self_paced_memberships=counts.self_paced_enrollment_count,
            active_memberships_count=counts.active_count,
            expired_memberships_count=counts.expired_count,
        )


class RenewQuoteResponse(BaseModel):
    success: bool = True
    data: RenewQuote


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class MembershipStatsResponse(BaseModel):
    success: bool = True
    data: MembershipStats


class PlanBenefits(BaseModel):
    plan_type: PlanType
    display_name: str
    max_courses: int
    benefits: List[str]

    @classmethod
    def from_definition(cls, plan: PlanDefinition) -> "PlanBenefits":
        return cls(
            plan_type=plan.plan_type,
            display_name=plan.display_name,
            max_courses=plan.max_courses,
            benefits=list(plan.benefits),
        )


class PlanBenefitsResponse(BaseModel):
    success: bool = True
    data: PlanBenefits


class PlanPricing(BaseModel):
    currency: str
    pricing: Dict[str, Dict[str, int]]


class PlanPricingResponse(BaseModel):
    success: bool = True
    data: PlanPricing


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[Any] = None
