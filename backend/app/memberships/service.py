"""Lifecycle engine enforcing plan limits and expiry windows for memberships."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Union
from uuid import uuid4

from .catalog import add_months, get_plan_definition, max_courses_for_plan, months_for_duration, parse_plan_type
from .exceptions import MembershipNotFoundError, MembershipValidationError
from .models import (
    STATUS_SUCCESS,
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


class MembershipRepository(Protocol):
    """Persistence operations required by the membership service."""

    def insert_membership(self, membership: Membership) -> Membership:
        ...

    def get_membership(self, membership_id: str) -> Optional[Membership]:
        ...

    def list_memberships(self) -> Sequence[Membership]:
        ...

    def list_for_student(self, student_id: str) -> Sequence[Membership]:
        ...

    def find_latest_for_category(self, student_id: str, category_id: str) -> Optional[Membership]:
        ...

    def save_membership(self, membership: Membership) -> Optional[Membership]:
        ...

    def renew_if_expired(
        self,
        membership_id: str,
        *,
        start_date: datetime,
        expiry_date: datetime,
        now: datetime,
    ) -> Optional[Membership]:
        ...

    def delete_membership(self, membership_id: str) -> bool:
        ...


class PlatformDirectory(Protocol):
    """Read access to students, categories, courses and enrollments."""

    def get_student_summaries(self, student_ids: Sequence[str]) -> Dict[str, StudentSummary]:
        ...

    def get_category_summaries(self, category_ids: Sequence[str]) -> Dict[str, CategorySummary]:
        ...

    def find_category_by_name(self, category_name: str) -> Optional[CategorySummary]:
        ...

    def find_course_ids_for_categories(self, category_ids: Sequence[str]) -> List[str]:
        ...

    def count_self_paced(self, student_id: str) -> int:
        ...

    def find_self_paced(self, student_id: str, course_ids: Sequence[str]) -> List[EnrolledCourseSummary]:
        ...


class MembershipEventLogger(Protocol):
    """Captures structured membership audit events."""

    def log(self, event: MembershipAuditEvent) -> None:
        ...


PATCHABLE_FIELDS = frozenset({"category_ids", "amount", "plan_type", "duration", "status"})


def _current_time(clock: Optional[Callable[[], datetime]]) -> datetime:
    if clock is None:
        return datetime.now(timezone.utc)
    value = clock()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _unique(values: Iterable[str]) -> List[str]:
    seen: Dict[str, None] = {}
    for value in values:
        seen.setdefault(str(value), None)
    return list(seen)


def _parse_duration(value: Union[MembershipDuration, str]) -> MembershipDuration:
    months = months_for_duration(value)
    if months is None:
        raise MembershipValidationError("Invalid duration.")
    return value if isinstance(value, MembershipDuration) else MembershipDuration(str(value))


def _parse_amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise MembershipValidationError("Amount must be a number.") from exc
    if amount <= 0:
        raise MembershipValidationError("Amount must be greater than 0.")
    return amount


def _parse_categories(category_ids: Optional[Iterable[str]]) -> List[str]:
    categories = [str(value) for value in category_ids or []]
    if not categories:
        raise MembershipValidationError("At least one category is required.")
    return categories


def _check_category_cap(plan_type: PlanType, category_ids: Sequence[str]) -> int:
    """Count ids as supplied; duplicates are rejected, never collapsed."""
    max_courses = max_courses_for_plan(plan_type)
    if len(category_ids) > max_courses:
        raise MembershipValidationError(
            f"{plan_type.value} plan allows up to {max_courses} categories.",
            detail={"max_courses": max_courses, "requested": len(category_ids)},
        )
    duplicates = sorted({cid for cid in category_ids if category_ids.count(cid) > 1})
    if duplicates:
        raise MembershipValidationError(
            f"Duplicate categories: {', '.join(duplicates)}",
            detail={"duplicates": duplicates},
        )
    return max_courses


@dataclass
class MembershipService:
    """Coordinates repository access and plan invariants for memberships."""

    repository: MembershipRepository
    directory: PlatformDirectory
    event_logger: MembershipEventLogger
    clock: Optional[Callable[[], datetime]] = None
    expiring_soon_days: int = 30

    def _now(self) -> datetime:
        return _current_time(self.clock)

    # ------------------------------------------------------------------ create

    def create(
        self,
        *,
        student_id: str,
        category_ids: Sequence[str],
        amount: Any,
        plan_type: Union[PlanType, str],
        duration: Union[MembershipDuration, str],
    ) -> MembershipView:
        if not student_id or not str(student_id).strip():
            raise MembershipValidationError("student_id is required.")
        categories = _parse_categories(category_ids)

        plan = parse_plan_type(plan_type)
        max_courses = _check_category_cap(plan, categories)
        resolved_duration = _parse_duration(duration)
        months = months_for_duration(resolved_duration)
        price = _parse_amount(amount)

        now = self._now()
        membership = Membership(
            id=f"mem_{uuid4().hex}",
            student_id=str(student_id).strip(),
            category_ids=categories,
            amount=price,
            plan_type=plan,
            max_courses=max_courses,
            duration=resolved_duration,
            start_date=now,
            expiry_date=add_months(now, months),
            status=STATUS_SUCCESS,
            created_at=now,
            updated_at=now,
        )
        stored = self.repository.insert_membership(membership)
        self._log(MembershipAuditEventType.CREATED, stored, plan_type=stored.plan_type.value)
        return self._view(stored)

    # -------------------------------------------------------------------- read

    def get(self, membership_id: str) -> MembershipView:
        return self._view(self._require(membership_id))

    def list_memberships(
        self,
        *,
        plan_type: Optional[Union[PlanType, str]] = None,
        state: Optional[MembershipState] = None,
    ) -> List[MembershipView]:
        memberships: Iterable[Membership] = self.repository.list_memberships()
        now = self._now()
        if plan_type is not None:
            plan = parse_plan_type(plan_type)
            memberships = [m for m in memberships if m.plan_type == plan]
        if state is not None:
            memberships = [m for m in memberships if m.state_at(now) == state]
        return self._views(list(memberships), now=now)

    def memberships_for_student(self, student_id: str) -> StudentMemberships:
        """Return a student's memberships and the self-paced enrollments they cover."""

        memberships = list(self.repository.list_for_student(student_id))
        if not memberships:
            raise MembershipNotFoundError("No memberships found for this student.")

        category_ids = _unique(cid for m in memberships for cid in m.category_ids)
        course_ids = self.directory.find_course_ids_for_categories(category_ids) if category_ids else []
        enrolled = self.directory.find_self_paced(student_id, course_ids) if course_ids else []
        return StudentMemberships(memberships=self._views(memberships), enrolled_courses=list(enrolled))

    def counts_by_student(self, student_id: str) -> MembershipCounts:
        """Partition a student's memberships by expiry, ignoring the stored status."""

        now = self._now()
        memberships = self.repository.list_for_student(student_id)
        active = sum(1 for m in memberships if not m.is_expired_at(now))
        expired = sum(1 for m in memberships if m.is_expired_at(now))
        return MembershipCounts(
            student_id=student_id,
            active_count=active,
            expired_count=expired,
            self_paced_enrollment_count=self.directory.count_self_paced(student_id),
        )

    def get_renew_amount(self, category_name: str, student_id: str) -> RenewQuote:
        category = self.directory.find_category_by_name(category_name)
        if category is None:
            raise MembershipNotFoundError("Category not found")

        previous = self.repository.find_latest_for_category(student_id, category.id)
        if previous is None:
            raise MembershipNotFoundError("Membership not found")
        if not previous.is_expired_at(self._now()):
            raise MembershipValidationError("Membership is still active")
        return RenewQuote(amount=previous.amount, membership_id=previous.id)

    def stats(self) -> MembershipStats:
        now = self._now()
        memberships = list(self.repository.list_memberships())
        by_plan = {plan: 0 for plan in PlanType}
        for membership in memberships:
            by_plan[membership.plan_type] += 1
        expired = sum(1 for m in memberships if m.is_expired_at(now))
        horizon = now + timedelta(days=self.expiring_soon_days)
        expiring = sorted(
            (m for m in memberships if not m.is_expired_at(now) and m.expiry_date <= horizon),
            key=lambda m: m.expiry_date,
        )
        return MembershipStats(
            total=len(memberships),
            active=len(memberships) - expired,
            expired=expired,
            by_plan=by_plan,
            expiring_within_days=self.expiring_soon_days,
            expiring_soon=expiring,
            generated_at=now,
        )

    # ----------------------------------------------------------------- mutate

    def renew(self, membership_id: str) -> MembershipView:
        membership = self._require(membership_id)
        now = self._now()
        if not membership.is_expired_at(now):
            raise MembershipValidationError("Membership is still active.")

        months = months_for_duration(membership.duration)
        if months is None:  # pragma: no cover - guarded by the duration enum
            raise MembershipValidationError("Invalid duration.")

        renewed = self.repository.renew_if_expired(
            membership_id,
            start_date=now,
            expiry_date=add_months(now, months),
            now=now,
        )
        if renewed is None:
            # Another request renewed it between the read and the conditional update.
            self._require(membership_id)
            raise MembershipValidationError("Membership is still active.")

        self._log(
            MembershipAuditEventType.RENEWED,
            renewed,
            expiry_date=renewed.expiry_date.isoformat(),
        )
        return self._view(renewed, now=now)

    def upgrade(self, membership_id: str, plan_type: Union[PlanType, str]) -> MembershipView:
        membership = self._require(membership_id)
        target = get_plan_definition(plan_type)
        now = self._now()
        if membership.is_expired_at(now):
            raise MembershipValidationError("Membership is not active")
        if target.max_courses <= max_courses_for_plan(membership.plan_type):
            raise MembershipValidationError("Can only upgrade to a higher plan")

        upgraded = membership.model_copy(
            update={
                "plan_type": target.plan_type,
                "max_courses": target.max_courses,
                "updated_at": now,
            }
        )
        stored = self._save(upgraded)
        self._log(
            MembershipAuditEventType.UPGRADED,
            stored,
            previous_plan=membership.plan_type.value,
            plan_type=stored.plan_type.value,
        )
        return self._view(stored, now=now)

    def update(self, membership_id: str, patch: Mapping[str, Any]) -> MembershipView:
        """Apply a constrained patch and re-validate the plan invariants."""

        unknown = sorted(set(patch) - PATCHABLE_FIELDS)
        if unknown:
            raise MembershipValidationError(
                f"Fields cannot be updated: {', '.join(unknown)}",
                detail={"fields": unknown},
            )
        membership = self._require(membership_id)
        if not patch:
            return self._view(membership)

        changes: Dict[str, Any] = {}
        if "category_ids" in patch:
            changes["category_ids"] = _parse_categories(patch["category_ids"])
        if "amount" in patch:
            changes["amount"] = _parse_amount(patch["amount"])
        if "plan_type" in patch:
            changes["plan_type"] = parse_plan_type(patch["plan_type"])
        if "duration" in patch:
            changes["duration"] = _parse_duration(patch["duration"])
        if "status" in patch:
            status_value = str(patch["status"] or "").strip()
            if not status_value:
                raise MembershipValidationError("status cannot be empty.")
            changes["status"] = status_value

        plan = changes.get("plan_type", membership.plan_type)
        categories = changes.get("category_ids", membership.category_ids)
        changes["max_courses"] = _check_category_cap(plan, categories)
        changes["updated_at"] = self._now()

        stored = self._save(membership.model_copy(update=changes))
        self._log(
            MembershipAuditEventType.UPDATED,
            stored,
            fields=",".join(sorted(patch)),
        )
        return self._view(stored)

    def delete(self, membership_id: str) -> None:
        membership = self._require(membership_id)
        if not self.repository.delete_membership(membership_id):
            raise MembershipNotFoundError("Membership not found")
        self._log(MembershipAuditEventType.DELETED, membership)

    # ---------------------------------------------------------------- helpers

    def _require(self, membership_id: str) -> Membership:
        membership = self.repository.get_membership(membership_id)
        if membership is None:
            raise MembershipNotFoundError("Membership not found")
        return membership

    def _save(self, membership: Membership) -> Membership:
        stored = self.repository.save_membership(membership)
        if stored is None:
            raise MembershipNotFoundError("Membership not found")
        return stored

    def _view(self, membership: Membership, *, now: Optional[datetime] = None) -> MembershipView:
        return self._views([membership], now=now)[0]

    def _views(self, memberships: Sequence[Membership], *, now: Optional[datetime] = None) -> List[MembershipView]:
        if not memberships:
            return []
        now = now or self._now()
        students = self.directory.get_student_summaries(_unique(m.student_id for m in memberships))
        categories = self.directory.get_category_summaries(
            _unique(cid for m in memberships for cid in m.category_ids)
        )
        return [
            MembershipView(
                membership=membership,
                state=membership.state_at(now),
                student=students.get(membership.student_id),
                categories=[categories[cid] for cid in membership.category_ids if cid in categories],
            )
            for membership in memberships
        ]

    def _log(self, event_type: MembershipAuditEventType, membership: Membership, **metadata: str) -> None:
        self.event_logger.log(
            MembershipAuditEvent(
                event_type=event_type,
                membership_id=membership.id,
                student_id=membership.student_id,
                metadata=metadata,
            )
        )


__all__ = [
    "MembershipEventLogger",
    "MembershipRepository",
    "MembershipService",
    "PATCHABLE_FIELDS",
    "PlatformDirectory",
]
