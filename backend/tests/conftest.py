from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

import pytest

from backend.app.memberships import (
    CategorySummary,
    EnrolledCourseSummary,
    Membership,
    MembershipAuditEvent,
    MembershipService,
    StudentSummary,
)
from backend.app.memberships.service import MembershipEventLogger, MembershipRepository, PlatformDirectory


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class InMemoryMembershipRepository(MembershipRepository):
    def __init__(self) -> None:
        self.memberships: Dict[str, Membership] = {}
        self.renew_calls: int = 0

    def insert_membership(self, membership: Membership) -> Membership:
        self.memberships[membership.id] = membership
        return membership

    def get_membership(self, membership_id: str) -> Optional[Membership]:
        return self.memberships.get(membership_id)

    def list_memberships(self) -> Sequence[Membership]:
        return sorted(self.memberships.values(), key=lambda m: m.created_at, reverse=True)

    def list_for_student(self, student_id: str) -> Sequence[Membership]:
        return sorted(
            (m for m in self.memberships.values() if m.student_id == student_id),
            key=lambda m: m.start_date,
            reverse=True,
        )

    def find_latest_for_category(self, student_id: str, category_id: str) -> Optional[Membership]:
        for membership in self.list_for_student(student_id):
            if category_id in membership.category_ids:
                return membership
        return None

    def save_membership(self, membership: Membership) -> Optional[Membership]:
        if membership.id not in self.memberships:
            return None
        self.memberships[membership.id] = membership
        return membership

    def renew_if_expired(
        self,
        membership_id: str,
        *,
        start_date: datetime,
        expiry_date: datetime,
        now: datetime,
    ) -> Optional[Membership]:
        self.renew_calls += 1
        membership = self.memberships.get(membership_id)
        if membership is None or membership.expiry_date > now:
            return None
        renewed = membership.model_copy(
            update={"start_date": start_date, "expiry_date": expiry_date, "updated_at": now}
        )
        self.memberships[membership_id] = renewed
        return renewed

    def delete_membership(self, membership_id: str) -> bool:
        return self.memberships.pop(membership_id, None) is not None


class FakePlatformDirectory(PlatformDirectory):
    def __init__(self) -> None:
        self.students: Dict[str, StudentSummary] = {}
        self.categories: Dict[str, CategorySummary] = {}
        self.course_categories: Dict[str, str] = {}
        self.enrollments: List[EnrolledCourseSummary] = []

    def add_student(self, student_id: str, full_name: str) -> StudentSummary:
        student = StudentSummary(
            id=student_id,
            full_name=full_name,
            email=f"{student_id}@example.test",
            phone_number="9999999999",
        )
        self.students[student_id] = student
        return student

    def add_category(self, category_id: str, name: str, fee: float = 1000.0) -> CategorySummary:
        category = CategorySummary(id=category_id, category_name=name, course_fee=fee)
        self.categories[category_id] = category
        return category

    def add_course(self, course_id: str, category_id: str) -> None:
        self.course_categories[course_id] = category_id

    def enroll(self, student_id: str, course_id: str, *, self_paced: bool = True) -> None:
        self.enrollments.append(
            EnrolledCourseSummary(
                id=f"enr-{len(self.enrollments) + 1}",
                student_id=student_id,
                course_id=course_id,
                category_id=self.course_categories.get(course_id),
                is_self_paced=self_paced,
            )
        )

    def get_student_summaries(self, student_ids: Sequence[str]) -> Dict[str, StudentSummary]:
        return {sid: self.students[sid] for sid in student_ids if sid in self.students}

    def get_category_summaries(self, category_ids: Sequence[str]) -> Dict[str, CategorySummary]:
        return {cid: self.categories[cid] for cid in category_ids if cid in self.categories}

    def find_category_by_name(self, category_name: str) -> Optional[CategorySummary]:
        for category in self.categories.values():
            if category.category_name == category_name:
                return category
        return None

    def find_course_ids_for_categories(self, category_ids: Sequence[str]) -> List[str]:
        wanted = set(category_ids)
        return [course_id for course_id, cid in self.course_categories.items() if cid in wanted]

    def count_self_paced(self, student_id: str) -> int:
        return sum(1 for e in self.enrollments if e.student_id == student_id and e.is_self_paced)

    def find_self_paced(self, student_id: str, course_ids: Sequence[str]) -> List[EnrolledCourseSummary]:
        wanted = set(course_ids)
        return [
            e
            for e in self.enrollments
            if e.student_id == student_id and e.course_id in wanted and e.is_self_paced
        ]


class FakeEventLogger(MembershipEventLogger):
    def __init__(self) -> None:
        self.events: List[MembershipAuditEvent] = []

    def log(self, event: MembershipAuditEvent) -> None:
        self.events.append(event)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 31, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def repository() -> InMemoryMembershipRepository:
    return InMemoryMembershipRepository()


@pytest.fixture
def directory() -> FakePlatformDirectory:
    directory = FakePlatformDirectory()
    directory.add_student("stu-1", "Asha Verma")
    directory.add_student("stu-2", "Rahul Nair")
    directory.add_category("cat-ds", "Data Science", 4999)
    directory.add_category("cat-ai", "AI and ML", 5999)
    directory.add_category("cat-web", "Web Development", 3999)
    directory.add_category("cat-cloud", "Cloud Computing", 4499)
    return directory


@pytest.fixture
def event_logger() -> FakeEventLogger:
    return FakeEventLogger()


@pytest.fixture
def membership_service(repository, directory, event_logger, clock) -> MembershipService:
    return MembershipService(
        repository=repository,
        directory=directory,
        event_logger=event_logger,
        clock=clock,
        expiring_soon_days=30,
    )
