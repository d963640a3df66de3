"""Unit tests for the membership lifecycle engine."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.memberships import (
    MembershipAuditEventType,
    MembershipDuration,
    MembershipNotFoundError,
    MembershipState,
    MembershipValidationError,
    PlanType,
    add_months,
)


def _create(service, *, student_id="stu-1", category_ids=("cat-ds",), amount=999, plan_type="silver", duration="monthly"):
    return service.create(
        student_id=student_id,
        category_ids=list(category_ids),
        amount=amount,
        plan_type=plan_type,
        duration=duration,
    )


def _expire(repository, membership_id: str, now: datetime) -> None:
    stored = repository.memberships[membership_id]
    repository.memberships[membership_id] = stored.model_copy(
        update={
            "start_date": now - timedelta(days=40),
            "expiry_date": now - timedelta(days=1),
        }
    )


def test_create_silver_membership_with_one_category(membership_service, repository, event_logger, clock):
    view = _create(membership_service)
    membership = view.membership

    assert membership.plan_type == PlanType.SILVER
    assert membership.max_courses == 1
    assert membership.status == "success"
    assert membership.start_date == clock.now
    # Jan 31 + 1 month clamps to the end of February.
    assert membership.expiry_date == datetime(2026, 2, 28, 9, 30, tzinfo=timezone.utc)
    assert view.state == MembershipState.ACTIVE
    assert view.student is not None and view.student.full_name == "Asha Verma"
    assert [c.category_name for c in view.categories] == ["Data Science"]
    assert repository.memberships[membership.id] == membership
    assert [e.event_type for e in event_logger.events] == [MembershipAuditEventType.CREATED]


@pytest.mark.parametrize("count", [2, 3])
def test_silver_rejects_more_than_one_category(membership_service, repository, count):
    categories = ["cat-ds", "cat-ai", "cat-web"][:count]

    with pytest.raises(MembershipValidationError) as excinfo:
        _create(membership_service, category_ids=categories)

    assert "silver plan allows up to 1 categories" in excinfo.value.message
    assert repository.memberships == {}


@pytest.mark.parametrize(
    ("count", "allowed"),
    [(1, True), (2, True), (3, True), (4, False)],
)
def test_gold_category_cap(membership_service, count, allowed):
    categories = ["cat-ds", "cat-ai", "cat-web", "cat-cloud"][:count]

    if allowed:
        view = _create(membership_service, category_ids=categories, plan_type="gold", amount=1999)
        assert view.membership.max_courses == 3
        assert view.membership.category_ids == categories
    else:
        with pytest.raises(MembershipValidationError):
            _create(membership_service, category_ids=categories, plan_type="gold", amount=1999)


def test_unrecognized_plan_type_is_rejected(membership_service, repository):
    with pytest.raises(MembershipValidationError):
        _create(membership_service, plan_type="platinum")
    assert repository.memberships == {}


@pytest.mark.parametrize(
    ("duration", "months"),
    [("monthly", 1), ("quarterly", 3), ("half-yearly", 6), ("yearly", 12)],
)
def test_expiry_matches_duration(membership_service, duration, months):
    membership = _create(membership_service, duration=duration).membership

    assert membership.duration == MembershipDuration(duration)
    assert membership.expiry_date == add_months(membership.start_date, months)
    assert membership.expiry_date > membership.start_date


@pytest.mark.parametrize("duration", ["weekly", "annual", "", "Monthly"])
def test_invalid_duration_is_rejected(membership_service, repository, duration):
    with pytest.raises(MembershipValidationError) as excinfo:
        _create(membership_service, duration=duration)

    assert excinfo.value.message == "Invalid duration."
    assert repository.memberships == {}


def test_silver_counts_repeated_category_against_cap(membership_service, repository):
    with pytest.raises(MembershipValidationError) as excinfo:
        _create(membership_service, category_ids=["cat-ds", "cat-ds"])

    assert "silver plan allows up to 1 categories" in excinfo.value.message
    assert excinfo.value.payload["requested"] == 2
    assert repository.memberships == {}


def test_gold_rejects_duplicate_categories_within_cap(membership_service, repository):
    with pytest.raises(MembershipValidationError) as excinfo:
        _create(membership_service, category_ids=["cat-ds", "cat-ai", "cat-ds"], plan_type="gold", amount=1999)

    assert excinfo.value.payload["duplicates"] == ["cat-ds"]
    assert repository.memberships == {}


def test_update_rejects_duplicate_categories(membership_service, repository):
    membership = _create(membership_service, plan_type="gold", amount=1999).membership

    with pytest.raises(MembershipValidationError):
        membership_service.update(membership.id, {"category_ids": ["cat-web", "cat-web"]})

    assert repository.memberships[membership.id].category_ids == ["cat-ds"]


@pytest.mark.parametrize("amount", [0, -10, "abc"])
def test_create_rejects_non_positive_amount(membership_service, amount):
    with pytest.raises(MembershipValidationError):
        _create(membership_service, amount=amount)


def test_create_requires_categories_and_student(membership_service):
    with pytest.raises(MembershipValidationError):
        _create(membership_service, category_ids=())
    with pytest.raises(MembershipValidationError):
        _create(membership_service, student_id="  ")


def test_renew_active_membership_is_rejected(membership_service, repository):
    membership = _create(membership_service).membership

    with pytest.raises(MembershipValidationError) as excinfo:
        membership_service.renew(membership.id)

    assert excinfo.value.message == "Membership is still active."
    assert repository.renew_calls == 0


def test_renew_expired_membership_moves_window_only(membership_service, repository, event_logger, clock):
    before = _create(membership_service, category_ids=["cat-ai", "cat-web"], plan_type="gold", amount=3999, duration="quarterly").membership
    clock.advance(timedelta(days=200))

    view = membership_service.renew(before.id)
    renewed = view.membership

    assert renewed.id == before.id
    assert renewed.category_ids == before.category_ids
    assert renewed.amount == before.amount
    assert renewed.plan_type == before.plan_type
    assert renewed.duration == before.duration
    assert renewed.start_date == clock.now
    assert renewed.expiry_date == add_months(clock.now, 3)
    assert renewed.expiry_date > clock.now
    assert view.state == MembershipState.ACTIVE
    assert event_logger.events[-1].event_type == MembershipAuditEventType.RENEWED


def test_renew_at_exact_expiry_succeeds(membership_service, clock):
    membership = _create(membership_service).membership
    clock.now = membership.expiry_date

    renewed = membership_service.renew(membership.id).membership

    assert renewed.start_date == membership.expiry_date


def test_renew_missing_membership(membership_service):
    with pytest.raises(MembershipNotFoundError):
        membership_service.renew("mem_missing")


def test_renew_lost_race_reports_still_active(membership_service, repository, event_logger, clock):
    membership = _create(membership_service).membership
    clock.advance(timedelta(days=45))

    def _concurrent_renewal(membership_id, *, start_date, expiry_date, now):
        repository.renew_calls += 1
        return None

    repository.renew_if_expired = _concurrent_renewal

    with pytest.raises(MembershipValidationError) as excinfo:
        membership_service.renew(membership.id)

    assert excinfo.value.message == "Membership is still active."
    assert repository.renew_calls == 1
    assert MembershipAuditEventType.RENEWED not in [e.event_type for e in event_logger.events]


def test_counts_partition_student_memberships(membership_service, repository, directory, clock):
    first = _create(membership_service).membership
    _create(membership_service, category_ids=["cat-ai"])
    _create(membership_service, category_ids=["cat-web"], duration="yearly")
    _create(membership_service, student_id="stu-2")
    _expire(repository, first.id, clock.now)
    directory.add_course("course-1", "cat-ds")
    directory.enroll("stu-1", "course-1")
    directory.enroll("stu-1", "course-1", self_paced=False)

    counts = membership_service.counts_by_student("stu-1")

    assert counts.active_count == 2
    assert counts.expired_count == 1
    assert counts.total == 3
    assert counts.self_paced_enrollment_count == 1


def test_counts_ignore_stored_status(membership_service, repository, clock):
    membership = _create(membership_service).membership
    repository.memberships[membership.id] = membership.model_copy(update={"status": "cancelled"})

    counts = membership_service.counts_by_student("stu-1")

    assert counts.active_count == 1
    assert counts.expired_count == 0


def test_memberships_for_student_joins_enrollments_by_category_id(membership_service, directory):
    directory.add_category("cat-ds-2", "Data Science")
    directory.add_course("course-ds", "cat-ds")
    directory.add_course("course-ds-other", "cat-ds-2")
    directory.add_course("course-ai", "cat-ai")
    directory.enroll("stu-1", "course-ds")
    directory.enroll("stu-1", "course-ds-other")
    directory.enroll("stu-1", "course-ai", self_paced=False)
    _create(membership_service, category_ids=["cat-ds", "cat-ai"], plan_type="gold", amount=1999)

    result = membership_service.memberships_for_student("stu-1")

    assert len(result.memberships) == 1
    assert [e.course_id for e in result.enrolled_courses] == ["course-ds"]


def test_memberships_for_student_without_memberships(membership_service):
    with pytest.raises(MembershipNotFoundError) as excinfo:
        membership_service.memberships_for_student("stu-2")
    assert excinfo.value.message == "No memberships found for this student."


def test_renew_amount_for_expired_membership(membership_service, repository, clock):
    older = _create(membership_service, amount=999).membership
    clock.advance(timedelta(days=1))
    newer = _create(membership_service, amount=1299).membership
    clock.advance(timedelta(days=90))

    quote = membership_service.get_renew_amount("Data Science", "stu-1")

    assert quote.membership_id == newer.id
    assert quote.amount == 1299
    assert older.id != newer.id


def test_renew_amount_rejects_active_membership(membership_service):
    _create(membership_service)

    with pytest.raises(MembershipValidationError) as excinfo:
        membership_service.get_renew_amount("Data Science", "stu-1")
    assert excinfo.value.message == "Membership is still active"


def test_renew_amount_not_found_cases(membership_service):
    with pytest.raises(MembershipNotFoundError) as missing_category:
        membership_service.get_renew_amount("Quantum Basket Weaving", "stu-1")
    assert missing_category.value.message == "Category not found"

    with pytest.raises(MembershipNotFoundError) as missing_membership:
        membership_service.get_renew_amount("Data Science", "stu-1")
    assert missing_membership.value.message == "Membership not found"


def test_update_revalidates_category_cap_on_downgrade(membership_service, repository):
    membership = _create(
        membership_service, category_ids=["cat-ds", "cat-ai"], plan_type="gold", amount=1999
    ).membership

    with pytest.raises(MembershipValidationError):
        membership_service.update(membership.id, {"plan_type": "silver"})

    assert repository.memberships[membership.id] == membership


def test_update_rejects_categories_beyond_cap(membership_service, repository):
    membership = _create(membership_service).membership

    with pytest.raises(MembershipValidationError):
        membership_service.update(membership.id, {"category_ids": ["cat-ds", "cat-ai"]})

    assert repository.memberships[membership.id].category_ids == ["cat-ds"]


def test_update_applies_allowed_fields(membership_service, event_logger):
    membership = _create(membership_service).membership

    view = membership_service.update(
        membership.id,
        {"plan_type": "gold", "category_ids": ["cat-ds", "cat-web"], "amount": 2500},
    )

    updated = view.membership
    assert updated.plan_type == PlanType.GOLD
    assert updated.max_courses == 3
    assert updated.category_ids == ["cat-ds", "cat-web"]
    assert updated.amount == 2500
    assert updated.expiry_date == membership.expiry_date
    assert event_logger.events[-1].event_type == MembershipAuditEventType.UPDATED


def test_update_rejects_protected_fields(membership_service):
    membership = _create(membership_service).membership

    with pytest.raises(MembershipValidationError) as excinfo:
        membership_service.update(membership.id, {"expiry_date": "2030-01-01", "id": "other"})

    assert excinfo.value.payload["fields"] == ["expiry_date", "id"]


def test_update_missing_membership(membership_service):
    with pytest.raises(MembershipNotFoundError):
        membership_service.update("mem_missing", {"amount": 10})


def test_upgrade_silver_to_gold_keeps_window(membership_service):
    membership = _create(membership_service).membership

    upgraded = membership_service.upgrade(membership.id, "gold").membership

    assert upgraded.plan_type == PlanType.GOLD
    assert upgraded.max_courses == 3
    assert upgraded.start_date == membership.start_date
    assert upgraded.expiry_date == membership.expiry_date


def test_upgrade_requires_higher_tier_and_active_membership(membership_service, repository, clock):
    gold = _create(membership_service, plan_type="gold", amount=1999).membership
    with pytest.raises(MembershipValidationError):
        membership_service.upgrade(gold.id, "silver")

    silver = _create(membership_service, category_ids=["cat-ai"]).membership
    _expire(repository, silver.id, clock.now)
    with pytest.raises(MembershipValidationError) as excinfo:
        membership_service.upgrade(silver.id, "gold")
    assert excinfo.value.message == "Membership is not active"


def test_delete_removes_membership(membership_service, repository, event_logger):
    membership = _create(membership_service).membership

    membership_service.delete(membership.id)

    assert membership.id not in repository.memberships
    assert event_logger.events[-1].event_type == MembershipAuditEventType.DELETED
    with pytest.raises(MembershipNotFoundError):
        membership_service.delete(membership.id)


def test_list_filters_by_plan_and_state(membership_service, repository, clock):
    silver = _create(membership_service).membership
    _create(membership_service, plan_type="gold", amount=1999)
    _expire(repository, silver.id, clock.now)

    assert len(membership_service.list_memberships()) == 2
    assert [v.membership.plan_type for v in membership_service.list_memberships(plan_type="gold")] == [PlanType.GOLD]
    expired = membership_service.list_memberships(state=MembershipState.EXPIRED)
    assert [v.membership.id for v in expired] == [silver.id]


def test_stats_reports_totals_and_expiring_soon(membership_service, repository, clock):
    expired = _create(membership_service).membership
    soon = _create(membership_service, category_ids=["cat-ai"]).membership
    _create(membership_service, plan_type="gold", amount=6999, duration="yearly")
    _expire(repository, expired.id, clock.now)

    stats = membership_service.stats()

    assert stats.total == 3
    assert stats.active == 2
    assert stats.expired == 1
    assert stats.by_plan == {PlanType.SILVER: 2, PlanType.GOLD: 1}
    assert [m.id for m in stats.expiring_soon] == [soon.id]
    assert stats.expiring_within_days == 30
