"""Persistence layer for memberships and the platform tables they reference."""
from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from ... import app_context
from .exceptions import MembershipStorageError
from .models import (
    CategorySummary,
    EnrolledCourseSummary,
    Membership,
    MembershipDuration,
    PlanType,
    StudentSummary,
)


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = app_context.get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class _PostgresStore:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except psycopg2.Error as exc:
            raise MembershipStorageError("Membership storage failure") from exc


def _row_to_membership(row: dict) -> Membership:
    return Membership(
        id=row["id"],
        student_id=row["student_id"],
        category_ids=list(row.get("category_ids") or []),
        amount=float(row["amount"]),
        plan_type=PlanType(row["plan_type"]),
        max_courses=int(row["max_courses"]),
        duration=MembershipDuration(row["duration"]),
        start_date=row["start_date"],
        expiry_date=row["expiry_date"],
        status=row.get("status") or "",
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_student(row: dict) -> StudentSummary:
    return StudentSummary(
        id=str(row["id"]),
        full_name=row.get("full_name"),
        email=row.get("email"),
        phone_number=row.get("phone_number"),
    )


def _row_to_category(row: dict) -> CategorySummary:
    fee = row.get("course_fee")
    return CategorySummary(
        id=str(row["id"]),
        category_name=row["category_name"],
        course_fee=float(fee) if fee is not None else None,
    )


def _row_to_enrollment(row: dict) -> EnrolledCourseSummary:
    return EnrolledCourseSummary(
        id=str(row["id"]),
        student_id=str(row["student_id"]),
        course_id=str(row["course_id"]),
        course_title=row.get("course_title"),
        category_id=str(row["category_id"]) if row.get("category_id") is not None else None,
        is_self_paced=bool(row.get("is_self_paced", True)),
        enrolled_at=row.get("enrolled_at"),
    )


class PostgresMembershipRepository(_PostgresStore):
    """Concrete repository persisting memberships in PostgreSQL."""

    def insert_membership(self, membership: Membership) -> Membership:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO memberships (
                    id,
                    student_id,
                    category_ids,
                    amount,
                    plan_type,
                    max_courses,
                    duration,
                    start_date,
                    expiry_date,
                    status,
                    created_at,
                    updated_at
                )
                VALUES (%(id)s, %(student_id)s, %(category_ids)s, %(amount)s, %(plan_type)s,
                        %(max_courses)s, %(duration)s, %(start_date)s, %(expiry_date)s,
                        %(status)s, %(created_at)s, %(updated_at)s)
                RETURNING *
                """,
                {
                    "id": membership.id,
                    "student_id": membership.student_id,
                    "category_ids": list(membership.category_ids),
                    "amount": membership.amount,
                    "plan_type": membership.plan_type.value,
                    "max_courses": membership.max_courses,
                    "duration": membership.duration.value,
                    "start_date": membership.start_date,
                    "expiry_date": membership.expiry_date,
                    "status": membership.status,
                    "created_at": membership.created_at,
                    "updated_at": membership.updated_at,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise MembershipStorageError("Failed to persist membership")
            return _row_to_membership(row)

    def get_membership(self, membership_id: str) -> Optional[Membership]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM memberships
                WHERE id = %s
                LIMIT 1
                """,
                (membership_id,),
            )
            row = cursor.fetchone()
            return _row_to_membership(row) if row else None

    def list_memberships(self) -> List[Membership]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM memberships
                ORDER BY created_at DESC
                """
            )
            rows = cursor.fetchall() or []
            return [_row_to_membership(row) for row in rows]

    def list_for_student(self, student_id: str) -> List[Membership]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM memberships
                WHERE student_id = %s
                ORDER BY start_date DESC
                """,
                (student_id,),
            )
            rows = cursor.fetchall() or []
            return [_row_to_membership(row) for row in rows]

    def find_latest_for_category(self, student_id: str, category_id: str) -> Optional[Membership]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM memberships
                WHERE student_id = %s AND %s = ANY(category_ids)
                ORDER BY start_date DESC
                LIMIT 1
                """,
                (student_id, category_id),
            )
            row = cursor.fetchone()
            return _row_to_membership(row) if row else None

    def save_membership(self, membership: Membership) -> Optional[Membership]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE memberships
                SET category_ids = %(category_ids)s,
                    amount = %(amount)s,
                    plan_type = %(plan_type)s,
                    max_courses = %(max_courses)s,
                    duration = %(duration)s,
                    status = %(status)s,
                    updated_at = NOW()
                WHERE id = %(id)s
                RETURNING *
                """,
                {
                    "id": membership.id,
                    "category_ids": list(membership.category_ids),
                    "amount": membership.amount,
                    "plan_type": membership.plan_type.value,
                    "max_courses": membership.max_courses,
                    "duration": membership.duration.value,
                    "status": membership.status,
                },
            )
            row = cursor.fetchone()
            return _row_to_membership(row) if row else None

    def renew_if_expired(
        self,
        membership_id: str,
        *,
        start_date: datetime,
        expiry_date: datetime,
        now: datetime,
    ) -> Optional[Membership]:
        """Move the window forward only while the stored expiry has passed."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE memberships
                SET start_date = %s,
                    expiry_date = %s,
                    updated_at = NOW()
                WHERE id = %s AND expiry_date <= %s
                RETURNING *
                """,
                (start_date, expiry_date, membership_id, now),
            )
            row = cursor.fetchone()
            return _row_to_membership(row) if row else None

    def delete_membership(self, membership_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM memberships WHERE id = %s", (membership_id,))
            return cursor.rowcount > 0


class PostgresPlatformDirectory(_PostgresStore):
    """Reads students, categories, courses and self-paced enrollments."""

    def get_student_summaries(self, student_ids: Sequence[str]) -> Dict[str, StudentSummary]:
        if not student_ids:
            return {}
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, full_name, email, phone_number
                FROM students
                WHERE id = ANY(%s)
                """,
                (list(student_ids),),
            )
            rows = cursor.fetchall() or []
            return {str(row["id"]): _row_to_student(row) for row in rows}

    def get_category_summaries(self, category_ids: Sequence[str]) -> Dict[str, CategorySummary]:
        if not category_ids:
            return {}
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, category_name, course_fee
                FROM categories
                WHERE id = ANY(%s)
                """,
                (list(category_ids),),
            )
            rows = cursor.fetchall() or []
            return {str(row["id"]): _row_to_category(row) for row in rows}

    def find_category_by_name(self, category_name: str) -> Optional[CategorySummary]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, category_name, course_fee
                FROM categories
                WHERE category_name = %s
                ORDER BY id
                LIMIT 1
                """,
                (category_name,),
            )
            row = cursor.fetchone()
            return _row_to_category(row) if row else None

    def find_course_ids_for_categories(self, category_ids: Sequence[str]) -> List[str]:
        if not category_ids:
            return []
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id
                FROM courses
                WHERE category_id = ANY(%s)
                ORDER BY id
                """,
                (list(category_ids),),
            )
            rows = cursor.fetchall() or []
            return [str(row["id"]) for row in rows]

    def count_self_paced(self, student_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS total
                FROM enrolled_courses
                WHERE student_id = %s AND is_self_paced = TRUE
                """,
                (student_id,),
            )
            row = cursor.fetchone()
            return int(row["total"]) if row else 0

    def find_self_paced(self, student_id: str, course_ids: Sequence[str]) -> List[EnrolledCourseSummary]:
        if not course_ids:
            return []
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT ec.id,
                       ec.student_id,
                       ec.course_id,
                       ec.is_self_paced,
                       ec.enrolled_at,
                       c.course_title,
                       c.category_id
                FROM enrolled_courses AS ec
                JOIN courses AS c ON c.id = ec.course_id
                WHERE ec.student_id = %s
                  AND ec.course_id = ANY(%s)
                  AND ec.is_self_paced = TRUE
                ORDER BY ec.enrolled_at DESC NULLS LAST
                """,
                (student_id, list(course_ids)),
            )
            rows = cursor.fetchall() or []
            return [_row_to_enrollment(row) for row in rows]


__all__ = ["PostgresMembershipRepository", "PostgresPlatformDirectory", "managed_connection"]
