"""Errors raised by the membership engine and surfaced to API callers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import status


@dataclass
class MembershipError(Exception):
    """Base error carrying the HTTP status the transport layer should use."""

    message: str
    code: str = "membership_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload


@dataclass
class MembershipValidationError(MembershipError):
    """Request violates a plan, duration or lifecycle rule."""

    code: str = "validation_error"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class MembershipNotFoundError(MembershipError):
    """Membership, category or prior membership could not be found."""

    code: str = "not_found"
    status_code: int = status.HTTP_404_NOT_FOUND


@dataclass
class MembershipStorageError(MembershipError):
    """Unexpected persistence failure."""

    code: str = "storage_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR


__all__ = [
    "MembershipError",
    "MembershipNotFoundError",
    "MembershipStorageError",
    "MembershipValidationError",
]
