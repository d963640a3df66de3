"""Membership configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class MembershipConfig:
    """Runtime settings for the membership API."""

    api_prefix: str
    expiring_soon_days: int
    expose_errors: bool
    currency: str


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def load_membership_config(env: Optional[Mapping[str, str]] = None) -> MembershipConfig:
    """Load :class:`MembershipConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    api_prefix = (env_mapping.get("MEMBERSHIP_API_PREFIX") or "/api/v1/memberships").strip()
    if not api_prefix.startswith("/"):
        api_prefix = f"/{api_prefix}"

    expiring_soon_days = max(0, _to_int(env_mapping.get("MEMBERSHIP_EXPIRING_SOON_DAYS"), default=30))
    expose_errors = _to_bool(env_mapping.get("MEMBERSHIP_EXPOSE_ERRORS"), default=False)
    currency = (env_mapping.get("MEMBERSHIP_CURRENCY") or "INR").strip().upper()

    return MembershipConfig(
        api_prefix=api_prefix.rstrip("/"),
        expiring_soon_days=expiring_soon_days,
        expose_errors=expose_errors,
        currency=currency,
    )
