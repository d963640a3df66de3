"""Application wiring for the membership service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..memberships import MembershipAuditEvent, MembershipEventLogger, MembershipService
from ..memberships.config import MembershipConfig, load_membership_config
from ..memberships.repository import PostgresMembershipRepository, PostgresPlatformDirectory


logger = logging.getLogger("memberships")


class LoggingMembershipEventLogger(MembershipEventLogger):
    """Event logger forwarding membership audit events to logging."""

    def log(self, event: MembershipAuditEvent) -> None:
        logger.info(
            "Membership event %s membership=%s student=%s metadata=%s",
            event.event_type.value,
            event.membership_id,
            event.student_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_membership_config() -> MembershipConfig:
    return load_membership_config()


@lru_cache(maxsize=1)
def get_membership_service() -> MembershipService:
    config = get_membership_config()
    return MembershipService(
        repository=PostgresMembershipRepository(),
        directory=PostgresPlatformDirectory(),
        event_logger=LoggingMembershipEventLogger(),
        expiring_soon_days=config.expiring_soon_days,
    )


__all__ = ["LoggingMembershipEventLogger", "get_membership_config", "get_membership_service"]
