"""Enforcement and notification sink contract for the chat platform."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from ..identity.types import MatchType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AltAlert:
    """Moderator alert raised when a verification attempt matches a recorded identity."""

    group_id: str
    new_subject_id: str
    existing_subject_id: str
    match_type: MatchType
    matched_address: str
    channel_id: Optional[str] = None
    action_taken: str = "Verification denied & user kicked"


@dataclass(frozen=True)
class VerificationLink:
    """Direct message sent to a joining member."""

    group_id: str
    group_name: str
    url: str
    expires_in_minutes: int


class EnforcementSink(ABC):
    """Platform side of a verification: roles, removals and messages.

    Return values are never inspected. Implementations may raise; callers
    log the failure and carry on.
    """

    @abstractmethod
    async def grant_verified_state(
        self,
        subject_id: str,
        group_id: str,
        *,
        verified_role_id: Optional[str] = None,
        unverified_role_id: Optional[str] = None,
    ) -> None:
        """Remove ``unverified_role_id`` and add ``verified_role_id``; either may be unset."""

    @abstractmethod
    async def deny_and_remove(self, subject_id: str, group_id: str) -> None:
        """Remove the subject from the group."""

    @abstractmethod
    async def notify_moderators(self, alert: AltAlert) -> None:
        """Post an alert to the moderators' channel."""

    @abstractmethod
    async def notify_subject(self, subject_id: str, message: str) -> None:
        """Send a direct message to the subject."""

    @abstractmethod
    async def send_verification_link(self, subject_id: str, link: VerificationLink) -> None:
        """Deliver the verification link to a joining member."""

    @abstractmethod
    async def mark_unverified(self, subject_id: str, group_id: str, role_id: str) -> None:
        """Apply the unverified role to a joining member."""


class NullSink(EnforcementSink):
    """Sink that only logs. Used when no platform connection is configured."""

    async def grant_verified_state(
        self,
        subject_id: str,
        group_id: str,
        *,
        verified_role_id: Optional[str] = None,
        unverified_role_id: Optional[str] = None,
    ) -> None:
        logger.info(
            "grant_verified_state subject=%s group=%s add=%s remove=%s",
            subject_id,
            group_id,
            verified_role_id,
            unverified_role_id,
        )

    async def deny_and_remove(self, subject_id: str, group_id: str) -> None:
        logger.info("deny_and_remove subject=%s group=%s", subject_id, group_id)

    async def notify_moderators(self, alert: AltAlert) -> None:
        logger.warning(
            "Alt account detected in group %s: %s matches %s by %s",
            alert.group_id,
            alert.new_subject_id,
            alert.existing_subject_id,
            alert.match_type.value,
        )

    async def notify_subject(self, subject_id: str, message: str) -> None:
        logger.info("notify_subject subject=%s message=%r", subject_id, message)

    async def send_verification_link(self, subject_id: str, link: VerificationLink) -> None:
        logger.info("send_verification_link subject=%s group=%s", subject_id, link.group_id)

    async def mark_unverified(self, subject_id: str, group_id: str, role_id: str) -> None:
        logger.info("mark_unverified subject=%s group=%s role=%s", subject_id, group_id, role_id)


@dataclass
class RecordingSink(EnforcementSink):
    """Sink that records every call in order; ``fail_on`` names calls that raise."""

    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last(self, name: str) -> Optional[tuple[Any, ...]]:
        for call_name, args in reversed(self.calls):
            if call_name == name:
                return args
        return None

    async def grant_verified_state(
        self,
        subject_id: str,
        group_id: str,
        *,
        verified_role_id: Optional[str] = None,
        unverified_role_id: Optional[str] = None,
    ) -> None:
        self._record("grant_verified_state", subject_id, group_id, verified_role_id, unverified_role_id)

    async def deny_and_remove(self, subject_id: str, group_id: str) -> None:
        self._record("deny_and_remove", subject_id, group_id)

    async def notify_moderators(self, alert: AltAlert) -> None:
        self._record("notify_moderators", alert)

    async def notify_subject(self, subject_id: str, message: str) -> None:
        self._record("notify_subject", subject_id, message)

    async def send_verification_link(self, subject_id: str, link: VerificationLink) -> None:
        self._record("send_verification_link", subject_id, link)

    async def mark_unverified(self, subject_id: str, group_id: str, role_id: str) -> None:
        self._record("mark_unverified", subject_id, group_id, role_id)
