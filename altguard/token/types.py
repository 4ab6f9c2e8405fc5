"""Verification token datatypes."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

DEFAULT_TOKEN_TTL = timedelta(minutes=10)


@dataclass(frozen=True)
class Token:
    """Single-use credential binding a joining subject to one verification attempt."""

    value: str
    subject_id: str
    group_id: str
    created_at: datetime
    consumed: bool = False

    def is_expired(self, now: datetime, ttl: timedelta = DEFAULT_TOKEN_TTL) -> bool:
        # Exactly TTL old counts as expired.
        return now - self.created_at >= ttl

    def is_usable(self, now: datetime, ttl: timedelta = DEFAULT_TOKEN_TTL) -> bool:
        return not self.consumed and not self.is_expired(now, ttl)

    def mark_consumed(self) -> "Token":
        return replace(self, consumed=True)


class ConsumeReason(str, Enum):
    """Outcome of a token consumption attempt."""

    OK = "ok"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


@dataclass(frozen=True)
class ConsumeResult:
    ok: bool
    reason: ConsumeReason
    subject_id: Optional[str] = None
    group_id: Optional[str] = None

    @classmethod
    def success(cls, token: Token) -> "ConsumeResult":
        return cls(True, ConsumeReason.OK, subject_id=token.subject_id, group_id=token.group_id)

    @classmethod
    def failure(cls, reason: ConsumeReason) -> "ConsumeResult":
        return cls(False, reason)
