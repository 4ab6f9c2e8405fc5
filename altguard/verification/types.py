"""Verification attempt outcome datatypes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..identity.types import Identity, MatchType
from ..token.types import ConsumeReason


class OutcomeStatus(str, Enum):
    """Terminal state of one verification attempt."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


class RejectReason(str, Enum):
    """Discriminator reported to the submitting client when success is false."""

    INVALID_TOKEN = "invalid_token"
    ALT_DETECTED = "alt_detected"
    INTERNAL_ERROR = "internal_error"


@dataclass
class VerificationOutcome:
    """Decision for one attempt plus the record of side effects that failed."""

    status: OutcomeStatus
    reason: Optional[RejectReason] = None
    detail: Optional[str] = None
    subject_id: Optional[str] = None
    group_id: Optional[str] = None
    match_type: Optional[MatchType] = None
    matched_identity: Optional[Identity] = None
    recorded_identity: Optional[Identity] = None
    dispatch_errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is OutcomeStatus.ACCEPTED

    @classmethod
    def accepted(cls, *, subject_id: str, group_id: str, recorded: Identity) -> "VerificationOutcome":
        return cls(OutcomeStatus.ACCEPTED, subject_id=subject_id, group_id=group_id, recorded_identity=recorded)

    @classmethod
    def invalid_token(cls, detail: ConsumeReason) -> "VerificationOutcome":
        return cls(OutcomeStatus.REJECTED, reason=RejectReason.INVALID_TOKEN, detail=detail.value)

    @classmethod
    def alt_detected(
        cls,
        *,
        subject_id: str,
        group_id: str,
        match_type: MatchType,
        matched: Identity,
    ) -> "VerificationOutcome":
        return cls(
            OutcomeStatus.REJECTED,
            reason=RejectReason.ALT_DETECTED,
            subject_id=subject_id,
            group_id=group_id,
            match_type=match_type,
            matched_identity=matched,
        )

    @classmethod
    def internal_error(cls) -> "VerificationOutcome":
        return cls(OutcomeStatus.FAILED, reason=RejectReason.INTERNAL_ERROR)

    def to_payload(self) -> Dict[str, Any]:
        """Response body for the submitting client."""
        if self.success:
            return {"success": True}
        payload: Dict[str, Any] = {"success": False, "reason": self.reason.value if self.reason else None}
        if self.detail is not None:
            payload["detail"] = self.detail
        if self.match_type is not None:
            payload["matchType"] = self.match_type.value
        return payload
