"""Verification attempt orchestration and platform side effects."""

from .coordinator import VerificationCoordinator
from .membership import JoiningMember, MembershipHandler
from .sink import AltAlert, EnforcementSink, NullSink, RecordingSink, VerificationLink
from .types import OutcomeStatus, RejectReason, VerificationOutcome

__all__ = [
    "VerificationCoordinator",
    "MembershipHandler",
    "JoiningMember",
    "EnforcementSink",
    "NullSink",
    "RecordingSink",
    "AltAlert",
    "VerificationLink",
    "VerificationOutcome",
    "OutcomeStatus",
    "RejectReason",
]
