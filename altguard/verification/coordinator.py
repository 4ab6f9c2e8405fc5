"""End-to-end handling of one verification submission."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..config import VerifierConfig
from ..identity.correlator import IdentityCorrelator
from ..identity.types import Candidate
from ..token.ledger import TokenLedger
from ..utils.hashing import redact_token
from .sink import AltAlert, EnforcementSink
from .types import OutcomeStatus, RejectReason, VerificationOutcome

logger = logging.getLogger(__name__)

DEFAULT_SUCCESS_MESSAGE = "You have been verified! Welcome to the server."


class VerificationCoordinator:
    """Consume the token, correlate the candidate, decide, then dispatch side effects.

    The token is spent before correlation, so every token buys exactly one
    look at the identity records whatever the result. Side effects run only
    after the decision is final and their failures never change it.
    """

    def __init__(
        self,
        *,
        ledger: TokenLedger,
        correlator: IdentityCorrelator,
        sink: EnforcementSink,
        config: Optional[VerifierConfig] = None,
        success_message: str = DEFAULT_SUCCESS_MESSAGE,
    ) -> None:
        self.ledger = ledger
        self.correlator = correlator
        self.sink = sink
        self.config = config or VerifierConfig()
        self.success_message = success_message

    async def attempt(
        self,
        token: str,
        fingerprint: str,
        metadata: Optional[Mapping[str, Any]],
        source_address: str,
    ) -> VerificationOutcome:
        logger.info("Verification attempt with %s", redact_token(token))
        outcome = await self.decide(token, fingerprint, metadata, source_address)
        await self.dispatch(outcome)
        return outcome

    async def decide(
        self,
        token: str,
        fingerprint: str,
        metadata: Optional[Mapping[str, Any]],
        source_address: str,
    ) -> VerificationOutcome:
        try:
            consumed = await self.ledger.consume(token)
            if not consumed.ok:
                logger.info("Rejected %s: %s", redact_token(token), consumed.reason.value)
                return VerificationOutcome.invalid_token(consumed.reason)

            assert consumed.subject_id is not None and consumed.group_id is not None
            candidate = Candidate(
                fingerprint=fingerprint,
                source_address=source_address,
                metadata=dict(metadata or {}),
            )
            result = await self.correlator.correlate_and_record(consumed.subject_id, candidate)
        except Exception:
            logger.exception("Verification attempt with %s failed", redact_token(token))
            return VerificationOutcome.internal_error()

        if result.matched:
            assert result.existing is not None
            logger.warning(
                "Alt detected: subject %s matches %s by %s",
                consumed.subject_id,
                result.existing.subject_id,
                result.match_type.value,
            )
            return VerificationOutcome.alt_detected(
                subject_id=consumed.subject_id,
                group_id=consumed.group_id,
                match_type=result.match_type,
                matched=result.existing,
            )

        assert result.recorded is not None
        logger.info("Subject %s verified in group %s", consumed.subject_id, consumed.group_id)
        return VerificationOutcome.accepted(
            subject_id=consumed.subject_id,
            group_id=consumed.group_id,
            recorded=result.recorded,
        )

    async def dispatch(self, outcome: VerificationOutcome) -> None:
        """Apply the decided outcome on the platform, best effort."""
        if outcome.status is OutcomeStatus.ACCEPTED:
            assert outcome.subject_id is not None and outcome.group_id is not None
            await self._best_effort(
                outcome,
                "grant_verified_state",
                self.sink.grant_verified_state,
                outcome.subject_id,
                outcome.group_id,
                verified_role_id=self.config.verified_role_id,
                unverified_role_id=self.config.unverified_role_id,
            )
            await self._best_effort(outcome, "notify_subject", self.sink.notify_subject, outcome.subject_id, self.success_message)
            return

        if outcome.reason is RejectReason.ALT_DETECTED:
            assert outcome.subject_id is not None and outcome.group_id is not None
            assert outcome.matched_identity is not None and outcome.match_type is not None
            alert = AltAlert(
                group_id=outcome.group_id,
                new_subject_id=outcome.subject_id,
                existing_subject_id=outcome.matched_identity.subject_id,
                match_type=outcome.match_type,
                matched_address=outcome.matched_identity.source_address,
                channel_id=self.config.alert_channel_id,
            )
            await self._best_effort(outcome, "notify_moderators", self.sink.notify_moderators, alert)
            await self._best_effort(outcome, "deny_and_remove", self.sink.deny_and_remove, outcome.subject_id, outcome.group_id)

    async def _best_effort(
        self,
        outcome: VerificationOutcome,
        name: str,
        call: Callable[..., Awaitable[None]],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        try:
            await call(*args, **kwargs)
        except Exception:
            logger.exception("Sink call %s failed for subject %s", name, outcome.subject_id)
            outcome.dispatch_errors.append(name)
