"""Match candidate identities against recorded ones and record new ones."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from ..utils.time import Clock, utc_now
from .types import Candidate, CorrelationResult, Identity, MatchType

if TYPE_CHECKING:
    from ..storage import VerificationStorage

logger = logging.getLogger(__name__)


class IdentityCorrelator:
    """Exact-match correlation on fingerprint first, then network address.

    ``correlate_and_record`` holds a single lock across the check and the
    write, so within one process two attempts cannot both observe no match
    for the same fingerprint or address and both be recorded.
    """

    def __init__(self, *, storage: VerificationStorage, clock: Optional[Clock] = None) -> None:
        self.storage = storage
        self._clock = clock or utc_now
        self._write_lock = asyncio.Lock()

    async def correlate(self, candidate: Candidate) -> CorrelationResult:
        existing = await self.storage.find_identity_by_fingerprint(candidate.fingerprint)
        if existing is not None:
            return CorrelationResult(MatchType.FINGERPRINT, existing=existing)

        # No observed address is not a shared address.
        if not candidate.source_address:
            return CorrelationResult.no_match()

        existing = await self.storage.find_identity_by_address(candidate.source_address)
        if existing is not None:
            return CorrelationResult(MatchType.IP, existing=existing)

        return CorrelationResult.no_match()

    async def record(self, subject_id: str, candidate: Candidate) -> Identity:
        identity = Identity(
            subject_id=subject_id,
            fingerprint=candidate.fingerprint,
            source_address=candidate.source_address,
            recorded_at=self._clock(),
            metadata=dict(candidate.metadata),
        )
        await self.storage.save_identity(identity)
        logger.info("Recorded identity for subject %s", subject_id)
        return identity

    async def correlate_and_record(self, subject_id: str, candidate: Candidate) -> CorrelationResult:
        async with self._write_lock:
            result = await self.correlate(candidate)
            if result.matched:
                return result
            recorded = await self.record(subject_id, candidate)
        return CorrelationResult(MatchType.NONE, recorded=recorded)
