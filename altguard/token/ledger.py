"""Verification token issuance, single-use consumption and expiry sweeping."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from ..utils.hashing import redact_token
from ..utils.time import Clock, utc_now
from .types import DEFAULT_TOKEN_TTL, ConsumeReason, ConsumeResult, Token

if TYPE_CHECKING:
    from ..storage import VerificationStorage

logger = logging.getLogger(__name__)


class TokenLedger:
    """Issue tokens bound to (subject, group) and spend each of them at most once.

    Token values are UUID4 strings: 122 bits from the OS random source. No
    collision retry is attempted.
    """

    def __init__(
        self,
        *,
        storage: VerificationStorage,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Clock] = None,
    ) -> None:
        self.storage = storage
        self.ttl = ttl
        self._clock = clock or utc_now

    async def issue(self, subject_id: str, group_id: str) -> str:
        token = Token(
            value=str(uuid4()),
            subject_id=subject_id,
            group_id=group_id,
            created_at=self._clock(),
        )
        await self.storage.save_token(token)
        logger.info("Issued %s for subject %s in group %s", redact_token(token.value), subject_id, group_id)
        return token.value

    async def consume(self, token_value: str) -> ConsumeResult:
        """Spend a token. Failure reasons in order: not found, expired, already used."""
        token = await self.storage.get_token(token_value)
        if token is None:
            return ConsumeResult.failure(ConsumeReason.NOT_FOUND)

        now = self._clock()
        if not token.is_usable(now, self.ttl):
            if token.is_expired(now, self.ttl):
                return ConsumeResult.failure(ConsumeReason.EXPIRED)
            return ConsumeResult.failure(ConsumeReason.ALREADY_USED)

        # Loser of a concurrent consume sees the flag already set.
        if not await self.storage.mark_token_consumed(token_value):
            return ConsumeResult.failure(ConsumeReason.ALREADY_USED)

        logger.debug("Consumed %s for subject %s", redact_token(token_value), token.subject_id)
        return ConsumeResult.success(token)

    async def sweep_expired(self) -> int:
        """Delete tokens at least one TTL old, consumed or not."""
        removed = await self.storage.delete_tokens_created_before(self._clock() - self.ttl)
        if removed:
            logger.info("Swept %d expired tokens", removed)
        return removed
