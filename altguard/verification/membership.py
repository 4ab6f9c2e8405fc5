"""Join-event handling: issue a token and deliver the verification link."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import VerifierConfig
from ..token.ledger import TokenLedger
from .sink import EnforcementSink, VerificationLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoiningMember:
    """The parts of a platform join event the handler needs."""

    subject_id: str
    group_id: str
    group_name: str = ""
    display_name: str = ""
    is_bot: bool = False


class MembershipHandler:
    """Issues a verification token for each human member that joins."""

    def __init__(self, *, ledger: TokenLedger, sink: EnforcementSink, config: Optional[VerifierConfig] = None) -> None:
        self.ledger = ledger
        self.sink = sink
        self.config = config or VerifierConfig()

    async def on_member_join(self, member: JoiningMember) -> Optional[str]:
        if member.is_bot:
            return None

        logger.info("New member %s (%s) in group %s", member.display_name or "-", member.subject_id, member.group_id)
        token = await self.ledger.issue(member.subject_id, member.group_id)
        link = VerificationLink(
            group_id=member.group_id,
            group_name=member.group_name,
            url=self.config.verify_url(token),
            expires_in_minutes=max(1, self.config.token_ttl_seconds // 60),
        )

        # A lost message leaves the token valid until it expires.
        try:
            await self.sink.send_verification_link(member.subject_id, link)
        except Exception:
            logger.exception("Error sending verification link to %s", member.subject_id)

        if self.config.unverified_role_id:
            try:
                await self.sink.mark_unverified(member.subject_id, member.group_id, self.config.unverified_role_id)
            except Exception:
                logger.exception("Error applying unverified role to %s", member.subject_id)

        return token
