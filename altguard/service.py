"""Wire storage, ledger, correlator and sink into a ready-to-use service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import VerifierConfig
from .housekeeping import TokenSweeper
from .identity.correlator import IdentityCorrelator
from .storage import VerificationStorage, create_storage_from_env
from .token.ledger import TokenLedger
from .utils.time import Clock
from .verification.coordinator import VerificationCoordinator
from .verification.membership import MembershipHandler
from .verification.sink import EnforcementSink, NullSink


@dataclass
class VerificationService:
    """All components sharing one storage backend and one sink."""

    config: VerifierConfig
    storage: VerificationStorage
    sink: EnforcementSink
    ledger: TokenLedger
    correlator: IdentityCorrelator
    coordinator: VerificationCoordinator
    membership: MembershipHandler
    sweeper: TokenSweeper

    async def close(self) -> None:
        await self.sweeper.stop()
        await self.storage.close()


def build_service(
    *,
    storage: Optional[VerificationStorage] = None,
    sink: Optional[EnforcementSink] = None,
    config: Optional[VerifierConfig] = None,
    clock: Optional[Clock] = None,
) -> VerificationService:
    cfg = config or VerifierConfig.from_env()
    store = storage or create_storage_from_env()
    effective_sink = sink or NullSink()
    ledger = TokenLedger(storage=store, ttl=cfg.token_ttl, clock=clock)
    correlator = IdentityCorrelator(storage=store, clock=clock)
    return VerificationService(
        config=cfg,
        storage=store,
        sink=effective_sink,
        ledger=ledger,
        correlator=correlator,
        coordinator=VerificationCoordinator(ledger=ledger, correlator=correlator, sink=effective_sink, config=cfg),
        membership=MembershipHandler(ledger=ledger, sink=effective_sink, config=cfg),
        sweeper=TokenSweeper(ledger, interval_seconds=cfg.sweep_interval_seconds),
    )
