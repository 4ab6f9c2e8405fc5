"""Periodic removal of expired verification tokens."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .token.ledger import TokenLedger

logger = logging.getLogger(__name__)


class TokenSweeper:
    """Runs ``TokenLedger.sweep_expired`` on a fixed interval."""

    def __init__(self, ledger: TokenLedger, *, interval_seconds: float = 60.0) -> None:
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        try:
            return await self.ledger.sweep_expired()
        except Exception:
            logger.exception("Token sweep failed")
            return 0

    async def run_forever(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self.run_forever())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
