"""Remote settlement boundary for ledger and verification writes.

There is no real chain behind this platform. ``SimulatedLedgerClient``
stands in for one: it only waits for a confirmation delay, so callers keep
the same suspension point a networked implementation would have.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class LedgerClient(ABC):
    """Confirms an operation with the settlement layer before it is written locally."""

    @abstractmethod
    async def confirm(self, operation: str, payload: dict) -> None:
        """Wait until the settlement layer accepts ``operation``."""


class SimulatedLedgerClient(LedgerClient):
    """In-process stand-in with a fixed confirmation delay."""

    def __init__(self, delay_seconds: float = 0.0):
        self.delay_seconds = delay_seconds

    async def confirm(self, operation: str, payload: dict) -> None:
        logger.debug(f"Confirming {operation}", extra={"operation": operation})
        await asyncio.sleep(self.delay_seconds)
