"""
Periodic overdue check.

Scans the ledger on a fixed interval and posts one reminder listing every
key held longer than the threshold. The monitor only reads the ledger; a
key stays overdue, and keeps being reported, until someone returns it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, tzinfo

from . import messages
from .ledger import Ledger, utc_now
from .models import KeyRecord
from .outbox import Outbox
from .transport import MessageBus, resolve_names

logger = logging.getLogger(__name__)


class OverdueMonitor:
    """Recurring scan for keys that have not been returned in time."""

    def __init__(
        self,
        ledger: Ledger,
        bus: MessageBus,
        outbox: Outbox,
        threshold: timedelta = timedelta(hours=48),
        interval: timedelta = timedelta(hours=1),
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        tz: tzinfo | None = None,
        timestamp_format: str = messages.DEFAULT_TIMESTAMP_FORMAT,
    ):
        self.ledger = ledger
        self.bus = bus
        self.outbox = outbox
        self.threshold = threshold
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._tz = tz
        self._timestamp_format = timestamp_format
        self.ticks = 0

    async def check(self) -> list[KeyRecord]:
        """Run one scan. Returns the overdue records that were reported."""
        overdue = self.ledger.find_overdue(self._clock(), self.threshold)
        if not overdue:
            logger.debug("Overdue check: nothing overdue")
            return []

        names = await resolve_names(self.bus, (r.borrower for r in overdue))
        text = messages.overdue_notice(
            overdue, names, self.threshold, self._tz, self._timestamp_format
        )
        logger.info(f"Overdue check: {len(overdue)} key(s) overdue: {', '.join(r.key_id for r in overdue)}")
        self.outbox.post(text)
        return overdue

    async def run(self) -> None:
        """Check once per interval, forever."""
        logger.info(
            f"Overdue monitor started: every {self.interval}, threshold {self.threshold}"
        )
        while True:
            await self._sleep(self.interval.total_seconds())
            self.ticks += 1
            try:
                await self.check()
            except Exception:
                logger.exception("Overdue check failed")
