"""
Fire-and-forget delivery of outbound messages.

Callers enqueue text and move on; one sender task posts messages in the
order they were queued. A failed post is logged and dropped.
"""

import asyncio
import logging

from .transport import MessageBus

logger = logging.getLogger(__name__)


class Outbox:
    """Ordered, non-blocking sender for a single channel."""

    def __init__(self, bus: MessageBus, channel_id: str):
        self.bus = bus
        self.channel_id = channel_id
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self.sent = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._deliver_forever(), name="keybot-outbox")

    async def stop(self, drain_timeout: float = 5.0) -> None:
        """Give queued messages a chance to go out, then stop the sender."""
        if self._task is None:
            return
        if self.running:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except TimeoutError:
                logger.warning(f"Dropping {self._queue.qsize()} undelivered message(s)")
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    def post(self, text: str) -> None:
        """Queue ``text`` for delivery without waiting for it."""
        self._queue.put_nowait(text)

    async def join(self) -> None:
        """Wait until everything queued so far has been attempted."""
        await self._queue.join()

    async def _deliver_forever(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self.bus.post_message(self.channel_id, text)
                self.sent += 1
            except Exception as e:
                self.failed += 1
                logger.warning(f"Failed to post message to {self.channel_id}: {e}")
            finally:
                self._queue.task_done()
