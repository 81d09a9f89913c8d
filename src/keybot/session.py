"""
Session controller for keybot.

Owns the connection lifecycle (connect, consume events, reconnect after a
fixed backoff) and turns chat commands into ledger operations and
replies. Lending outcomes are always answered in the channel; only a
credentials failure ends the session.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from . import messages
from .config import BotConfig
from .errors import AuthenticationError, ChannelNotFoundError
from .ledger import Ledger, utc_now
from .models import Command, CommandKind, LedgerOutcome, SessionState
from .monitor import OverdueMonitor
from .outbox import Outbox
from .parser import parse_command
from .transport import (
    AuthError,
    InboundEvent,
    MessageBus,
    OtherEvent,
    TextEvent,
    TransportError,
    resolve_names,
)

logger = logging.getLogger(__name__)


class SessionController:
    """Connects to the chat platform and serves lending commands."""

    def __init__(
        self,
        config: BotConfig,
        bus: MessageBus,
        ledger: Ledger | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monitor_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.bus = bus
        self.ledger = ledger or Ledger(config.lending.allowed_keys, clock=clock)
        self._clock = clock
        self._sleep = sleep
        self._monitor_sleep = monitor_sleep
        self._tz = config.lending.get_tzinfo()

        self.state = SessionState.DISCONNECTED
        self.bot_user_id: str | None = None
        self.channel_id: str | None = None
        self.outbox: Outbox | None = None
        self.monitor: OverdueMonitor | None = None
        self._monitor_task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _set_state(self, state: SessionState) -> None:
        if state is not self.state:
            logger.info(f"Session state: {self.state.value} -> {state.value}")
            self.state = state

    async def start(self) -> None:
        """
        One-time setup: verify credentials, resolve and join the channel.

        Raises AuthenticationError or ChannelNotFoundError; neither is
        worth retrying.
        """
        self.bot_user_id = await self.bus.identify()

        channel_name = self.config.slack.channel_name
        self.channel_id = await self.bus.resolve_channel(channel_name)
        await self.bus.join_channel(self.channel_id)
        logger.info(f"Watching channel {channel_name} ({self.channel_id})")
        logger.info(f"Tracking keys: {', '.join(sorted(self.ledger.allowed_keys))}")

        self.outbox = Outbox(self.bus, self.channel_id)
        self.monitor = OverdueMonitor(
            self.ledger,
            self.bus,
            self.outbox,
            threshold=self.config.lending.overdue_threshold,
            interval=self.config.lending.overdue_check_interval,
            clock=self._clock,
            sleep=self._monitor_sleep,
            tz=self._tz,
            timestamp_format=self.config.lending.timestamp_format,
        )

    async def run(self) -> None:
        """
        Serve until the credentials are rejected.

        Every dropped connection is followed by a fixed backoff and a fresh
        connection attempt, with no retry limit.
        """
        backoff = self.config.reconnect_backoff_seconds
        try:
            outbox = self.outbox
            if outbox is None:
                outbox = await self._start_until_ready(backoff)
            outbox.start()

            while True:
                self._set_state(SessionState.CONNECTING)
                await self._consume()
                self._set_state(SessionState.DISCONNECTED)
                logger.info(f"Connection closed. Reconnecting in {backoff:g} seconds...")
                await self._sleep(backoff)
        except AuthenticationError:
            self._set_state(SessionState.FATAL)
            logger.error("Invalid credentials; giving up")
            raise
        except ChannelNotFoundError:
            self._set_state(SessionState.FATAL)
            raise
        finally:
            await self.shutdown()

    async def _start_until_ready(self, backoff: float) -> Outbox:
        """Run ``start()``, retrying transient failures after the backoff."""
        while True:
            try:
                await self.start()
                return self.outbox
            except (AuthenticationError, ChannelNotFoundError):
                raise
            except Exception as e:
                logger.warning(f"Startup failed: {e}. Retrying in {backoff:g} seconds...")
                await self._sleep(backoff)

    async def _consume(self) -> None:
        """Consume one connection's event stream until it ends."""
        try:
            async with contextlib.aclosing(self.bus.events()) as stream:
                async for event in stream:
                    if isinstance(event, AuthError):
                        raise AuthenticationError(event.reason)
                    if isinstance(event, TransportError):
                        logger.warning(f"Transport error: {event.reason}")
                        return
                    if self.state is SessionState.CONNECTING:
                        self._on_connected()
                    await self.handle_event(event)
        except AuthenticationError:
            raise
        except Exception:
            logger.exception("Event stream failed")

    def _on_connected(self) -> None:
        self._set_state(SessionState.CONNECTED)
        if self.monitor is not None and (self._monitor_task is None or self._monitor_task.done()):
            self._monitor_task = asyncio.create_task(self.monitor.run(), name="keybot-overdue")

    async def shutdown(self) -> None:
        """Stop background tasks."""
        if self._monitor_task is not None:
            self._monitor_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._monitor_task
            self._monitor_task = None
        if self.outbox is not None:
            await self.outbox.stop()

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    async def handle_event(self, event: InboundEvent) -> str | None:
        """Handle one inbound event. Returns the reply text, if any."""
        if isinstance(event, TextEvent):
            logger.info(
                f"Message received: channel={event.channel_id} user={event.user_id} text={event.text!r}"
            )
            if event.channel_id != self.channel_id:
                logger.debug("Message is not in the target channel. Ignoring.")
                return None
            command = parse_command(event.text, event.user_id, event.channel_id, self.bot_user_id)
            try:
                return await self.dispatch(command)
            except Exception:
                logger.exception(f"Failed to handle command {command.kind.value}")
                return None
        if isinstance(event, OtherEvent):
            logger.debug(f"Ignoring event: {event.type}")
            return None
        if isinstance(event, (AuthError, TransportError)):
            # The connection loop deals with these before they get here
            logger.warning(f"Unexpected {type(event).__name__} in handle_event: {event.reason}")
            return None
        raise TypeError(f"Unknown event: {event!r}")

    async def dispatch(self, command: Command) -> str | None:
        """Apply a command to the ledger and post the reply."""
        if command.kind is CommandKind.BORROW:
            logger.info(f"Detected borrow command for key: {command.key_id}")
            reply = await self._borrow(command)
        elif command.kind is CommandKind.RETURN:
            logger.info(f"Detected return command for key: {command.key_id}")
            reply = await self._return(command)
        elif command.kind is CommandKind.STATUS:
            logger.info("Bot was mentioned. Reporting status.")
            reply = await self._status()
        else:
            logger.debug("No actionable command detected in the message.")
            return None

        self._post(reply)
        return reply

    def _post(self, text: str) -> None:
        if self.outbox is None:
            logger.warning("Dropping reply, session not started")
            return
        self.outbox.post(text)

    async def _name(self, user_id: str) -> str:
        names = await resolve_names(self.bus, [user_id])
        return names[user_id]

    async def _borrow(self, command: Command) -> str:
        key_id = command.key_id or ""
        result = self.ledger.borrow(key_id, command.user_id)

        if result.outcome is LedgerOutcome.OK:
            return messages.borrowed(key_id, await self._name(command.user_id))
        if result.outcome is LedgerOutcome.INVALID_KEY:
            return messages.invalid_key(key_id)
        if result.outcome is LedgerOutcome.ALREADY_BORROWED:
            return messages.already_borrowed(key_id, await self._name(result.borrower or ""))
        raise ValueError(f"Unexpected borrow outcome: {result.outcome}")

    async def _return(self, command: Command) -> str:
        key_id = command.key_id or ""
        result = self.ledger.return_key(key_id, command.user_id)

        if result.outcome is LedgerOutcome.OK:
            return messages.returned(key_id)
        if result.outcome is LedgerOutcome.NOT_BORROWED:
            return messages.not_borrowed(key_id)
        if result.outcome is LedgerOutcome.WRONG_BORROWER:
            return messages.wrong_borrower(key_id, await self._name(result.borrower or ""))
        raise ValueError(f"Unexpected return outcome: {result.outcome}")

    async def _status(self) -> str:
        records = self.ledger.snapshot()
        names = await resolve_names(self.bus, (r.borrower for r in records))
        return messages.status_report(
            records, names, self._tz, self.config.lending.timestamp_format
        )
