"""Shared pytest fixtures for keybot tests."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from keybot.errors import ChannelNotFoundError
from keybot.transport import AuthError, MessageBus

T0 = datetime(2024, 4, 1, 9, 0, tzinfo=UTC)


class FakeClock:
    """Settable clock for ledger and monitor tests."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeBus(MessageBus):
    """In-memory message bus.

    ``sessions`` is a list of event scripts; each call to ``events()``
    plays the next script. When the scripts run out the stream reports an
    auth error so a controller under test always terminates.
    """

    def __init__(
        self,
        sessions=None,
        names=None,
        channels=None,
        bot_user_id: str = "UBOT",
    ):
        self.sessions = list(sessions or [])
        self.names = dict(names or {})
        self.channels = channels or [{"id": "C1", "name": "general"}]
        self.bot_user_id = bot_user_id
        self.posted: list[tuple[str, str]] = []
        self.joined: list[str] = []
        self.connects = 0
        self.fail_posts = False
        self.identify_calls = 0
        self.identify_errors: list[Exception] = []

    async def identify(self) -> str:
        self.identify_calls += 1
        if self.identify_errors:
            raise self.identify_errors.pop(0)
        return self.bot_user_id

    async def list_channels(self):
        return list(self.channels)

    async def resolve_channel(self, channel_name: str) -> str:
        for channel in self.channels:
            if channel["name"] == channel_name:
                return channel["id"]
        raise ChannelNotFoundError(channel_name)

    async def join_channel(self, channel_id: str) -> None:
        self.joined.append(channel_id)

    async def events(self):
        self.connects += 1
        script = self.sessions.pop(0) if self.sessions else [AuthError(reason="no more sessions")]
        for event in script:
            yield event
            await asyncio.sleep(0)

    async def post_message(self, channel_id: str, text: str) -> None:
        if self.fail_posts:
            raise ConnectionError("post failed")
        self.posted.append((channel_id, text))

    async def get_display_name(self, user_id: str) -> str:
        if user_id in self.names:
            return self.names[user_id]
        raise LookupError(f"user_not_found: {user_id}")

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.posted]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    return FakeBus(names={"U1": "Alice", "U2": "Bob"})


@pytest.fixture
def make_bus():
    """Factory for buses with scripted event sessions."""

    def _make(*sessions, **kwargs):
        kwargs.setdefault("names", {"U1": "Alice", "U2": "Bob"})
        return FakeBus(sessions=list(sessions), **kwargs)

    return _make
