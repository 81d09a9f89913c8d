"""
Message bus adapters for keybot.

The session controller talks to the chat platform only through
``MessageBus``. ``SlackMessageBus`` implements it with slack_sdk: the Web
API for lookups and posting, Socket Mode for the inbound event stream.
Socket Mode's own auto-reconnect is switched off because the session
controller owns the reconnect policy.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from slack_sdk.errors import SlackApiError
from slack_sdk.socket_mode.aiohttp import SocketModeClient
from slack_sdk.socket_mode.request import SocketModeRequest
from slack_sdk.socket_mode.response import SocketModeResponse
from slack_sdk.web.async_client import AsyncWebClient

from .errors import AuthenticationError, ChannelNotFoundError

logger = logging.getLogger(__name__)

# Slack error codes that mean the token itself is bad
AUTH_ERROR_CODES = frozenset(
    {"invalid_auth", "not_authed", "account_inactive", "token_revoked", "token_expired"}
)

# Message subtypes that still carry text typed by a user
TEXT_SUBTYPES = frozenset({"file_share", "thread_broadcast"})


# -------------------------------------------------------------------------
# Inbound events
# -------------------------------------------------------------------------


@dataclass(frozen=True)
class TextEvent:
    """A plain message posted by a user."""

    channel_id: str
    user_id: str
    text: str


@dataclass(frozen=True)
class AuthError:
    """The platform rejected our credentials."""

    reason: str


@dataclass(frozen=True)
class TransportError:
    """The event stream broke; the session must reconnect."""

    reason: str


@dataclass(frozen=True)
class OtherEvent:
    """Anything the bot does not act on."""

    type: str


InboundEvent = TextEvent | AuthError | TransportError | OtherEvent


class MessageBus(ABC):
    """Connection to the chat platform."""

    @abstractmethod
    async def identify(self) -> str:
        """Verify credentials and return the bot's own user ID."""

    @abstractmethod
    async def resolve_channel(self, channel_name: str) -> str:
        """Map a channel name to its ID."""

    @abstractmethod
    async def join_channel(self, channel_id: str) -> None:
        """Make sure the bot is a member of the channel."""

    @abstractmethod
    def events(self) -> AsyncIterator[InboundEvent]:
        """Open the event stream. Iteration ends when the stream closes."""

    @abstractmethod
    async def post_message(self, channel_id: str, text: str) -> None:
        """Post text to a channel."""

    @abstractmethod
    async def get_display_name(self, user_id: str) -> str:
        """Look up a user's display name. May raise for unknown users."""

    async def list_channels(self) -> list[dict[str, Any]]:
        """Channels visible to the bot, as dicts with at least id and name."""
        return []


async def resolve_names(bus: MessageBus, user_ids: Iterable[str]) -> dict[str, str]:
    """
    Resolve user IDs to display names.

    Lookup failures fall back to the raw ID so a message can always be
    rendered.
    """
    names: dict[str, str] = {}
    for user_id in user_ids:
        if user_id in names:
            continue
        try:
            names[user_id] = await bus.get_display_name(user_id) or user_id
        except Exception as e:
            logger.debug(f"Could not resolve user {user_id}: {e}")
            names[user_id] = user_id
    return names


def is_auth_error(error: SlackApiError) -> bool:
    """True if a Slack API error means the token is unusable."""
    response = getattr(error, "response", None)
    code = response.get("error") if response is not None else None
    return code in AUTH_ERROR_CODES


# -------------------------------------------------------------------------
# Slack
# -------------------------------------------------------------------------


class SlackMessageBus(MessageBus):
    """Slack implementation of ``MessageBus``."""

    def __init__(
        self,
        bot_token: str,
        app_token: str,
        web_client: AsyncWebClient | None = None,
        socket_client_factory: Callable[[], SocketModeClient] | None = None,
        health_check_seconds: float = 10.0,
    ):
        self.web_client = web_client or AsyncWebClient(token=bot_token)
        self._app_token = app_token
        self._socket_client_factory = socket_client_factory or self._new_socket_client
        self._health_check_seconds = health_check_seconds
        self._bot_user_id: str | None = None
        self._user_cache: dict[str, str] = {}

    def _new_socket_client(self) -> SocketModeClient:
        return SocketModeClient(
            app_token=self._app_token,
            web_client=self.web_client,
            auto_reconnect_enabled=False,
        )

    async def identify(self) -> str:
        try:
            response = await self.web_client.auth_test()
        except SlackApiError as e:
            if is_auth_error(e):
                raise AuthenticationError(f"auth.test failed: {e.response['error']}") from e
            raise

        self._bot_user_id = response["user_id"]
        logger.info(f"Bot connected as {response.get('user')} (ID: {self._bot_user_id})")
        return self._bot_user_id

    async def list_channels(self) -> list[dict[str, Any]]:
        """All public and private channels visible to the bot."""
        channels: list[dict[str, Any]] = []
        cursor = None

        while True:
            response = await self.web_client.conversations_list(
                types="public_channel,private_channel",
                limit=1000,
                cursor=cursor,
            )
            channels.extend(response.get("channels", []))
            cursor = response.get("response_metadata", {}).get("next_cursor")
            if not cursor:
                break

        return channels

    async def resolve_channel(self, channel_name: str) -> str:
        name = channel_name.lstrip("#")
        for channel in await self.list_channels():
            if channel.get("name") == name:
                return channel["id"]
        raise ChannelNotFoundError(channel_name)

    async def join_channel(self, channel_id: str) -> None:
        try:
            await self.web_client.conversations_join(channel=channel_id)
        except SlackApiError as e:
            # Private channels can't be joined by the bot; it must be invited
            if e.response.get("error") in ("already_in_channel", "method_not_supported_for_channel_type"):
                logger.debug(f"join {channel_id}: {e.response['error']}")
                return
            raise

    async def post_message(self, channel_id: str, text: str) -> None:
        await self.web_client.chat_postMessage(channel=channel_id, text=text)

    async def get_display_name(self, user_id: str) -> str:
        if user_id in self._user_cache:
            return self._user_cache[user_id]

        response = await self.web_client.users_info(user=user_id)
        user = response.get("user", {})
        profile = user.get("profile", {})
        name = (
            user.get("real_name")
            or profile.get("real_name")
            or profile.get("display_name")
            or user.get("name")
            or user_id
        )
        self._user_cache[user_id] = name
        return name

    def to_event(self, request: SocketModeRequest) -> InboundEvent:
        """Translate a Socket Mode envelope into an inbound event."""
        if request.type != "events_api":
            return OtherEvent(type=request.type)

        event = (request.payload or {}).get("event", {})
        event_type = event.get("type", "unknown")
        if event_type != "message":
            return OtherEvent(type=event_type)

        # Edits, joins, bot posts and similar carry a subtype
        subtype = event.get("subtype")
        if subtype and subtype not in TEXT_SUBTYPES:
            return OtherEvent(type=f"message.{subtype}")

        user_id = event.get("user")
        if not user_id or user_id == self._bot_user_id or event.get("bot_id"):
            return OtherEvent(type="message.bot")

        return TextEvent(
            channel_id=event.get("channel", ""),
            user_id=user_id,
            text=event.get("text", ""),
        )

    async def events(self) -> AsyncIterator[InboundEvent]:
        queue: asyncio.Queue[InboundEvent] = asyncio.Queue()
        client = self._socket_client_factory()

        async def on_request(client: SocketModeClient, request: SocketModeRequest) -> None:
            await client.send_socket_mode_response(
                SocketModeResponse(envelope_id=request.envelope_id)
            )
            queue.put_nowait(self.to_event(request))

        client.socket_mode_request_listeners.append(on_request)

        try:
            try:
                await client.connect()
            except SlackApiError as e:
                if is_auth_error(e):
                    yield AuthError(reason=e.response["error"])
                else:
                    yield TransportError(reason=f"Slack API error: {e.response.get('error')}")
                return
            except Exception as e:
                yield TransportError(reason=f"Connection error: {e}")
                return

            logger.info("Socket Mode connection established")
            yield OtherEvent(type="hello")

            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self._health_check_seconds)
                except TimeoutError:
                    if not await client.is_connected():
                        yield TransportError(reason="Socket Mode connection closed")
                        return
                    continue
                yield event
        finally:
            await client.close()
