"""
Exceptions raised by keybot.

Lending outcomes (invalid key, already borrowed, ...) are not errors; they
are reported through ``LedgerResult``. These exceptions cover conditions
the bot cannot turn into a chat reply.
"""


class KeybotError(Exception):
    """Base class for keybot errors."""


class AuthenticationError(KeybotError):
    """Credentials were rejected. Retrying cannot fix this."""


class ChannelNotFoundError(KeybotError):
    """The configured channel name does not exist or is not visible."""

    def __init__(self, channel_name: str):
        super().__init__(f"channel {channel_name} not found")
        self.channel_name = channel_name
