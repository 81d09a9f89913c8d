"""
Command parsing for keybot.

Turns a free-form chat message into a ``Command``. Accepted forms look
like "13番借ります", "14 借りる", "15 番 返します". Input is normalized with
NFKC first so that full-width digits typed from a Japanese IME match too.
"""

import re
import unicodedata

from .models import Command, CommandKind

BORROW_PATTERN = re.compile(r"([0-9]{2})\s*番?\s*(借ります|借りる|借りたい)", re.IGNORECASE)
RETURN_PATTERN = re.compile(r"([0-9]{2})\s*番?\s*(返します|返す|返却します)", re.IGNORECASE)

# Checked in order; the first pattern that matches decides the command.
_KEY_PATTERNS = (
    (CommandKind.BORROW, BORROW_PATTERN),
    (CommandKind.RETURN, RETURN_PATTERN),
)


def mention_token(user_id: str) -> str:
    """Slack's inline mention markup for a user."""
    return f"<@{user_id}>"


def parse_command(
    text: str,
    user_id: str,
    channel_id: str,
    bot_user_id: str | None = None,
) -> Command:
    """
    Classify a chat message.

    Borrow wins over return when both could match. A message that mentions
    the bot without a borrow/return phrase is a status query.
    """
    normalized = unicodedata.normalize("NFKC", text or "")

    for kind, pattern in _KEY_PATTERNS:
        match = pattern.search(normalized)
        if match:
            return Command(kind=kind, user_id=user_id, channel_id=channel_id, key_id=match.group(1))

    if bot_user_id and mention_token(bot_user_id) in normalized:
        return Command(kind=CommandKind.STATUS, user_id=user_id, channel_id=channel_id)

    return Command(kind=CommandKind.NONE, user_id=user_id, channel_id=channel_id)
