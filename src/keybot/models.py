"""
Data models for keybot.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class CommandKind(str, Enum):
    """What a chat message asks the bot to do."""

    BORROW = "borrow"
    RETURN = "return"
    STATUS = "status"
    NONE = "none"


class LedgerOutcome(str, Enum):
    """Result of a ledger operation."""

    OK = "ok"
    INVALID_KEY = "invalid_key"
    ALREADY_BORROWED = "already_borrowed"
    NOT_BORROWED = "not_borrowed"
    WRONG_BORROWER = "wrong_borrower"


class SessionState(str, Enum):
    """Connection lifecycle of the session controller."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FATAL = "fatal"


@dataclass(frozen=True)
class KeyRecord:
    """One outstanding loan."""

    key_id: str
    borrower: str  # Slack user ID, not a display name
    borrowed_at: datetime


@dataclass(frozen=True)
class Command:
    """A classified chat message."""

    kind: CommandKind
    user_id: str
    channel_id: str
    key_id: str | None = None


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of a borrow or return.

    ``record`` is the created (borrow) or removed (return) record on
    success. ``borrower`` names the user holding the key when the outcome
    is ALREADY_BORROWED or WRONG_BORROWER.
    """

    outcome: LedgerOutcome
    key_id: str
    record: KeyRecord | None = None
    borrower: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is LedgerOutcome.OK
