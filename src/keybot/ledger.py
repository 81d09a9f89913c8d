"""
In-memory lending ledger.

Every operation takes the same lock for its whole duration, so a reader
never sees a half-applied borrow or return. The data set is a handful of
keys and each call is a dictionary lookup, so one coarse lock is enough.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from .models import KeyRecord, LedgerOutcome, LedgerResult

logger = logging.getLogger(__name__)

DEFAULT_KEYS = ("13", "14", "15")


def utc_now() -> datetime:
    return datetime.now(UTC)


class Ledger:
    """Authoritative map of key ID to the loan currently holding it."""

    def __init__(
        self,
        allowed_keys: Iterable[str] = DEFAULT_KEYS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._allowed = frozenset(allowed_keys)
        self._clock = clock
        self._records: dict[str, KeyRecord] = {}
        self._lock = threading.Lock()

    @property
    def allowed_keys(self) -> frozenset[str]:
        return self._allowed

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def borrow(self, key_id: str, user: str) -> LedgerResult:
        """Check a key out to ``user``.

        Fails with INVALID_KEY for keys outside the inventory and with
        ALREADY_BORROWED (naming the holder) if someone has it.
        """
        with self._lock:
            if key_id not in self._allowed:
                return LedgerResult(LedgerOutcome.INVALID_KEY, key_id)

            current = self._records.get(key_id)
            if current is not None:
                return LedgerResult(
                    LedgerOutcome.ALREADY_BORROWED,
                    key_id,
                    borrower=current.borrower,
                )

            record = KeyRecord(key_id=key_id, borrower=user, borrowed_at=self._clock())
            self._records[key_id] = record

        logger.info(f"Key {key_id} borrowed by {user}")
        return LedgerResult(LedgerOutcome.OK, key_id, record=record, borrower=user)

    def return_key(self, key_id: str, user: str) -> LedgerResult:
        """Check a key back in.

        Only the user who borrowed the key may return it.
        """
        with self._lock:
            current = self._records.get(key_id)
            if current is None:
                return LedgerResult(LedgerOutcome.NOT_BORROWED, key_id)

            if current.borrower != user:
                return LedgerResult(
                    LedgerOutcome.WRONG_BORROWER,
                    key_id,
                    borrower=current.borrower,
                )

            del self._records[key_id]

        logger.info(f"Key {key_id} returned by {user}")
        return LedgerResult(LedgerOutcome.OK, key_id, record=current, borrower=user)

    def snapshot(self) -> list[KeyRecord]:
        """Copy of all outstanding loans, ordered by key ID."""
        with self._lock:
            return sorted(self._records.values(), key=lambda r: r.key_id)

    def find_overdue(self, now: datetime, threshold: timedelta) -> list[KeyRecord]:
        """Loans held for strictly longer than ``threshold`` at ``now``."""
        with self._lock:
            return sorted(
                (r for r in self._records.values() if now - r.borrowed_at > threshold),
                key=lambda r: r.key_id,
            )
