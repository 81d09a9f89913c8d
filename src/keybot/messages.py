"""
User-facing chat messages.

All replies the bot posts are built here so the wording lives in one
place. ``names`` arguments map Slack user IDs to display names; an ID
missing from the map is shown as-is.
"""

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, tzinfo

from .models import KeyRecord

DEFAULT_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


def format_timestamp(
    ts: datetime,
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    """Render a loan timestamp in the display timezone (local if None)."""
    return ts.astimezone(tz).strftime(fmt)


def describe_threshold(threshold: timedelta) -> str:
    """Human wording for the overdue threshold, e.g. 2日 or 36時間."""
    hours = threshold.total_seconds() / 3600
    if hours >= 24 and hours % 24 == 0:
        return f"{int(hours // 24)}日"
    if hours == int(hours):
        return f"{int(hours)}時間"
    return f"{int(threshold.total_seconds() // 60)}分"


def borrowed(key_id: str, name: str) -> str:
    return f"カード番号{key_id}を{name}さんが借りました。"


def invalid_key(key_id: str) -> str:
    return f"カード番号が無効です: {key_id}"


def already_borrowed(key_id: str, name: str) -> str:
    return f"カード番号{key_id}は既に{name}さんが借りています。"


def returned(key_id: str) -> str:
    return f"カード番号{key_id}が返却されました。"


def not_borrowed(key_id: str) -> str:
    return f"カード番号{key_id}は現在貸し出されていません。"


def wrong_borrower(key_id: str, name: str) -> str:
    return f"カード番号{key_id}は{name}さんが借りています。あなたは借りていません。"


NOTHING_BORROWED = "現在、貸し出されているマスターキーはありません。"
STATUS_HEADER = "現在のマスターキーの状態:"


def record_line(
    record: KeyRecord,
    names: Mapping[str, str],
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    name = names.get(record.borrower, record.borrower)
    when = format_timestamp(record.borrowed_at, tz, fmt)
    return f"カード番号{record.key_id}: {name}さんが借りています。借りた日: {when}"


def status_report(
    records: Sequence[KeyRecord],
    names: Mapping[str, str],
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    """Current lending state, or the "nothing borrowed" notice."""
    if not records:
        return NOTHING_BORROWED
    lines = [STATUS_HEADER]
    lines.extend(record_line(r, names, tz, fmt) for r in records)
    return "\n".join(lines)


def overdue_notice(
    records: Sequence[KeyRecord],
    names: Mapping[str, str],
    threshold: timedelta,
    tz: tzinfo | None = None,
    fmt: str = DEFAULT_TIMESTAMP_FORMAT,
) -> str:
    header = f"以下のマスターキーが{describe_threshold(threshold)}以上経過しても返却されていません:"
    lines = [header]
    lines.extend(record_line(r, names, tz, fmt) for r in records)
    return "\n".join(lines)
