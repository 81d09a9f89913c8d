"""Tests for user-facing message rendering."""

from datetime import UTC, datetime, timedelta, timezone

from keybot import messages
from keybot.models import KeyRecord

JST = timezone(timedelta(hours=9))


def record(key_id="13", borrower="U1", when=datetime(2024, 4, 1, 0, 30, tzinfo=UTC)):
    return KeyRecord(key_id=key_id, borrower=borrower, borrowed_at=when)


class TestFormatting:
    def test_timestamp_in_display_timezone(self):
        ts = datetime(2024, 4, 1, 0, 30, tzinfo=UTC)
        assert messages.format_timestamp(ts, JST) == "2024-04-01 09:30"

    def test_custom_timestamp_format(self):
        ts = datetime(2024, 4, 1, 0, 30, tzinfo=UTC)
        assert messages.format_timestamp(ts, UTC, "%m/%d") == "04/01"

    def test_describe_threshold(self):
        assert messages.describe_threshold(timedelta(hours=48)) == "2日"
        assert messages.describe_threshold(timedelta(hours=36)) == "36時間"
        assert messages.describe_threshold(timedelta(minutes=90)) == "90分"


class TestReplies:
    def test_borrowed_names_key_and_user(self):
        text = messages.borrowed("13", "Alice")
        assert "13" in text
        assert "Alice" in text

    def test_invalid_key(self):
        assert messages.invalid_key("99") == "カード番号が無効です: 99"

    def test_wrong_borrower(self):
        text = messages.wrong_borrower("13", "Alice")
        assert "Alice" in text
        assert "あなたは借りていません" in text


class TestReports:
    def test_empty_status(self):
        assert messages.status_report([], {}) == messages.NOTHING_BORROWED

    def test_status_lists_each_record(self):
        text = messages.status_report(
            [record("13", "U1"), record("15", "U2")],
            {"U1": "Alice"},
            UTC,
        )
        lines = text.splitlines()

        assert lines[0] == messages.STATUS_HEADER
        assert lines[1] == "カード番号13: Aliceさんが借りています。借りた日: 2024-04-01 00:30"
        # Unresolved names fall back to the raw ID
        assert "U2さん" in lines[2]

    def test_overdue_notice(self):
        text = messages.overdue_notice([record()], {"U1": "Alice"}, timedelta(hours=48), UTC)
        lines = text.splitlines()

        assert "2日以上" in lines[0]
        assert len(lines) == 2
        assert "Alice" in lines[1]
