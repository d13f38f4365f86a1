"""Unit tests for timestamp utilities."""

from datetime import datetime, timedelta, timezone

from mailrelay.utils.timestamps import (
    ensure_utc,
    format_timestamp_for_log,
    from_storage,
    to_storage,
    utc_now,
)


class TestUtcNow:
    """Tests for utc_now function."""

    def test_returns_aware_utc(self):
        now = utc_now()

        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_none(self):
        assert ensure_utc(None) is None

    def test_naive_treated_as_utc(self):
        result = ensure_utc(datetime(2025, 1, 15, 10, 30))
        assert result == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def test_other_timezone_converted(self):
        plus_two = timezone(timedelta(hours=2))
        result = ensure_utc(datetime(2025, 1, 15, 12, 30, tzinfo=plus_two))

        assert result == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
        assert result.tzinfo == timezone.utc


class TestStorageFormat:
    """Tests for to_storage and from_storage."""

    def test_fixed_width_format(self):
        dt = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert to_storage(dt) == "2025-01-02T03:04:05.000000Z"

    def test_microseconds_kept(self):
        dt = datetime(2025, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
        assert to_storage(dt) == "2025-01-02T03:04:05.123456Z"

    def test_converts_to_utc(self):
        minus_five = timezone(timedelta(hours=-5))
        dt = datetime(2025, 1, 2, 3, 0, 0, tzinfo=minus_five)

        assert to_storage(dt) == "2025-01-02T08:00:00.000000Z"

    def test_none(self):
        assert to_storage(None) is None
        assert from_storage(None) is None
        assert from_storage("") is None

    def test_parse_back(self):
        dt = datetime(2025, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)
        assert from_storage(to_storage(dt)) == dt

    def test_parse_without_microseconds(self):
        result = from_storage("2025-01-02T03:04:05Z")
        assert result == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_lexical_order_matches_time_order(self):
        base = datetime(2025, 1, 2, 9, 59, 59, 999999, tzinfo=timezone.utc)
        values = [base, base + timedelta(microseconds=1), base + timedelta(hours=5)]

        stored = [to_storage(v) for v in values]

        assert stored == sorted(stored)


class TestFormatTimestampForLog:
    """Tests for format_timestamp_for_log function."""

    def test_second_precision(self):
        dt = datetime(2025, 1, 15, 10, 30, 45, 123456, tzinfo=timezone.utc)
        assert format_timestamp_for_log(dt) == "2025-01-15T10:30:45Z"

    def test_none(self):
        assert format_timestamp_for_log(None) == ""
