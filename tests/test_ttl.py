# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""
Tests for TTL and expiry timestamp handling.
"""

from datetime import datetime, timedelta, timezone

import pytest

from kube_janitor.errors import InvalidFormatError
from kube_janitor.janitor.ttl import (
    FOREVER,
    format_duration,
    format_timestamp,
    parse_expiry,
    parse_ttl,
)


class TestParseTTL:
    """Tests for TTL string parsing."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30s", timedelta(seconds=30)),
            ("5m", timedelta(minutes=5)),
            ("8h", timedelta(hours=8)),
            ("7d", timedelta(days=7)),
            ("2w", timedelta(weeks=2)),
            ("0s", timedelta(0)),
        ],
    )
    def test_valid_units(self, value, expected):
        assert parse_ttl(value) == expected

    def test_forever_is_unlimited(self):
        assert parse_ttl("forever") is FOREVER

    @pytest.mark.parametrize("value", ["7x", "", "h", "1.5h", "-1h", " 1h", "1H", "Forever", "10"])
    def test_invalid_values_raise(self, value):
        with pytest.raises(InvalidFormatError):
            parse_ttl(value)

    def test_invalid_format_is_value_error(self):
        """InvalidFormatError can be caught as ValueError."""
        with pytest.raises(ValueError):
            parse_ttl("soon")

    def test_non_string_raises(self):
        with pytest.raises(InvalidFormatError):
            parse_ttl(None)


class TestParseExpiry:
    """Tests for absolute expiry timestamps."""

    def test_rfc3339_utc(self):
        assert parse_expiry("2024-06-01T12:30:00Z") == datetime(
            2024, 6, 1, 12, 30, tzinfo=timezone.utc
        )

    def test_rfc3339_offset(self):
        parsed = parse_expiry("2024-06-01T14:30:00+02:00")
        assert parsed == datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)

    def test_rfc3339_fractional_seconds(self):
        parsed = parse_expiry("2024-06-01T12:30:00.250Z")
        assert parsed.microsecond == 250000

    def test_rfc3339_nanoseconds_truncated(self):
        parsed = parse_expiry("2024-06-01T11:00:00.123456789Z")
        assert parsed == datetime(2024, 6, 1, 11, 0, 0, 123456, tzinfo=timezone.utc)

    def test_date_and_minutes_is_utc(self):
        assert parse_expiry("2024-06-01T12:30") == datetime(
            2024, 6, 1, 12, 30, tzinfo=timezone.utc
        )

    def test_date_only_is_midnight_utc(self):
        assert parse_expiry("2024-06-01") == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_always_timezone_aware(self):
        for value in ("2024-06-01T12:30:00Z", "2024-06-01T12:30", "2024-06-01"):
            assert parse_expiry(value).tzinfo is not None

    @pytest.mark.parametrize("value", ["tomorrow", "2024-13-01", "01/06/2024", "", "2024-06-01 12:30"])
    def test_invalid_raises(self, value):
        with pytest.raises(InvalidFormatError):
            parse_expiry(value)


class TestFormatDuration:
    """Tests for human-readable duration rendering."""

    @pytest.mark.parametrize(
        "ttl,expected",
        [
            ("90m", "1h30m"),
            ("3600s", "1h"),
            ("14d", "2w"),
            ("8d", "1w1d"),
            ("61s", "1m1s"),
            ("2w", "2w"),
        ],
    )
    def test_parse_then_format_is_canonical(self, ttl, expected):
        assert format_duration(parse_ttl(ttl)) == expected

    def test_zero(self):
        assert format_duration(timedelta(0)) == "0s"

    def test_negative_has_leading_minus(self):
        assert format_duration(-timedelta(hours=1, minutes=30)) == "-1h30m"

    def test_sub_second_parts_truncated(self):
        assert format_duration(timedelta(seconds=5, milliseconds=900)) == "5s"

    def test_all_units(self):
        duration = timedelta(weeks=1, days=2, hours=3, minutes=4, seconds=5)
        assert format_duration(duration) == "1w2d3h4m5s"


class TestFormatTimestamp:
    """Tests for RFC 3339 rendering."""

    def test_converts_to_utc(self):
        value = datetime(2024, 6, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-06-01T12:00:00Z"
