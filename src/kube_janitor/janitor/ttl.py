# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""TTL and expiry timestamp handling.

TTL strings have the form ``<integer><unit>`` with unit one of
``s``, ``m``, ``h``, ``d``, ``w``. The literal ``forever`` means the
resource never expires.

Expiry timestamps accept RFC 3339, ``YYYY-MM-DDTHH:MM`` and
``YYYY-MM-DD`` (all naive forms are interpreted as UTC).
"""

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Union

from kube_janitor.errors import InvalidFormatError

TTL_UNLIMITED = "forever"

TIME_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

_TTL_PATTERN = re.compile(r"^([0-9]+)([smhdw])$")
# strptime reads at most microseconds
_FRACTION_PATTERN = re.compile(r"(\.[0-9]{6})[0-9]+")

# Largest unit first
_DURATION_UNITS = (
    (7 * 24 * 3600, "w"),
    (24 * 3600, "d"),
    (3600, "h"),
    (60, "m"),
    (1, "s"),
)

_RFC3339_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
)
_NAIVE_FORMATS = (
    "%Y-%m-%dT%H:%M",
    "%Y-%m-%d",
)


class Unlimited(Enum):
    """Sentinel type for a TTL that never expires."""

    FOREVER = TTL_UNLIMITED


FOREVER = Unlimited.FOREVER

TTL = Union[timedelta, Unlimited]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_ttl(ttl: str) -> TTL:
    """Parse a TTL string into a duration.

    Args:
        ttl: TTL value such as ``60s``, ``5m``, ``8h``, ``7d``, ``2w``
            or ``forever``.

    Returns:
        A ``timedelta``, or ``FOREVER`` for unlimited TTLs.

    Raises:
        InvalidFormatError: If the value does not match the format.
    """
    if ttl == TTL_UNLIMITED:
        return FOREVER

    match = _TTL_PATTERN.match(ttl) if isinstance(ttl, str) else None
    if match is None:
        raise InvalidFormatError(
            f"TTL value {ttl!r} does not match format (e.g. 60s, 5m, 8h, 7d, 2w)"
        )

    value, unit = match.groups()
    return int(value) * TIME_UNITS[unit]


def parse_expiry(expiry: str) -> datetime:
    """Parse an absolute expiry timestamp.

    Formats are tried in order: RFC 3339, ``YYYY-MM-DDTHH:MM``,
    ``YYYY-MM-DD``. The first successful parse wins.

    Args:
        expiry: Timestamp string.

    Returns:
        Timezone-aware datetime.

    Raises:
        InvalidFormatError: If no supported format matches.
    """
    if isinstance(expiry, str):
        truncated = _FRACTION_PATTERN.sub(r"\1", expiry)
        for fmt in _RFC3339_FORMATS:
            try:
                return datetime.strptime(truncated, fmt)
            except ValueError:
                continue
        for fmt in _NAIVE_FORMATS:
            try:
                return datetime.strptime(expiry, fmt).replace(tzinfo=timezone.utc)
            except ValueError:
                continue

    raise InvalidFormatError(
        f"expiry value {expiry!r} does not match any supported format"
    )


def format_duration(duration: timedelta) -> str:
    """Render a duration in compact human-readable form.

    Example:
        >>> format_duration(timedelta(minutes=90))
        '1h30m'
    """
    if duration < timedelta(0):
        return "-" + format_duration(-duration)

    remaining = int(duration.total_seconds())
    parts = []
    for seconds, suffix in _DURATION_UNITS:
        value, remaining = divmod(remaining, seconds)
        if value > 0:
            parts.append(f"{value}{suffix}")

    return "".join(parts) or "0s"


def format_timestamp(value: datetime) -> str:
    """Format an aware datetime as RFC 3339 in UTC (``...Z``)."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
