"""quantledger.core.time

The only time helper surface in the codebase.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return an aware UTC datetime."""

    return datetime.now(tz=UTC)


def parse_dt(value: str) -> datetime:
    """Parse an ISO-8601 datetime string into an aware UTC datetime.

    Accepts:
    - `Z` suffix
    - explicit offsets
    - naive timestamps (assumed UTC)

    Raises:
        ValueError: if parsing fails.
    """

    v = value.strip()
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"

    dt = datetime.fromisoformat(v)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def coerce_dt(value: object) -> datetime:
    """Coerce a candle timestamp into an aware UTC datetime.

    Accepts datetimes, ISO-8601 strings, and epoch milliseconds.

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp.
    """

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, bool):
        raise ValueError("bool is not a timestamp")
    if isinstance(value, int):
        return datetime.fromtimestamp(value / 1000.0, tz=UTC)
    if isinstance(value, str):
        v = value.strip()
        if v.isdigit():
            return datetime.fromtimestamp(int(v) / 1000.0, tz=UTC)
        return parse_dt(v)
    raise ValueError(f"unsupported timestamp: {value!r}")
