"""Calendar-day helpers for epoch-millisecond timestamps."""

from datetime import UTC, date, datetime, tzinfo

DAY_KEY_FORMAT = "%Y-%m-%d"


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return int(datetime.now(tz=UTC).timestamp() * 1000)


def today(tz: tzinfo) -> date:
    """Return the current calendar day in the given timezone."""
    return datetime.now(tz=tz).date()


def day_key(day: date) -> str:
    """Format a calendar day as ``YYYY-MM-DD``."""
    return day.strftime(DAY_KEY_FORMAT)


def parse_day_key(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` day key."""
    return datetime.strptime(value, DAY_KEY_FORMAT).date()


def day_of(timestamp_ms: int, tz: tzinfo) -> date:
    """Return the local calendar day a timestamp falls on."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=tz).date()


def is_same_day(timestamp_ms: int, day: date, tz: tzinfo) -> bool:
    """Return True when the timestamp falls on ``day`` in ``tz``."""
    return day_of(timestamp_ms, tz) == day


def timestamp_for_day(day: date, tz: tzinfo, now: int | None = None) -> int:
    """Return ``day`` combined with the current local time-of-day, in ms."""
    current_ms = now if now is not None else now_ms()
    current = datetime.fromtimestamp(current_ms / 1000, tz=tz)
    if current.date() == day:
        return current_ms
    stamped = datetime.combine(day, current.timetz())
    return int(stamped.timestamp() * 1000)
