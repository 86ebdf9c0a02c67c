"""Time utilities."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def epoch_millis(value: datetime | None = None) -> int:
    """Return milliseconds since the epoch, used to prefix storage object names."""

    moment = value or utcnow()
    return int(moment.timestamp() * 1000)


__all__ = ["utcnow", "as_utc", "epoch_millis"]
