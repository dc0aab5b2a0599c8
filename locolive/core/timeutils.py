from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: int | float | datetime) -> datetime:
    """Normalize epoch seconds or a possibly naive datetime to aware UTC.

    SQLite hands timestamps back without tzinfo even for timezone-aware columns.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.fromtimestamp(value, tz=timezone.utc)
