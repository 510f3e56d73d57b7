"""Time helpers. All timestamps are timezone-aware UTC."""

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def clock_label(moment: datetime | None = None) -> str:
    """``HH:MM:SS`` for ``moment`` (now if omitted), used in fallback headlines."""
    return (moment or utc_now()).strftime("%H:%M:%S")
