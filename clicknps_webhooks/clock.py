from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC now; all timestamps are stored without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_z(value: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return value.isoformat(timespec="milliseconds") + "Z"
