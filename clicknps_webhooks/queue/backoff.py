import os
from datetime import timedelta
from typing import List

from clicknps_webhooks.errors import ExhaustedRetries

DEFAULT_BACKOFF_SCHEDULE = [60, 300, 1800, 7200, 21600, 43200, 86400]  # seconds


def _parse_schedule(raw: str | None) -> List[int]:
    if not raw:
        return list(DEFAULT_BACKOFF_SCHEDULE)
    schedule = [int(part) for part in raw.split(",") if part.strip()]
    if not schedule or any(delay <= 0 for delay in schedule):
        raise ValueError("WEBHOOK_BACKOFF_SCHEDULE must list positive seconds")
    return schedule


BACKOFF_SCHEDULE = _parse_schedule(os.getenv("WEBHOOK_BACKOFF_SCHEDULE"))
# Counts attempts, not retries: 7 attempts use the first six delays, so the
# last tier is only reached when WEBHOOK_MAX_ATTEMPTS exceeds the table length.
MAX_ATTEMPTS = int(os.getenv("WEBHOOK_MAX_ATTEMPTS", str(len(BACKOFF_SCHEDULE))))


def next_retry_delay(
    attempts: int,
    schedule: List[int] | None = None,
    max_attempts: int | None = None,
) -> timedelta:
    """
    Delay before the next attempt, given how many attempts have failed.

    ``attempts`` counts the attempt that just failed, so the first retry
    uses ``schedule[0]``. Raises ExhaustedRetries once ``max_attempts``
    attempts have been made.
    """
    schedule = BACKOFF_SCHEDULE if schedule is None else schedule
    max_attempts = MAX_ATTEMPTS if max_attempts is None else max_attempts

    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    if attempts >= max_attempts:
        raise ExhaustedRetries(attempts)

    index = min(attempts - 1, len(schedule) - 1)
    return timedelta(seconds=schedule[index])
