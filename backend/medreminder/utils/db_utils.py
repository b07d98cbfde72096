"""Retry helper for commits that can hit a locked or briefly unavailable database."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Substrings of driver errors that go away on their own
TRANSIENT_ERRORS = (
    "database is locked",  # SQLite writer contention between API and dispatcher
    "connection refused",
    "connection reset",
    "connection closed",
    "server closed",
    "timeout",
    "too many clients",
)


def is_transient(error: Exception) -> bool:
    message = str(error).lower()
    return any(fragment in message for fragment in TRANSIENT_ERRORS)


async def retry_on_lock(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.1,
) -> T:
    """Run operation, retrying transient lock/connection errors with exponential backoff.

    Args:
        operation: Zero-argument callable returning an awaitable, e.g. session.commit
        max_retries: Attempts before giving up
        base_delay: Seconds before the first retry; doubles each time

    Raises:
        OperationalError / InterfaceError: non-transient, or still failing after max_retries
    """
    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"Database busy, retrying in {delay}s (attempt {attempt}/{max_retries}): {e}")
            await asyncio.sleep(delay)
