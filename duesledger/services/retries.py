import logging
from typing import Callable, TypeVar

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import settings
from ..core.errors import Conflict

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StaleWrite(Exception):
    """A conditional update found a newer version than the one it read."""


def with_conditional_retry(operation: Callable[[], T], target: str) -> T:
    """Re-run a read-modify-write until it lands, backing off between attempts.

    ``operation`` must re-read its record on every call and raise ``StaleWrite``
    when the store rejects its conditional update.
    """
    retrying = Retrying(
        stop=stop_after_attempt(settings.write_max_attempts),
        wait=wait_exponential(multiplier=settings.write_retry_wait_seconds, max=2),
        retry=retry_if_exception_type(StaleWrite),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                return operation()
    except StaleWrite as exc:
        logger.warning("Giving up on %s after %s conflicting writes", target, settings.write_max_attempts)
        raise Conflict(f"Concurrent update on {target}. Re-fetch and retry.") from exc
