"""Opt-in exponential backoff for callers that want automatic retries.

Nothing in the client retries on its own; wrap a call explicitly:

    report = retry_with_backoff(lambda: client.get_report(report_id))
"""

from __future__ import annotations

from typing import Callable, TypeVar

from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from microclimate_hub.errors import ApiError, TransportError
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="retry")

T = TypeVar("T")


def is_retryable_error(exc: BaseException) -> bool:
    """Transport failures and 5xx service failures are worth retrying."""
    if isinstance(exc, TransportError):
        return True
    return isinstance(exc, ApiError) and exc.status >= 500


def retry_with_backoff(
    fn: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Callable[[BaseException], bool] = is_retryable_error,
) -> T:
    """Call `fn` up to `max_retries` times, doubling the wait after each failure.

    The last exception is re-raised unchanged once attempts are exhausted.
    """
    def _log_retry(retry_state) -> None:
        exc = retry_state.outcome.exception()
        logger.warning(f"Attempt {retry_state.attempt_number} failed; retrying", extra={"error": str(exc)})

    retrying = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        retry=retry_if_exception(retry_on),
        before_sleep=_log_retry,
        reraise=True,
    )
    return retrying(fn)
