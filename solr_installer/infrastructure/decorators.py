"""
Infrastructure-specific decorators, providing cross-cutting concerns like
retry logic for network operations.
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# --- Constants for Retry Logic ---
_RETRY_ATTEMPTS = 3
_RETRY_MIN_WAIT_SECONDS = 1
_RETRY_MAX_WAIT_SECONDS = 10

# Statuses a download site answers with while overloaded or rate limiting.
_TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})


def _is_transient(exception: BaseException) -> bool:
    """Network hiccups and overload statuses are worth another attempt."""
    if isinstance(exception, httpx.HTTPStatusError):
        return exception.response.status_code in _TRANSIENT_STATUSES
    return isinstance(exception, httpx.TransportError)


def _log_before_retry(retry_state):
    """Log the retry attempt with details about the exception and wait time."""
    exception = retry_state.outcome.exception()
    next_attempt_in = retry_state.next_action.sleep
    logger.warning(
        f"Retrying {retry_state.fn.__name__} in {next_attempt_in:.2f}s after "
        f"{type(exception).__name__}: {exception} "
        f"(attempt {retry_state.attempt_number} of {_RETRY_ATTEMPTS})"
    )


# Wraps async fetches of small metadata documents such as checksum files.
# Non-transient failures surface at once; after the last attempt the
# original exception is re-raised for the caller to translate.
retry_on_transient_error = retry(
    stop=stop_after_attempt(_RETRY_ATTEMPTS),
    wait=wait_exponential(
        multiplier=1,
        min=_RETRY_MIN_WAIT_SECONDS,
        max=_RETRY_MAX_WAIT_SECONDS,
    ),
    retry=retry_if_exception(_is_transient),
    before_sleep=_log_before_retry,
    reraise=True,
)
