"""
Retry policy shared by every adapter that talks to the site over HTTP.

The dump host and the JSON API both shed load with 5xx answers and the
occasional dropped connection, so a failed listing, probe, download or search
is repeated a few times with growing pauses before the error reaches the
caller.
"""

import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
MIN_BACKOFF_SECONDS = 1
MAX_BACKOFF_SECONDS = 10

# Connection refused/reset before any response, read or connect timeouts, and
# non-2xx statuses raised by `raise_for_status` (503 during dump rotation,
# 429 when the API rate limit kicks in).
TRANSIENT_HTTP_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.HTTPStatusError,
)


def _warn_before_sleep(retry_state):
    """Logs which call failed, with what, and when it runs again."""
    error = retry_state.outcome.exception()
    logger.warning(
        f"{retry_state.fn.__name__} raised {type(error).__name__}; "
        f"attempt {retry_state.attempt_number + 1}/{MAX_ATTEMPTS} "
        f"in {retry_state.next_action.sleep:.2f}s"
    )


# Wraps an async adapter method. Once attempts run out the last exception is
# re-raised unchanged, and the adapter maps it to CatalogError, DownloadError
# or APIError.
retry_on_network_error = retry(
    stop=stop_after_attempt(MAX_ATTEMPTS),
    wait=wait_exponential(
        multiplier=1, min=MIN_BACKOFF_SECONDS, max=MAX_BACKOFF_SECONDS
    ),
    retry=retry_if_exception_type(TRANSIENT_HTTP_ERRORS),
    before_sleep=_warn_before_sleep,
    reraise=True,
)
