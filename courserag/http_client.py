"""Shared outbound HTTP helper with bounded retry.

All external collaborators (embedding API, vector database, generation API,
sitemap and page fetches) go through :func:`request_with_retry` so they share
one definition of a transient failure and one backoff policy.
"""
from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from courserag import config

logger = structlog.get_logger()

TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def is_transient(error: BaseException) -> bool:
    """Return True for failures worth retrying."""
    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in TRANSIENT_STATUS_CODES
    return False


def _log_retry(service: str):
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "external_call_retry",
            service=service,
            attempt=retry_state.attempt_number,
            error=str(error),
            error_type=type(error).__name__,
        )

    return before_sleep


async def request_with_retry(
    method: str,
    url: str,
    *,
    service: str,
    timeout: Optional[float] = None,
    attempts: Optional[int] = None,
    initial_wait: Optional[float] = None,
    max_wait: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying transient failures with exponential jitter.

    Args:
        method: HTTP method
        url: Absolute URL
        service: Collaborator name used in logs
        timeout: Per-attempt timeout in seconds (default from config)
        attempts: Maximum number of attempts (default from config)
        initial_wait: First backoff in seconds (default from config)
        max_wait: Backoff ceiling in seconds (default from config)
        transport: Optional httpx transport (used by tests)
        **kwargs: Passed to ``httpx.AsyncClient.request``

    Returns:
        The successful response (2xx/3xx)

    Raises:
        httpx.HTTPError: The last error once retries are exhausted, or the
            first non-transient error
    """
    timeout = timeout if timeout is not None else config.REQUEST_TIMEOUT
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts or config.RETRY_ATTEMPTS),
        wait=wait_exponential_jitter(
            multiplier=config.RETRY_INITIAL_WAIT if initial_wait is None else initial_wait,
            max=config.RETRY_MAX_WAIT if max_wait is None else max_wait,
        ),
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry(service),
        reraise=True,
    )

    async with httpx.AsyncClient(
        timeout=timeout, transport=transport, follow_redirects=True
    ) as client:
        async for attempt in retrying:
            with attempt:
                response = await client.request(method, url, **kwargs)
                response.raise_for_status()
    return response
