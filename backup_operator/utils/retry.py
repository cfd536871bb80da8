"""
Retry utilities for Kubernetes API calls.

Reads against the Kubernetes API are retried with exponential backoff on
transient failures. Writes are not: a conflicting status update has to
reach the controller so that it re-runs the pass on fresh data.
"""
from kubernetes_asyncio.client.rest import ApiException
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from backup_operator.config.logging import get_logger

logger = get_logger(__name__)

# HTTP status codes that are retryable
RETRYABLE_STATUS_CODES = {
    408,  # Request Timeout
    429,  # Too Many Requests (rate limiting)
    500,  # Internal Server Error
    502,  # Bad Gateway
    503,  # Service Unavailable
    504,  # Gateway Timeout
}


def is_retryable_k8s_error(exception: BaseException) -> bool:
    """
    Determine if a Kubernetes API exception should trigger a retry.

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    if not isinstance(exception, ApiException):
        return False
    return exception.status in RETRYABLE_STATUS_CODES


def _log_retry(retry_state: RetryCallState) -> None:
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "k8s_api_call_failed_retrying",
        function=getattr(retry_state.fn, "__name__", "unknown"),
        attempt=retry_state.attempt_number,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error_type=type(exception).__name__,
        status_code=getattr(exception, "status", None),
    )


def retry_k8s_read(max_attempts: int = 3, max_delay: float = 10.0):
    """
    Decorator retrying an async Kubernetes read on transient API errors.

    Example:
        @retry_k8s_read()
        async def get_secret(self, namespace, name):
            ...
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_delay),
        retry=retry_if_exception(is_retryable_k8s_error),
        before_sleep=_log_retry,
        reraise=True,
    )
