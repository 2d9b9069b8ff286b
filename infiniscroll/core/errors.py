"""Error classification and backoff utilities for page fetches.

Page fetch failures fall into three buckets:

- transient failures, retried automatically with exponential backoff;
- permanent failures (``PermanentError``), which settle the load at once;
- cancellation, which is never an error and is dropped silently.

Example:
    from infiniscroll.core.errors import (
        ErrorCategory,
        PermanentError,
        TransientError,
    )

    async def fetch_page(page, token):
        response = await client.get(url_for(page))
        if response.status == 404:
            raise PermanentError("page not found", ErrorCategory.NOT_FOUND)
        if response.status == 429:
            raise TransientError(
                "throttled", ErrorCategory.RATE_LIMIT, retry_after=5.0
            )
        ...
"""

import asyncio
from enum import Enum, auto


class ErrorCategory(Enum):
    """Classification of fetch failures, attached to failure log records.

    Only ``PermanentError`` stops the retry chain; the category is
    diagnostic.
    """

    # Usually transient
    RATE_LIMIT = auto()  # API rate limiting
    TIMEOUT = auto()  # Request/operation timeout
    NETWORK = auto()  # Network connectivity issues
    SERVICE_UNAVAILABLE = auto()  # Temporary service outage (5xx)
    OVERLOADED = auto()  # Server overloaded (529)

    # Usually permanent
    INVALID_INPUT = auto()  # Bad request data (4xx)
    AUTH_FAILURE = auto()  # Authentication/authorization error
    NOT_FOUND = auto()  # Resource not found
    CONFIGURATION = auto()  # Missing configuration or setup issue
    UNKNOWN = auto()  # Unclassified error


class TransientError(Exception):
    """Error that is temporary and can be retried.

    Attributes:
        category: The specific type of transient error.
        retry_after: Suggested wait time before retry (seconds), if known.
        original_error: The underlying exception that was classified.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        retry_after: float | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.retry_after = retry_after
        self.original_error = original_error


class PermanentError(Exception):
    """Error that is permanent and should not be retried.

    A fetch function raising this settles the load as failed on the spot,
    whatever attempt it was on.

    Attributes:
        category: The specific type of permanent error.
        original_error: The underlying exception that was classified.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.original_error = original_error


class ControllerClosedError(RuntimeError):
    """Raised when a closed controller is started again."""


def classify_error(error: BaseException) -> ErrorCategory:
    """Classify an exception into an error category.

    Explicit ``TransientError`` / ``PermanentError`` instances keep the
    category they were raised with; anything else is classified from its
    type and message.

    Args:
        error: The exception to classify.

    Returns:
        The ErrorCategory that best matches the error.
    """
    if isinstance(error, (TransientError, PermanentError)):
        return error.category

    error_str = str(error).lower()

    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return ErrorCategory.TIMEOUT

    if isinstance(error, ConnectionError):
        return ErrorCategory.NETWORK
    if "connection" in error_str or "network" in error_str:
        return ErrorCategory.NETWORK

    if "rate" in error_str and "limit" in error_str:
        return ErrorCategory.RATE_LIMIT
    if "429" in error_str or "too many requests" in error_str:
        return ErrorCategory.RATE_LIMIT

    if "529" in error_str or "overloaded" in error_str:
        return ErrorCategory.OVERLOADED

    if "503" in error_str or "service unavailable" in error_str:
        return ErrorCategory.SERVICE_UNAVAILABLE
    if "502" in error_str or "bad gateway" in error_str:
        return ErrorCategory.SERVICE_UNAVAILABLE

    if "401" in error_str or "unauthorized" in error_str:
        return ErrorCategory.AUTH_FAILURE
    if "403" in error_str or "forbidden" in error_str:
        return ErrorCategory.AUTH_FAILURE

    if "404" in error_str or "not found" in error_str:
        return ErrorCategory.NOT_FOUND

    if "400" in error_str or "bad request" in error_str:
        return ErrorCategory.INVALID_INPUT
    if "invalid" in error_str or "validation" in error_str:
        return ErrorCategory.INVALID_INPUT

    if "configuration" in error_str or "not configured" in error_str:
        return ErrorCategory.CONFIGURATION

    return ErrorCategory.UNKNOWN


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float | None = None,
    retry_after: float | None = None,
    exponential_base: float = 2.0,
) -> float:
    """Compute the wait before re-attempting after failed attempt ``attempt``.

    The delay is ``base_delay * exponential_base ** attempt``, so the first
    retry waits ``base_delay``, the second twice that, and so on. A server
    supplied ``retry_after`` acts as a lower bound, and ``max_delay`` caps
    the result when set.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        base_delay: Delay after the first failure (seconds).
        max_delay: Optional upper bound on the delay (seconds).
        retry_after: Optional server hint (seconds).
        exponential_base: Growth factor between consecutive delays.

    Returns:
        Delay in seconds.
    """
    delay = base_delay * (exponential_base**attempt)
    if retry_after is not None:
        delay = max(delay, retry_after)
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay
