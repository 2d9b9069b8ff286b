"""Protocols for the collaborators a LoadController talks to.

The controller never knows where pages come from: the host supplies a
``PageFetcher`` and optional callbacks. All types are UI-toolkit agnostic.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, TypeVar

from infiniscroll.core.cancellation import CancellationToken
from infiniscroll.core.state import LoadSnapshot, PageResult

T_co = TypeVar("T_co", covariant=True)


class PageFetcher(Protocol[T_co]):
    """Async function returning one page of a remote collection.

    Implementations receive the zero-based page index and the cancellation
    token of the attempt. Checking the token to abort the underlying
    request early is optional; results of cancelled attempts are discarded
    either way.
    """

    async def __call__(
        self, page: int, token: CancellationToken
    ) -> "PageResult[T_co] | Mapping[str, Any]":
        """Fetch a page.

        Args:
            page: Page index to fetch.
            token: Cancellation token of this attempt.

        Returns:
            A PageResult, or a mapping with ``items`` and ``has_more`` keys
            (plus an optional ``total``).

        Raises:
            Exception: Any failure. ``PermanentError`` skips the retries.
        """
        ...


class SuccessCallback(Protocol):
    """Called once per successfully loaded page."""

    def __call__(self, items: Sequence[Any], page: int) -> None: ...


class ErrorCallback(Protocol):
    """Called once when a load fails after exhausting its retries."""

    def __call__(self, error: BaseException) -> None: ...


class StateListener(Protocol):
    """Receives a fresh snapshot after every state change."""

    def __call__(self, snapshot: LoadSnapshot[Any]) -> None: ...
