"""Fetch call recording for debugging pagination behavior.

``FetchRecorder`` wraps a page fetcher and keeps a bounded log of the calls
that went through it, so a host can show which pages were requested, how
long they took and how they ended. Handy for spotting duplicate or skipped
page requests.

Example:
    recorder = FetchRecorder(fetch_products)
    controller = LoadController(recorder, config)
    ...
    for call in recorder.recent():
        print(call.call_id, call.page, call.outcome)
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from infiniscroll.core.cancellation import CancellationToken
from infiniscroll.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CAPACITY = 50
DEFAULT_RECENT = 10


@dataclass
class FetchCall:
    """One recorded call to the wrapped fetcher.

    Attributes:
        call_id: 1-based sequence number, never reused after ``clear``.
        page: Page index requested.
        started_at: Wall-clock start time (UTC).
        duration: Seconds until the call ended, None while pending.
        outcome: "pending", "ok", "error" or "cancelled".
        error: String form of the raised exception for "error" outcomes.
    """

    call_id: int
    page: int
    started_at: datetime
    duration: float | None = None
    outcome: str = "pending"
    error: str | None = None


class FetchRecorder:
    """Page fetcher wrapper that records every call it forwards."""

    def __init__(self, fetch_page: Any, capacity: int = DEFAULT_CAPACITY) -> None:
        """Initialize the recorder.

        Args:
            fetch_page: The page fetcher to wrap.
            capacity: Number of most recent calls to keep.

        Raises:
            ValueError: If capacity is not positive.
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._fetch_page = fetch_page
        self._calls: deque[FetchCall] = deque(maxlen=capacity)
        self._total = 0

    async def __call__(self, page: int, token: CancellationToken) -> Any:
        self._total += 1
        call = FetchCall(
            call_id=self._total, page=page, started_at=datetime.now(UTC)
        )
        self._calls.append(call)
        logger.debug("fetch_call_started", call_id=call.call_id, page=page)

        start = time.monotonic()
        try:
            result = await self._fetch_page(page, token)
        except asyncio.CancelledError:
            call.outcome = "cancelled"
            raise
        except Exception as ex:
            call.outcome = "error"
            call.error = str(ex)
            raise
        finally:
            call.duration = time.monotonic() - start

        call.outcome = "cancelled" if token.cancelled else "ok"
        return result

    @property
    def calls(self) -> tuple[FetchCall, ...]:
        return tuple(self._calls)

    @property
    def total_calls(self) -> int:
        """Number of calls since construction, including evicted ones."""
        return self._total

    @property
    def pages_requested(self) -> list[int]:
        return [call.page for call in self._calls]

    def recent(self, n: int = DEFAULT_RECENT) -> list[FetchCall]:
        """Return the ``n`` most recent calls, oldest first."""
        if n <= 0:
            return []
        return list(self._calls)[-n:]

    def clear(self) -> None:
        """Forget recorded calls. Sequence numbers keep counting."""
        self._calls.clear()
