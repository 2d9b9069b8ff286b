"""Trigger sources that ask the controller for the next page.

Triggers are thin event producers. Each one decides only whether *its*
signal says "near the end"; every other check (enabled, has more pages,
nothing in flight, no pending error) happens behind the intent callable,
which is ``LoadController.request_next``.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass

from infiniscroll.core.logging import get_logger

logger = get_logger(__name__)

LoadIntent = Callable[[], bool]


@dataclass(frozen=True)
class ScrollMetrics:
    """Scroll position of the scrolling container, in pixels.

    Attributes:
        scroll_top: Offset of the top of the visible area.
        scroll_height: Full height of the scrollable content.
        client_height: Height of the visible area.
    """

    scroll_top: float
    scroll_height: float
    client_height: float

    @property
    def distance_to_end(self) -> float:
        return self.scroll_height - (self.scroll_top + self.client_height)

    def near_end(self, threshold: float) -> bool:
        return self.scroll_top + self.client_height >= self.scroll_height - threshold


class ViewportTrigger:
    """Fires when the attached sentinel marker comes within reach of the viewport.

    The host owns the actual observation primitive and reports the distance
    between the sentinel and the viewport edge through ``observe``; a
    distance of zero or less means the sentinel is visible. The trigger keeps
    the last report so ``rearm`` can re-evaluate it after the controller's
    state changes, the same way a re-mounted intersection observer reports
    its target again.
    """

    def __init__(self, intent: LoadIntent, threshold: float) -> None:
        self._intent = intent
        self._threshold = threshold
        self._marker: object | None = None
        self._distance: float | None = None

    @property
    def marker(self) -> object | None:
        return self._marker

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def last_distance(self) -> float | None:
        return self._distance

    def attach(self, marker: object | None) -> None:
        """Watch ``marker``. Passing None detaches."""
        if marker is None:
            self.detach()
            return
        if marker is not self._marker:
            self._distance = None
        self._marker = marker

    def detach(self) -> None:
        self._marker = None
        self._distance = None

    def forget(self) -> None:
        """Drop the last observation, keeping the marker attached."""
        self._distance = None

    def set_threshold(self, threshold: float) -> bool:
        self._threshold = threshold
        return self.rearm()

    def observe(self, marker: object, distance: float) -> bool:
        """Record the sentinel's distance from the viewport and evaluate it.

        Reports for a marker other than the attached one are ignored.

        Returns:
            True if a load was dispatched.
        """
        if self._marker is None or marker is not self._marker:
            return False
        self._distance = distance
        return self._evaluate()

    def rearm(self) -> bool:
        """Re-evaluate the last observation. Returns True if a load was dispatched."""
        return self._evaluate()

    def _evaluate(self) -> bool:
        if self._marker is None or self._distance is None:
            return False
        if self._distance > self._threshold:
            return False
        logger.debug(
            "viewport_trigger_fired",
            distance=self._distance,
            threshold=self._threshold,
        )
        return self._intent()


class ScrollTrigger:
    """Debounced scroll-position fallback.

    Every ``on_scroll`` call restarts the debounce timer; once the container
    has been quiet for ``debounce_delay`` seconds the latest metrics are
    checked against the threshold.
    """

    def __init__(
        self, intent: LoadIntent, threshold: float, debounce_delay: float
    ) -> None:
        self._intent = intent
        self.threshold = threshold
        self.debounce_delay = debounce_delay
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def on_scroll(self, metrics: ScrollMetrics) -> None:
        """Schedule evaluation of ``metrics`` after the debounce delay.

        Must be called from within the running event loop.
        """
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.debounce_delay, self._fire, metrics)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, metrics: ScrollMetrics) -> None:
        self._handle = None
        if not metrics.near_end(self.threshold):
            return
        logger.debug(
            "scroll_trigger_fired",
            distance_to_end=metrics.distance_to_end,
            threshold=self.threshold,
        )
        self._intent()
