"""Paginated load controller driving infinite scrolling.

The controller fetches successive pages of a remote collection and keeps
the accumulated result in a single ``LoadState``. Loads are requested by
trigger sources (sentinel proximity, debounced scroll position) or by the
host (``load_more``, ``retry``, ``refresh``), and every request goes through
one gate, ``request_load``, which guarantees that at most one request is in
flight.

A dispatched load runs as one asyncio task that walks through the phases
IDLE -> REQUESTING -> BACKOFF -> REQUESTING -> ... -> SETTLED. Failed
attempts are retried with exponential backoff up to ``retry_limit`` times;
the last failure is stored as ``error`` and reported to ``on_error``.
Superseded or cancelled loads are dropped without touching the state.

Example:
    async def fetch_page(page, token):
        rows = await api.list_items(offset=page * 20, limit=20)
        return PageResult(items=rows, has_more=len(rows) == 20)

    async with LoadController(fetch_page, ScrollConfig()) as controller:
        controller.attach_sentinel(sentinel)
        controller.viewport.observe(sentinel, distance=120)
        snapshot = await controller.wait_settled()

All actions must be called from the event loop the controller runs on.
None of them raise on load failures; failures are reported through the
state and the ``on_error`` callback.
"""

import asyncio
from collections.abc import Callable, Coroutine, Iterable
from typing import Any, Generic, TypeVar

from infiniscroll.core.cancellation import TokenSource
from infiniscroll.core.config import ScrollConfig
from infiniscroll.core.errors import (
    ControllerClosedError,
    PermanentError,
    TransientError,
    backoff_delay,
    classify_error,
)
from infiniscroll.core.logging import bind_contextvars, get_logger
from infiniscroll.core.state import (
    LoadPhase,
    LoadSnapshot,
    LoadState,
    PageResult,
    RequestContext,
)
from infiniscroll.core.triggers import ScrollTrigger, ViewportTrigger
from infiniscroll.ports.page_source import (
    ErrorCallback,
    PageFetcher,
    StateListener,
    SuccessCallback,
)

logger = get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Coroutine[Any, Any, Any]]


class LoadController(Generic[T]):
    """Fetches pages on demand while keeping one request in flight at most.

    Attributes:
        viewport: Sentinel proximity trigger. The host reports sentinel
            geometry to it with ``observe``.
        scroll: Debounced scroll-position trigger. The host forwards scroll
            events to it with ``on_scroll``.
    """

    def __init__(
        self,
        fetch_page: PageFetcher[T],
        config: ScrollConfig | None = None,
        *,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        reset_triggers: Iterable[Any] = (),
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize the controller. No load starts until ``start``.

        Args:
            fetch_page: Async function returning one page.
            config: Behavioral parameters. Defaults to ``ScrollConfig()``.
            on_success: Called with the new items and the page index after
                every successful load.
            on_error: Called with the final exception when a load fails
                after exhausting its retries.
            reset_triggers: External parameters the loaded data depends on.
                See ``update_reset_triggers``.
            sleep: Coroutine function used for backoff delays.
        """
        self._fetch_page = fetch_page
        self._config = config or ScrollConfig()
        self._on_success = on_success
        self._on_error = on_error
        self._reset_triggers = tuple(reset_triggers)
        self._sleep = sleep

        self._state: LoadState[T] = LoadState(initial_page=self._config.initial_page)
        self._tokens = TokenSource()
        self._context: RequestContext | None = None
        self._task: asyncio.Task[None] | None = None
        self._pending_refresh: asyncio.Handle | None = None
        self._listeners: list[StateListener] = []
        # Set while loads are allowed; a retry chain waits on it after backoff
        self._allowed = asyncio.Event()

        # Dedup key, set for the whole retry chain of one logical load
        self._inflight_page: int | None = None
        self._initial_loading = False
        # One-shot latch for the automatic initial load
        self._initial_latch = False
        self._loaded_once = False
        self._failed: tuple[int, bool] | None = None

        self._started = False
        self._suspended = False
        self._closed = False
        self._sync_allowed()

        self.viewport = ViewportTrigger(
            self.request_next, self._config.proximity_threshold
        )
        self.scroll = ScrollTrigger(
            self.request_next,
            self._config.proximity_threshold,
            self._config.debounce_delay,
        )

    # -- read-only view ----------------------------------------------------

    @property
    def config(self) -> ScrollConfig:
        return self._config

    @property
    def items(self) -> tuple[T, ...]:
        return tuple(self._state.items)

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_retrying(self) -> bool:
        return self._state.is_retrying

    @property
    def error(self) -> BaseException | None:
        return self._state.error

    @property
    def has_more(self) -> bool:
        return self._state.has_more

    @property
    def current_page(self) -> int:
        return self._state.current_page

    @property
    def total_count(self) -> int | None:
        return self._state.total_count

    @property
    def phase(self) -> LoadPhase:
        return self._state.phase

    @property
    def in_flight_page(self) -> int | None:
        return self._inflight_page

    @property
    def enabled(self) -> bool:
        """Effective enabled flag: configured, not suspended and not closed."""
        return self._config.enabled and not self._suspended and not self._closed

    @property
    def suspended(self) -> bool:
        return self._suspended

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> LoadSnapshot[T]:
        return self._state.snapshot()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with a snapshot after each state change.

        Returns:
            A callable that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> bool:
        """Mount the controller and issue the initial load if appropriate.

        Returns:
            True if the initial load was dispatched.

        Raises:
            ControllerClosedError: If the controller was closed.
        """
        if self._closed:
            raise ControllerClosedError("cannot start a closed LoadController")
        self._started = True
        return self._maybe_initial_load()

    async def __aenter__(self) -> "LoadController[T]":
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def close(self) -> None:
        """Tear down: cancel the live request and timers, refuse further loads."""
        if self._closed:
            return
        self._closed = True
        self._sync_allowed()
        self._cancel_live("closed")
        self._cancel_pending_refresh()
        self.scroll.cancel()
        self.viewport.detach()
        self._clear_markers()
        self._state.is_loading = False
        self._state.is_retrying = False
        self._state.phase = LoadPhase.IDLE
        logger.info("controller_closed")
        self._listeners.clear()

    async def aclose(self) -> None:
        """Close and wait for the cancelled request task to unwind."""
        task = self._task
        self.close()
        if task is not None and not task.done():
            await asyncio.wait({task})

    def set_enabled(self, enabled: bool) -> None:
        """Change the configured enabled flag.

        Disabling stops new loads; a request already in flight is allowed
        to finish, but its retries wait until loading is allowed again.
        Enabling may issue the initial load.
        """
        if enabled == self._config.enabled:
            return
        self._config = self._config.with_overrides(enabled=enabled)
        self._sync_allowed()
        logger.info("controller_enabled_changed", enabled=enabled)
        if enabled and not self._maybe_initial_load():
            self.viewport.rearm()

    def suspend(self) -> None:
        """Stop triggering loads while the view is hidden.

        Items, has_more and error are left untouched. A retry chain in
        backoff pauses before its next attempt until ``resume``.
        """
        if self._suspended:
            return
        self._suspended = True
        self._sync_allowed()
        self.scroll.cancel()
        logger.debug("controller_suspended")

    def resume(self) -> None:
        """Undo ``suspend``. The configured enabled flag still applies."""
        if not self._suspended:
            return
        self._suspended = False
        self._sync_allowed()
        logger.debug("controller_resumed", enabled=self.enabled)
        if not self._maybe_initial_load():
            self.viewport.rearm()

    def set_visible(self, visible: bool) -> None:
        """Map a host visibility change onto ``suspend`` / ``resume``."""
        if visible:
            self.resume()
        else:
            self.suspend()

    def set_proximity_threshold(self, threshold: float) -> None:
        self._config = self._config.with_overrides(proximity_threshold=threshold)
        self.scroll.threshold = threshold
        self.viewport.set_threshold(threshold)

    def attach_sentinel(self, marker: object | None) -> None:
        """Attach the sentinel marker the viewport trigger watches (None detaches)."""
        self.viewport.attach(marker)

    def update_reset_triggers(
        self,
        values: Iterable[Any],
        fetch_page: PageFetcher[T] | None = None,
    ) -> bool:
        """Report the current external parameters the data depends on.

        When ``values`` differs from the previous report, the controller
        resets and starts a fresh initial load.

        Args:
            values: Parameter values, compared by equality.
            fetch_page: Optional replacement fetch function bound to the new
                parameters.

        Returns:
            True if the change caused a reset.
        """
        if fetch_page is not None:
            self._fetch_page = fetch_page
        new_values = tuple(values)
        if new_values == self._reset_triggers:
            return False
        self._reset_triggers = new_values
        logger.info("reset_triggers_changed")
        self.reset()
        self._maybe_initial_load()
        return True

    # -- actions -----------------------------------------------------------

    def load_more(self) -> bool:
        """Manually request the next page. No-op unless a load is allowed."""
        logger.debug("manual_load_requested", current_page=self._state.current_page)
        return self.request_next()

    def retry(self) -> bool:
        """Re-attempt the failed load from attempt 0. No-op without an error."""
        if self._state.error is None or self._failed is None:
            logger.debug("retry_ignored", reason="no_error")
            return False
        page, replace = self._failed
        logger.info("retry_requested", page=page, replace=replace)
        return self.request_load(page, replace=replace, retry=True)

    def reset(self) -> None:
        """Cancel any live request and restore the construction-time state."""
        self._cancel_live("reset")
        self._cancel_pending_refresh()
        self.scroll.cancel()
        self.viewport.forget()
        self._clear_markers()
        self._initial_latch = False
        self._loaded_once = False
        self._failed = None
        self._state.restore_defaults()
        logger.info("controller_reset", initial_page=self._config.initial_page)
        self._notify()

    def refresh(self) -> None:
        """Reset, then reload the initial page on the next loop iteration."""
        loop = asyncio.get_running_loop()
        self.reset()
        self._pending_refresh = loop.call_soon(self._run_refresh)

    async def wait_settled(self) -> LoadSnapshot[T]:
        """Wait until no load is running or scheduled and return a snapshot.

        A retry chain paused by ``suspend`` or ``set_enabled(False)`` is still
        running, so this waits for it to be allowed to finish.
        """
        while True:
            await asyncio.sleep(0)
            task = self._task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if self._pending_refresh is None:
                return self.snapshot()

    # -- trigger intent and gate -------------------------------------------

    def request_next(self) -> bool:
        """Ask for the page after the last loaded one.

        All trigger sources funnel through here. When nothing has been
        loaded since construction or the last reset, the next page is the
        initial page, loaded in replace mode.

        Returns:
            True if a load was dispatched.
        """
        state = self._state
        if (
            not self.enabled
            or not state.has_more
            or state.is_loading
            or state.error is not None
            or self._inflight_page is not None
        ):
            return False
        if not self._loaded_once:
            if not self.request_load(self._config.initial_page, replace=True):
                return False
            self._initial_latch = True
            return True
        return self.request_load(state.current_page + 1)

    def request_load(
        self, page: int, *, replace: bool = False, retry: bool = False
    ) -> bool:
        """Dispatch a load of ``page`` unless the gate rejects it.

        Args:
            page: Page index to load.
            replace: Replace the items instead of appending.
            retry: This is an explicit retry of the failed load.

        Returns:
            True if the load was dispatched, False if it was rejected.
        """
        reason = self._rejection_reason(page, replace, retry)
        if reason is not None:
            logger.debug("load_rejected", page=page, replace=replace, reason=reason)
            return False
        self._dispatch(page, replace)
        return True

    def _rejection_reason(self, page: int, replace: bool, retry: bool) -> str | None:
        state = self._state
        if not self.enabled:
            return "disabled"
        if page < 0:
            return "invalid_page"
        retrying_failed_page = (
            retry
            and state.error is not None
            and self._failed is not None
            and self._failed[0] == page
        )
        if state.is_loading and not retrying_failed_page:
            return "busy"
        if self._inflight_page == page:
            return "duplicate_page"
        if replace and self._initial_loading:
            return "initial_load_in_progress"
        if not replace and not retry:
            if not state.has_more:
                return "no_more_pages"
            if state.error is not None:
                return "error_pending"
        return None

    # -- fetch orchestrator ------------------------------------------------

    def _dispatch(self, page: int, replace: bool) -> None:
        loop = asyncio.get_running_loop()
        self._cancel_live("superseded")
        self._inflight_page = page
        if replace:
            self._initial_loading = True
        self._failed = None

        context = RequestContext(page=page, replace=replace, token=self._tokens.renew())
        self._context = context

        state = self._state
        state.is_loading = True
        state.error = None
        state.is_retrying = False
        state.phase = LoadPhase.REQUESTING

        logger.info("load_dispatched", page=page, replace=replace)
        self._task = loop.create_task(
            self._run(context), name=f"infiniscroll-page-{page}"
        )
        self._notify()

    async def _run(self, context: RequestContext) -> None:
        # Task-local; also tags log records emitted by the fetcher
        bind_contextvars(load_page=context.page, load_replace=context.replace)
        while True:
            if context.attempt > 0:
                context.token = self._tokens.renew()
            self._begin_attempt(context)
            try:
                raw = await self._fetch_page(context.page, context.token)
            except asyncio.CancelledError:
                self._discard(context, "task_cancelled")
                raise
            except Exception as ex:
                if context.token.cancelled:
                    self._discard(context, context.token.reason or "cancelled")
                    return
                if isinstance(ex, PermanentError) or (
                    context.attempt >= self._config.retry_limit
                ):
                    self._settle_failure(context, ex)
                    return
                delay = self._schedule_retry(context, ex)
                try:
                    await self._sleep(delay)
                    if not self.enabled:
                        logger.info(
                            "load_retry_paused",
                            page=context.page,
                            attempt=context.attempt + 1,
                        )
                    while not self.enabled:
                        await self._allowed.wait()
                except asyncio.CancelledError:
                    self._discard(context, "task_cancelled")
                    raise
                if context.token.cancelled or self._context is not context:
                    self._discard(context, "superseded_during_backoff")
                    return
                context.attempt += 1
                continue

            if context.token.cancelled or self._context is not context:
                self._discard(context, context.token.reason or "superseded")
                return
            try:
                result = PageResult.coerce(raw)
            except TypeError as ex:
                self._settle_failure(context, ex)
                return
            self._settle_success(context, result)
            return

    def _begin_attempt(self, context: RequestContext) -> None:
        state = self._state
        state.is_loading = True
        state.error = None
        state.is_retrying = context.attempt > 0
        state.phase = LoadPhase.REQUESTING
        if context.attempt > 0:
            logger.info("load_retrying", page=context.page, attempt=context.attempt)
            self._notify()

    def _schedule_retry(self, context: RequestContext, ex: Exception) -> float:
        retry_after = ex.retry_after if isinstance(ex, TransientError) else None
        delay = backoff_delay(
            context.attempt,
            self._config.retry_base_delay,
            max_delay=self._config.retry_max_delay,
            retry_after=retry_after,
        )
        self._state.phase = LoadPhase.BACKOFF
        logger.warning(
            "load_retry_scheduled",
            page=context.page,
            attempt=context.attempt + 1,
            retry_limit=self._config.retry_limit,
            delay_seconds=delay,
            category=classify_error(ex).name,
            error=str(ex),
        )
        self._notify()
        return delay

    def _settle_success(self, context: RequestContext, result: PageResult[Any]) -> None:
        state = self._state
        new_items = list(result.items)
        if context.replace:
            state.items = list(new_items)
        else:
            state.items.extend(new_items)
        state.has_more = result.has_more
        state.current_page = context.page
        if result.total is not None:
            state.total_count = result.total
        context.attempt = 0
        state.is_retrying = False
        self._loaded_once = True
        self._release(context)
        state.is_loading = False
        state.phase = LoadPhase.SETTLED

        logger.info(
            "load_succeeded",
            page=context.page,
            received=len(new_items),
            total_items=len(state.items),
            has_more=result.has_more,
        )
        self._notify()
        self._invoke_callback(self._on_success, "on_success", new_items, context.page)
        self.viewport.rearm()

    def _settle_failure(self, context: RequestContext, ex: Exception) -> None:
        state = self._state
        state.error = ex
        state.is_retrying = False
        self._failed = (context.page, context.replace)
        self._release(context)
        state.is_loading = False
        state.phase = LoadPhase.SETTLED

        logger.error(
            "load_failed",
            page=context.page,
            attempts=context.attempt + 1,
            category=classify_error(ex).name,
            permanent=isinstance(ex, PermanentError),
            error=str(ex),
        )
        self._notify()
        self._invoke_callback(self._on_error, "on_error", ex)

    def _discard(self, context: RequestContext, reason: str) -> None:
        logger.debug(
            "load_cancelled", page=context.page, attempt=context.attempt, reason=reason
        )
        # Cancelled behind the controller's back; nobody else will settle it
        if self._context is context:
            self._release(context)
            self._state.is_loading = False
            self._state.is_retrying = False
            self._state.phase = LoadPhase.IDLE
            self._notify()

    def _release(self, context: RequestContext) -> None:
        if self._context is context:
            self._context = None
            self._task = None
            self._clear_markers()

    # -- internals ---------------------------------------------------------

    def _maybe_initial_load(self) -> bool:
        state = self._state
        if not self._started or not self.enabled:
            return False
        if state.items or state.is_loading or self._initial_latch:
            return False
        logger.info("initial_load_starting", page=self._config.initial_page)
        if not self.request_load(self._config.initial_page, replace=True):
            return False
        self._initial_latch = True
        return True

    def _run_refresh(self) -> None:
        self._pending_refresh = None
        self._initial_latch = True
        self.request_load(self._config.initial_page, replace=True)

    def _cancel_live(self, reason: str) -> None:
        self._tokens.cancel(reason)
        self._context = None
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel(reason)

    def _sync_allowed(self) -> None:
        if self.enabled:
            self._allowed.set()
        else:
            self._allowed.clear()

    def _cancel_pending_refresh(self) -> None:
        if self._pending_refresh is not None:
            self._pending_refresh.cancel()
            self._pending_refresh = None

    def _clear_markers(self) -> None:
        self._inflight_page = None
        self._initial_loading = False

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self._state.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("state_listener_failed")

    def _invoke_callback(
        self, callback: Callable[..., Any] | None, name: str, *args: Any
    ) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("callback_failed", callback=name)

    def __repr__(self) -> str:
        state = self._state
        return (
            f"<LoadController page={state.current_page} items={len(state.items)} "
            f"phase={state.phase.value} loading={state.is_loading}>"
        )
