"""Tests for fetching, merging and retrying in LoadController."""

from unittest.mock import MagicMock

import pytest

from infiniscroll.core.config import ScrollConfig
from infiniscroll.core.controller import LoadController
from infiniscroll.core.errors import ErrorCategory, PermanentError, TransientError
from infiniscroll.core.state import LoadPhase, LoadSnapshot
from tests.mocks.page_sources import MockPageSource, RecordingSleep


class TestInitialLoad:
    """Tests for the automatic initial load."""

    @pytest.mark.asyncio
    async def test_start_loads_initial_page(self, page_source: MockPageSource) -> None:
        """Should fetch the initial page and replace the empty item list."""
        controller: LoadController[str] = LoadController(page_source)

        assert controller.start() is True
        assert controller.is_loading is True
        assert controller.in_flight_page == 0

        snapshot = await controller.wait_settled()

        assert snapshot.items == tuple(page_source.page_items(0))
        assert snapshot.current_page == 0
        assert snapshot.has_more is True
        assert snapshot.total_count == 30
        assert snapshot.is_loading is False
        assert snapshot.error is None
        assert snapshot.phase == LoadPhase.SETTLED
        assert controller.in_flight_page is None
        assert page_source.calls == [0]

    @pytest.mark.asyncio
    async def test_initial_page_is_configurable(self) -> None:
        """Should start from the configured initial page."""
        source = MockPageSource(total_items=50, page_size=10)
        controller: LoadController[str] = LoadController(
            source, ScrollConfig(initial_page=2)
        )
        assert controller.current_page == 2

        controller.start()
        snapshot = await controller.wait_settled()

        assert source.calls == [2]
        assert snapshot.items[0] == "item-20"
        assert snapshot.current_page == 2

    @pytest.mark.asyncio
    async def test_no_load_before_start(self, page_source: MockPageSource) -> None:
        """Construction alone should not fetch anything."""
        controller: LoadController[str] = LoadController(page_source)
        snapshot = await controller.wait_settled()
        assert page_source.calls == []
        assert snapshot.items == ()
        assert snapshot.phase == LoadPhase.IDLE

    @pytest.mark.asyncio
    async def test_start_twice_loads_once(self, page_source: MockPageSource) -> None:
        """The initial load is a one-shot latch."""
        controller: LoadController[str] = LoadController(page_source)
        assert controller.start() is True
        assert controller.start() is False
        await controller.wait_settled()
        assert controller.start() is False
        assert page_source.calls == [0]


class TestPaging:
    """Tests for appending subsequent pages."""

    @pytest.mark.asyncio
    async def test_load_more_appends_pages_in_order(self) -> None:
        """Pages should append after the existing items, never reorder them."""
        source = MockPageSource(total_items=25, page_size=10)
        controller: LoadController[str] = LoadController(source)
        controller.start()
        await controller.wait_settled()

        assert controller.load_more() is True
        await controller.wait_settled()
        assert controller.load_more() is True
        snapshot = await controller.wait_settled()

        assert source.calls == [0, 1, 2]
        assert snapshot.items == tuple(f"item-{n}" for n in range(25))
        assert snapshot.current_page == 2
        assert snapshot.has_more is False

    @pytest.mark.asyncio
    async def test_load_more_after_last_page_is_noop(self) -> None:
        """Should not fetch or change state once has_more is False."""
        source = MockPageSource(total_items=5, page_size=10)
        controller: LoadController[str] = LoadController(source)
        controller.start()
        before = await controller.wait_settled()
        assert before.has_more is False

        assert controller.load_more() is False
        after = await controller.wait_settled()

        assert source.calls == [0]
        assert after == before

    @pytest.mark.asyncio
    async def test_total_count_unset_when_not_reported(self) -> None:
        """total_count stays None when the source reports no total."""
        source = MockPageSource(total_items=30, page_size=10, include_total=False)
        controller: LoadController[str] = LoadController(source)
        controller.start()
        snapshot = await controller.wait_settled()
        assert snapshot.total_count is None

    @pytest.mark.asyncio
    async def test_accepts_mapping_results(self) -> None:
        """Mapping results with data/hasMore/total keys should be normalised."""
        source = MockPageSource(total_items=12, page_size=10, as_mapping=True)
        controller: LoadController[str] = LoadController(source)
        controller.start()
        await controller.wait_settled()
        controller.load_more()
        snapshot = await controller.wait_settled()

        assert len(snapshot.items) == 12
        assert snapshot.has_more is False
        assert snapshot.total_count == 12

    @pytest.mark.asyncio
    async def test_malformed_result_fails_without_retry(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """A result of the wrong shape is a terminal failure."""

        async def bad_source(page, token):
            return ["not", "a", "page"]

        controller: LoadController[str] = LoadController(bad_source, sleep=recording_sleep)
        controller.start()
        snapshot = await controller.wait_settled()

        assert isinstance(snapshot.error, TypeError)
        assert recording_sleep.delays == []


class TestCallbacks:
    """Tests for on_success / on_error notifications."""

    @pytest.mark.asyncio
    async def test_on_success_receives_new_items_and_page(
        self, page_source: MockPageSource
    ) -> None:
        """Should pass only the newly fetched items with their page index."""
        on_success = MagicMock()
        controller: LoadController[str] = LoadController(
            page_source, on_success=on_success
        )
        controller.start()
        await controller.wait_settled()
        controller.load_more()
        await controller.wait_settled()

        assert on_success.call_count == 2
        on_success.assert_any_call(page_source.page_items(0), 0)
        on_success.assert_called_with(page_source.page_items(1), 1)

    @pytest.mark.asyncio
    async def test_callback_argument_is_independent_of_items(self) -> None:
        """Changing the list handed to on_success must not touch the controller."""
        received: list[list[str]] = []
        source = MockPageSource()
        controller: LoadController[str] = LoadController(
            source, on_success=lambda items, page: received.append(items)
        )
        controller.start()
        await controller.wait_settled()

        received[0].clear()
        assert len(controller.items) == 10

        controller.load_more()
        await controller.wait_settled()
        assert received[1] == source.page_items(1)
        assert received[0] == []
        assert len(controller.items) == 20

    @pytest.mark.asyncio
    async def test_raising_callback_does_not_break_controller(
        self, page_source: MockPageSource
    ) -> None:
        """Callback errors are logged and swallowed."""
        on_success = MagicMock(side_effect=RuntimeError("render failed"))
        controller: LoadController[str] = LoadController(
            page_source, on_success=on_success
        )
        controller.start()
        snapshot = await controller.wait_settled()

        assert snapshot.error is None
        assert len(snapshot.items) == 10
        assert controller.load_more() is True

    @pytest.mark.asyncio
    async def test_subscribers_receive_snapshots(
        self, page_source: MockPageSource
    ) -> None:
        """Listeners get a snapshot per state change until they unsubscribe."""
        seen: list[LoadSnapshot[str]] = []
        controller: LoadController[str] = LoadController(page_source)
        unsubscribe = controller.subscribe(seen.append)

        controller.start()
        await controller.wait_settled()

        assert seen[0].is_loading is True
        assert seen[-1].is_loading is False
        assert len(seen[-1].items) == 10

        unsubscribe()
        count = len(seen)
        controller.load_more()
        await controller.wait_settled()
        assert len(seen) == count


class TestRetries:
    """Tests for retry-with-backoff."""

    @pytest.mark.asyncio
    async def test_fail_twice_then_succeed(self, recording_sleep: RecordingSleep) -> None:
        """Two failures then a success should end in a clean success state."""
        source = MockPageSource(
            failures=[RuntimeError("boom"), RuntimeError("boom again")]
        )
        on_success = MagicMock()
        on_error = MagicMock()
        controller: LoadController[str] = LoadController(
            source,
            ScrollConfig(retry_limit=3),
            on_success=on_success,
            on_error=on_error,
            sleep=recording_sleep,
        )
        controller.start()
        snapshot = await controller.wait_settled()

        assert source.calls == [0, 0, 0]
        assert recording_sleep.delays == [1.0, 2.0]
        assert snapshot.error is None
        assert snapshot.is_retrying is False
        assert snapshot.is_loading is False
        assert len(snapshot.items) == 10
        on_success.assert_called_once_with(source.page_items(0), 0)
        on_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_always_failing_exhausts_retries(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """retry_limit=2 should make exactly three attempts."""
        failure = RuntimeError("service down")
        source = MockPageSource(failures=[failure] * 10)
        on_error = MagicMock()
        controller: LoadController[str] = LoadController(
            source,
            ScrollConfig(retry_limit=2, retry_base_delay=0.5),
            on_error=on_error,
            sleep=recording_sleep,
        )
        controller.start()
        snapshot = await controller.wait_settled()

        assert source.calls == [0, 0, 0]
        assert recording_sleep.delays == [0.5, 1.0]
        assert snapshot.error is failure
        assert snapshot.is_loading is False
        assert snapshot.is_retrying is False
        assert controller.in_flight_page is None
        on_error.assert_called_once_with(failure)

    @pytest.mark.asyncio
    async def test_retry_states_are_reported(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """Listeners should see BACKOFF, then a retrying attempt."""
        source = MockPageSource(failures=[RuntimeError("flaky")])
        seen: list[LoadSnapshot[str]] = []
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.subscribe(seen.append)
        controller.start()
        await controller.wait_settled()

        phases = [s.phase for s in seen]
        assert LoadPhase.BACKOFF in phases
        backoff = seen[phases.index(LoadPhase.BACKOFF)]
        assert backoff.is_loading is True
        assert backoff.is_retrying is False

        retrying = [s for s in seen if s.is_retrying]
        assert retrying
        assert all(s.is_loading for s in retrying)
        assert all(s.phase == LoadPhase.REQUESTING for s in retrying)

    @pytest.mark.asyncio
    async def test_in_flight_page_kept_across_attempts(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """The dedup marker stays set for the whole retry chain."""
        source = MockPageSource(failures=[RuntimeError("flaky")])
        markers: list[int | None] = []
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.subscribe(lambda s: markers.append(controller.in_flight_page))
        controller.start()
        await controller.wait_settled()

        assert markers[:-1] == [0] * (len(markers) - 1)
        assert markers[-1] is None

    @pytest.mark.asyncio
    async def test_permanent_error_skips_retries(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """PermanentError should settle the load immediately."""
        failure = PermanentError("gone", ErrorCategory.NOT_FOUND)
        source = MockPageSource(failures=[failure])
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.start()
        snapshot = await controller.wait_settled()

        assert source.calls == [0]
        assert recording_sleep.delays == []
        assert snapshot.error is failure

    @pytest.mark.asyncio
    async def test_category_does_not_stop_retries(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """Only PermanentError ends the chain early, whatever the message says."""
        source = MockPageSource(failures=[RuntimeError("403 Forbidden")])
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.start()
        snapshot = await controller.wait_settled()

        assert source.calls == [0, 0]
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_retry_after_hint_extends_delay(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """A TransientError retry_after should act as a minimum delay."""
        source = MockPageSource(
            failures=[
                TransientError("slow down", ErrorCategory.RATE_LIMIT, retry_after=5.0)
            ]
        )
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.start()
        snapshot = await controller.wait_settled()

        assert recording_sleep.delays == [5.0]
        assert snapshot.error is None

    @pytest.mark.asyncio
    async def test_max_delay_caps_backoff(self, recording_sleep: RecordingSleep) -> None:
        """retry_max_delay should cap each delay."""
        source = MockPageSource(failures=[RuntimeError("down")] * 10)
        controller: LoadController[str] = LoadController(
            source,
            ScrollConfig(retry_limit=3, retry_base_delay=1.0, retry_max_delay=1.5),
            sleep=recording_sleep,
        )
        controller.start()
        await controller.wait_settled()

        assert recording_sleep.delays == [1.0, 1.5, 1.5]

    @pytest.mark.asyncio
    async def test_each_attempt_gets_fresh_token(
        self, recording_sleep: RecordingSleep
    ) -> None:
        """A retry should cancel the previous attempt's token."""
        source = MockPageSource(failures=[RuntimeError("flaky")])
        controller: LoadController[str] = LoadController(source, sleep=recording_sleep)
        controller.start()
        await controller.wait_settled()

        first, second = source.tokens
        assert first is not second
        assert first.cancelled is True
        assert second.cancelled is False
