"""Shared pytest fixtures for infiniscroll tests."""

import pytest

from infiniscroll.core.config import ScrollConfig
from tests.mocks.page_sources import MockPageSource, RecordingSleep

pytest_plugins = ["pytest_asyncio"]


@pytest.fixture
def page_source() -> MockPageSource:
    """Provide a 30-item mock source served in pages of 10.

    For tests needing failures or held requests, create the mock directly
    or configure this one before starting the controller.

    Returns:
        MockPageSource: A mock page source instance.
    """
    return MockPageSource(total_items=30, page_size=10)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    """Provide a sleep replacement that records backoff delays."""
    return RecordingSleep()


@pytest.fixture
def fast_config() -> ScrollConfig:
    """Provide a config with short delays suitable for real-time tests."""
    return ScrollConfig(debounce_delay=0.01, retry_base_delay=0.01)
