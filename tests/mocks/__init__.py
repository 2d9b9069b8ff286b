"""Mock implementations for testing."""

from tests.mocks.page_sources import MockPageSource, RecordingSleep, spin

__all__ = ["MockPageSource", "RecordingSleep", "spin"]
