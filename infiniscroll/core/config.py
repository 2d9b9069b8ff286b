"""Behavioral configuration for the paginated load controller.

Durations are in seconds, distances in pixels.
"""

import os
from dataclasses import dataclass, replace
from typing import Any

DEFAULT_INITIAL_PAGE = 0
DEFAULT_PROXIMITY_THRESHOLD = 300.0
DEFAULT_DEBOUNCE_DELAY = 0.2
DEFAULT_RETRY_LIMIT = 3
DEFAULT_RETRY_BASE_DELAY = 1.0

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ScrollConfig:
    """Tunable parameters of a LoadController.

    Attributes:
        initial_page: Page index requested by the initial (replace) load.
        proximity_threshold: Distance from the viewport edge, in pixels, at
            which the sentinel or scroll position counts as "near the end".
        enabled: Whether the host allows loading at all. Suspension while the
            view is hidden is tracked separately and never overrides this.
        debounce_delay: Quiet period before a scroll event is evaluated.
        retry_limit: Number of retries after the first attempt. A value of 2
            means at most three attempts in total.
        retry_base_delay: Delay before the first retry; doubles per retry.
        retry_max_delay: Optional cap on a single backoff delay. None leaves
            the backoff uncapped.
    """

    initial_page: int = DEFAULT_INITIAL_PAGE
    proximity_threshold: float = DEFAULT_PROXIMITY_THRESHOLD
    enabled: bool = True
    debounce_delay: float = DEFAULT_DEBOUNCE_DELAY
    retry_limit: int = DEFAULT_RETRY_LIMIT
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    retry_max_delay: float | None = None

    def __post_init__(self) -> None:
        if self.initial_page < 0:
            raise ValueError(f"initial_page must be >= 0, got {self.initial_page}")
        if self.proximity_threshold < 0:
            raise ValueError(
                f"proximity_threshold must be >= 0, got {self.proximity_threshold}"
            )
        if self.debounce_delay < 0:
            raise ValueError(
                f"debounce_delay must be >= 0, got {self.debounce_delay}"
            )
        if self.retry_limit < 0:
            raise ValueError(f"retry_limit must be >= 0, got {self.retry_limit}")
        if self.retry_base_delay < 0:
            raise ValueError(
                f"retry_base_delay must be >= 0, got {self.retry_base_delay}"
            )
        if self.retry_max_delay is not None and self.retry_max_delay < 0:
            raise ValueError(
                f"retry_max_delay must be >= 0, got {self.retry_max_delay}"
            )

    def with_overrides(self, **changes: Any) -> "ScrollConfig":
        """Return a copy with the given fields replaced (and re-validated)."""
        return replace(self, **changes)

    @classmethod
    def from_env(cls, prefix: str = "INFINISCROLL_") -> "ScrollConfig":
        """Build a config from environment variables.

        Reads ``<prefix>INITIAL_PAGE``, ``<prefix>PROXIMITY_THRESHOLD``,
        ``<prefix>ENABLED``, ``<prefix>DEBOUNCE_DELAY``, ``<prefix>RETRY_LIMIT``,
        ``<prefix>RETRY_BASE_DELAY`` and ``<prefix>RETRY_MAX_DELAY``. Unset
        variables fall back to the defaults.

        Raises:
            ValueError: If a variable holds an unparsable or out-of-range value.
        """
        max_delay = os.getenv(f"{prefix}RETRY_MAX_DELAY")
        return cls(
            initial_page=int(
                os.getenv(f"{prefix}INITIAL_PAGE", str(DEFAULT_INITIAL_PAGE))
            ),
            proximity_threshold=float(
                os.getenv(
                    f"{prefix}PROXIMITY_THRESHOLD", str(DEFAULT_PROXIMITY_THRESHOLD)
                )
            ),
            enabled=os.getenv(f"{prefix}ENABLED", "true").lower() in _TRUTHY,
            debounce_delay=float(
                os.getenv(f"{prefix}DEBOUNCE_DELAY", str(DEFAULT_DEBOUNCE_DELAY))
            ),
            retry_limit=int(
                os.getenv(f"{prefix}RETRY_LIMIT", str(DEFAULT_RETRY_LIMIT))
            ),
            retry_base_delay=float(
                os.getenv(f"{prefix}RETRY_BASE_DELAY", str(DEFAULT_RETRY_BASE_DELAY))
            ),
            retry_max_delay=float(max_delay) if max_delay else None,
        )
