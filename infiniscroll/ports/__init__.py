"""Ports (interfaces) for the controller.

Protocol definitions for the boundary between the load controller and the
host: the page-fetching function and the notification callbacks.
"""

from infiniscroll.ports.page_source import (
    ErrorCallback,
    PageFetcher,
    StateListener,
    SuccessCallback,
)

__all__ = [
    "ErrorCallback",
    "PageFetcher",
    "StateListener",
    "SuccessCallback",
]
