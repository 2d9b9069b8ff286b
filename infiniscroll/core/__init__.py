"""Core pagination logic.

This module contains the load controller, its state model, trigger sources
and the ambient helpers (logging, error classification, configuration).
Everything here is UI-toolkit agnostic.
"""

from infiniscroll.core.cancellation import CancellationToken, TokenSource
from infiniscroll.core.config import ScrollConfig
from infiniscroll.core.errors import (
    ControllerClosedError,
    ErrorCategory,
    PermanentError,
    TransientError,
    backoff_delay,
    classify_error,
)
from infiniscroll.core.logging import (
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
)
from infiniscroll.core.state import (
    LoadPhase,
    LoadSnapshot,
    LoadState,
    PageResult,
    RequestContext,
)
from infiniscroll.core.triggers import ScrollMetrics, ScrollTrigger, ViewportTrigger
from infiniscroll.core.diagnostics import FetchCall, FetchRecorder
from infiniscroll.core.controller import LoadController

__all__ = [
    # Cancellation
    "CancellationToken",
    "TokenSource",
    # Configuration
    "ScrollConfig",
    # Controller
    "LoadController",
    # Diagnostics
    "FetchCall",
    "FetchRecorder",
    # Error handling
    "ControllerClosedError",
    "ErrorCategory",
    "PermanentError",
    "TransientError",
    "backoff_delay",
    "classify_error",
    # Logging
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
    # State
    "LoadPhase",
    "LoadSnapshot",
    "LoadState",
    "PageResult",
    "RequestContext",
    # Triggers
    "ScrollMetrics",
    "ScrollTrigger",
    "ViewportTrigger",
]
