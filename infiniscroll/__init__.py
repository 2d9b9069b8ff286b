"""Paginated data loading for infinite scrolling."""

from infiniscroll.core import (
    CancellationToken,
    ErrorCategory,
    FetchRecorder,
    LoadController,
    LoadPhase,
    LoadSnapshot,
    PageResult,
    PermanentError,
    ScrollConfig,
    ScrollMetrics,
    TransientError,
    configure_logging,
)

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "ErrorCategory",
    "FetchRecorder",
    "LoadController",
    "LoadPhase",
    "LoadSnapshot",
    "PageResult",
    "PermanentError",
    "ScrollConfig",
    "ScrollMetrics",
    "TransientError",
    "configure_logging",
    "__version__",
]
