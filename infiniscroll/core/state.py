"""Load state, snapshots and request bookkeeping."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

from infiniscroll.core.cancellation import CancellationToken

T = TypeVar("T")


class LoadPhase(Enum):
    """Where the current logical load sits in its lifecycle.

    IDLE -> REQUESTING -> BACKOFF -> REQUESTING -> ... -> SETTLED
    """

    IDLE = "idle"
    REQUESTING = "requesting"
    BACKOFF = "backoff"
    SETTLED = "settled"


@dataclass
class PageResult(Generic[T]):
    """One page returned by a fetch function.

    Attributes:
        items: Items of the page, in display order.
        has_more: Whether the source has pages after this one.
        total: Total number of items in the collection, if the source knows it.
    """

    items: list[T]
    has_more: bool
    total: int | None = None

    @classmethod
    def coerce(cls, value: Any) -> "PageResult[Any]":
        """Normalise a fetch return value into a PageResult.

        Accepts a PageResult, or a mapping with ``items`` (or ``data``),
        ``has_more`` (or ``hasMore``) and an optional ``total``.

        Raises:
            TypeError: If the value has neither shape.
        """
        if isinstance(value, PageResult):
            return value
        if isinstance(value, Mapping):
            items = value.get("items", value.get("data"))
            has_more = value.get("has_more", value.get("hasMore"))
            if items is None or has_more is None:
                raise TypeError(
                    "page mapping needs 'items' (or 'data') and 'has_more' "
                    f"(or 'hasMore'), got keys {sorted(value)}"
                )
            return cls(
                items=list(items),
                has_more=bool(has_more),
                total=value.get("total"),
            )
        raise TypeError(f"unsupported page result type: {type(value).__name__}")


@dataclass
class LoadState(Generic[T]):
    """Mutable state of one controller. Only the controller writes to it."""

    initial_page: int = 0
    items: list[T] = field(default_factory=list)
    is_loading: bool = False
    is_retrying: bool = False
    error: BaseException | None = None
    has_more: bool = True
    current_page: int = 0
    total_count: int | None = None
    phase: LoadPhase = LoadPhase.IDLE

    def __post_init__(self) -> None:
        self.current_page = self.initial_page

    def restore_defaults(self) -> None:
        self.items = []
        self.is_loading = False
        self.is_retrying = False
        self.error = None
        self.has_more = True
        self.current_page = self.initial_page
        self.total_count = None
        self.phase = LoadPhase.IDLE

    def snapshot(self) -> "LoadSnapshot[T]":
        return LoadSnapshot(
            items=tuple(self.items),
            is_loading=self.is_loading,
            is_retrying=self.is_retrying,
            error=self.error,
            has_more=self.has_more,
            current_page=self.current_page,
            total_count=self.total_count,
            phase=self.phase,
        )


@dataclass(frozen=True)
class LoadSnapshot(Generic[T]):
    """Read-only view of a LoadState handed to the rendering layer."""

    items: Sequence[T]
    is_loading: bool
    is_retrying: bool
    error: BaseException | None
    has_more: bool
    current_page: int
    total_count: int | None
    phase: LoadPhase = LoadPhase.IDLE

    @property
    def is_empty(self) -> bool:
        """True when nothing is loaded, nothing is pending and no error is set."""
        return not self.items and not self.is_loading and self.error is None


@dataclass
class RequestContext:
    """Bookkeeping for one logical load, alive until it settles or is superseded.

    Attributes:
        page: Page index being requested.
        replace: True for initial/refresh loads that replace the items.
        token: Cancellation token of the current attempt.
        attempt: 0 for the first try, incremented on each retry.
    """

    page: int
    replace: bool
    token: CancellationToken
    attempt: int = 0
