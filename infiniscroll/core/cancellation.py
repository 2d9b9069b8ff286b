"""Cooperative cancellation tokens for page requests."""

import asyncio


class CancellationToken:
    """Handle tied to one request attempt.

    Once cancelled, any in-progress or already-resolved work tied to the
    token must be ignored. Fetch functions receive the token and may poll
    ``cancelled`` (or call ``raise_if_cancelled``) to abort early.
    """

    __slots__ = ("_cancelled", "_reason")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Invalidate the token. Cancelling twice keeps the first reason."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason

    def raise_if_cancelled(self) -> None:
        """Raise ``asyncio.CancelledError`` if the token was invalidated."""
        if self._cancelled:
            raise asyncio.CancelledError(self._reason)

    def __repr__(self) -> str:
        state = f"cancelled ({self._reason})" if self._cancelled else "live"
        return f"<CancellationToken {state}>"


class TokenSource:
    """Keeps exactly one live token.

    ``renew`` cancels the previous token before minting the next one.
    """

    def __init__(self) -> None:
        self._current: CancellationToken | None = None

    @property
    def current(self) -> CancellationToken | None:
        return self._current

    def renew(self, reason: str = "superseded") -> CancellationToken:
        self.cancel(reason)
        self._current = CancellationToken()
        return self._current

    def cancel(self, reason: str) -> None:
        if self._current is not None:
            self._current.cancel(reason)
            self._current = None
