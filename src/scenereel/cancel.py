"""Cooperative cancellation for pipeline runs."""

import threading
from typing import Optional

from .errors import RunCancelled


class CancelToken:
    """A flag shared between a run and whoever may supersede it.

    Workers call `raise_if_cancelled()` at their checkpoints; the caller
    calls `cancel()` when a newer run takes over.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RunCancelled(self._reason or "cancelled")

    def wait(self, timeout: float) -> bool:
        """Sleep up to `timeout` seconds, returning early if cancelled."""
        return self._event.wait(timeout)


def check(token: Optional[CancelToken]) -> None:
    """Raise `RunCancelled` if `token` is set; no-op for `None`."""
    if token is not None:
        token.raise_if_cancelled()
