"""Cooperative cancellation."""

from __future__ import annotations

import threading


class CancelToken:
    """A one-shot cancellation flag shared between a build and whoever started it.

    Tokens are never reset: a new build gets a new token.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; True if cancelled."""
        return self._event.wait(timeout)
