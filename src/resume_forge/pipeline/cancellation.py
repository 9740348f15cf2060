"""Cooperative cancellation token passed down the generation call chain."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from resume_forge.errors import CancelledByUser


class CancellationToken:
    """Set locally via :meth:`cancel`, or observed through an optional store poll.

    The poll (for example "is the target record still generating?") runs at
    most once per ``poll_interval_seconds``; an interval of 0 polls at every
    checkpoint. Once observed, cancellation is sticky. A child token is also
    cancelled when its ``parent`` is.
    """

    def __init__(
        self,
        poll: Callable[[], bool] | None = None,
        *,
        poll_interval_seconds: float = 0.0,
        parent: CancellationToken | None = None,
    ) -> None:
        self._event = threading.Event()
        self._poll = poll
        self._poll_interval = max(0.0, poll_interval_seconds)
        self._last_poll: float | None = None
        self._lock = threading.Lock()
        self._parent = parent
        self.reason = "Task was cancelled by user"

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self.reason = reason
        self._event.set()

    @property
    def requested(self) -> bool:
        """Local cancellation only; never consults the poll."""

        if self._parent is not None and self._parent.requested:
            return True
        return self._event.is_set()

    @property
    def cancelled(self) -> bool:
        if self.requested:
            return True
        if self._poll is None:
            return False
        with self._lock:
            now = time.monotonic()
            if self._last_poll is not None and now - self._last_poll < self._poll_interval:
                return False
            self._last_poll = now
        if self._poll():
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            reason = self._parent.reason if self._parent and self._parent.requested else self.reason
            raise CancelledByUser(reason)
