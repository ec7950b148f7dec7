"""Cooperative cancellation token shared by the engine and its callers."""

from __future__ import annotations

import threading


class RunCancellation:
    """Thread-safe cancellation request for one bootstrap run.

    Workers check the token only between control-plane calls, so a call that
    is already on the wire always completes before the worker stops.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._rollback_requested = False

    def cancel(self, rollback: bool = False) -> None:
        """Request cancellation.

        Args:
            rollback: Whether already-applied resources should be torn down afterwards.
        """

        with self._lock:
            self._rollback_requested = self._rollback_requested or rollback
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def rollback_requested(self) -> bool:
        with self._lock:
            return self._rollback_requested

    def cancellation_wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on cancellation.

        Returns:
            bool: True when cancellation was requested.
        """

        return self._event.wait(timeout=max(0.0, seconds))
