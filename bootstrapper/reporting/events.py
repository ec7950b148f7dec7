"""Progress event production from run state transitions."""

from __future__ import annotations

import queue
import threading
from collections.abc import Iterator

from bootstrapper.domain import PhaseTransition, ProgressEvent
from bootstrapper.jobs.run_state import ResourceStatus

_STREAM_CLOSED = object()


def reporting_progress_event_from_transition(transition: PhaseTransition, status: ResourceStatus) -> ProgressEvent:
    """Build the progress event announcing one transition.

    Args:
        transition: Recorded transition.
        status: Resource status right after the transition.

    Returns:
        ProgressEvent: Event carrying the entered phase.
    """

    return ProgressEvent(
        resource_id=transition.resource_id,
        phase=transition.to_phase,
        timestamp=transition.at_utc,
        attempt=status.attempts,
        error=transition.error_message,
    )


class ProgressEventStream:
    """Lazy, single-consumer sequence of progress events.

    Register the stream as a run state listener; iterate it from another
    thread. Iteration ends once `stream_close` is called and every event
    published before it has been yielded. Publishing never blocks, so
    producers holding run state locks are never stalled by a slow consumer.
    """

    def __init__(self):
        self._queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._closed = threading.Event()

    def __call__(self, transition: PhaseTransition, status: ResourceStatus) -> None:
        self.stream_publish(reporting_progress_event_from_transition(transition, status))

    def stream_publish(self, event: ProgressEvent) -> None:
        """Append one event; events published after close are dropped."""

        if self._closed.is_set():
            return
        self._queue.put(event)

    def stream_close(self) -> None:
        """End the stream; safe to call more than once."""

        if self._closed.is_set():
            return
        self._closed.set()
        self._queue.put(_STREAM_CLOSED)

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            item = self._queue.get()
            if item is _STREAM_CLOSED:
                return
            yield item  # type: ignore[misc]
