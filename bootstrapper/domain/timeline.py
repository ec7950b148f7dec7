"""Run timeline recorded in bootstrap run diagnostics.

Each event names the run it belongs to and its position in that run's
timeline, so timelines from a run and its resumptions can be told apart
after they are stored.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Callable


def domain_utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def domain_build_stage_event(
    run_id: str,
    sequence: int,
    stage: str,
    status: str,
    details: dict[str, Any] | None = None,
) -> dict[str, object]:
    """Build one structured timeline event payload.

    Args:
        run_id: Run the event belongs to.
        sequence: 1-based position of the event in the run timeline.
        stage: Stage name (`run`, `plan`, `converge`).
        status: Stage status marker.
        details: Optional structured details object.

    Returns:
        dict[str, object]: Structured timeline event.

    Raises:
        ValueError: Raised when the sequence is not positive.
    """

    if sequence < 1:
        raise ValueError("sequence must be >= 1")
    event_payload: dict[str, object] = {
        "run_id": run_id,
        "sequence": sequence,
        "stage": stage,
        "status": status,
        "at_utc": domain_utc_now().isoformat(),
    }
    if details is not None:
        event_payload["details"] = details
    return event_payload


class RunTimeline:
    """Ordered stage events of one run execution."""

    def __init__(self, run_id: str, clock: Callable[[], float] | None = None):
        self._run_id = run_id
        self._clock = clock or time.monotonic
        self._started_at = self._clock()
        self._events: list[dict[str, object]] = []

    def timeline_record(
        self,
        stage: str,
        status: str,
        details: dict[str, Any] | None = None,
    ) -> dict[str, object]:
        """Append one event stamped with the time elapsed since the timeline started.

        Returns:
            dict[str, object]: Recorded event.
        """

        event_payload = domain_build_stage_event(
            run_id=self._run_id,
            sequence=len(self._events) + 1,
            stage=stage,
            status=status,
            details=details,
        )
        event_payload["elapsed_ms"] = int((self._clock() - self._started_at) * 1000)
        self._events.append(event_payload)
        return event_payload

    def timeline_events(self) -> list[dict[str, object]]:
        return list(self._events)
