"""Live progress record for one bootstrap run.

`RunState` is the only mutable structure shared between convergence workers.
Phase updates for one resource are serialized by that resource's lock, so
workers driving different resources never contend on phase writes. Listener
fan-out happens under the same per-resource lock, which keeps each resource's
notifications in phase order while slow listeners for one resource leave the
others alone. Only the history append takes the shared, short history lock.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Callable

from bootstrapper.domain import (
    PhaseTransition,
    ResourcePhase,
    domain_phase_transition_is_allowed,
    domain_utc_now,
)

RunStateListener = Callable[[PhaseTransition, "ResourceStatus"], None]
RunStateStatusListener = Callable[["ResourceStatus"], None]


class IllegalPhaseTransitionError(RuntimeError):
    """Raised when a worker requests a transition the state machine forbids."""


@dataclass(frozen=True)
class ResourceStatus:
    """Read-only status of one resource inside a run.

    Attributes:
        resource_id: Resource identifier.
        phase: Current lifecycle phase.
        attempts: Attempts consumed against the retry budget.
        last_error_code: Optional deterministic error code of the latest failure.
        last_error: Optional message of the latest failure.
    """

    resource_id: str
    phase: ResourcePhase = ResourcePhase.PENDING
    attempts: int = 0
    last_error_code: str | None = None
    last_error: str | None = None


class RunState:
    """Phase map, attempt counters and append-only transition history."""

    def __init__(
        self,
        run_id: str,
        resource_ids: Iterable[str],
        initial_statuses: Mapping[str, ResourceStatus] | None = None,
        initial_history: Iterable[PhaseTransition] = (),
    ):
        """Initialize run state with one entry per resource.

        Args:
            run_id: Owning run identifier.
            resource_ids: Every resource identifier of the plan.
            initial_statuses: Optional statuses restored from a previous execution.
            initial_history: Optional history restored from a previous execution.

        Raises:
            ValueError: Raised when identifiers repeat or restored statuses are not part of the plan.
        """

        ordered_ids = list(resource_ids)
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValueError("resource_ids must be unique")
        restored = dict(initial_statuses or {})
        unknown_ids = sorted(set(restored) - set(ordered_ids))
        if unknown_ids:
            raise ValueError(f"restored statuses reference unknown resources: {', '.join(unknown_ids)}")

        self.run_id = run_id
        self._statuses: dict[str, ResourceStatus] = {
            resource_id: restored.get(resource_id, ResourceStatus(resource_id=resource_id))
            for resource_id in ordered_ids
        }
        self._resource_locks = {resource_id: threading.Lock() for resource_id in ordered_ids}
        self._history: list[PhaseTransition] = list(initial_history)
        self._history_lock = threading.Lock()
        self._listeners: list[RunStateListener] = []
        self._status_listeners: list[RunStateStatusListener] = []
        self._listeners_lock = threading.Lock()

    def run_state_add_listener(self, listener: RunStateListener) -> None:
        """Register a callback invoked once per recorded transition.

        Listeners run while the resource lock is held and must not call back
        into this run state. Listeners for different resources may run
        concurrently.
        """

        with self._listeners_lock:
            self._listeners.append(listener)

    def run_state_add_status_listener(self, listener: RunStateStatusListener) -> None:
        """Register a callback invoked when attempts or the last error change without a phase change.

        Args:
            listener: Callback receiving the updated status, under the resource lock.
        """

        with self._listeners_lock:
            self._status_listeners.append(listener)

    def run_state_transition(
        self,
        resource_id: str,
        to_phase: ResourcePhase,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> PhaseTransition:
        """Move one resource to a new phase and record the transition.

        Args:
            resource_id: Resource identifier.
            to_phase: Requested phase.
            error_code: Optional error code attached to the transition.
            error_message: Optional error message attached to the transition.

        Returns:
            PhaseTransition: Recorded transition.

        Raises:
            KeyError: Raised when the resource is unknown.
            IllegalPhaseTransitionError: Raised when the state machine forbids the edge.
        """

        with self._resource_locks[resource_id]:
            current = self._statuses[resource_id]
            if not domain_phase_transition_is_allowed(current.phase, to_phase):
                raise IllegalPhaseTransitionError(
                    f"illegal transition for {resource_id}: {current.phase.value} -> {to_phase.value}"
                )
            updated = replace(current, phase=to_phase)
            if to_phase == ResourcePhase.READY:
                updated = replace(updated, last_error_code=None, last_error=None)
            if error_code is not None or error_message is not None:
                updated = replace(updated, last_error_code=error_code, last_error=error_message)
            self._statuses[resource_id] = updated
            transition = PhaseTransition(
                resource_id=resource_id,
                from_phase=current.phase,
                to_phase=to_phase,
                at_utc=domain_utc_now(),
                attempt=updated.attempts,
                error_code=error_code,
                error_message=error_message,
            )
            with self._history_lock:
                self._history.append(transition)
            with self._listeners_lock:
                listeners = list(self._listeners)
            for listener in listeners:
                listener(transition, updated)
            return transition

    def run_state_record_attempt(self, resource_id: str) -> int:
        """Consume one attempt from the resource's budget.

        Status listeners see the new count before the attempt starts, so a
        restored run never gets back attempts it already spent.

        Returns:
            int: Attempt number just started (1-based).
        """

        with self._resource_locks[resource_id]:
            current = self._statuses[resource_id]
            updated = replace(current, attempts=current.attempts + 1)
            self._statuses[resource_id] = updated
            self._run_state_notify_status(updated)
            return updated.attempts

    def run_state_record_error(self, resource_id: str, error_code: str, error_message: str) -> None:
        """Record the latest failure of a resource without changing its phase."""

        with self._resource_locks[resource_id]:
            current = self._statuses[resource_id]
            if current.last_error_code == error_code and current.last_error == error_message:
                return
            updated = replace(current, last_error_code=error_code, last_error=error_message)
            self._statuses[resource_id] = updated
            self._run_state_notify_status(updated)

    def _run_state_notify_status(self, status: ResourceStatus) -> None:
        with self._listeners_lock:
            listeners = list(self._status_listeners)
        for listener in listeners:
            listener(status)

    def run_state_status(self, resource_id: str) -> ResourceStatus:
        """Return the current status of one resource."""

        with self._resource_locks[resource_id]:
            return self._statuses[resource_id]

    def run_state_phase(self, resource_id: str) -> ResourcePhase:
        """Return the current phase of one resource."""

        return self.run_state_status(resource_id).phase

    def run_state_snapshot(self) -> dict[str, ResourceStatus]:
        """Return a point-in-time copy of every resource status, in plan order."""

        return {resource_id: self.run_state_status(resource_id) for resource_id in self._statuses}

    def run_state_history(self) -> tuple[PhaseTransition, ...]:
        """Return every recorded transition, oldest first."""

        with self._history_lock:
            return tuple(self._history)

    def run_state_ids_in_phase(self, *phases: ResourcePhase) -> tuple[str, ...]:
        """Return identifiers currently in any of the given phases, in plan order."""

        wanted = set(phases)
        return tuple(
            resource_id for resource_id, status in self.run_state_snapshot().items() if status.phase in wanted
        )
