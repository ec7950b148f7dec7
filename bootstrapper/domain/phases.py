"""Lifecycle phases, transitions and observation contracts for bootstrap runs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Final


class ResourcePhase(str, Enum):
    """Per-resource lifecycle phase inside one bootstrap run."""

    PENDING = "Pending"
    APPLYING = "Applying"
    WAITING_READY = "WaitingReady"
    READY = "Ready"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"


class RunOutcome(str, Enum):
    """Final outcome reported for one bootstrap run."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ROLLED_BACK = "RolledBack"
    CANCELLED = "Cancelled"


ALLOWED_PHASE_TRANSITIONS: Final[dict[ResourcePhase, frozenset[ResourcePhase]]] = {
    ResourcePhase.PENDING: frozenset({ResourcePhase.APPLYING}),
    ResourcePhase.APPLYING: frozenset(
        {ResourcePhase.WAITING_READY, ResourcePhase.READY, ResourcePhase.FAILED, ResourcePhase.ROLLED_BACK}
    ),
    ResourcePhase.WAITING_READY: frozenset(
        {ResourcePhase.APPLYING, ResourcePhase.READY, ResourcePhase.FAILED, ResourcePhase.ROLLED_BACK}
    ),
    ResourcePhase.READY: frozenset({ResourcePhase.ROLLED_BACK}),
    ResourcePhase.FAILED: frozenset({ResourcePhase.ROLLED_BACK}),
    ResourcePhase.ROLLED_BACK: frozenset(),
}

IN_FLIGHT_PHASES: Final[frozenset[ResourcePhase]] = frozenset(
    {ResourcePhase.APPLYING, ResourcePhase.WAITING_READY}
)


def domain_phase_transition_is_allowed(from_phase: ResourcePhase, to_phase: ResourcePhase) -> bool:
    """Return whether one phase change is a legal state-machine edge.

    Args:
        from_phase: Current phase.
        to_phase: Requested phase.

    Returns:
        bool: True when the transition is allowed.
    """

    return to_phase in ALLOWED_PHASE_TRANSITIONS[from_phase]


@dataclass(frozen=True)
class PhaseTransition:
    """One recorded phase change in the append-only run history.

    Attributes:
        resource_id: Resource identifier.
        from_phase: Phase before the change.
        to_phase: Phase after the change.
        at_utc: Transition timestamp.
        attempt: Attempt counter at transition time.
        error_code: Optional deterministic error code.
        error_message: Optional human-readable error message.
    """

    resource_id: str
    from_phase: ResourcePhase
    to_phase: ResourcePhase
    at_utc: datetime
    attempt: int = 0
    error_code: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class HealthSignal:
    """Point-in-time readiness observation for one deployed resource.

    Attributes:
        resource_id: Observed resource identifier.
        ready: Whether the resource reports ready.
        exists: Whether the control plane knows the resource at all.
        terminal: Whether the reported condition can never recover.
        last_error: Optional condition message reported by the control plane.
        attempt: Attempt counter of the observer when the signal was taken.
        observed_at_utc: Observation timestamp.
    """

    resource_id: str
    ready: bool
    exists: bool
    observed_at_utc: datetime
    terminal: bool = False
    last_error: str | None = None
    attempt: int = 0


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted once per phase transition.

    Attributes:
        resource_id: Resource identifier.
        phase: Phase entered.
        timestamp: Transition timestamp.
        attempt: Attempt counter at transition time.
        error: Optional error message attached to the transition.
    """

    resource_id: str
    phase: ResourcePhase
    timestamp: datetime
    attempt: int = 0
    error: str | None = None
