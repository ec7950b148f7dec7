"""Kind-specific readiness evaluation for observed control-plane objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

from bootstrapper.domain import ResourceKind

_PRESENCE_READY_KINDS: Final[frozenset[ResourceKind]] = frozenset(
    {
        ResourceKind.SECRET,
        ResourceKind.CONFIG_MAP,
        ResourceKind.SERVICE,
        ResourceKind.INGRESS,
    }
)
_PROGRESS_DEADLINE_REASON: Final[str] = "ProgressDeadlineExceeded"


@dataclass(frozen=True)
class ReadinessVerdict:
    """Readiness decision derived from one observed object.

    Attributes:
        ready: Whether the object satisfies its kind's readiness rule.
        terminal: Whether the object reports an unrecoverable condition.
        message: Optional explanation for not-ready or terminal verdicts.
    """

    ready: bool
    terminal: bool = False
    message: str | None = None


def adapter_evaluate_readiness(kind: ResourceKind, observed_object: dict[str, Any]) -> ReadinessVerdict:
    """Evaluate readiness of one observed object for its kind.

    Args:
        kind: Resource kind of the object.
        observed_object: Object body returned by the control plane.

    Returns:
        ReadinessVerdict: Ready/terminal decision with an optional message.

    Raises:
        ValueError: Raised when the kind has no readiness rule.
    """

    if kind in _PRESENCE_READY_KINDS:
        return ReadinessVerdict(ready=True)
    if kind == ResourceKind.NAMESPACE:
        return _readiness_namespace(observed_object)
    if kind == ResourceKind.PERSISTENT_VOLUME_CLAIM:
        return _readiness_volume_claim(observed_object)
    if kind in (ResourceKind.DEPLOYMENT, ResourceKind.STATEFUL_SET):
        return _readiness_workload(observed_object)
    raise ValueError(f"no readiness rule for kind={kind.value}")


def _readiness_namespace(observed_object: dict[str, Any]) -> ReadinessVerdict:
    phase = str((observed_object.get("status") or {}).get("phase") or "")
    if phase == "Active":
        return ReadinessVerdict(ready=True)
    if phase == "Terminating":
        return ReadinessVerdict(ready=False, terminal=True, message="namespace is terminating")
    return ReadinessVerdict(ready=False, message=f"namespace phase={phase or 'unknown'}")


def _readiness_volume_claim(observed_object: dict[str, Any]) -> ReadinessVerdict:
    phase = str((observed_object.get("status") or {}).get("phase") or "")
    if phase == "Bound":
        return ReadinessVerdict(ready=True)
    if phase == "Lost":
        return ReadinessVerdict(ready=False, terminal=True, message="volume claim lost its volume")
    return ReadinessVerdict(ready=False, message=f"volume claim phase={phase or 'unknown'}")


def _readiness_workload(observed_object: dict[str, Any]) -> ReadinessVerdict:
    """Apply the rollout rule shared by Deployments and StatefulSets.

    A workload is ready when the controller has observed the latest generation
    and every desired replica reports ready.
    """

    metadata = observed_object.get("metadata") or {}
    spec = observed_object.get("spec") or {}
    status = observed_object.get("status") or {}

    for condition in status.get("conditions") or []:
        if (
            condition.get("type") == "Progressing"
            and str(condition.get("status")) == "False"
            and condition.get("reason") == _PROGRESS_DEADLINE_REASON
        ):
            return ReadinessVerdict(
                ready=False,
                terminal=True,
                message=str(condition.get("message") or _PROGRESS_DEADLINE_REASON),
            )

    generation = int(metadata.get("generation") or 0)
    observed_generation = int(status.get("observedGeneration") or 0)
    if observed_generation < generation:
        return ReadinessVerdict(ready=False, message="rollout not yet observed by controller")

    desired_replicas = int(spec.get("replicas", 1) or 0)
    ready_replicas = int(status.get("readyReplicas") or 0)
    if ready_replicas < desired_replicas:
        return ReadinessVerdict(
            ready=False,
            message=f"ready replicas {ready_replicas}/{desired_replicas}",
        )
    return ReadinessVerdict(ready=True)
