"""In-memory control-plane adapter used for dry runs and simulations.

The adapter keeps applied manifests in a dictionary guarded by a reentrant
lock, so concurrent workers observe a consistent simulated cluster. Resources
report ready after a configurable number of status polls, and callers may
script failures per resource identifier to rehearse retry and rollback paths.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from typing import Any

from bootstrapper.domain import HealthSignal, HealthStatus, ResourceSpec, domain_utc_now

from .interfaces import ApplyReceipt, ControlPlanePort


class InMemoryControlPlaneAdapter(ControlPlanePort):
    """Thread-safe simulated control plane."""

    def __init__(
        self,
        ready_after_polls: int = 1,
        apply_failures: Mapping[str, Iterable[Exception]] | None = None,
        delete_failures: Mapping[str, Iterable[Exception]] | None = None,
    ):
        """Initialize simulated control plane.

        Args:
            ready_after_polls: Status polls after an apply before a resource reports ready.
            apply_failures: Errors raised, in order, by successive applies per identifier.
            delete_failures: Errors raised, in order, by successive deletes per identifier.

        Raises:
            ValueError: Raised when ready_after_polls is negative.
        """

        if ready_after_polls < 0:
            raise ValueError("ready_after_polls must be >= 0")

        self._lock = threading.RLock()
        self._ready_after_polls = ready_after_polls
        self._objects: dict[str, dict[str, Any]] = {}
        self._polls_since_apply: dict[str, int] = {}
        self._apply_failures = {key: list(value) for key, value in (apply_failures or {}).items()}
        self._delete_failures = {key: list(value) for key, value in (delete_failures or {}).items()}
        self.apply_calls: list[str] = []
        self.delete_calls: list[str] = []
        self.status_calls: list[str] = []

    def adapter_source_name(self) -> str:
        return "in_memory"

    def adapter_apply(self, spec: ResourceSpec) -> ApplyReceipt:
        resource_id = spec.resource_id
        with self._lock:
            self.apply_calls.append(resource_id)
            scripted_failures = self._apply_failures.get(resource_id)
            if scripted_failures:
                raise scripted_failures.pop(0)
            self._objects[resource_id] = dict(spec.payload)
            self._polls_since_apply[resource_id] = 0
            return ApplyReceipt(resource_id=resource_id, resource_version=str(len(self.apply_calls)))

    def adapter_get_status(self, resource_id: str) -> HealthSignal:
        with self._lock:
            self.status_calls.append(resource_id)
            if resource_id not in self._objects:
                return HealthSignal(
                    resource_id=resource_id,
                    ready=False,
                    exists=False,
                    observed_at_utc=domain_utc_now(),
                    last_error="resource not found",
                )
            self._polls_since_apply[resource_id] += 1
            ready = self._polls_since_apply[resource_id] >= self._ready_after_polls
            return HealthSignal(
                resource_id=resource_id,
                ready=ready,
                exists=True,
                observed_at_utc=domain_utc_now(),
                last_error=None if ready else "simulated rollout in progress",
            )

    def adapter_delete(self, resource_id: str) -> None:
        with self._lock:
            self.delete_calls.append(resource_id)
            scripted_failures = self._delete_failures.get(resource_id)
            if scripted_failures:
                raise scripted_failures.pop(0)
            self._objects.pop(resource_id, None)
            self._polls_since_apply.pop(resource_id, None)

    def adapter_check_health(self) -> HealthStatus:
        return HealthStatus(status="ok", detail="in-memory control plane")

    def adapter_seed(self, resource_id: str, payload: dict[str, Any] | None = None, ready: bool = True) -> None:
        """Pre-populate one object, as if applied by an earlier run.

        Args:
            resource_id: Resource identifier.
            payload: Optional stored manifest.
            ready: Whether the object reports ready on the next poll.
        """

        with self._lock:
            self._objects[resource_id] = dict(payload or {})
            self._polls_since_apply[resource_id] = self._ready_after_polls if ready else -(10**9)

    def adapter_object_ids(self) -> tuple[str, ...]:
        """Return identifiers currently present in the simulated cluster."""

        with self._lock:
            return tuple(sorted(self._objects))
