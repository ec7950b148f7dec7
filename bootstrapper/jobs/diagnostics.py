"""Run report assembly and diagnostics extraction helpers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from bootstrapper.domain import ResourcePhase, ResourcePlan, RunOutcome

from .run_state import ResourceStatus

BLOCKED_BY_DEPENDENCY_FAILURE_CODE: Final[str] = "BLOCKED_BY_DEPENDENCY_FAILURE"
ROLLBACK_FAILED_CODE: Final[str] = "ROLLBACK_FAILED"
_FAILURE_PHASES: Final[frozenset[ResourcePhase]] = frozenset({ResourcePhase.FAILED, ResourcePhase.ROLLED_BACK})


@dataclass(frozen=True)
class ResourceReport:
    """User-visible state of one resource at the end of a run.

    Attributes:
        resource_id: Resource identifier.
        phase: Final phase.
        attempts: Attempts consumed.
        last_error_code: Optional error code.
        last_error: Optional error message.
        blocked_by: Failed dependencies preventing this resource from ever starting.
    """

    resource_id: str
    phase: ResourcePhase
    attempts: int
    last_error_code: str | None = None
    last_error: str | None = None
    blocked_by: tuple[str, ...] = ()


@dataclass(frozen=True)
class RunReport:
    """Precise run summary; partial success is never collapsed to pass/fail.

    Attributes:
        outcome: Final run outcome.
        resources: Per-resource reports in plan order.
    """

    outcome: RunOutcome
    resources: tuple[ResourceReport, ...]

    @property
    def ready_count(self) -> int:
        return sum(1 for resource in self.resources if resource.phase == ResourcePhase.READY)

    @property
    def total_count(self) -> int:
        return len(self.resources)

    def report_unready_resources(self) -> tuple[ResourceReport, ...]:
        """Return reports for every resource that did not end Ready."""

        return tuple(resource for resource in self.resources if resource.phase != ResourcePhase.READY)

    def report_rollback_failures(self) -> tuple[str, ...]:
        """Return identifiers whose rollback delete failed."""

        return tuple(
            resource.resource_id for resource in self.resources if resource.last_error_code == ROLLBACK_FAILED_CODE
        )

    def report_as_diagnostics(self) -> dict[str, Any]:
        """Return a JSON-compatible payload for persistence and API responses."""

        return {
            "outcome": self.outcome.value,
            "ready_count": self.ready_count,
            "total_count": self.total_count,
            "rollback_failures": list(self.report_rollback_failures()),
            "unready_resources": [
                {
                    "resource_id": resource.resource_id,
                    "phase": resource.phase.value,
                    "attempts": resource.attempts,
                    "last_error_code": resource.last_error_code,
                    "last_error": resource.last_error,
                    "blocked_by": list(resource.blocked_by),
                }
                for resource in self.report_unready_resources()
            ],
        }


def job_build_run_report(
    plan: ResourcePlan,
    statuses: Mapping[str, ResourceStatus],
    outcome: RunOutcome,
) -> RunReport:
    """Build the final run report from a plan and resource statuses.

    Pending resources that sit downstream of a failed resource are reported as
    blocked, with every failed ancestor listed.

    Args:
        plan: Plan executed by the run.
        statuses: Final resource statuses keyed by identifier.
        outcome: Final run outcome.

    Returns:
        RunReport: Report with one entry per plan resource.

    Raises:
        KeyError: Raised when a plan resource has no status.
    """

    reports: list[ResourceReport] = []
    for spec in plan.specs:
        status = statuses[spec.resource_id]
        blocked_by: tuple[str, ...] = ()
        last_error_code = status.last_error_code
        last_error = status.last_error
        if status.phase == ResourcePhase.PENDING:
            blocked_by = _job_failed_ancestors(plan, statuses, spec.resource_id)
            if blocked_by:
                last_error_code = BLOCKED_BY_DEPENDENCY_FAILURE_CODE
                last_error = f"BlockedByDependencyFailure: {', '.join(blocked_by)}"
        reports.append(
            ResourceReport(
                resource_id=spec.resource_id,
                phase=status.phase,
                attempts=status.attempts,
                last_error_code=last_error_code,
                last_error=last_error,
                blocked_by=blocked_by,
            )
        )
    return RunReport(outcome=outcome, resources=tuple(reports))


def _job_failed_ancestors(
    plan: ResourcePlan,
    statuses: Mapping[str, ResourceStatus],
    resource_id: str,
) -> tuple[str, ...]:
    failed: set[str] = set()
    visited: set[str] = set()
    stack = list(plan.plan_dependencies_of(resource_id))
    while stack:
        dependency = stack.pop()
        if dependency in visited:
            continue
        visited.add(dependency)
        if statuses[dependency].phase in _FAILURE_PHASES and statuses[dependency].last_error_code:
            failed.add(dependency)
        stack.extend(plan.plan_dependencies_of(dependency))
    return tuple(sorted(failed))


def job_extract_failed_resources_from_diagnostics(diagnostics: Any) -> dict[str, list[str]]:
    """Extract failed and blocked resource identifiers from persisted diagnostics.

    Args:
        diagnostics: Diagnostics payload stored with a finalized run.

    Returns:
        dict[str, list[str]]: `failed_resources` and `blocked_resources` lists.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    failed_resources: list[str] = []
    blocked_resources: list[str] = []
    if not isinstance(diagnostics, dict):
        return {"failed_resources": failed_resources, "blocked_resources": blocked_resources}

    for resource in diagnostics.get("unready_resources") or []:
        if not isinstance(resource, dict):
            continue
        resource_id = str(resource.get("resource_id") or "")
        if not resource_id:
            continue
        if resource.get("blocked_by"):
            blocked_resources.append(resource_id)
        elif resource.get("phase") in (ResourcePhase.FAILED.value, ResourcePhase.ROLLED_BACK.value):
            failed_resources.append(resource_id)
    return {"failed_resources": failed_resources, "blocked_resources": blocked_resources}
