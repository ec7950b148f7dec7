"""Typed interfaces for job-layer orchestration responsibilities."""

from dataclasses import dataclass
from typing import Protocol

from bootstrapper.domain import DesiredState, RunOutcome

from .diagnostics import RunReport


@dataclass(frozen=True)
class JobExecutionResult:
    """Result contract for one bootstrap or resume execution.

    Attributes:
        job_name: Job identifier (`bootstrap_run` or `resume_run`).
        status: Final run status (`succeeded`, `failed`, `rolled_back`, `cancelled`).
        run_id: Run identifier.
        outcome: Convergence outcome, absent when the run failed unexpectedly.
        report: Per-resource report, absent when the run failed unexpectedly.
    """

    job_name: str
    status: str
    run_id: str
    outcome: RunOutcome | None = None
    report: RunReport | None = None


class JobOrchestratorPort(Protocol):
    """Port definition for starting, resuming and cancelling bootstrap runs."""

    def job_execute(self, desired_state: DesiredState) -> JobExecutionResult:
        """Plan and converge one desired state to completion.

        Args:
            desired_state: Target deployment.

        Returns:
            JobExecutionResult: Final execution status payload.

        Raises:
            InvalidPlanError: Raised before any run record is created.
            BootstrapRunAlreadyActiveError: Raised when the instance already has a running run.
        """

    def job_resume(self, run_id: str) -> JobExecutionResult:
        """Continue a cancelled or interrupted run from its persisted phases.

        Raises:
            LookupError: Raised when the run does not exist.
            ValueError: Raised when the run cannot be resumed.
        """

    def job_cancel(self, run_id: str, rollback: bool = False) -> bool:
        """Request cancellation of an active run.

        Returns:
            bool: True when an active run received the request.
        """
