"""Progress and report renderers for logs and the terminal."""

from __future__ import annotations

import logging

from rich.table import Table

from bootstrapper.domain import PhaseTransition, ResourcePhase, RunOutcome
from bootstrapper.jobs.diagnostics import RunReport
from bootstrapper.jobs.run_state import ResourceStatus

logger = logging.getLogger(__name__)

_PHASE_STYLES = {
    ResourcePhase.PENDING: "dim",
    ResourcePhase.APPLYING: "cyan",
    ResourcePhase.WAITING_READY: "yellow",
    ResourcePhase.READY: "green",
    ResourcePhase.FAILED: "bold red",
    ResourcePhase.ROLLED_BACK: "magenta",
}

_OUTCOME_STYLES = {
    RunOutcome.SUCCEEDED: "bold green",
    RunOutcome.FAILED: "bold red",
    RunOutcome.ROLLED_BACK: "bold magenta",
    RunOutcome.CANCELLED: "bold yellow",
}


class LoggingProgressReporter:
    """Run state listener that writes one log line per transition."""

    def __init__(self, run_id: str, reporter_logger: logging.Logger | None = None):
        self._run_id = run_id
        self._logger = reporter_logger or logger

    def __call__(self, transition: PhaseTransition, status: ResourceStatus) -> None:
        level = logging.INFO
        if transition.to_phase == ResourcePhase.FAILED:
            level = logging.ERROR
        elif transition.to_phase == ResourcePhase.ROLLED_BACK:
            level = logging.WARNING

        suffix = ""
        if transition.error_code:
            suffix = f" [{transition.error_code}] {transition.error_message or ''}".rstrip()
        self._logger.log(
            level,
            "run=%s %s: %s -> %s (attempt %d)%s",
            self._run_id[:8],
            transition.resource_id,
            transition.from_phase.value,
            transition.to_phase.value,
            status.attempts,
            suffix,
        )


def reporting_build_summary_table(run_id: str, report: RunReport) -> Table:
    """Render a run report as a Rich table.

    Every resource is listed; non-Ready rows include the last error and the
    failed dependencies blocking them.

    Args:
        run_id: Run identifier shown in the title.
        report: Final run report.

    Returns:
        Table: Renderable summary.
    """

    outcome_style = _OUTCOME_STYLES.get(report.outcome, "bold")
    table = Table(
        title=f"Run {run_id}",
        caption=(
            f"[{outcome_style}]{report.outcome.value}[/{outcome_style}] "
            f"{report.ready_count}/{report.total_count} resources Ready"
        ),
    )
    table.add_column("Resource", no_wrap=True)
    table.add_column("Phase")
    table.add_column("Attempts", justify="right")
    table.add_column("Error")

    for resource in report.resources:
        style = _PHASE_STYLES.get(resource.phase, "")
        error_text = ""
        if resource.blocked_by:
            error_text = f"blocked by {', '.join(resource.blocked_by)}"
        elif resource.last_error_code:
            error_text = f"{resource.last_error_code}: {resource.last_error or ''}".rstrip(": ")
        table.add_row(
            resource.resource_id,
            f"[{style}]{resource.phase.value}[/{style}]" if style else resource.phase.value,
            str(resource.attempts),
            error_text,
        )
    return table
