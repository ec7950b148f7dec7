"""Main module entrypoint for local runtime execution.

This module validates startup configuration and either launches the FastAPI
service or drives one bootstrap run from the terminal.
"""

from __future__ import annotations

import argparse
import threading

import uvicorn
from rich.console import Console
from rich.table import Table

from bootstrapper.bootstrap import BootstrapRuntime, bootstrap_create_application, bootstrap_create_runtime
from bootstrapper.config import DesiredStateLoadError, config_load_desired_state, config_load_settings
from bootstrapper.db import BootstrapRunAlreadyActiveError
from bootstrapper.jobs import JobExecutionResult, PreparedBootstrapRun
from bootstrapper.logging import logging_configure
from bootstrapper.planning import InvalidPlanError
from bootstrapper.reporting import reporting_build_summary_table

_JOIN_POLL_SECONDS = 0.5


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
        SystemExit: Raised with a non-zero code when a run does not succeed.
    """

    argument_parser = argparse.ArgumentParser(description="Cloud-native bootstrapper runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="api",
        choices=("api", "bootstrap", "resume", "runs", "status"),
        help="Runtime command: `api` starts server, `bootstrap` converges a desired-state file, "
        "`resume` continues an interrupted run, `runs` lists recent runs, `status` shows one run",
        type=str,
    )
    argument_parser.add_argument(
        "--desired-state",
        dest="desired_state_path",
        type=str,
        help="Path to the desired-state JSON document for `bootstrap`",
    )
    argument_parser.add_argument("--run-id", dest="run_id", type=str, help="Run identifier for `resume` and `status`")
    argument_parser.add_argument(
        "--rollback",
        dest="rollback",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Override rollback of applied resources when the run fails",
    )
    argument_parser.add_argument(
        "--rollback-on-cancel",
        dest="rollback_on_cancel",
        action="store_true",
        help="Roll back applied resources when the run is interrupted with Ctrl-C",
    )
    argument_parser.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Converge against an in-memory simulated cluster",
    )
    argument_parser.add_argument("--limit", dest="limit", type=int, default=20, help="Row limit for `runs`")
    argument_parser.add_argument("--debug", dest="debug", action="store_true", help="Verbose log output")
    parsed_arguments = argument_parser.parse_args()

    settings = config_load_settings()
    logging_configure(level=settings.log_level, debug_mode=parsed_arguments.debug)
    console = Console()

    if parsed_arguments.command == "api":
        application = bootstrap_create_application(dry_run=parsed_arguments.dry_run)
        uvicorn.run(
            application,
            host=settings.application_host,
            port=settings.application_port,
        )
        return

    runtime = bootstrap_create_runtime(settings=settings, dry_run=parsed_arguments.dry_run)

    if parsed_arguments.command == "runs":
        main_print_run_list(runtime, console, limit=parsed_arguments.limit)
        return

    if parsed_arguments.command == "status":
        if not parsed_arguments.run_id:
            argument_parser.error("`status` requires --run-id")
        if not main_print_run_status(runtime, console, run_id=parsed_arguments.run_id):
            raise SystemExit(1)
        return

    try:
        if parsed_arguments.command == "bootstrap":
            if not parsed_arguments.desired_state_path:
                argument_parser.error("`bootstrap` requires --desired-state")
            desired_state = config_load_desired_state(parsed_arguments.desired_state_path)
            prepared = runtime.orchestrator.job_prepare(desired_state, rollback_enabled=parsed_arguments.rollback)
        else:
            if not parsed_arguments.run_id:
                argument_parser.error("`resume` requires --run-id")
            prepared = runtime.orchestrator.job_prepare_resume(
                parsed_arguments.run_id,
                rollback_enabled=parsed_arguments.rollback,
            )
    except InvalidPlanError as error:
        console.print(f"[bold red]Invalid plan:[/bold red] {error}")
        for problem in error.problems:
            console.print(f"  - {problem}")
        raise SystemExit(2) from error
    except DesiredStateLoadError as error:
        console.print(f"[bold red]Invalid desired state:[/bold red] {error}")
        raise SystemExit(2) from error
    except BootstrapRunAlreadyActiveError as error:
        console.print(f"[bold red]Run already active:[/bold red] {error}")
        raise SystemExit(1) from error
    except LookupError as error:
        console.print(f"[bold red]{error}[/bold red]")
        raise SystemExit(1) from error
    except ValueError as error:
        console.print(f"[bold red]Run cannot be resumed:[/bold red] {error}")
        raise SystemExit(1) from error

    execution_result = main_run_until_done(runtime, prepared, rollback_on_cancel=parsed_arguments.rollback_on_cancel)
    if execution_result.report is not None:
        console.print(reporting_build_summary_table(execution_result.run_id, execution_result.report))
    else:
        main_print_run_status(runtime, console, run_id=execution_result.run_id)
    if execution_result.status != "succeeded":
        raise SystemExit(1)


def main_run_until_done(
    runtime: BootstrapRuntime,
    prepared: PreparedBootstrapRun,
    rollback_on_cancel: bool = False,
) -> JobExecutionResult:
    """Converge a prepared run in a worker thread, cancelling on Ctrl-C.

    The first interrupt requests cancellation and waits for workers to stop;
    a second interrupt propagates.

    Args:
        runtime: Assembled runtime.
        prepared: Prepared run.
        rollback_on_cancel: Whether cancellation rolls back applied resources.

    Returns:
        JobExecutionResult: Final execution result.
    """

    results: list[JobExecutionResult] = []
    worker = threading.Thread(
        target=lambda: results.append(runtime.orchestrator.job_run(prepared)),
        name=f"run-{prepared.run_id[:8]}",
        daemon=True,
    )
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=_JOIN_POLL_SECONDS)
    except KeyboardInterrupt:
        runtime.orchestrator.job_cancel(prepared.run_id, rollback=rollback_on_cancel)
        worker.join()
    return results[0]


def main_print_run_list(runtime: BootstrapRuntime, console: Console, limit: int) -> None:
    """Print the latest runs as a table."""

    table = Table(title="Bootstrap runs")
    for column in ("Run", "Instance", "Type", "Status", "Started (UTC)", "Error"):
        table.add_column(column)
    for run_record in runtime.run_repository.db_bootstrap_run_list(limit=limit, offset=0):
        table.add_row(
            run_record.run_id,
            run_record.instance_name,
            run_record.run_type,
            run_record.state.status,
            run_record.state.started_at_utc.isoformat(timespec="seconds"),
            run_record.state.error_code or "",
        )
    console.print(table)


def main_print_run_status(runtime: BootstrapRuntime, console: Console, run_id: str) -> bool:
    """Print persisted resource phases of one run.

    Returns:
        bool: False when the run does not exist.
    """

    run_record = runtime.run_repository.db_bootstrap_run_get_by_id(run_id)
    if run_record is None:
        console.print(f"[bold red]bootstrap run not found: {run_id}[/bold red]")
        return False

    resources = runtime.run_repository.db_bootstrap_resource_list(run_id)
    ready_count = sum(1 for resource in resources if resource.phase == "Ready")
    table = Table(
        title=f"Run {run_id} ({run_record.instance_name})",
        caption=f"{run_record.state.status} {ready_count}/{len(resources)} resources Ready",
    )
    for column in ("Resource", "Phase", "Attempts", "Error"):
        table.add_column(column)
    for resource in resources:
        error_text = ""
        if resource.last_error_code:
            error_text = f"{resource.last_error_code}: {resource.last_error or ''}".rstrip(": ")
        table.add_row(resource.resource_id, resource.phase, str(resource.attempts), error_text)
    console.print(table)
    if run_record.state.error_message:
        console.print(f"{run_record.state.error_code or 'error'}: {run_record.state.error_message}")
    return True


if __name__ == "__main__":
    main()
