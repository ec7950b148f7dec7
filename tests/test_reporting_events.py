"""Tests for progress events, log reporting and the run summary table."""

from __future__ import annotations

import logging
import threading

from rich.console import Console

from bootstrapper.domain import PhaseTransition, ResourcePhase, RunOutcome, domain_utc_now
from bootstrapper.jobs import ResourceReport, ResourceStatus, RunReport
from bootstrapper.logging import ThirdPartyPrefixFilter
from bootstrapper.reporting import (
    LoggingProgressReporter,
    ProgressEventStream,
    reporting_build_summary_table,
    reporting_progress_event_from_transition,
)


def _transition(to_phase: ResourcePhase, error_code: str | None = None, error_message: str | None = None):
    return PhaseTransition(
        resource_id="Deployment/team/chat-app",
        from_phase=ResourcePhase.APPLYING,
        to_phase=to_phase,
        at_utc=domain_utc_now(),
        attempt=2,
        error_code=error_code,
        error_message=error_message,
    )


def test_reporting_event_carries_entered_phase_and_attempts() -> None:
    transition = _transition(ResourcePhase.FAILED, "APPLY_TERMINAL", "invalid manifest")
    status = ResourceStatus(resource_id=transition.resource_id, phase=ResourcePhase.FAILED, attempts=2)

    event = reporting_progress_event_from_transition(transition, status)

    assert event.resource_id == "Deployment/team/chat-app"
    assert event.phase == ResourcePhase.FAILED
    assert event.timestamp == transition.at_utc
    assert event.attempt == 2
    assert event.error == "invalid manifest"


def test_reporting_stream_yields_events_across_threads_until_closed() -> None:
    """Deliver events published from a producer thread, then end on close.

    Returns:
        None: Assertions validate stream ordering and termination.

    Raises:
        AssertionError: Raised when stream delivery diverges.
    """

    stream = ProgressEventStream()
    status = ResourceStatus(resource_id="Deployment/team/chat-app")

    def _produce() -> None:
        stream(_transition(ResourcePhase.WAITING_READY), status)
        stream(_transition(ResourcePhase.READY), status)
        stream.stream_close()

    producer = threading.Thread(target=_produce)
    producer.start()
    phases = [event.phase for event in stream]
    producer.join()

    assert phases == [ResourcePhase.WAITING_READY, ResourcePhase.READY]
    stream(_transition(ResourcePhase.READY), status)
    stream.stream_close()
    assert stream.is_closed is True


def test_reporting_logging_reporter_levels(caplog) -> None:
    """Log failures at ERROR, rollbacks at WARNING and the rest at INFO."""

    reporter = LoggingProgressReporter(run_id="0123456789abcdef")
    status = ResourceStatus(resource_id="Deployment/team/chat-app", attempts=2)

    with caplog.at_level(logging.INFO, logger="bootstrapper.reporting.reporters"):
        reporter(_transition(ResourcePhase.WAITING_READY), status)
        reporter(_transition(ResourcePhase.FAILED, "READY_TIMEOUT", "ready replicas 0/1"), status)
        reporter(_transition(ResourcePhase.ROLLED_BACK), status)

    assert [record.levelno for record in caplog.records] == [logging.INFO, logging.ERROR, logging.WARNING]
    assert caplog.records[0].getMessage() == (
        "run=01234567 Deployment/team/chat-app: Applying -> WaitingReady (attempt 2)"
    )
    assert caplog.records[1].getMessage().endswith("[READY_TIMEOUT] ready replicas 0/1")


def test_reporting_summary_table_lists_every_resource() -> None:
    """Render Ready, failed and blocked rows with the outcome caption.

    Returns:
        None: Assertions validate rendered table text.

    Raises:
        AssertionError: Raised when rendered output diverges.
    """

    report = RunReport(
        outcome=RunOutcome.FAILED,
        resources=(
            ResourceReport(resource_id="Namespace/-/team", phase=ResourcePhase.READY, attempts=1),
            ResourceReport(
                resource_id="Secret/team/chat-app-config",
                phase=ResourcePhase.FAILED,
                attempts=1,
                last_error_code="APPLY_TERMINAL",
                last_error="admission webhook denied",
            ),
            ResourceReport(
                resource_id="Deployment/team/chat-app",
                phase=ResourcePhase.PENDING,
                attempts=0,
                last_error_code="BLOCKED_BY_DEPENDENCY_FAILURE",
                blocked_by=("Secret/team/chat-app-config",),
            ),
        ),
    )
    console = Console(record=True, width=200, color_system=None)

    console.print(reporting_build_summary_table("run-1", report))
    rendered = console.export_text()

    assert "Run run-1" in rendered
    assert "failed 1/3 resources Ready" in rendered
    assert "APPLY_TERMINAL: admission webhook denied" in rendered
    assert "blocked by Secret/team/chat-app-config" in rendered


def test_logging_prefix_filter_marks_third_party_records() -> None:
    prefix_filter = ThirdPartyPrefixFilter()
    project_record = logging.LogRecord("bootstrapper.jobs", logging.INFO, __file__, 1, "msg", None, None)
    library_record = logging.LogRecord("httpx._client", logging.INFO, __file__, 1, "msg", None, None)

    assert prefix_filter.filter(project_record) is True
    assert prefix_filter.filter(library_record) is True
    assert project_record.prefix == ""
    assert library_record.prefix == "[httpx]"
