"""Database service for bootstrap run lifecycle, resource phases and transition history."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import Engine, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bootstrapper.domain import PhaseTransition, ResourcePhase, domain_utc_now

from .interfaces import (
    BootstrapResourceRecord,
    BootstrapRunAlreadyActiveError,
    BootstrapRunRecord,
    BootstrapRunRepositoryPort,
    BootstrapRunState,
    BootstrapTransitionRecord,
)
from .schema import RUN_STATUS_RUNNING

_FINAL_RUN_STATUSES = frozenset({"succeeded", "failed", "rolled_back", "cancelled"})
_RESUMABLE_RUN_STATUSES = frozenset({RUN_STATUS_RUNNING, "cancelled"})

_RUN_COLUMNS = (
    "run_id, instance_name, namespace, run_type, status, desired_state, started_at_utc, "
    "ended_at_utc, duration_ms, error_code, error_message, diagnostics, created_at_utc"
)


class SQLAlchemyBootstrapRunService(BootstrapRunRepositoryPort):
    """SQLAlchemy-backed bootstrap run service.

    This service centralizes run write/read operations in the db layer,
    including single-active-run enforcement per application instance.
    """

    def __init__(self, engine: Engine):
        """Initialize run persistence service.

        Args:
            engine: SQLAlchemy engine used for all persistence operations.

        Raises:
            ValueError: Raised when engine is None.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_bootstrap_run_create_started(
        self,
        instance_name: str,
        namespace: str,
        desired_state: dict[str, Any],
        resource_ids: list[str],
    ) -> BootstrapRunRecord:
        """Create a running run with one Pending resource row per plan entry.

        Args:
            instance_name: Application instance name.
            namespace: Target namespace.
            desired_state: Desired-state document as JSON-compatible data.
            resource_ids: Plan resource identifiers in plan order.

        Returns:
            BootstrapRunRecord: Newly created run.

        Raises:
            BootstrapRunAlreadyActiveError: Raised when the instance already has a running run.
            ValueError: Raised when required inputs are blank.
            RuntimeError: Raised when persistence fails.
        """

        normalized_instance_name = self._validate_non_empty_text(instance_name, "instance_name")
        normalized_namespace = self._validate_non_empty_text(namespace, "namespace")
        if not resource_ids:
            raise ValueError("resource_ids must not be empty")

        run_id = str(uuid4())
        now_text = domain_utc_now().isoformat()
        try:
            with self._engine.begin() as connection:
                active_row = connection.execute(
                    text(
                        "SELECT run_id "
                        "FROM bootstrap_run "
                        "WHERE instance_name = :instance_name AND status = 'running' "
                        "LIMIT 1"
                    ),
                    {"instance_name": normalized_instance_name},
                ).first()
                if active_row is not None:
                    raise BootstrapRunAlreadyActiveError(
                        f"run already active for instance={normalized_instance_name}: {active_row[0]}"
                    )

                connection.execute(
                    text(
                        "INSERT INTO bootstrap_run ("
                        "run_id, instance_name, namespace, run_type, status, desired_state, "
                        "started_at_utc, created_at_utc"
                        ") VALUES ("
                        ":run_id, :instance_name, :namespace, 'bootstrap', 'running', :desired_state, "
                        ":now_utc, :now_utc"
                        ")"
                    ),
                    {
                        "run_id": run_id,
                        "instance_name": normalized_instance_name,
                        "namespace": normalized_namespace,
                        "desired_state": json.dumps(desired_state, sort_keys=True),
                        "now_utc": now_text,
                    },
                )
                connection.execute(
                    text(
                        "INSERT INTO bootstrap_resource ("
                        "run_id, resource_id, plan_position, phase, attempts, updated_at_utc"
                        ") VALUES ("
                        ":run_id, :resource_id, :plan_position, :phase, 0, :now_utc"
                        ")"
                    ),
                    [
                        {
                            "run_id": run_id,
                            "resource_id": resource_id,
                            "plan_position": position,
                            "phase": ResourcePhase.PENDING.value,
                            "now_utc": now_text,
                        }
                        for position, resource_id in enumerate(resource_ids)
                    ],
                )
                return self._db_fetch_run_by_id_or_raise(connection=connection, run_id=run_id)
        except IntegrityError as error:
            raise BootstrapRunAlreadyActiveError(
                f"run already active for instance={normalized_instance_name}"
            ) from error
        except SQLAlchemyError as error:
            raise RuntimeError("failed to create started bootstrap run") from error

    def db_bootstrap_run_mark_resumed(self, run_id: str) -> BootstrapRunRecord:
        """Move a cancelled or interrupted run back to running.

        Args:
            run_id: Run identifier.

        Returns:
            BootstrapRunRecord: Updated run.

        Raises:
            LookupError: Raised when run is not found.
            ValueError: Raised when run status cannot be resumed.
            BootstrapRunAlreadyActiveError: Raised when another run of the instance is running.
            RuntimeError: Raised when persistence fails.
        """

        try:
            with self._engine.begin() as connection:
                current = self._db_fetch_run_by_id_or_raise(connection=connection, run_id=run_id)
                if current.state.status not in _RESUMABLE_RUN_STATUSES:
                    raise ValueError(f"run {run_id} has status={current.state.status} and cannot be resumed")

                other_active_row = connection.execute(
                    text(
                        "SELECT run_id "
                        "FROM bootstrap_run "
                        "WHERE instance_name = :instance_name AND status = 'running' AND run_id <> :run_id "
                        "LIMIT 1"
                    ),
                    {"instance_name": current.instance_name, "run_id": run_id},
                ).first()
                if other_active_row is not None:
                    raise BootstrapRunAlreadyActiveError(
                        f"run already active for instance={current.instance_name}: {other_active_row[0]}"
                    )

                connection.execute(
                    text(
                        "UPDATE bootstrap_run SET "
                        "status = 'running', "
                        "run_type = 'resume', "
                        "ended_at_utc = NULL, "
                        "duration_ms = NULL, "
                        "error_code = NULL, "
                        "error_message = NULL "
                        "WHERE run_id = :run_id"
                    ),
                    {"run_id": run_id},
                )
                return self._db_fetch_run_by_id_or_raise(connection=connection, run_id=run_id)
        except IntegrityError as error:
            raise BootstrapRunAlreadyActiveError(f"run already active for run_id={run_id}") from error
        except SQLAlchemyError as error:
            raise RuntimeError("failed to mark bootstrap run resumed") from error

    def db_bootstrap_run_record_transition(
        self,
        run_id: str,
        transition: PhaseTransition,
        attempts: int,
        last_error_code: str | None,
        last_error: str | None,
    ) -> None:
        """Persist one phase transition and the resulting resource status.

        Args:
            run_id: Run identifier.
            transition: Recorded transition.
            attempts: Attempt counter after the transition.
            last_error_code: Latest error code after the transition.
            last_error: Latest error message after the transition.

        Raises:
            LookupError: Raised when resource row is not found.
            RuntimeError: Raised when persistence fails.
        """

        at_utc_text = transition.at_utc.isoformat()
        try:
            with self._engine.begin() as connection:
                updated = connection.execute(
                    text(
                        "UPDATE bootstrap_resource SET "
                        "phase = :phase, "
                        "attempts = :attempts, "
                        "last_error_code = :last_error_code, "
                        "last_error = :last_error, "
                        "updated_at_utc = :updated_at_utc "
                        "WHERE run_id = :run_id AND resource_id = :resource_id"
                    ),
                    {
                        "phase": transition.to_phase.value,
                        "attempts": attempts,
                        "last_error_code": last_error_code,
                        "last_error": last_error,
                        "updated_at_utc": at_utc_text,
                        "run_id": run_id,
                        "resource_id": transition.resource_id,
                    },
                )
                if updated.rowcount == 0:
                    raise LookupError(f"bootstrap resource not found: {run_id}/{transition.resource_id}")

                connection.execute(
                    text(
                        "INSERT INTO bootstrap_transition ("
                        "run_id, resource_id, from_phase, to_phase, attempt, error_code, error_message, at_utc"
                        ") VALUES ("
                        ":run_id, :resource_id, :from_phase, :to_phase, :attempt, :error_code, :error_message, :at_utc"
                        ")"
                    ),
                    {
                        "run_id": run_id,
                        "resource_id": transition.resource_id,
                        "from_phase": transition.from_phase.value,
                        "to_phase": transition.to_phase.value,
                        "attempt": transition.attempt,
                        "error_code": transition.error_code,
                        "error_message": transition.error_message,
                        "at_utc": at_utc_text,
                    },
                )
        except SQLAlchemyError as error:
            raise RuntimeError("failed to record bootstrap transition") from error

    def db_bootstrap_resource_record_progress(
        self,
        run_id: str,
        resource_id: str,
        attempts: int,
        last_error_code: str | None,
        last_error: str | None,
    ) -> None:
        """Persist attempt count and last error without touching phase or history.

        Args:
            run_id: Run identifier.
            resource_id: Resource identifier.
            attempts: Attempts consumed so far.
            last_error_code: Latest error code.
            last_error: Latest error message.

        Raises:
            LookupError: Raised when resource row is not found.
            RuntimeError: Raised when persistence fails.
        """

        try:
            with self._engine.begin() as connection:
                updated = connection.execute(
                    text(
                        "UPDATE bootstrap_resource SET "
                        "attempts = :attempts, "
                        "last_error_code = :last_error_code, "
                        "last_error = :last_error, "
                        "updated_at_utc = :updated_at_utc "
                        "WHERE run_id = :run_id AND resource_id = :resource_id"
                    ),
                    {
                        "attempts": attempts,
                        "last_error_code": last_error_code,
                        "last_error": last_error,
                        "updated_at_utc": domain_utc_now().isoformat(),
                        "run_id": run_id,
                        "resource_id": resource_id,
                    },
                )
                if updated.rowcount == 0:
                    raise LookupError(f"bootstrap resource not found: {run_id}/{resource_id}")
        except SQLAlchemyError as error:
            raise RuntimeError("failed to record bootstrap resource progress") from error

    def db_bootstrap_run_finalize(
        self,
        run_id: str,
        status: str,
        error_code: str | None,
        error_message: str | None,
        diagnostics: dict[str, Any] | None,
    ) -> BootstrapRunRecord:
        """Finalize one run with deterministic end timestamp and duration.

        Args:
            run_id: Run identifier.
            status: Final status (`succeeded`, `failed`, `rolled_back`, `cancelled`).
            error_code: Optional deterministic error code.
            error_message: Optional human-readable message.
            diagnostics: Optional structured diagnostics payload.

        Returns:
            BootstrapRunRecord: Finalized run row.

        Raises:
            LookupError: Raised when run is not found.
            ValueError: Raised when final status is invalid.
            RuntimeError: Raised when persistence fails.
        """

        if status not in _FINAL_RUN_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(sorted(_FINAL_RUN_STATUSES))}")

        diagnostics_payload = None
        if diagnostics is not None:
            diagnostics_payload = json.dumps(diagnostics)

        ended_at_utc = domain_utc_now()
        try:
            with self._engine.begin() as connection:
                current = self._db_fetch_run_by_id_or_raise(connection=connection, run_id=run_id)
                duration_ms = max(0, int((ended_at_utc - current.state.started_at_utc).total_seconds() * 1000))
                connection.execute(
                    text(
                        "UPDATE bootstrap_run SET "
                        "status = :status, "
                        "ended_at_utc = :ended_at_utc, "
                        "duration_ms = :duration_ms, "
                        "error_code = :error_code, "
                        "error_message = :error_message, "
                        "diagnostics = :diagnostics "
                        "WHERE run_id = :run_id"
                    ),
                    {
                        "status": status,
                        "ended_at_utc": ended_at_utc.isoformat(),
                        "duration_ms": duration_ms,
                        "error_code": error_code,
                        "error_message": error_message,
                        "diagnostics": diagnostics_payload,
                        "run_id": run_id,
                    },
                )
                return self._db_fetch_run_by_id_or_raise(connection=connection, run_id=run_id)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to finalize bootstrap run") from error

    def db_bootstrap_run_get_by_id(self, run_id: str) -> BootstrapRunRecord | None:
        """Fetch one bootstrap run by id.

        Args:
            run_id: Run identifier.

        Returns:
            BootstrapRunRecord | None: Matching run row or None.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                row = connection.execute(
                    text(f"SELECT {_RUN_COLUMNS} FROM bootstrap_run WHERE run_id = :run_id"),
                    {"run_id": run_id},
                ).mappings().first()
                if row is None:
                    return None
                return self._map_bootstrap_run_record(row)
        except SQLAlchemyError as error:
            raise RuntimeError("failed to fetch bootstrap run by id") from error

    def db_bootstrap_run_list(self, limit: int, offset: int) -> list[BootstrapRunRecord]:
        """List runs with deterministic default ordering.

        Args:
            limit: Maximum number of rows.
            offset: Number of rows to skip.

        Returns:
            list[BootstrapRunRecord]: Ordered run rows.

        Raises:
            ValueError: Raised when limit or offset are invalid.
            RuntimeError: Raised when database read fails.
        """

        if limit < 1:
            raise ValueError("limit must be >= 1")
        if offset < 0:
            raise ValueError("offset must be >= 0")

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        f"SELECT {_RUN_COLUMNS} "
                        "FROM bootstrap_run "
                        "ORDER BY started_at_utc DESC, run_id DESC "
                        "LIMIT :limit OFFSET :offset"
                    ),
                    {"limit": limit, "offset": offset},
                ).mappings().all()
                return [self._map_bootstrap_run_record(row) for row in rows]
        except SQLAlchemyError as error:
            raise RuntimeError("failed to list bootstrap runs") from error

    def db_bootstrap_resource_list(self, run_id: str) -> list[BootstrapResourceRecord]:
        """List resource rows of one run in plan order.

        Args:
            run_id: Run identifier.

        Returns:
            list[BootstrapResourceRecord]: Resource rows ordered by plan position.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        "SELECT "
                        "run_id, resource_id, plan_position, phase, attempts, last_error_code, last_error, "
                        "updated_at_utc "
                        "FROM bootstrap_resource "
                        "WHERE run_id = :run_id "
                        "ORDER BY plan_position"
                    ),
                    {"run_id": run_id},
                ).mappings().all()
        except SQLAlchemyError as error:
            raise RuntimeError("failed to list bootstrap resources") from error

        return [
            BootstrapResourceRecord(
                run_id=row["run_id"],
                resource_id=row["resource_id"],
                plan_position=int(row["plan_position"]),
                phase=row["phase"],
                attempts=int(row["attempts"]),
                last_error_code=row["last_error_code"],
                last_error=row["last_error"],
                updated_at_utc=self._parse_timestamp(row["updated_at_utc"]),
            )
            for row in rows
        ]

    def db_bootstrap_transition_list(self, run_id: str) -> list[BootstrapTransitionRecord]:
        """List the transition history of one run in recording order.

        Args:
            run_id: Run identifier.

        Returns:
            list[BootstrapTransitionRecord]: Transition rows.

        Raises:
            RuntimeError: Raised when database read fails.
        """

        try:
            with self._engine.connect() as connection:
                rows = connection.execute(
                    text(
                        "SELECT "
                        "transition_id, run_id, resource_id, from_phase, to_phase, attempt, error_code, "
                        "error_message, at_utc "
                        "FROM bootstrap_transition "
                        "WHERE run_id = :run_id "
                        "ORDER BY transition_id"
                    ),
                    {"run_id": run_id},
                ).mappings().all()
        except SQLAlchemyError as error:
            raise RuntimeError("failed to list bootstrap transitions") from error

        return [
            BootstrapTransitionRecord(
                transition_id=int(row["transition_id"]),
                run_id=row["run_id"],
                resource_id=row["resource_id"],
                from_phase=row["from_phase"],
                to_phase=row["to_phase"],
                attempt=int(row["attempt"]),
                error_code=row["error_code"],
                error_message=row["error_message"],
                at_utc=self._parse_timestamp(row["at_utc"]),
            )
            for row in rows
        ]

    def _db_fetch_run_by_id_or_raise(self, connection, run_id: str) -> BootstrapRunRecord:
        """Fetch one run inside active transaction and raise when missing.

        Raises:
            LookupError: Raised when row cannot be found.
        """

        row = connection.execute(
            text(f"SELECT {_RUN_COLUMNS} FROM bootstrap_run WHERE run_id = :run_id"),
            {"run_id": run_id},
        ).mappings().first()
        if row is None:
            raise LookupError(f"bootstrap run not found: {run_id}")
        return self._map_bootstrap_run_record(row)

    def _map_bootstrap_run_record(self, row: Any) -> BootstrapRunRecord:
        """Map SQLAlchemy row mapping to typed run record.

        Args:
            row: SQLAlchemy mapping row.

        Returns:
            BootstrapRunRecord: Typed run record.

        Raises:
            TypeError: Raised when stored JSON payloads have an unexpected shape.
        """

        desired_state = json.loads(row["desired_state"])
        if not isinstance(desired_state, dict):
            raise TypeError("bootstrap_run.desired_state must be a JSON object")

        diagnostics_value = None
        if row["diagnostics"] is not None:
            diagnostics_value = json.loads(row["diagnostics"])
            if not isinstance(diagnostics_value, dict):
                raise TypeError("bootstrap_run.diagnostics must be a JSON object when present")

        ended_at_value = row["ended_at_utc"]
        return BootstrapRunRecord(
            run_id=row["run_id"],
            instance_name=row["instance_name"],
            namespace=row["namespace"],
            run_type=row["run_type"],
            desired_state=desired_state,
            state=BootstrapRunState(
                status=row["status"],
                started_at_utc=self._parse_timestamp(row["started_at_utc"]),
                ended_at_utc=self._parse_timestamp(ended_at_value) if ended_at_value is not None else None,
                duration_ms=row["duration_ms"],
                error_code=row["error_code"],
                error_message=row["error_message"],
                diagnostics=diagnostics_value,
            ),
            created_at_utc=self._parse_timestamp(row["created_at_utc"]),
        )

    def _parse_timestamp(self, value: Any) -> datetime:
        if isinstance(value, datetime):
            return value
        return datetime.fromisoformat(str(value))

    def _validate_non_empty_text(self, value: str, field_name: str) -> str:
        """Validate required text input and return stripped value.

        Raises:
            ValueError: Raised when value is blank.
        """

        stripped_value = value.strip()
        if not stripped_value:
            raise ValueError(f"{field_name} must not be blank")
        return stripped_value
