"""Table metadata for bootstrap run persistence.

Timestamps are stored as ISO-8601 UTC text and JSON payloads as text so the
same statements run unchanged on SQLite and PostgreSQL.
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    text,
)

metadata = MetaData()

RUN_STATUS_RUNNING = "running"
RUN_STATUS_VALUES = ("running", "succeeded", "failed", "rolled_back", "cancelled")
RESOURCE_PHASE_VALUES = ("Pending", "Applying", "WaitingReady", "Ready", "Failed", "RolledBack")


def _schema_in_clause(column_name: str, values: tuple[str, ...]) -> str:
    quoted_values = ", ".join(f"'{value}'" for value in values)
    return f"{column_name} in ({quoted_values})"


bootstrap_run_table = Table(
    "bootstrap_run",
    metadata,
    Column("run_id", Text(), primary_key=True),
    Column("instance_name", Text(), nullable=False),
    Column("namespace", Text(), nullable=False),
    Column("run_type", Text(), nullable=False),
    Column("status", Text(), nullable=False),
    Column("desired_state", Text(), nullable=False),
    Column("started_at_utc", Text(), nullable=False),
    Column("ended_at_utc", Text(), nullable=True),
    Column("duration_ms", Integer(), nullable=True),
    Column("error_code", Text(), nullable=True),
    Column("error_message", Text(), nullable=True),
    Column("diagnostics", Text(), nullable=True),
    Column("created_at_utc", Text(), nullable=False),
    CheckConstraint(_schema_in_clause("status", RUN_STATUS_VALUES), name="ck_bootstrap_run_status"),
    CheckConstraint("run_type in ('bootstrap', 'resume')", name="ck_bootstrap_run_run_type"),
)

Index("ix_bootstrap_run_started_at_utc", bootstrap_run_table.c.started_at_utc)
Index(
    "uq_bootstrap_run_active_instance",
    bootstrap_run_table.c.instance_name,
    unique=True,
    sqlite_where=text("status = 'running'"),
    postgresql_where=text("status = 'running'"),
)

bootstrap_resource_table = Table(
    "bootstrap_resource",
    metadata,
    Column("run_id", Text(), ForeignKey("bootstrap_run.run_id", ondelete="CASCADE"), primary_key=True),
    Column("resource_id", Text(), primary_key=True),
    Column("plan_position", Integer(), nullable=False),
    Column("phase", Text(), nullable=False),
    Column("attempts", Integer(), nullable=False, server_default=text("0")),
    Column("last_error_code", Text(), nullable=True),
    Column("last_error", Text(), nullable=True),
    Column("updated_at_utc", Text(), nullable=False),
    CheckConstraint(_schema_in_clause("phase", RESOURCE_PHASE_VALUES), name="ck_bootstrap_resource_phase"),
)

bootstrap_transition_table = Table(
    "bootstrap_transition",
    metadata,
    Column("transition_id", Integer(), primary_key=True, autoincrement=True),
    Column("run_id", Text(), ForeignKey("bootstrap_run.run_id", ondelete="CASCADE"), nullable=False),
    Column("resource_id", Text(), nullable=False),
    Column("from_phase", Text(), nullable=False),
    Column("to_phase", Text(), nullable=False),
    Column("attempt", Integer(), nullable=False, server_default=text("0")),
    Column("error_code", Text(), nullable=True),
    Column("error_message", Text(), nullable=True),
    Column("at_utc", Text(), nullable=False),
)

Index("ix_bootstrap_transition_run_id", bootstrap_transition_table.c.run_id, bootstrap_transition_table.c.transition_id)
