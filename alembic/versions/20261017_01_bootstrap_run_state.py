"""Bootstrap run state baseline

Revision ID: 20261017_01
Revises: None
Create Date: 2026-10-17
"""
# pylint: disable=no-member,invalid-name,wrong-import-order

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_RUN_STATUS_CHECK = "status in ('running', 'succeeded', 'failed', 'rolled_back', 'cancelled')"
_RESOURCE_PHASE_CHECK = "phase in ('Pending', 'Applying', 'WaitingReady', 'Ready', 'Failed', 'RolledBack')"


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "bootstrap_run",
        sa.Column("run_id", sa.Text(), primary_key=True),
        sa.Column("instance_name", sa.Text(), nullable=False),
        sa.Column("namespace", sa.Text(), nullable=False),
        sa.Column("run_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("desired_state", sa.Text(), nullable=False),
        sa.Column("started_at_utc", sa.Text(), nullable=False),
        sa.Column("ended_at_utc", sa.Text(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("diagnostics", sa.Text(), nullable=True),
        sa.Column("created_at_utc", sa.Text(), nullable=False),
        sa.CheckConstraint(_RUN_STATUS_CHECK, name="ck_bootstrap_run_status"),
        sa.CheckConstraint("run_type in ('bootstrap', 'resume')", name="ck_bootstrap_run_run_type"),
    )
    op.create_index("ix_bootstrap_run_started_at_utc", "bootstrap_run", ["started_at_utc"])
    op.create_index(
        "uq_bootstrap_run_active_instance",
        "bootstrap_run",
        ["instance_name"],
        unique=True,
        sqlite_where=sa.text("status = 'running'"),
        postgresql_where=sa.text("status = 'running'"),
    )

    op.create_table(
        "bootstrap_resource",
        sa.Column(
            "run_id",
            sa.Text(),
            sa.ForeignKey("bootstrap_run.run_id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("resource_id", sa.Text(), primary_key=True),
        sa.Column("plan_position", sa.Integer(), nullable=False),
        sa.Column("phase", sa.Text(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("last_error_code", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("updated_at_utc", sa.Text(), nullable=False),
        sa.CheckConstraint(_RESOURCE_PHASE_CHECK, name="ck_bootstrap_resource_phase"),
    )

    op.create_table(
        "bootstrap_transition",
        sa.Column("transition_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "run_id",
            sa.Text(),
            sa.ForeignKey("bootstrap_run.run_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("resource_id", sa.Text(), nullable=False),
        sa.Column("from_phase", sa.Text(), nullable=False),
        sa.Column("to_phase", sa.Text(), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("at_utc", sa.Text(), nullable=False),
    )
    op.create_index("ix_bootstrap_transition_run_id", "bootstrap_transition", ["run_id", "transition_id"])


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_index("ix_bootstrap_transition_run_id", table_name="bootstrap_transition")
    op.drop_table("bootstrap_transition")
    op.drop_table("bootstrap_resource")
    op.drop_index("uq_bootstrap_run_active_instance", table_name="bootstrap_run")
    op.drop_index("ix_bootstrap_run_started_at_utc", table_name="bootstrap_run")
    op.drop_table("bootstrap_run")
