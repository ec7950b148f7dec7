"""Regression tests for the Alembic run store migration baseline."""

from __future__ import annotations

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from bootstrapper.db import metadata

_ALEMBIC_INI_PATH = Path(__file__).resolve().parents[1] / "alembic.ini"


def _migration_insert_running_run(connection, run_id: str) -> None:
    connection.execute(
        text(
            "INSERT INTO bootstrap_run ("
            "run_id, instance_name, namespace, run_type, status, desired_state, started_at_utc, created_at_utc"
            ") VALUES ("
            ":run_id, 'chat', 'team', 'bootstrap', 'running', '{}', "
            "'2026-10-17T00:00:00+00:00', '2026-10-17T00:00:00+00:00'"
            ")"
        ),
        {"run_id": run_id},
    )


def test_migrations_apply_and_are_idempotent(tmp_path, monkeypatch) -> None:
    """Apply migrations on a fresh SQLite file and verify idempotent re-run.

    Args:
        tmp_path: Pytest temporary directory.
        monkeypatch: Pytest environment patching fixture.

    Returns:
        None: Assertions validate migration behavior.

    Raises:
        AssertionError: Raised when expected migration artifacts are missing.
    """

    database_url = f"sqlite:///{tmp_path / 'migrations.db'}"
    monkeypatch.setenv("DATABASE_URL", database_url)

    alembic_config = Config(str(_ALEMBIC_INI_PATH))
    command.upgrade(alembic_config, "head")
    command.upgrade(alembic_config, "head")

    verification_engine = create_engine(database_url)
    try:
        inspector = inspect(verification_engine)
        table_names = set(inspector.get_table_names())
        assert set(metadata.tables) | {"alembic_version"} <= table_names

        index_names = {index["name"] for index in inspector.get_indexes("bootstrap_run")}
        assert "uq_bootstrap_run_active_instance" in index_names
        assert "ix_bootstrap_run_started_at_utc" in index_names

        with verification_engine.begin() as connection:
            _migration_insert_running_run(connection, "run-1")
        with pytest.raises(IntegrityError):
            with verification_engine.begin() as connection:
                _migration_insert_running_run(connection, "run-2")
    finally:
        verification_engine.dispose()


def test_migrations_downgrade_removes_run_store_tables(tmp_path, monkeypatch) -> None:
    database_url = f"sqlite:///{tmp_path / 'downgrade.db'}"
    monkeypatch.setenv("DATABASE_URL", database_url)
    alembic_config = Config(str(_ALEMBIC_INI_PATH))

    command.upgrade(alembic_config, "head")
    command.downgrade(alembic_config, "base")

    verification_engine = create_engine(database_url)
    try:
        table_names = set(inspect(verification_engine).get_table_names())
    finally:
        verification_engine.dispose()
    assert table_names.isdisjoint(metadata.tables)
