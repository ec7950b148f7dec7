"""Database engine and schema utilities.

This module centralizes database connectivity primitives to enforce the db-layer
boundary for all SQLAlchemy usage.
"""

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError

from .schema import metadata


def db_create_engine(database_url: str) -> Engine:
    """Create the SQLAlchemy engine for run persistence.

    SQLite connections are opened with `check_same_thread=False` because run
    transitions are recorded from convergence worker threads.

    Args:
        database_url: SQLAlchemy database URL.

    Returns:
        Engine: Configured SQLAlchemy engine.

    Raises:
        ValueError: Raised when the database URL is blank.
    """

    normalized_database_url = database_url.strip()
    if not normalized_database_url:
        raise ValueError("database_url must not be blank")

    if normalized_database_url.startswith("sqlite"):
        return create_engine(
            normalized_database_url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )
    return create_engine(normalized_database_url, pool_pre_ping=True)


def db_create_schema(engine: Engine) -> None:
    """Create missing run persistence tables.

    Used for the embedded SQLite default; managed databases are migrated with
    Alembic instead.

    Raises:
        RuntimeError: Raised when table creation fails.
    """

    if engine is None:
        raise ValueError("engine must not be None")

    try:
        metadata.create_all(engine)
    except SQLAlchemyError as error:
        raise RuntimeError("failed to create run persistence schema") from error
