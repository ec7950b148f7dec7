"""Database health service for run persistence connectivity and schema checks."""

from sqlalchemy import Engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError

from bootstrapper.domain import HealthStatus

from .interfaces import DatabaseHealthPort
from .schema import metadata


class SQLAlchemyDatabaseHealthService(DatabaseHealthPort):
    """Health checks for the run store: reachable and migrated."""

    def __init__(self, engine: Engine):
        """Initialize database health service.

        Args:
            engine: SQLAlchemy engine used for connectivity checks.

        Raises:
            ValueError: Raised when engine is None.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        self._engine = engine

    def db_connection_label(self) -> str:
        """Return the target database URL with the password masked."""

        return self._engine.url.render_as_string(hide_password=True)

    def db_check_health(self) -> HealthStatus:
        """Verify connectivity and that every run persistence table exists.

        Returns:
            HealthStatus: `ok` when usable, `degraded` when tables are missing.

        Raises:
            ConnectionError: Raised when connectivity check fails.
        """

        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
                existing_tables = set(inspect(connection).get_table_names())
        except SQLAlchemyError as error:
            raise ConnectionError("database connectivity check failed") from error

        missing_tables = sorted(set(metadata.tables) - existing_tables)
        if missing_tables:
            return HealthStatus(
                status="degraded",
                detail=f"run persistence tables missing: {', '.join(missing_tables)}",
            )
        return HealthStatus(status="ok", detail="database connectivity and schema verified")
