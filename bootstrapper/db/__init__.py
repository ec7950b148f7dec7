"""Database layer package for run persistence boundaries."""

from .bootstrap_run import SQLAlchemyBootstrapRunService
from .health import SQLAlchemyDatabaseHealthService
from .interfaces import (
	BootstrapResourceRecord,
	BootstrapRunAlreadyActiveError,
	BootstrapRunRecord,
	BootstrapRunRepositoryPort,
	BootstrapRunState,
	BootstrapTransitionRecord,
	DatabaseHealthPort,
)
from .schema import metadata
from .session import db_create_engine, db_create_schema

__all__ = [
	"BootstrapResourceRecord",
	"BootstrapRunAlreadyActiveError",
	"BootstrapRunRecord",
	"BootstrapRunRepositoryPort",
	"BootstrapRunState",
	"BootstrapTransitionRecord",
	"DatabaseHealthPort",
	"SQLAlchemyBootstrapRunService",
	"SQLAlchemyDatabaseHealthService",
	"db_create_engine",
	"db_create_schema",
	"metadata",
]
