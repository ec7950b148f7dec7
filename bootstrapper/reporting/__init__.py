"""Status reporting package for progress events and run summaries."""

from .events import ProgressEventStream, reporting_progress_event_from_transition
from .reporters import LoggingProgressReporter, reporting_build_summary_table

__all__ = [
	"LoggingProgressReporter",
	"ProgressEventStream",
	"reporting_build_summary_table",
	"reporting_progress_event_from_transition",
]
