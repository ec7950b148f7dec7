"""Job layer package for convergence and run orchestration."""

from .bootstrap_orchestrator import (
	BOOTSTRAP_UNEXPECTED_ERROR_CODE,
	BootstrapJobOrchestrator,
	BootstrapOrchestratorConfig,
	PreparedBootstrapRun,
)
from .cancellation import RunCancellation
from .convergence_engine import (
	APPLY_TERMINAL_CODE,
	HEALTH_TERMINAL_CODE,
	READY_TIMEOUT_CODE,
	RETRY_BUDGET_EXHAUSTED_CODE,
	TRANSIENT_ERROR_CODE,
	ConvergenceConfig,
	ConvergenceEngine,
	ConvergenceResult,
)
from .diagnostics import (
	BLOCKED_BY_DEPENDENCY_FAILURE_CODE,
	ROLLBACK_FAILED_CODE,
	ResourceReport,
	RunReport,
	job_build_run_report,
	job_extract_failed_resources_from_diagnostics,
)
from .interfaces import JobExecutionResult, JobOrchestratorPort
from .retry_policy import RetryPolicy
from .run_state import IllegalPhaseTransitionError, ResourceStatus, RunState, RunStateListener, RunStateStatusListener

__all__ = [
	"APPLY_TERMINAL_CODE",
	"BLOCKED_BY_DEPENDENCY_FAILURE_CODE",
	"BOOTSTRAP_UNEXPECTED_ERROR_CODE",
	"BootstrapJobOrchestrator",
	"BootstrapOrchestratorConfig",
	"ConvergenceConfig",
	"ConvergenceEngine",
	"ConvergenceResult",
	"HEALTH_TERMINAL_CODE",
	"IllegalPhaseTransitionError",
	"JobExecutionResult",
	"JobOrchestratorPort",
	"PreparedBootstrapRun",
	"READY_TIMEOUT_CODE",
	"RETRY_BUDGET_EXHAUSTED_CODE",
	"TRANSIENT_ERROR_CODE",
	"ROLLBACK_FAILED_CODE",
	"ResourceReport",
	"ResourceStatus",
	"RetryPolicy",
	"RunCancellation",
	"RunReport",
	"RunState",
	"RunStateListener",
	"RunStateStatusListener",
	"job_build_run_report",
	"job_extract_failed_resources_from_diagnostics",
]
