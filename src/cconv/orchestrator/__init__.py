"""Orchestrator components for cconv."""

from cconv.orchestrator.fixer import FileFixOutcome, FixApplier, FixOutcome, FixStatus
from cconv.orchestrator.orchestrator import (
    BatchResult,
    ReviewOrchestrator,
    ReviewTarget,
    ReviewTask,
    TaskFailure,
    expand_tasks,
    sort_results,
)

__all__ = [
    "BatchResult",
    "FileFixOutcome",
    "FixApplier",
    "FixOutcome",
    "FixStatus",
    "ReviewOrchestrator",
    "ReviewTarget",
    "ReviewTask",
    "TaskFailure",
    "expand_tasks",
    "sort_results",
]
