"""Concurrency-bounded fan-out of agent requests."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from cconv.agents.errors import AgentError
from cconv.agents.provider import AgentProvider
from cconv.models import ReviewResult, ReviewRule, Severity, filter_rules_by_severity
from cconv.orchestrator.fixer import FileFixOutcome, FixApplier

DEFAULT_MAX_CONCURRENCY = 5
MAX_CONCURRENCY_LIMIT = 20


@dataclass
class ReviewTarget:
    """Something to review: a whole file, or the rendered diff of one file."""

    path: str
    content: str
    is_diff: bool = False


@dataclass
class ReviewTask:
    """One target checked against one rule."""

    target: ReviewTarget
    rule: ReviewRule

    @property
    def label(self) -> str:
        return f"{self.target.path} [{self.rule.id}]"


@dataclass
class TaskFailure:
    """A task that exhausted its retries."""

    label: str
    error: str
    kind: str


@dataclass
class BatchResult:
    """Aggregated outcome of a fan-out."""

    results: list[Any] = field(default_factory=list)
    failures: list[TaskFailure] = field(default_factory=list)
    task_count: int = 0

    @property
    def succeeded(self) -> int:
        return self.task_count - len(self.failures)


def expand_tasks(targets: list[ReviewTarget], rules: list[ReviewRule]) -> list[ReviewTask]:
    """Pair every target with every rule, targets outermost."""
    return [ReviewTask(target, rule) for target in targets for rule in rules]


def sort_results(results: list[ReviewResult]) -> list[ReviewResult]:
    """Order results by file, then line, then column."""
    return sorted(results, key=lambda r: (r.file, r.line, r.column))


def _failure_kind(error: Exception) -> str:
    if isinstance(error, AgentError):
        return error.kind.value
    return type(error).__name__


class ReviewOrchestrator:
    """Runs agent requests in parallel under a global concurrency ceiling."""

    def __init__(
        self,
        provider: AgentProvider,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            provider: Agent provider that performs each request
            max_concurrency: Most requests allowed in flight at once (1-20)
            logger: Logger for progress and failures
        """
        if not 1 <= max_concurrency <= MAX_CONCURRENCY_LIMIT:
            raise ValueError(
                f"max_concurrency must be between 1 and {MAX_CONCURRENCY_LIMIT}, got {max_concurrency}"
            )
        self.provider = provider
        self.max_concurrency = max_concurrency
        self.logger = logger or logging.getLogger(__name__)

    async def _gather(
        self, jobs: list[tuple[str, Callable[[], Awaitable[Any]]]]
    ) -> tuple[list[Any], list[TaskFailure]]:
        """Run jobs under the semaphore; failures are logged and collected, never raised."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(job: Callable[[], Awaitable[Any]]) -> Any:
            async with semaphore:
                return await job()

        tasks = [asyncio.create_task(bounded(job), name=label) for label, job in jobs]
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        values: list[Any] = []
        failures: list[TaskFailure] = []
        for (label, _), outcome in zip(jobs, outcomes):
            if isinstance(outcome, Exception):
                self.logger.warning(f"{label} failed: {outcome}")
                failures.append(TaskFailure(label, str(outcome), _failure_kind(outcome)))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                values.append(outcome)
        return values, failures

    async def run(self, tasks: list[ReviewTask]) -> BatchResult:
        """Execute review tasks and return sorted results."""

        def job(task: ReviewTask) -> Callable[[], Awaitable[list[ReviewResult]]]:
            target, rule = task.target, task.rule
            if target.is_diff:
                return lambda: self.provider.review_diff(target.path, target.content, rule)
            return lambda: self.provider.review_file(target.path, target.content, rule)

        self.logger.info(
            f"Running {len(tasks)} review tasks with concurrency {self.max_concurrency}"
        )
        values, failures = await self._gather([(task.label, job(task)) for task in tasks])
        results = sort_results([result for batch in values for result in batch])

        self.logger.info(
            f"Review complete: {len(tasks) - len(failures)} tasks succeeded, {len(failures)} failed"
        )
        return BatchResult(results=results, failures=failures, task_count=len(tasks))

    async def review(
        self,
        targets: list[ReviewTarget],
        rules: list[ReviewRule],
        min_severity: Severity = Severity.INFO,
    ) -> BatchResult:
        """Review every target against every rule at or above ``min_severity``."""
        active_rules = filter_rules_by_severity(rules, min_severity)
        if len(active_rules) < len(rules):
            self.logger.debug(
                f"Skipping {len(rules) - len(active_rules)} rules below {Severity(min_severity).value}"
            )
        return await self.run(expand_tasks(targets, active_rules))

    async def generate_rules(self, sources: list[tuple[str, str]]) -> BatchResult:
        """Generate rules from several (label, content) sources in parallel.

        Results keep source order; rules from one source stay together.
        """
        jobs = [
            (label, (lambda content=content: self.provider.generate_rules(content)))
            for label, content in sources
        ]
        values, failures = await self._gather(jobs)
        rules = [rule for batch in values for rule in batch]
        return BatchResult(results=rules, failures=failures, task_count=len(sources))

    async def fix(
        self,
        issues_by_file: dict[str, list[ReviewResult]],
        rules: list[ReviewRule],
        write: bool = True,
    ) -> BatchResult:
        """Fix files in parallel; fixes within one file are applied one at a time."""
        applier = FixApplier(self.provider, logger=self.logger)
        jobs = [
            (path, (lambda path=path, issues=issues: applier.fix_file(path, issues, rules, write=write)))
            for path, issues in sorted(issues_by_file.items())
        ]
        outcomes: list[FileFixOutcome]
        outcomes, failures = await self._gather(jobs)
        return BatchResult(results=outcomes, failures=failures, task_count=len(jobs))
