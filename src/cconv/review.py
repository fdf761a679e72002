"""Review, fix and rule generation workflows.

These functions glue file discovery, diff parsing and the orchestrator
together. They raise ``WorkflowError`` for conditions that make a run
pointless (no rules, no files, no diff); per-task agent failures are
reported in the returned batch instead.
"""

import logging
from dataclasses import dataclass, field

from cconv.config import Config
from cconv.diff import filter_diff_files, format_diff_for_review, parse_diff
from cconv.files import display_path, get_file_paths, read_text
from cconv.models import (
    ReviewResult,
    ReviewRule,
    RuleMerge,
    filter_rules_by_severity,
    merge_rules,
)
from cconv.orchestrator.orchestrator import BatchResult, ReviewOrchestrator, ReviewTarget

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """A run cannot proceed."""


@dataclass
class ReviewRun:
    """Outcome of a review workflow."""

    results: list[ReviewResult] = field(default_factory=list)
    batch: BatchResult | None = None
    message: str | None = None

    @property
    def has_issues(self) -> bool:
        return bool(self.results)


@dataclass
class FixRun:
    review: ReviewRun
    fixes: BatchResult | None = None


@dataclass
class RuleGenerationRun:
    merge: RuleMerge
    rules: list[ReviewRule] = field(default_factory=list)
    batch: BatchResult | None = None


def _require_rules(config: Config) -> None:
    if not config.rules:
        raise WorkflowError('No review rules found. Use "cconv add" to create rules.')


def _resolve_files(paths: list[str], config: Config) -> list[str]:
    files = get_file_paths(
        paths,
        include=config.file_patterns.include,
        exclude=config.file_patterns.exclude,
    )
    if not files:
        raise WorkflowError(f"No files found matching patterns: {', '.join(paths)}")
    return files


def file_targets(paths: list[str], config: Config) -> list[ReviewTarget]:
    """Read every matching file into a whole-file review target."""
    return [
        ReviewTarget(path=display_path(path), content=read_text(path))
        for path in _resolve_files(paths, config)
    ]


def diff_targets(diff_text: str, config: Config) -> list[ReviewTarget]:
    """Turn unified diff text into one rendered review target per file.

    Raises:
        WorkflowError: The text contains no reviewable file changes
    """
    diff_files = parse_diff(diff_text)
    if not diff_files:
        raise WorkflowError("No valid diff found in stdin")

    kept = filter_diff_files(
        diff_files,
        include=config.file_patterns.include,
        exclude=config.file_patterns.exclude,
    )
    logger.debug(f"Diff has {len(diff_files)} files, {len(kept)} match the configured patterns")
    return [
        ReviewTarget(path=diff_file.path, content=format_diff_for_review([diff_file]), is_diff=True)
        for diff_file in kept
    ]


async def _review_targets(
    targets: list[ReviewTarget], config: Config, orchestrator: ReviewOrchestrator
) -> ReviewRun:
    active = filter_rules_by_severity(config.rules, config.min_severity)
    if not active:
        return ReviewRun(
            message=f"No rules match minimum severity level '{config.min_severity.value}'"
        )
    if not targets:
        return ReviewRun(message="No files match the configured patterns")

    logger.info(f"Reviewing {len(targets)} files with {len(active)} rules")
    batch = await orchestrator.review(targets, config.rules, config.min_severity)
    return ReviewRun(results=batch.results, batch=batch)


async def review_files(paths: list[str], config: Config, orchestrator: ReviewOrchestrator) -> ReviewRun:
    """Review files, directories or globs against the configured rules."""
    _require_rules(config)
    return await _review_targets(file_targets(paths, config), config, orchestrator)


async def review_diff(diff_text: str, config: Config, orchestrator: ReviewOrchestrator) -> ReviewRun:
    """Review the changes in a unified diff against the configured rules."""
    _require_rules(config)
    return await _review_targets(diff_targets(diff_text, config), config, orchestrator)


def group_by_file(results: list[ReviewResult]) -> dict[str, list[ReviewResult]]:
    grouped: dict[str, list[ReviewResult]] = {}
    for result in results:
        grouped.setdefault(result.file, []).append(result)
    return grouped


async def fix_files(
    paths: list[str],
    config: Config,
    orchestrator: ReviewOrchestrator,
    write: bool = True,
) -> FixRun:
    """Review files, then fix the issues found, one file per worker."""
    review = await review_files(paths, config, orchestrator)
    if not review.results:
        return FixRun(review=review)

    issues = group_by_file(review.results)
    logger.info(f"Found {len(review.results)} issues in {len(issues)} files, starting fixes")
    fixes = await orchestrator.fix(issues, config.rules, write=write)
    return FixRun(review=review, fixes=fixes)


async def generate_rules(
    config: Config,
    orchestrator: ReviewOrchestrator,
    paths: list[str] | None = None,
    content: str | None = None,
) -> RuleGenerationRun:
    """Generate rules from files or raw content and merge them into the config.

    Each file is sent on its own, prefixed with its path. The merged rule list
    is stored on ``config.rules``; saving is left to the caller.
    """
    if paths:
        files = _resolve_files(paths, config)
        sources = [(display_path(f), f"// File: {display_path(f)}\n{read_text(f)}") for f in files]
        logger.info(f"Generating review rules from {len(files)} files")
    elif content is not None and content.strip():
        sources = [("stdin", content)]
        logger.info("Generating review rules")
    else:
        raise WorkflowError("No path provided and no input from stdin")

    batch = await orchestrator.generate_rules(sources)
    if batch.failures and not batch.results:
        raise WorkflowError(f"Rule generation failed: {batch.failures[0].error}")

    merge = merge_rules(config.rules, batch.results)
    config.rules = merge.rules
    return RuleGenerationRun(merge=merge, rules=batch.results, batch=batch)
