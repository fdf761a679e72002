"""Sequential, order-safe application of fixes within a file."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from cconv.agents.errors import AgentError, FixRangeError
from cconv.models import FixResult, ReviewResult, ReviewRule

if TYPE_CHECKING:
    from cconv.agents.provider import AgentProvider


class FixStatus(Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    DECLINED = "declined"
    REJECTED = "rejected"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class FixOutcome:
    """What happened to one issue."""

    issue: ReviewResult
    status: FixStatus
    detail: str = ""
    fix: FixResult | None = None


@dataclass
class FileFixOutcome:
    """Fix results for one file."""

    path: str
    original_content: str
    content: str
    outcomes: list[FixOutcome] = field(default_factory=list)
    written: bool = False

    @property
    def applied_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is FixStatus.APPLIED)

    @property
    def changed(self) -> bool:
        return self.content != self.original_content


def apply_fix_to_content(content: str, fix: FixResult) -> str:
    """Replace lines ``start_line..end_line`` (1-based, inclusive) with the fixed content.

    Raises:
        FixRangeError: The range ends before it starts
    """
    if not fix.has_valid_range:
        raise FixRangeError(fix.start_line, fix.end_line)
    lines = content.split("\n")
    replacement = fix.fixed_content.split("\n") if fix.fixed_content else []
    lines[fix.start_line - 1 : fix.end_line] = replacement
    return "\n".join(lines)


class FixApplier:
    """Requests and applies fixes for the issues of one file, bottom-up."""

    def __init__(self, provider: "AgentProvider", logger: logging.Logger | None = None) -> None:
        self.provider = provider
        self.logger = logger or logging.getLogger(__name__)

    async def fix_content(
        self,
        path: str,
        content: str,
        issues: list[ReviewResult],
        rules: list[ReviewRule],
    ) -> FileFixOutcome:
        """Apply fixes to in-memory content.

        Issues are handled from the highest line down so earlier line numbers
        stay valid after each splice.
        """
        rules_by_id = {rule.id: rule for rule in rules}
        result = FileFixOutcome(path=path, original_content=content, content=content)

        for issue in sorted(issues, key=lambda i: (i.line, i.column), reverse=True):
            rule = rules_by_id.get(issue.rule_id)
            if rule is None:
                self.logger.warning(f"No rule {issue.rule_id} for {path}:{issue.line}, skipping")
                result.outcomes.append(FixOutcome(issue, FixStatus.SKIPPED, f"Unknown rule {issue.rule_id}"))
                continue

            try:
                fix = await self.provider.fix_issue(path, result.content, issue, rule)
            except FixRangeError as e:
                self.logger.warning(f"Rejected fix for {path}:{issue.line}: {e}")
                result.outcomes.append(FixOutcome(issue, FixStatus.REJECTED, str(e)))
                continue
            except AgentError as e:
                self.logger.warning(f"Fix failed for {path}:{issue.line}: {e}")
                result.outcomes.append(FixOutcome(issue, FixStatus.FAILED, str(e)))
                continue

            if not fix.success:
                result.outcomes.append(FixOutcome(issue, FixStatus.DECLINED, fix.description, fix))
                continue

            try:
                updated = apply_fix_to_content(result.content, fix)
            except FixRangeError as e:
                result.outcomes.append(FixOutcome(issue, FixStatus.REJECTED, str(e), fix))
                continue

            if updated == result.content:
                result.outcomes.append(FixOutcome(issue, FixStatus.UNCHANGED, fix.description, fix))
                continue

            result.content = updated
            result.outcomes.append(FixOutcome(issue, FixStatus.APPLIED, fix.description, fix))
            self.logger.debug(f"Applied fix at {path}:{fix.start_line}-{fix.end_line}")

        return result

    async def fix_file(
        self,
        path: str,
        issues: list[ReviewResult],
        rules: list[ReviewRule],
        write: bool = True,
    ) -> FileFixOutcome:
        """Fix a file on disk; it is rewritten only when a fix changed it."""
        file_path = Path(path)
        content = file_path.read_text(encoding="utf-8")
        result = await self.fix_content(path, content, issues, rules)

        if write and result.applied_count > 0 and result.changed:
            file_path.write_text(result.content, encoding="utf-8")
            result.written = True
            self.logger.info(f"Applied {result.applied_count} fixes to {path}")
        return result
