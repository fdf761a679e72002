"""Rule models and severity helpers."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

RULE_ID_PATTERN = r"^[a-z0-9]+(-[a-z0-9]+)*$"


class Severity(str, Enum):
    """Severity levels for rules and the issues they report. Ordered highest first.

    - CRITICAL: Security vulnerabilities, bugs that can lose data or take a system down.
    - ERROR: Bugs, logic errors, violations of fundamental principles.
    - WARNING: Style issues, maintainability concerns, potential problems.
    - INFO: Suggestions, optimizations, minor improvements.
    """

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        """Numeric priority; a higher number is more severe."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.ERROR: 3,
    Severity.WARNING: 2,
    Severity.INFO: 1,
}


class ReviewRule(BaseModel):
    """A named, severity-tagged coding convention with example-based guidance."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        min_length=1,
        pattern=RULE_ID_PATTERN,
        description="Unique kebab-case identifier, e.g. 'no-console-log'",
    )
    description: str = Field(
        min_length=20, description="What the rule requires, in 2-3 sentences"
    )
    severity: Severity = Field(default=Severity.WARNING, description="critical|error|warning|info")
    correct: str = Field(min_length=10, description="Short example that follows the rule")
    incorrect: str = Field(min_length=10, description="Short example that violates the rule")
    fix: str = Field(min_length=20, description="How to fix a violation")

    def to_dict(self) -> dict:
        """Plain mapping suitable for YAML/JSON output."""
        return self.model_dump(mode="json")


def meets_min_severity(severity: Severity, min_severity: Severity) -> bool:
    """Check whether a severity is at or above the minimum level."""
    return Severity(severity).rank >= Severity(min_severity).rank


def filter_rules_by_severity(rules: list[ReviewRule], min_severity: Severity) -> list[ReviewRule]:
    """Keep only rules at or above the minimum severity, preserving order."""
    return [rule for rule in rules if meets_min_severity(rule.severity, min_severity)]


@dataclass
class RuleMerge:
    """Outcome of merging freshly generated rules into an existing rule set."""

    rules: list[ReviewRule]
    added: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)


def merge_rules(existing: list[ReviewRule], new_rules: list[ReviewRule]) -> RuleMerge:
    """Merge rules by id: same id overwrites in place, unknown ids are appended.

    Args:
        existing: Current rule set
        new_rules: Generated rules, possibly overlapping with existing ids

    Returns:
        RuleMerge with the combined rule list and the added/updated ids
    """
    merged = list(existing)
    index = {rule.id: i for i, rule in enumerate(merged)}
    result = RuleMerge(rules=merged)

    for rule in new_rules:
        if rule.id in index:
            merged[index[rule.id]] = rule
            if rule.id not in result.updated and rule.id not in result.added:
                result.updated.append(rule.id)
        else:
            index[rule.id] = len(merged)
            merged.append(rule)
            result.added.append(rule.id)

    return result
