"""Data models for cconv."""

from cconv.models.results import FixResult, ReviewResult
from cconv.models.rules import (
    ReviewRule,
    RuleMerge,
    Severity,
    filter_rules_by_severity,
    meets_min_severity,
    merge_rules,
)

__all__ = [
    "FixResult",
    "ReviewResult",
    "ReviewRule",
    "RuleMerge",
    "Severity",
    "filter_rules_by_severity",
    "meets_min_severity",
    "merge_rules",
]
