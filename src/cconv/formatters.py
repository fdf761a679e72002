"""Output formatting for rules, review results and fixes."""

import json
from typing import Any

from rich.markup import escape
from rich.table import Table

from cconv import __version__
from cconv.models import ReviewResult, ReviewRule, Severity
from cconv.orchestrator.fixer import FileFixOutcome, FixStatus

TOOL_NAME = "cconv"
TOOL_URL = "https://github.com/k-kinzal/cconv"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"

OUTPUT_FORMATS = ("text", "json", "reviewdog", "sarif")

SEVERITY_COLORS = {
    Severity.CRITICAL: "magenta",
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFO: "blue",
}

_SARIF_LEVELS = {
    Severity.CRITICAL: "error",
    Severity.ERROR: "error",
    Severity.WARNING: "warning",
    Severity.INFO: "note",
}

_REVIEWDOG_LEVELS = {
    Severity.CRITICAL: "ERROR",
    Severity.ERROR: "ERROR",
    Severity.WARNING: "WARNING",
    Severity.INFO: "INFO",
}


def severity_to_sarif_level(severity: Severity) -> str:
    return _SARIF_LEVELS.get(Severity(severity), "warning")


def severity_to_reviewdog_level(severity: Severity) -> str:
    return _REVIEWDOG_LEVELS.get(Severity(severity), "WARNING")


# JSON envelope


def format_json(
    output_type: str,
    data: Any,
    success: bool | None = None,
    message: str | None = None,
) -> str:
    """Render the ``{type, data, success, message}`` document."""
    document: dict[str, Any] = {"type": output_type, "data": data}
    if success is not None:
        document["success"] = success
    if message is not None:
        document["message"] = message
    return json.dumps(document, ensure_ascii=False)


def rules_data(rules: list[ReviewRule]) -> list[dict[str, Any]]:
    return [rule.to_dict() for rule in rules]


def results_data(results: list[ReviewResult]) -> list[dict[str, Any]]:
    return [result.to_dict() for result in results]


def fixes_data(outcomes: list[FileFixOutcome]) -> dict[str, Any]:
    entries = []
    for file_outcome in outcomes:
        for outcome in file_outcome.outcomes:
            entries.append(
                {
                    "success": outcome.status is FixStatus.APPLIED,
                    "status": outcome.status.value,
                    "issue": outcome.issue.to_dict(),
                    "fix": outcome.fix.to_dict() if outcome.fix else None,
                    "detail": outcome.detail,
                }
            )
    return {
        "results": entries,
        "summary": {
            "totalFixed": sum(o.applied_count for o in outcomes),
            "filesFixed": sum(1 for o in outcomes if o.written),
        },
    }


# Text (rich markup)


def format_rules_table(rules: list[ReviewRule]) -> Table:
    """Table of rules with truncated descriptions."""
    table = Table(title="Review Rules")
    table.add_column("ID", style="cyan")
    table.add_column("Severity")
    table.add_column("Description")

    for rule in rules:
        description = rule.description
        if len(description) > 80:
            description = description[:80] + "..."
        color = SEVERITY_COLORS[rule.severity]
        table.add_row(rule.id, f"[{color}]{rule.severity.value}[/{color}]", escape(description))
    return table


def format_rule_text(rule: ReviewRule) -> str:
    color = SEVERITY_COLORS[rule.severity]
    return (
        f"[blue]ID:[/blue] {escape(rule.id)}\n"
        f"[blue]Severity:[/blue] [{color}]{rule.severity.value}[/{color}]\n"
        f"[blue]Description:[/blue] {escape(rule.description)}\n\n"
        f"[green]Correct Example:[/green]\n{escape(rule.correct)}\n\n"
        f"[red]Incorrect Example:[/red]\n{escape(rule.incorrect)}\n\n"
        f"[yellow]Fix Instructions:[/yellow]\n{escape(rule.fix)}"
    )


def format_review_text(results: list[ReviewResult]) -> str:
    if not results:
        return "[green]✓ No issues found![/green]"

    lines = []
    for result in results:
        color = SEVERITY_COLORS[result.severity]
        lines.append(
            f"{escape(result.file)}:{result.line}:{result.column}: "
            f"[{color}]{result.severity.value}[/{color}] "
            f"{escape(f'[{result.rule_id}]')} {escape(result.message)}"
        )
    return "\n".join(lines) + f"\n\n[red]✗ Found {len(results)} issues[/red]"


def format_fix_text(outcomes: list[FileFixOutcome]) -> str:
    entries = [(f, o) for f in outcomes for o in f.outcomes]
    if not entries:
        return "[green]✓ No issues found to fix![/green]"

    lines = []
    for file_outcome, outcome in entries:
        issue = outcome.issue
        where = f"{escape(issue.rule_id)} at {escape(file_outcome.path)}:{issue.line}"
        if outcome.status is FixStatus.APPLIED and outcome.fix is not None:
            lines.append(f"  [green]✓[/green] Fixed {where}")
            lines.append(f"    {escape(outcome.fix.description)}")
            lines.append(f"    Confidence: {outcome.fix.confidence}%")
            lines.append(f"    Reason: {escape(outcome.fix.reasoning)}")
        else:
            lines.append(f"  [yellow]⚠[/yellow] Not fixed ({outcome.status.value}) {where}")
            if outcome.detail:
                lines.append(f"    {escape(outcome.detail)}")

    total = sum(o.applied_count for o in outcomes)
    files = sum(1 for o in outcomes if o.written)
    return "\n".join(lines) + f"\n\n[green]✓ Fixed {total} issues in {files} files[/green]"


# Machine-readable review formats


def format_reviewdog(results: list[ReviewResult]) -> str:
    """Render results as reviewdog diagnostic format (rdjson)."""
    diagnostics = [
        {
            "message": result.message,
            "location": {
                "path": result.file,
                "range": {"start": {"line": result.line, "column": result.column}},
            },
            "severity": severity_to_reviewdog_level(result.severity),
            "code": {"value": result.rule_id},
            "source": {"name": TOOL_NAME},
        }
        for result in results
    ]
    blocking = any(r.severity in (Severity.CRITICAL, Severity.ERROR) for r in results)
    document = {
        "source": {"name": TOOL_NAME, "url": TOOL_URL},
        "severity": "ERROR" if blocking else "WARNING",
        "diagnostics": diagnostics,
    }
    return json.dumps(document, ensure_ascii=False)


def format_sarif(results: list[ReviewResult]) -> str:
    """Render results as a SARIF 2.1.0 log with a single run."""
    rules: dict[str, dict[str, Any]] = {}
    for result in results:
        if result.rule_id not in rules:
            rules[result.rule_id] = {
                "id": result.rule_id,
                "shortDescription": {"text": result.message},
                "fullDescription": {"text": f"Code review rule: {result.rule_id}"},
            }

    sarif_results = [
        {
            "ruleId": result.rule_id,
            "level": severity_to_sarif_level(result.severity),
            "message": {"text": result.message},
            "locations": [
                {
                    "physicalLocation": {
                        "artifactLocation": {"uri": result.file},
                        "region": {"startLine": result.line, "startColumn": result.column},
                    }
                }
            ],
        }
        for result in results
    ]

    log = {
        "$schema": SARIF_SCHEMA,
        "version": "2.1.0",
        "runs": [
            {
                "tool": {
                    "driver": {
                        "name": TOOL_NAME,
                        "version": __version__,
                        "informationUri": TOOL_URL,
                        "rules": list(rules.values()),
                    }
                },
                "results": sarif_results,
            }
        ],
    }
    return json.dumps(log, ensure_ascii=False)


def format_review(results: list[ReviewResult], output: str, message: str | None = None) -> str:
    """Render review results in any of the OUTPUT_FORMATS."""
    if output == "json":
        return format_json("review", results_data(results), success=not results, message=message)
    if output == "reviewdog":
        return format_reviewdog(results)
    if output == "sarif":
        return format_sarif(results)
    if message and not results:
        return f"[yellow]{escape(message)}[/yellow]"
    return format_review_text(results)
