"""Prompt templates sent to the agent."""

import json
from typing import Any

from cconv.models import ReviewResult, ReviewRule

FIX_CONTEXT_LINES = 3

RULE_GENERATION_PROMPT = """Analyze the following content and generate review rules in JSON format.
If the content is a markdown document describing a rule, extract the rule information from it.
If the content is code, analyze it to generate appropriate rules.

IMPORTANT: Follow the Single Responsibility Principle for rules. Each rule should:
- Focus on ONE specific aspect or requirement
- Be independently checkable and fixable
- If the content describes multiple requirements, create SEPARATE rules for each requirement

Generate rules with:
- Concise but clear code examples (max 10-15 lines per example)
- Clear descriptions (2-3 sentences)
- A kebab-case id such as "no-console-log"

SEVERITY GUIDELINES:
- critical: Security vulnerabilities, critical bugs that could cause data loss or system failures
- error: Bugs, logic errors, violations of fundamental principles
- warning: Code style issues, maintainability concerns, potential problems
- info: Suggestions, optimizations, minor improvements

Content to analyze:
{content}"""


def _rule_block(rule: ReviewRule) -> str:
    return f"""Rule ID: {rule.id}
Description: {rule.description}
Correct example: {rule.correct}
Incorrect example: {rule.incorrect}"""


def get_rule_generation_prompt(content: str) -> str:
    return RULE_GENERATION_PROMPT.format(content=content)


def get_review_file_prompt(path: str, content: str, rule: ReviewRule) -> str:
    return f"""Review the following file based on this rule:

{_rule_block(rule)}

Find all violations in the file. If no violations are found, output an empty array: []

File: {path}
File content:
{content}"""


def get_review_diff_prompt(path: str, diff_text: str, rule: ReviewRule) -> str:
    return f"""Review the following git diff based on this rule:

{_rule_block(rule)}

Focus on the changes (additions and deletions) in the diff.
Find violations in the modified code. If no violations are found, output an empty array: []
Report line numbers of the new version of the file.

Git diff:
{diff_text}"""


def get_line_context(
    content: str, line_number: int, context_lines: int = FIX_CONTEXT_LINES
) -> tuple[list[str], str, list[str]]:
    """Split out the lines around a 1-based line number.

    Returns:
        (lines before, the target line, lines after)
    """
    lines = content.split("\n")
    index = line_number - 1
    before = lines[max(0, index - context_lines) : max(0, index)]
    target = lines[index] if 0 <= index < len(lines) else ""
    after = lines[index + 1 : index + 1 + context_lines]
    return before, target, after


def get_fix_prompt(path: str, content: str, issue: ReviewResult, rule: ReviewRule) -> str:
    before, target, after = get_line_context(content, issue.line)
    first = issue.line - len(before)
    context = [f"{first + i}: {line}" for i, line in enumerate(before)]
    context.append(f"{issue.line}: {target} <- TARGET LINE")
    context += [f"{issue.line + 1 + i}: {line}" for i, line in enumerate(after)]
    numbered = "\n".join(context)

    return f"""Fix the following code issue based on the specified rule.

## Issue Details
- File: {path}
- Line: {issue.line}
- Column: {issue.column}
- Issue: {issue.message}

## Rule Information
- Description: {rule.description}
- Fix Guidance: {rule.fix}
- Correct Example: {rule.correct}
- Incorrect Example: {rule.incorrect}

## Code Context
```
{numbered}
```

## Instructions
1. Analyze the issue in the target line and surrounding context
2. Apply the rule's fix guidance to resolve the issue
3. Determine the exact line range (startLine..endLine, inclusive) that needs to be modified
4. Provide the original content and fixed content for that range
5. Explain your reasoning and confidence level (0-100)
6. If the issue cannot be fixed, set success to false and explain why"""


def render_prompt(prompt: str, json_schema: dict[str, Any], expected: dict[str, Any] | None = None) -> str:
    """Append the response schema and output instructions to a prompt.

    Args:
        prompt: Task prompt
        json_schema: JSON Schema of the expected response
        expected: Literal values the response must echo, keyed by wire name
    """
    rendered = f"""{prompt}

## JSON Schema for Response
You must output JSON that conforms to this exact schema:
{json.dumps(json_schema, indent=2)}
"""
    if expected:
        rendered += "\nEvery item must use exactly these values:\n"
        rendered += "\n".join(f"- {key}: {json.dumps(value)}" for key, value in expected.items())
        rendered += "\n"
    rendered += "\nRespond with the JSON only. Do not wrap it in explanations."
    return rendered
