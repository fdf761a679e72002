"""Recover structured JSON from agent output and validate it.

Agent output is noisy: log lines, a JSON result envelope wrapping a string
answer, markdown code fences, prose around the payload. Extraction runs an
ordered tuple of strategies and the first one that yields a JSON object or
array wins. Validation is done with pydantic and reported as ``FormatError``.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import TypeAdapter, ValidationError

from cconv.agents.errors import ExecutionError, ExtractionError, FormatError, TruncationError

logger = logging.getLogger(__name__)

NOISE_PREFIXES = ("[DEBUG]", "[INFO]", "[WARNING]", "[ERROR]")
CONTENT_FIELDS = ("result", "content", "response", "output")
TRUNCATION_THRESHOLD = 9000

_ESCAPED_FENCE_RE = re.compile(r"```json\\n(.*?)\\n```", re.DOTALL)
_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n(.*?)\n?[ \t]*```", re.DOTALL)
_DECODER = json.JSONDecoder()

Strategy = Callable[[str], Any]


def strip_noise(text: str) -> str:
    """Drop blank lines and log-prefixed lines."""
    kept = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(NOISE_PREFIXES):
            continue
        kept.append(line)
    return "\n".join(kept)


def _structured(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return value
    return None


def parse_whole(text: str) -> Any:
    """Parse the entire text as JSON."""
    try:
        return _structured(json.loads(text))
    except ValueError:
        return None


def parse_escaped_fence(text: str) -> Any:
    """Parse a ```json fence whose newlines and quotes are still escaped."""
    match = _ESCAPED_FENCE_RE.search(text)
    if not match:
        return None
    body = match.group(1).replace('\\"', '"').replace("\\n", "\n")
    return parse_whole(body)


def parse_fenced_block(text: str) -> Any:
    """Parse the first markdown code fence that holds valid JSON."""
    for match in _FENCE_RE.finditer(text):
        value = parse_whole(match.group(1))
        if value is not None:
            return value
    return None


def scan_embedded_json(text: str) -> Any:
    """Find the first JSON object, or array of objects, embedded in prose."""
    for index, char in enumerate(text):
        if char not in "[{":
            continue
        try:
            value, _ = _DECODER.raw_decode(text, index)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value
        if isinstance(value, list) and all(isinstance(item, dict) for item in value):
            return value
    return None


CONTENT_STRATEGIES: tuple[Strategy, ...] = (
    parse_whole,
    parse_escaped_fence,
    parse_fenced_block,
    scan_embedded_json,
)


def run_strategies(text: str, strategies: tuple[Strategy, ...] = CONTENT_STRATEGIES) -> Any:
    """Return the first non-None strategy result, or None."""
    for strategy in strategies:
        value = strategy(text)
        if value is not None:
            return value
    return None


def _as_envelope(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except ValueError:
        return None
    if isinstance(value, dict) and value.get("type") == "result":
        return value
    return None


def find_envelope(cleaned: str) -> dict[str, Any] | None:
    """Locate the agent's result envelope: the whole text, else the last result line."""
    envelope = _as_envelope(cleaned)
    if envelope is not None:
        return envelope
    for line in reversed(cleaned.splitlines()):
        line = line.strip()
        if line.startswith("{"):
            envelope = _as_envelope(line)
            if envelope is not None:
                return envelope
    return None


def is_execution_failure(envelope: dict[str, Any]) -> bool:
    return envelope.get("subtype") == "error_during_execution" or envelope.get("is_error") is True


def looks_truncated(content: str) -> bool:
    """Long content whose leading JSON value runs off the end of the text.

    Only the leading value is decoded, so a complete answer followed by prose
    is never reported as truncated.
    """
    if len(content) <= TRUNCATION_THRESHOLD:
        return False
    body = content.strip()
    if body.startswith("```"):
        body = body.partition("\n")[2]
    if not body.startswith(("[", "{")):
        return False
    try:
        _DECODER.raw_decode(body)
    except json.JSONDecodeError as e:
        return e.pos >= len(body) or e.msg.startswith("Unterminated string")
    return False


def _extract_from_text(text: str, raw: str) -> Any:
    if looks_truncated(text):
        raise TruncationError(
            "Response appears to be truncated. The output may be too large.",
            content_length=len(text),
            raw=raw,
        )
    value = run_strategies(text)
    if value is not None:
        return value
    raise ExtractionError(
        f"Could not extract JSON from response. Response length: {len(raw)} bytes",
        raw=raw,
    )


def extract_payload(raw: str) -> Any:
    """Recover the JSON payload from raw agent output.

    Args:
        raw: Everything the agent wrote to stdout

    Returns:
        The decoded JSON object or array

    Raises:
        ExecutionError: The result envelope reports an execution failure
        TruncationError: The payload is long and looks cut off
        ExtractionError: No strategy found a JSON payload
    """
    cleaned = strip_noise(raw)
    envelope = find_envelope(cleaned)

    if envelope is None:
        logger.debug("No result envelope found, scanning output text")
        return _extract_from_text(cleaned, raw)

    if is_execution_failure(envelope):
        detail = envelope.get("error_message") or envelope.get("message") or "execution error occurred"
        raise ExecutionError(f"Agent execution error: {detail}", raw=raw)

    for name in CONTENT_FIELDS:
        content = envelope.get(name)
        if isinstance(content, str) and content.strip():
            return _extract_from_text(content, raw)
        if isinstance(content, (dict, list)):
            return content

    raise ExtractionError("Result envelope has no content field", raw=raw)


@dataclass
class ResponseSchema:
    """The expected shape of a response plus the literal values it must echo back."""

    name: str
    adapter: TypeAdapter
    context: dict[str, Any] = field(default_factory=dict)

    def json_schema(self) -> dict[str, Any]:
        return self.adapter.json_schema(by_alias=True)


def _format_issues(error: ValidationError) -> list[dict[str, Any]]:
    issues = []
    for item in error.errors(include_url=False):
        issues.append(
            {
                "path": ".".join(str(part) for part in item["loc"]),
                "message": item["msg"],
                "type": item["type"],
            }
        )
    return issues


def validate_payload(payload: Any, schema: ResponseSchema, raw: str | None = None) -> Any:
    """Validate an extracted payload, raising FormatError with per-field issues."""
    try:
        return schema.adapter.validate_python(payload, context=schema.context or None)
    except ValidationError as e:
        issues = _format_issues(e)
        raise FormatError(
            f"Invalid {schema.name}: {len(issues)} validation issue(s)",
            issues=issues,
            raw=raw,
        ) from e


def extract_and_validate(raw: str, schema: ResponseSchema) -> Any:
    """Full pipeline: extract the payload from raw output, then validate it."""
    payload = extract_payload(raw)
    return validate_payload(payload, schema, raw=raw)
