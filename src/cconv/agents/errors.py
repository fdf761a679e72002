"""Error types raised while invoking the agent and reading its responses."""

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Classification used by the retry state machine."""

    EXECUTION = "execution"
    FORMAT = "format"
    EXTRACTION = "extraction"
    TRUNCATION = "truncation"


class AgentError(Exception):
    """Base class for failures of a single agent request."""

    kind: ErrorKind = ErrorKind.EXECUTION

    def __init__(self, message: str, raw: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.raw = raw


class ExecutionError(AgentError):
    """The agent process failed to start, exited nonzero, timed out, or reported a failure."""

    kind = ErrorKind.EXECUTION

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stderr: str = "",
        timed_out: bool = False,
        raw: str | None = None,
    ) -> None:
        super().__init__(message, raw)
        self.exit_code = exit_code
        self.stderr = stderr
        self.timed_out = timed_out


class FormatError(AgentError):
    """The agent answered, but the answer does not match the expected schema."""

    kind = ErrorKind.FORMAT

    def __init__(
        self,
        message: str,
        issues: list[dict[str, Any]] | None = None,
        raw: str | None = None,
    ) -> None:
        super().__init__(message, raw)
        self.issues = issues or []


class ExtractionError(FormatError):
    """No JSON payload could be recovered from the agent output."""

    kind = ErrorKind.EXTRACTION


class TruncationError(AgentError):
    """The embedded response looks cut off before it could be parsed."""

    kind = ErrorKind.TRUNCATION

    def __init__(self, message: str, content_length: int, raw: str | None = None) -> None:
        super().__init__(message, raw)
        self.content_length = content_length


class FixRangeError(ValueError):
    """A fix names an end line before its start line."""

    def __init__(self, start_line: int, end_line: int) -> None:
        super().__init__(f"Invalid fix range: endLine ({end_line}) < startLine ({start_line})")
        self.start_line = start_line
        self.end_line = end_line
