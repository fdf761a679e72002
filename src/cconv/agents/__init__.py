"""Agent invocation, response extraction and retry handling."""

from cconv.agents.errors import (
    AgentError,
    ErrorKind,
    ExecutionError,
    ExtractionError,
    FixRangeError,
    FormatError,
    TruncationError,
)
from cconv.agents.invoker import AgentInvoker, InvokerConfig
from cconv.agents.provider import AgentProvider

__all__ = [
    "AgentError",
    "AgentInvoker",
    "AgentProvider",
    "ErrorKind",
    "ExecutionError",
    "ExtractionError",
    "FixRangeError",
    "FormatError",
    "InvokerConfig",
    "TruncationError",
]
