"""Retry state machine for agent requests.

A failed attempt is retried in one of two ways. Process failures and
truncated output start over with the original prompt and no session. Format
failures resume the agent's session, when its id can be recovered from the
output, and ask it to correct the previous answer.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from cconv.agents.errors import AgentError, ErrorKind, FormatError

DEFAULT_MAX_ATTEMPTS = 3


class SessionState(Enum):
    FRESH = "fresh"
    ATTEMPTING = "attempting"
    CORRECTING = "correcting"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class AttemptRequest:
    """What to send on the next attempt."""

    prompt: str
    session_id: str | None = None


@dataclass
class RetryState:
    """Progress of one request through its retry budget."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    attempt: int = 0
    state: SessionState = SessionState.FRESH
    last_error_kind: ErrorKind | None = None
    last_error: AgentError | None = None
    session_id: str | None = None

    @property
    def remaining(self) -> int:
        return max(self.max_attempts - self.attempt, 0)


def _session_id_of(value: Any) -> str | None:
    if isinstance(value, dict):
        session_id = value.get("session_id")
        if isinstance(session_id, str) and session_id:
            return session_id
    return None


def recover_session_id(raw: str | None) -> str | None:
    """Find a ``session_id`` in raw agent output: whole text first, then line by line."""
    if not raw:
        return None
    try:
        return _session_id_of(json.loads(raw))
    except ValueError:
        pass
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            session_id = _session_id_of(json.loads(line))
        except ValueError:
            continue
        if session_id:
            return session_id
    return None


def build_correction_prompt(error: FormatError) -> str:
    """Ask the agent to fix its previous answer."""
    message = "The previous response had validation errors. "
    message += f"{error.message}\n"
    if error.issues:
        message += f"Issues: {json.dumps(error.issues, indent=2)}\n"
    message += "\nPlease respond again with valid JSON only, conforming exactly to the schema."
    return message


def transition(state: RetryState, prompt: str, error: AgentError) -> AttemptRequest | None:
    """Record a failed attempt and decide the next request.

    Args:
        state: Retry state, updated in place
        prompt: The original rendered prompt
        error: The failure of the attempt that just finished

    Returns:
        The next request, or None when the attempt budget is spent
    """
    state.last_error = error
    state.last_error_kind = error.kind

    if state.attempt >= state.max_attempts:
        state.state = SessionState.EXHAUSTED
        state.session_id = None
        return None

    if isinstance(error, FormatError):
        session_id = recover_session_id(error.raw)
        if session_id:
            state.state = SessionState.CORRECTING
            state.session_id = session_id
            return AttemptRequest(build_correction_prompt(error), session_id)

    state.state = SessionState.ATTEMPTING
    state.session_id = None
    return AttemptRequest(prompt)


AttemptFn = Callable[[AttemptRequest], Awaitable[Any]]


class RetrySession:
    """Runs an injected attempt function until it succeeds or the budget is spent."""

    def __init__(
        self,
        attempt_fn: AttemptFn,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        logger: logging.Logger | None = None,
        label: str = "request",
    ) -> None:
        """Initialize the session.

        Args:
            attempt_fn: Performs one attempt; raises AgentError on failure
            max_attempts: Total attempts allowed, including the first
            logger: Logger for retry diagnostics
            label: Short description used in log messages
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.attempt_fn = attempt_fn
        self.max_attempts = max_attempts
        self.logger = logger or logging.getLogger(__name__)
        self.label = label
        self.state = RetryState(max_attempts=max_attempts)

    async def run(self, prompt: str) -> Any:
        """Run attempts strictly one after another.

        Returns:
            Whatever the first successful attempt returned

        Raises:
            AgentError: The last error once every attempt has failed
        """
        state = self.state
        request: AttemptRequest | None = AttemptRequest(prompt)

        while request is not None:
            state.attempt += 1
            if state.state is SessionState.FRESH:
                state.state = SessionState.ATTEMPTING
            try:
                result = await self.attempt_fn(request)
            except AgentError as e:
                self.logger.debug(
                    f"{self.label} failed on attempt {state.attempt}/{self.max_attempts} "
                    f"({e.kind.value}): {e.message}"
                )
                request = transition(state, prompt, e)
                if request is not None and request.session_id:
                    self.logger.debug(f"Resuming session {request.session_id} for correction")
                continue
            state.state = SessionState.SUCCEEDED
            return result

        assert state.last_error is not None
        raise state.last_error
