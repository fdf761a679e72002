"""Spawns the agent CLI for a single request."""

import asyncio
import codecs
import itertools
import logging
import os
from dataclasses import dataclass, field

from cconv.agents.errors import ExecutionError

COMMAND_ENV_VAR = "CCONV_CLAUDE_PATH"
DEFAULT_COMMAND = "claude"
DEFAULT_TIMEOUT_SECONDS = 120
TERMINATE_GRACE_SECONDS = 5.0
READ_CHUNK_SIZE = 64 * 1024


def resolve_command(configured: str | None = None) -> str:
    """Pick the agent executable: environment override, then config, then the default."""
    return os.environ.get(COMMAND_ENV_VAR) or configured or DEFAULT_COMMAND


@dataclass
class InvokerConfig:
    """How to run the agent process."""

    command: str = DEFAULT_COMMAND
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    base_args: list[str] = field(default_factory=lambda: ["--print"])
    output_format: str | None = "json"
    resume_flag: str = "--resume"
    flags: list[str] = field(default_factory=list)
    verbose: bool = False


class _LineMirror:
    """Re-emits decoded output as complete, prefixed log lines."""

    def __init__(self, log: logging.Logger, prefix: str) -> None:
        self.log = log
        self.prefix = prefix
        self.pending = ""

    def feed(self, text: str) -> None:
        self.pending += text
        *lines, self.pending = self.pending.split("\n")
        for line in lines:
            self.log.debug(f"{self.prefix} {line}")

    def flush(self) -> None:
        if self.pending:
            self.log.debug(f"{self.prefix} {self.pending}")
            self.pending = ""


async def _read_stream(stream: asyncio.StreamReader, mirror: _LineMirror | None) -> str:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts: list[str] = []
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        text = decoder.decode(chunk, final=not chunk)
        if text:
            parts.append(text)
            if mirror is not None:
                mirror.feed(text)
        if not chunk:
            break
    if mirror is not None:
        mirror.flush()
    return "".join(parts)


class AgentInvoker:
    """Runs one agent process per request and returns its stdout verbatim."""

    _counter = itertools.count(1)

    def __init__(self, config: InvokerConfig | None = None, logger: logging.Logger | None = None) -> None:
        """Initialize the invoker.

        Args:
            config: Process configuration
            logger: Logger for diagnostics and verbose output mirroring
        """
        self.config = config or InvokerConfig()
        self.logger = logger or logging.getLogger(__name__)

    def build_args(self, prompt: str, session_id: str | None = None) -> list[str]:
        """Build the argument list; the prompt always goes last."""
        args = list(self.config.base_args)
        if self.config.output_format:
            args += ["--output-format", self.config.output_format]
        if session_id:
            args += [self.config.resume_flag, session_id]
        args += self.config.flags
        args.append(prompt)
        return args

    async def invoke(self, prompt: str, session_id: str | None = None) -> str:
        """Run the agent once.

        Args:
            prompt: Fully rendered prompt
            session_id: Session to resume, if any

        Returns:
            Everything the process wrote to stdout

        Raises:
            ExecutionError: The process could not start, timed out, or exited nonzero
        """
        command = self.config.command
        args = self.build_args(prompt, session_id)
        prefix = f"[claude-{next(self._counter)}]"
        verbose = self.config.verbose

        if verbose:
            shown = " ".join(args[:-1])
            self.logger.debug(f"{prefix} Executing: {command} {shown} [prompt]")

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"Command '{command}' not found. Please ensure the agent CLI is installed and in your PATH."
            ) from e
        except PermissionError as e:
            raise ExecutionError(f"Command '{command}' is not executable: {e}") from e

        stdout_mirror = _LineMirror(self.logger, prefix) if verbose else None
        stderr_mirror = _LineMirror(self.logger, prefix) if verbose else None

        async def communicate() -> tuple[str, str, int]:
            assert proc.stdout is not None and proc.stderr is not None
            out, err = await asyncio.gather(
                _read_stream(proc.stdout, stdout_mirror),
                _read_stream(proc.stderr, stderr_mirror),
            )
            return out, err, await proc.wait()

        try:
            stdout, stderr, exit_code = await asyncio.wait_for(
                communicate(), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError:
            await self._terminate(proc)
            timeout = self.config.timeout_seconds
            if verbose:
                self.logger.debug(f"{prefix} Command timed out after {timeout:g} seconds")
            raise ExecutionError(
                f"Agent command timed out after {timeout:g} seconds", timed_out=True
            ) from None
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        if exit_code != 0:
            if verbose:
                self.logger.debug(f"{prefix} Process failed (exit code: {exit_code})")
            raise ExecutionError(
                f"Agent process exited with code {exit_code}: {stderr.strip()}",
                exit_code=exit_code,
                stderr=stderr,
                raw=stdout,
            )

        return stdout

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """Stop the child and reap it: terminate, then kill after a grace period."""
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except asyncio.TimeoutError:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
