"""Agent provider: the operations cconv asks of the agent."""

import logging
from typing import Annotated, Any

from pydantic import Field, TypeAdapter

from cconv.agents.errors import FixRangeError
from cconv.agents.extraction import ResponseSchema, extract_and_validate
from cconv.agents.invoker import AgentInvoker, InvokerConfig, resolve_command
from cconv.agents.prompts import (
    get_fix_prompt,
    get_review_diff_prompt,
    get_review_file_prompt,
    get_rule_generation_prompt,
    render_prompt,
)
from cconv.agents.session import AttemptRequest, RetrySession
from cconv.config import ProviderConfig
from cconv.models import FixResult, ReviewResult, ReviewRule

_RULES_ADAPTER = TypeAdapter(Annotated[list[ReviewRule], Field(min_length=1)])
_RESULTS_ADAPTER = TypeAdapter(list[ReviewResult])
_FIX_ADAPTER = TypeAdapter(FixResult)


class AgentProvider:
    """Generates rules, reviews code and proposes fixes through the agent CLI.

    Every operation renders a prompt, runs it through a retry session and
    returns validated models.
    """

    def __init__(
        self,
        invoker: AgentInvoker,
        max_retries: int = 3,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            invoker: Runs the agent process
            max_retries: Attempts allowed per request, including the first
            logger: Logger for diagnostics
        """
        self.invoker = invoker
        self.max_retries = max_retries
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: ProviderConfig, verbose: bool = False) -> "AgentProvider":
        """Build a provider from the ``provider`` section of the config."""
        invoker_config = InvokerConfig(
            command=resolve_command(config.command),
            timeout_seconds=config.timeout_seconds,
            output_format=config.output_format,
            resume_flag=config.resume_flag,
            flags=config.agent_flags(),
            verbose=verbose,
        )
        return cls(AgentInvoker(invoker_config), max_retries=config.max_retries)

    async def _request(self, prompt: str, schema: ResponseSchema, label: str) -> Any:
        expected = {
            "file": schema.context.get("file"),
            "ruleId": schema.context.get("rule_id"),
            "severity": schema.context.get("severity"),
        }
        rendered = render_prompt(
            prompt,
            schema.json_schema(),
            {key: value for key, value in expected.items() if value is not None},
        )

        async def attempt(request: AttemptRequest) -> Any:
            raw = await self.invoker.invoke(request.prompt, request.session_id)
            return extract_and_validate(raw, schema)

        session = RetrySession(attempt, max_attempts=self.max_retries, logger=self.logger, label=label)
        return await session.run(rendered)

    async def generate_rules(self, content: str) -> list[ReviewRule]:
        """Generate one or more rules from a document or code sample."""
        schema = ResponseSchema("rules", _RULES_ADAPTER)
        rules = await self._request(get_rule_generation_prompt(content), schema, "Rule generation")
        self.logger.debug(f"Generated {len(rules)} rules")
        return rules

    async def review_file(self, path: str, content: str, rule: ReviewRule) -> list[ReviewResult]:
        """Review a whole file against one rule."""
        schema = ResponseSchema(
            "review results",
            _RESULTS_ADAPTER,
            {"file": path, "rule_id": rule.id, "severity": rule.severity.value},
        )
        results = await self._request(
            get_review_file_prompt(path, content, rule), schema, f"Review of {path} ({rule.id})"
        )
        self.logger.debug(f"Found {len(results)} violations of {rule.id} in {path}")
        return results

    async def review_diff(self, path: str, diff_text: str, rule: ReviewRule) -> list[ReviewResult]:
        """Review the changed lines of one file against one rule."""
        schema = ResponseSchema(
            "review results",
            _RESULTS_ADAPTER,
            {"file": path, "rule_id": rule.id, "severity": rule.severity.value},
        )
        results = await self._request(
            get_review_diff_prompt(path, diff_text, rule), schema, f"Diff review of {path} ({rule.id})"
        )
        self.logger.debug(f"Found {len(results)} violations of {rule.id} in diff of {path}")
        return results

    async def fix_issue(
        self, path: str, content: str, issue: ReviewResult, rule: ReviewRule
    ) -> FixResult:
        """Ask for a fix of a single issue.

        Raises:
            FixRangeError: A proposed fix whose range ends before it starts
        """
        schema = ResponseSchema("fix result", _FIX_ADAPTER)
        fix = await self._request(
            get_fix_prompt(path, content, issue, rule), schema, f"Fix of {path}:{issue.line}"
        )
        if fix.success and not fix.has_valid_range:
            raise FixRangeError(fix.start_line, fix.end_line)
        self.logger.debug(f"Fix result for {path}:{issue.line}: {'proposed' if fix.success else 'declined'}")
        return fix
