"""Tests for AgentProvider with a scripted invoker."""

import json

import pytest

from conftest import make_result, make_rule, result_envelope


class ScriptedInvoker:
    """Returns queued outputs in order and records every call."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.calls: list[tuple[str, str | None]] = []

    async def invoke(self, prompt, session_id=None):
        self.calls.append((prompt, session_id))
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        return output


def review_payload(**overrides):
    item = {
        "file": "src/app.ts",
        "line": 3,
        "column": 1,
        "ruleId": "no-console-log",
        "message": "console.log left in code",
        "severity": "warning",
    }
    item.update(overrides)
    return [item]


def fix_payload(start=3, end=3, **overrides):
    data = {
        "success": True,
        "description": "Remove console.log",
        "startLine": start,
        "endLine": end,
        "originalContent": "console.log('starting');",
        "fixedContent": "",
        "reasoning": "The call is debugging output.",
        "confidence": 80,
        "appliedChange": "deleted the line",
    }
    data.update(overrides)
    return data


class TestReview:
    """Tests for review operations."""

    @pytest.mark.asyncio
    async def test_review_file(self):
        """Test reviewing a file."""
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(result_envelope(review_payload()))
        provider = AgentProvider(invoker)

        results = await provider.review_file("src/app.ts", "content", make_rule())

        assert results == [make_result()]
        prompt, session_id = invoker.calls[0]
        assert session_id is None
        assert "File: src/app.ts" in prompt
        assert "## JSON Schema for Response" in prompt
        assert 'ruleId: "no-console-log"' in prompt

    @pytest.mark.asyncio
    async def test_empty_array_is_valid(self):
        """Test that no violations is a valid answer."""
        from cconv.agents.provider import AgentProvider

        provider = AgentProvider(ScriptedInvoker(result_envelope([])))
        assert await provider.review_diff("src/app.ts", "diff", make_rule()) == []

    @pytest.mark.asyncio
    async def test_wrong_rule_id_triggers_correction(self):
        """Test that a wrong ruleId resumes the session with a correction."""
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(
            result_envelope(review_payload(ruleId="other-rule"), session_id="abc123"),
            result_envelope(review_payload()),
        )
        provider = AgentProvider(invoker)

        results = await provider.review_file("src/app.ts", "content", make_rule())

        assert len(results) == 1
        assert invoker.calls[1][1] == "abc123"
        assert "ruleId must be" in invoker.calls[1][0]

    @pytest.mark.asyncio
    async def test_execution_failures_exhaust_retries(self):
        """Test that execution failures retry from scratch until exhausted."""
        from cconv.agents.errors import ExecutionError
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(*(ExecutionError(f"exit {i}", exit_code=1) for i in range(1, 4)))
        provider = AgentProvider(invoker, max_retries=3)

        with pytest.raises(ExecutionError, match="exit 3"):
            await provider.review_file("src/app.ts", "content", make_rule())

        assert len(invoker.calls) == 3
        assert all(session_id is None for _, session_id in invoker.calls)
        assert invoker.calls[0][0] == invoker.calls[2][0]


class TestGenerateRules:
    """Tests for rule generation."""

    @pytest.mark.asyncio
    async def test_generates_rules(self):
        """Test rule generation."""
        from cconv.agents.provider import AgentProvider

        rule = make_rule().to_dict()
        provider = AgentProvider(ScriptedInvoker(result_envelope([rule])))

        rules = await provider.generate_rules("Never use console.log")
        assert [r.id for r in rules] == ["no-console-log"]

    @pytest.mark.asyncio
    async def test_empty_rule_list_is_rejected(self):
        """Test that an empty rule list is invalid."""
        from cconv.agents.errors import FormatError
        from cconv.agents.provider import AgentProvider

        provider = AgentProvider(ScriptedInvoker(result_envelope([])), max_retries=1)
        with pytest.raises(FormatError):
            await provider.generate_rules("Never use console.log")


class TestFixIssue:
    """Tests for fix requests."""

    @pytest.mark.asyncio
    async def test_fix_issue(self):
        """Test a fix request."""
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(result_envelope(fix_payload()))
        provider = AgentProvider(invoker)

        fix = await provider.fix_issue("src/app.ts", "a\nb\nconsole.log('x');\n", make_result(), make_rule())

        assert fix.success
        assert fix.start_line == fix.end_line == 3
        assert "<- TARGET LINE" in invoker.calls[0][0]

    @pytest.mark.asyncio
    async def test_inverted_range_is_rejected_without_retry(self):
        """Test that an inverted range fails without a retry."""
        from cconv.agents.errors import FixRangeError
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(result_envelope(fix_payload(start=5, end=3)))
        provider = AgentProvider(invoker)

        with pytest.raises(FixRangeError, match=r"endLine \(3\) < startLine \(5\)"):
            await provider.fix_issue("src/app.ts", "content", make_result(), make_rule())
        assert len(invoker.calls) == 1

    @pytest.mark.asyncio
    async def test_declined_fix_range_is_not_checked(self):
        """A declined fix carries no edit, so its range is never validated."""
        from cconv.agents.provider import AgentProvider

        invoker = ScriptedInvoker(result_envelope(fix_payload(start=4, end=2, success=False)))
        provider = AgentProvider(invoker)

        fix = await provider.fix_issue("src/app.ts", "content", make_result(), make_rule())

        assert not fix.success
        assert len(invoker.calls) == 1


class TestFromConfig:
    """Tests for building a provider from configuration."""

    def test_flags_and_command(self, monkeypatch):
        """Test building a provider from config."""
        from cconv.agents.invoker import COMMAND_ENV_VAR
        from cconv.agents.provider import AgentProvider
        from cconv.config import ProviderConfig

        monkeypatch.delenv(COMMAND_ENV_VAR, raising=False)
        config = ProviderConfig(command="my-claude", max_retries=5, timeout_seconds=30, model="sonnet")
        provider = AgentProvider.from_config(config, verbose=True)

        assert provider.max_retries == 5
        assert provider.invoker.config.command == "my-claude"
        assert provider.invoker.config.timeout_seconds == 30
        assert provider.invoker.config.verbose
        assert provider.invoker.build_args("p")[-3:] == ["--model", "sonnet", "p"]


def test_render_prompt_lists_expected_values():
    """Test that the prompt lists the values to echo back."""
    from cconv.agents.prompts import render_prompt

    rendered = render_prompt("Task", {"type": "array"}, {"file": "a.ts"})
    assert rendered.startswith("Task")
    assert json.dumps({"type": "array"}, indent=2) in rendered
    assert '- file: "a.ts"' in rendered
