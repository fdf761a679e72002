"""Tests for the review orchestrator."""

import asyncio
from unittest.mock import MagicMock

import pytest

from conftest import FakeProvider, make_fix, make_result, make_rule


def targets(*paths):
    from cconv.orchestrator import ReviewTarget

    return [ReviewTarget(path, f"content of {path}") for path in paths]


class TestReviewOrchestrator:
    """Tests for ReviewOrchestrator."""

    @pytest.mark.parametrize("value", [0, 21])
    def test_rejects_out_of_range_concurrency(self, value):
        """Test the concurrency bounds."""
        from cconv.orchestrator import ReviewOrchestrator

        with pytest.raises(ValueError):
            ReviewOrchestrator(MagicMock(), max_concurrency=value)

    def test_expand_tasks_is_cartesian(self, sample_rules):
        """Test that every target is paired with every rule."""
        from cconv.orchestrator import expand_tasks

        tasks = expand_tasks(targets("a.ts", "b.ts"), sample_rules)
        assert len(tasks) == 8
        assert tasks[0].label == "a.ts [no-eval]"

    @pytest.mark.asyncio
    async def test_concurrency_ceiling(self, sample_rules):
        """Never more requests in flight than the ceiling."""
        from cconv.orchestrator import ReviewOrchestrator

        provider = FakeProvider(delay=0.02)
        orchestrator = ReviewOrchestrator(provider, max_concurrency=2)

        batch = await orchestrator.review(targets("a.ts", "b.ts", "c.ts"), sample_rules)

        assert batch.task_count == 12
        assert len(provider.calls) == 12
        assert provider.max_in_flight == 2

    @pytest.mark.asyncio
    async def test_runs_in_parallel(self, sample_rules):
        """Test that tasks are executed in parallel."""
        from cconv.orchestrator import ReviewOrchestrator

        provider = FakeProvider(delay=0.02)
        await ReviewOrchestrator(provider, max_concurrency=5).review(targets("a.ts", "b.ts"), sample_rules)
        assert provider.max_in_flight == 5

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self):
        """Test that one failed task does not affect the others."""
        from cconv.agents.errors import ExecutionError
        from cconv.orchestrator import ReviewOrchestrator

        rules = [make_rule("no-console-log"), make_rule("no-eval", "critical")]
        provider = FakeProvider(
            review_results={
                ("a.ts", "no-console-log"): ExecutionError("timed out"),
                ("a.ts", "no-eval"): [make_result("a.ts", 2, "no-eval", severity="critical")],
                ("b.ts", "no-console-log"): [make_result("b.ts", 7)],
            }
        )
        batch = await ReviewOrchestrator(provider).review(targets("a.ts", "b.ts"), rules)

        assert batch.task_count == 4
        assert batch.succeeded == 3
        assert [(r.file, r.line) for r in batch.results] == [("a.ts", 2), ("b.ts", 7)]
        assert len(batch.failures) == 1
        failure = batch.failures[0]
        assert failure.label == "a.ts [no-console-log]"
        assert failure.kind == "execution"
        assert "timed out" in failure.error

    @pytest.mark.asyncio
    async def test_results_are_sorted(self):
        """Test that results are sorted by file, line and column."""
        from cconv.orchestrator import ReviewOrchestrator

        rule = make_rule()
        provider = FakeProvider(
            review_results={
                ("b.ts", rule.id): [make_result("b.ts", 1)],
                ("a.ts", rule.id): [
                    make_result("a.ts", 9, column=4),
                    make_result("a.ts", 9, column=2),
                    make_result("a.ts", 3),
                ],
            }
        )
        batch = await ReviewOrchestrator(provider).review(targets("b.ts", "a.ts"), [rule])

        assert [(r.file, r.line, r.column) for r in batch.results] == [
            ("a.ts", 3, 1),
            ("a.ts", 9, 2),
            ("a.ts", 9, 4),
            ("b.ts", 1, 1),
        ]

    @pytest.mark.asyncio
    async def test_min_severity_filters_rules(self, sample_rules):
        """Test that low severity rules are not run."""
        from cconv.models import Severity
        from cconv.orchestrator import ReviewOrchestrator

        provider = FakeProvider()
        batch = await ReviewOrchestrator(provider).review(targets("a.ts"), sample_rules, Severity.ERROR)

        assert batch.task_count == 2
        assert sorted(call[2] for call in provider.calls) == ["no-eval", "no-unused-vars"]

    @pytest.mark.asyncio
    async def test_diff_targets_use_diff_review(self):
        """Test that diff targets use diff review."""
        from cconv.orchestrator import ReviewOrchestrator, ReviewTarget

        provider = FakeProvider()
        await ReviewOrchestrator(provider).review([ReviewTarget("a.ts", "diff", is_diff=True)], [make_rule()])
        assert provider.calls == [("review_diff", "a.ts", "no-console-log")]

    @pytest.mark.asyncio
    async def test_generate_rules_keeps_source_order(self):
        """Test that generated rules keep source order."""
        from cconv.orchestrator import ReviewOrchestrator

        provider = FakeProvider(
            rules={
                "first": [make_rule("first-rule"), make_rule("first-other")],
                "second": [make_rule("second-rule")],
                "broken": ValueError("bad source"),
            },
            delay=0.01,
        )
        batch = await ReviewOrchestrator(provider).generate_rules(
            [("one", "first doc"), ("two", "broken doc"), ("three", "second doc")]
        )

        assert [r.id for r in batch.results] == ["first-rule", "first-other", "second-rule"]
        assert [f.label for f in batch.failures] == ["two"]
        assert batch.failures[0].kind == "ValueError"

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        """Test that cancelling the batch cancels in-flight tasks."""
        from cconv.orchestrator import ReviewOrchestrator

        provider = FakeProvider(delay=5)
        orchestrator = ReviewOrchestrator(provider, max_concurrency=2)
        task = asyncio.create_task(orchestrator.review(targets("a.ts"), [make_rule()]))
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert provider.in_flight == 0

    @pytest.mark.asyncio
    async def test_fix_runs_per_file(self, tmp_path):
        """Test fixing through the orchestrator."""
        from cconv.orchestrator import ReviewOrchestrator

        path = tmp_path / "app.ts"
        path.write_text("one\ntwo\nthree\n")
        issue = make_result(str(path), 2)
        provider = FakeProvider(fixes={(str(path), 2): make_fix(2, 2, "TWO")})

        batch = await ReviewOrchestrator(provider).fix({str(path): [issue]}, [make_rule()])

        assert batch.task_count == 1
        assert batch.results[0].applied_count == 1
        assert path.read_text() == "one\nTWO\nthree\n"
