"""Command-line interface for cconv."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from cconv import __version__
from cconv.agents.errors import AgentError
from cconv.agents.provider import AgentProvider
from cconv.config import Config, ConfigError, apply_overrides, load_config, save_config
from cconv.files import read_stdin
from cconv.formatters import (
    OUTPUT_FORMATS,
    fixes_data,
    format_fix_text,
    format_json,
    format_review,
    format_rule_text,
    format_rules_table,
    rules_data,
)
from cconv.models import Severity
from cconv.orchestrator.orchestrator import ReviewOrchestrator
from cconv.review import WorkflowError, fix_files, generate_rules, review_diff, review_files

# Diagnostics go to stderr; stdout carries only command output.
console = Console(stderr=True)
output_console = Console(soft_wrap=True, highlight=False)

SEVERITY_CHOICES = [s.value for s in Severity]
EXIT_ISSUES_FOUND = 2


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
    )


def create_provider(config: Config, verbose: bool = False) -> AgentProvider:
    return AgentProvider.from_config(config.provider, verbose=verbose)


def _load(ctx: click.Context, **overrides) -> Config:
    config = load_config(ctx.obj["config_path"])
    return apply_overrides(config, **overrides)


def _orchestrator(ctx: click.Context, config: Config) -> ReviewOrchestrator:
    provider = create_provider(config, verbose=ctx.obj["verbose"])
    return ReviewOrchestrator(provider, max_concurrency=config.provider.max_concurrency)


def _error_message(error: Exception) -> str:
    if isinstance(error, ConfigError):
        return "Invalid configuration: " + "; ".join(error.errors)
    return str(error)


def _fail(output: str, output_type: str, error: Exception) -> None:
    """Report a fatal error in the requested format and exit 1."""
    message = _error_message(error)
    if output == "json":
        click.echo(format_json(output_type, [], success=False, message=message))
    else:
        console.print(f"[red]Error:[/red] {escape(message)}", highlight=False)
    sys.exit(1)


def _status(output: str, message: str) -> None:
    if output == "text":
        console.print(message)


def _agent_options(func):
    func = click.option(
        "--timeout", type=click.IntRange(min=1), help="Timeout for agent requests in seconds (default: 120)"
    )(func)
    func = click.option(
        "--max-concurrency", type=int, help="Maximum number of concurrent agent requests (default: 5)"
    )(func)
    func = click.option(
        "--max-retries", type=int, help="Maximum attempts per agent request (default: 3)"
    )(func)
    return func


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to config file (default: .cconv.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """cconv - coding conventions, made executable."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path


@cli.command()
@click.argument("paths", nargs=-1)
@click.option("-o", "--output", type=click.Choice(["text", "json"]), default="text")
@_agent_options
@click.pass_context
def add(
    ctx: click.Context,
    paths: tuple[str, ...],
    output: str,
    max_retries: int | None,
    max_concurrency: int | None,
    timeout: int | None,
) -> None:
    """Generate review rules from files, glob patterns, or stdin."""
    try:
        config = _load(
            ctx, max_retries=max_retries, max_concurrency=max_concurrency, timeout_seconds=timeout
        )
        content = None
        if not paths:
            stdin = click.get_text_stream("stdin")
            if stdin.isatty():
                raise WorkflowError("No path provided and no input from stdin")
            content = read_stdin()

        _status(output, "[blue]Generating review rules...[/blue]")
        run = asyncio.run(generate_rules(config, _orchestrator(ctx, config), list(paths), content))
        save_config(config)
    except (ConfigError, WorkflowError, AgentError, OSError) as e:
        _fail(output, "rules", e)
        return

    message = f"Successfully processed {len(run.rules)} rules"
    if output == "json":
        click.echo(format_json("rules", rules_data(run.rules), success=True, message=message))
        return

    for rule_id in run.merge.updated:
        output_console.print(f"[green]✓ Updated rule:[/green] {rule_id}")
    for rule_id in run.merge.added:
        output_console.print(f"[green]✓ Added rule:[/green] {rule_id}")
    output_console.print(f"\n[green]{message}[/green]")


@cli.command("list")
@click.option("-o", "--output", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def list_rules(ctx: click.Context, output: str) -> None:
    """List all saved review rules."""
    try:
        config = load_config(ctx.obj["config_path"])
    except (ConfigError, OSError) as e:
        _fail(output, "rules", e)
        return

    if output == "json":
        click.echo(format_json("rules", rules_data(config.rules), success=True))
    elif not config.rules:
        output_console.print("[yellow]No review rules found.[/yellow]")
    else:
        output_console.print(format_rules_table(config.rules))


@cli.command()
@click.argument("rule_id", metavar="ID")
@click.option("-o", "--output", type=click.Choice(["text", "json"]), default="text")
@click.pass_context
def show(ctx: click.Context, rule_id: str, output: str) -> None:
    """Show details of a specific review rule."""
    try:
        config = load_config(ctx.obj["config_path"])
        rule = config.get_rule(rule_id)
        if rule is None:
            raise WorkflowError(f"Rule '{rule_id}' not found")
    except (ConfigError, WorkflowError, OSError) as e:
        _fail(output, "rule", e)
        return

    if output == "json":
        click.echo(format_json("rule", rule.to_dict(), success=True))
    else:
        output_console.print(format_rule_text(rule))


@cli.command()
@click.argument("paths", nargs=-1)
@click.option("-o", "--output", type=click.Choice(list(OUTPUT_FORMATS)), default="text")
@click.option(
    "--min-severity",
    type=click.Choice(SEVERITY_CHOICES),
    help="Minimum severity level to review: critical, error, warning, info",
)
@_agent_options
@click.pass_context
def review(
    ctx: click.Context,
    paths: tuple[str, ...],
    output: str,
    min_severity: str | None,
    max_retries: int | None,
    max_concurrency: int | None,
    timeout: int | None,
) -> None:
    """Review files against saved rules, or a diff read from stdin."""
    try:
        config = _load(
            ctx,
            max_retries=max_retries,
            max_concurrency=max_concurrency,
            timeout_seconds=timeout,
            min_severity=min_severity,
        )
        orchestrator = _orchestrator(ctx, config)
        if paths:
            run = asyncio.run(review_files(list(paths), config, orchestrator))
        else:
            stdin = click.get_text_stream("stdin")
            if stdin.isatty():
                raise WorkflowError("No paths provided and no input from stdin")
            _status(output, "[blue]Reading diff from stdin...[/blue]")
            run = asyncio.run(review_diff(read_stdin(), config, orchestrator))
    except (ConfigError, WorkflowError, AgentError, OSError) as e:
        _fail(output, "review", e)
        return

    rendered = format_review(run.results, output, message=run.message)
    if output == "text":
        output_console.print(rendered)
    else:
        click.echo(rendered)

    if run.has_issues:
        sys.exit(EXIT_ISSUES_FOUND)


@cli.command()
@click.argument("paths", nargs=-1, required=True)
@click.option("-o", "--output", type=click.Choice(["text", "json"]), default="text")
@click.option(
    "--min-severity",
    type=click.Choice(SEVERITY_CHOICES),
    help="Minimum severity level to fix: critical, error, warning, info",
)
@_agent_options
@click.pass_context
def fix(
    ctx: click.Context,
    paths: tuple[str, ...],
    output: str,
    min_severity: str | None,
    max_retries: int | None,
    max_concurrency: int | None,
    timeout: int | None,
) -> None:
    """Review files and fix the issues found."""
    try:
        config = _load(
            ctx,
            max_retries=max_retries,
            max_concurrency=max_concurrency,
            timeout_seconds=timeout,
            min_severity=min_severity,
        )
        run = asyncio.run(fix_files(list(paths), config, _orchestrator(ctx, config)))
    except (ConfigError, WorkflowError, AgentError, OSError) as e:
        _fail(output, "fix", e)
        return

    outcomes = run.fixes.results if run.fixes else []
    if output == "json":
        click.echo(format_json("fix", fixes_data(outcomes), success=True, message=run.review.message))
        return

    if run.review.message and not outcomes:
        output_console.print(f"[yellow]{escape(run.review.message)}[/yellow]")
        return
    output_console.print(format_fix_text(outcomes))


if __name__ == "__main__":
    cli()
