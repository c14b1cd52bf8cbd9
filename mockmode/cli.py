"""CLI for mockmode.

Binds the current environment into a fresh context and reports what would
be mocked, so MOCK_* settings and config files can be checked without
starting the application.
"""

from __future__ import annotations

import json
import sys
from typing import Any

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mockmode.bootstrap import MockSettings, bind_environment
from mockmode.context import MockContext
from mockmode.errors import MockModeError
from mockmode.log import configure_logging
from mockmode.registry import BulkResult


def _settings_from_options(ctx: click.Context) -> MockSettings:
    overrides: dict[str, Any] = {}
    if ctx.obj.get("config_file"):
        overrides["config_file"] = ctx.obj["config_file"]
    if ctx.obj.get("services") is not None:
        overrides["services"] = ctx.obj["services"]
    if ctx.obj.get("mode"):
        overrides["mode"] = True
    return MockSettings(**overrides)


def _bind(ctx: click.Context) -> tuple[MockContext, BulkResult]:
    context = MockContext(allow_passthrough=False)
    try:
        report = bind_environment(context, settings=_settings_from_options(ctx))
    except MockModeError as e:
        context.reset()
        click.echo(e.format_verbose(), err=True)
        sys.exit(2)
    return context, report


def _print_failures(console: Console, report: BulkResult) -> None:
    for name, error in report.failed.items():
        console.print(f"[red]✗ {escape(name)}:[/red] {escape(str(error))}")


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
@click.option("--config", "-c", "config_file", type=click.Path(exists=True), help="Mock config file")
@click.option("--services", "-s", default=None, help="Comma-separated services to enable")
@click.option("--mode", "-m", is_flag=True, help="Force global mock mode")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    json_logs: bool,
    config_file: str | None,
    services: str | None,
    mode: bool,
) -> None:
    """mockmode - simulated external services for development and tests."""
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = config_file
    ctx.obj["services"] = services
    ctx.obj["mode"] = mode

    configure_logging(level="DEBUG" if verbose else "WARNING", json_format=json_logs)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the state as JSON")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show registered services and whether they are mocked."""
    context, report = _bind(ctx)
    try:
        state = context.inspector.get_current_state()

        if as_json:
            payload = state.to_dict()
            payload["failures"] = report.to_dict()["failed"]
            click.echo(json.dumps(payload, indent=2, default=str))
        else:
            console = Console()
            table = Table(title="Mock services")
            table.add_column("Service", style="cyan")
            table.add_column("Active")
            table.add_column("Interceptors", justify="right")
            table.add_column("Config", style="dim")

            for name, service in state.services.items():
                table.add_row(
                    name,
                    "[green]yes[/green]" if service.active else "[dim]no[/dim]",
                    str(service.handle_count),
                    json.dumps(service.config_summary, default=str) if service.config_summary else "",
                )

            console.print(table)
            console.print(
                f"Global mock mode: {'on' if state.mock_mode_enabled else 'off'} | "
                f"Interceptors installed: {state.interceptor_count}"
            )
            _print_failures(console, report)
    finally:
        context.reset()

    if not report.ok:
        sys.exit(1)


@cli.command()
@click.argument("expected", nargs=-1)
@click.pass_context
def verify(ctx: click.Context, expected: tuple[str, ...]) -> None:
    """Check that exactly the EXPECTED services end up mocked."""
    context, report = _bind(ctx)
    try:
        result = context.inspector.verify_mock_state(expected)
    finally:
        context.reset()

    console = Console()
    _print_failures(console, report)
    if result.is_valid:
        console.print(f"[green]✓[/green] Active services match: {', '.join(result.active_services) or 'none'}")
        return

    if result.missing_services:
        console.print(f"[red]✗ Missing:[/red] {', '.join(result.missing_services)}")
    if result.extra_services:
        console.print(f"[yellow]! Unexpected:[/yellow] {', '.join(result.extra_services)}")
    sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
