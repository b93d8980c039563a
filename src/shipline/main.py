"""Main CLI entry point for Shipline.

Usage:
    shipline test       Run the test suite
    shipline deploy     On the production branch: test, build, push, deploy

Exit codes:
    0  success, or a deliberately skipped deploy
    1  missing action, invalid configuration, or any failed stage
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shipline.config import load_config
from shipline.errors import InvalidInvocation, PipelineError
from shipline.logging import setup_logging
from shipline.pipeline.controller import (
    SKIP_MESSAGE,
    PipelineController,
    PipelineReport,
    RunOutcome,
)

USAGE = "Usage: shipline <test|deploy>"

app = typer.Typer(
    name="shipline",
    help="Shipline: branch-gated test, build, push, and deploy pipeline",
    add_completion=False,
)

console = Console()


def _require_action(action: str | None) -> str:
    if not action:
        raise InvalidInvocation(USAGE)
    return action


def generate_report_table(report: PipelineReport) -> Table:
    """Generate a summary table of the stages a run completed.

    Args:
        report: Report returned by the controller

    Returns:
        Rich Table with one row per stage
    """
    table = Table(title="Pipeline Summary")
    table.add_column("Stage", style="bold cyan")
    table.add_column("Result")
    table.add_column("Duration", justify="right")
    table.add_column("Detail", style="dim")

    for stage in report.stages:
        table.add_row(
            stage.name,
            "[green]passed[/green]" if stage.success else "[red]failed[/red]",
            f"{stage.duration_seconds:.1f}s",
            stage.detail or "",
        )
    return table


def print_report(report: PipelineReport) -> None:
    """Print the outcome of a successful or skipped run."""
    if report.outcome is RunOutcome.SKIPPED:
        console.print(SKIP_MESSAGE)
        return

    stage_names = {stage.name for stage in report.stages}
    if "test" in stage_names:
        console.print("[green]✅ Unit tests passed.[/green]")
    if "push" in stage_names and report.image_ref:
        console.print(f"[green]✅ Docker image pushed:[/green] {report.image_ref}")
    if "deploy" in stage_names:
        console.print("[green]✅ Deployment created in K8s.[/green]")

    if len(report.stages) > 1:
        console.print()
        console.print(generate_report_table(report))


@app.command()
def run(
    action: Annotated[
        Optional[str],
        typer.Argument(help="Pipeline action: test or deploy", show_default=False),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Run the pipeline for ACTION (test or deploy).

    Args:
        action: Pipeline action to run
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        action = _require_action(action)
    except InvalidInvocation as e:
        console.print(e.message)
        raise typer.Exit(code=e.exit_code)

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    if verbose:
        config.logging = config.logging.model_copy(update={"level": "DEBUG"})
    setup_logging(config.logging)

    controller = PipelineController(config)

    try:
        report = asyncio.run(controller.run(action))
    except PipelineError as e:
        console.print(f"[red]❌ {escape(e.message)}[/red]")
        raise typer.Exit(code=e.exit_code)

    print_report(report)


if __name__ == "__main__":
    app()
