"""CLI commands for daily batch jobs."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from neuroloop.batch import run_cognitive_age_batch, run_daily_refresh_batch
from neuroloop.cli._state import load_state_file, parse_now

console = Console()


def _print_summary(summary: dict) -> None:
    console.print(
        f"[bold]{summary['job']}[/bold] {summary['job_id']}: "
        f"processed={summary['processed']} skipped={summary['skipped']} errors={summary['errors']}"
    )
    for uid in summary["failed_users"]:
        console.print(f"  [red]failed:[/red] {uid}")


def register(batch_app: typer.Typer, get_config) -> None:
    """Register batch commands on the batch sub-app."""

    @batch_app.command("cognitive-age")
    def cognitive_age(
        state_file: str = typer.Argument(..., help="YAML/JSON file with a 'users' list"),
        now: Optional[str] = typer.Option(None, "--now", help="ISO timestamp (default: current time)"),
    ):
        """Recompute cognitive age for every user in the file."""
        repo = load_state_file(Path(state_file))
        summary = run_cognitive_age_batch(repo, parse_now(now).date(), get_config())
        _print_summary(summary)
        if summary["errors"]:
            raise typer.Exit(1)

    @batch_app.command("refresh")
    def refresh(
        state_file: str = typer.Argument(..., help="YAML/JSON file with a 'users' list"),
        now: Optional[str] = typer.Option(None, "--now", help="ISO timestamp (default: current time)"),
    ):
        """Run the daily metric refresh for every user in the file."""
        repo = load_state_file(Path(state_file))
        summary = run_daily_refresh_batch(repo, parse_now(now), get_config())
        _print_summary(summary)
        if summary["errors"]:
            raise typer.Exit(1)
