"""CLI commands for scoring users and one-off metric calculations."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from neuroloop.cli._state import load_state_file, parse_now, report_error
from neuroloop.errors import NeuroloopError
from neuroloop.metrics.recovery import calculate_recovery, compute_rri
from neuroloop.metrics.scores import (
    SharpnessFormula,
    calculate_readiness,
    calculate_sharpness,
    classify_readiness,
)
from neuroloop.models import SkillVector
from neuroloop.plans import PLANS
from neuroloop.service import MetricsService, snapshot_to_dict

console = Console()


def register(app: typer.Typer, calc_app: typer.Typer, get_config) -> None:
    """Register scoring commands on the main app and calculators on the calc sub-app."""

    @app.command("plans")
    def plans():
        """Show the static plan table."""
        table = Table(title="Plans")
        table.add_column("Plan")
        table.add_column("Weekly XP", justify="right")
        table.add_column("TC cap", justify="right")
        table.add_column("Detox min", justify="right")
        table.add_column("Difficulties")
        for plan in PLANS.values():
            table.add_row(
                plan.plan_id.value,
                str(plan.weekly_xp_target),
                str(plan.tc_cap),
                str(plan.detox_target_minutes),
                ", ".join(d.value for d in plan.allowed_difficulties),
            )
        console.print(table)

    @app.command("score")
    def score(
        state_file: str = typer.Argument(..., help="YAML/JSON file with a 'users' list"),
        user: Optional[str] = typer.Option(None, "--user", "-u", help="Only this user id"),
        now: Optional[str] = typer.Option(None, "--now", help="ISO timestamp (default: current time)"),
        as_json: bool = typer.Option(False, "--json", help="Print the full breakdown as JSON"),
    ):
        """Run the daily refresh for users in a state file and show their dashboard."""
        repo = load_state_file(Path(state_file), as_json)
        ts = parse_now(now)
        service = MetricsService(repo, get_config())
        user_ids = [user] if user else repo.list_user_ids()

        results = []
        for uid in user_ids:
            try:
                results.append(service.daily_refresh(uid, ts))
            except NeuroloopError as e:
                report_error(e, as_json)

        if as_json:
            console.print_json(json.dumps([snapshot_to_dict(r) for r in results], default=str))
            return

        for snap in results:
            data = snap.as_dict()
            table = Table(title=f"{snap.user_id} ({snap.plan_id})")
            table.add_column("Metric")
            table.add_column("Value", justify="right")
            for key in ("recovery", "sharpness", "readiness", "dual_process", "rq", "sci",
                        "training_capacity", "cognitive_age"):
                table.add_row(key, "-" if data[key] is None else str(data[key]))
            table.add_row("suggested game", f"{data['suggested_game']} ({data['guidance_reason']})")
            table.add_row("difficulty", f"{data['difficulty']} [{', '.join(data['difficulty_reasons'])}]")
            table.add_row("top suggestion", str(data["top_suggestion"]))
            console.print(table)

    # --- Calculators ---

    @calc_app.command("recovery")
    def calc_recovery(
        detox: float = typer.Option(0.0, "--detox", help="Weekly detox minutes"),
        walk: float = typer.Option(0.0, "--walk", help="Weekly walk minutes"),
        target: float = typer.Option(840.0, "--target", help="Detox target minutes"),
    ):
        """Weekly recovery score."""
        console.print(f"Recovery = {calculate_recovery(detox, walk, target)}")

    @calc_app.command("readiness")
    def calc_readiness(
        ae: float = typer.Option(50.0, "--ae"),
        ra: float = typer.Option(50.0, "--ra"),
        ct: float = typer.Option(50.0, "--ct"),
        in_: float = typer.Option(50.0, "--in"),
        recovery: float = typer.Option(50.0, "--recovery"),
        physio: Optional[float] = typer.Option(None, "--physio"),
    ):
        """Readiness from skills, recovery and optional physio."""
        skills = SkillVector(ae=ae, ra=ra, ct=ct, in_=in_)
        value = calculate_readiness(skills, recovery, physio)
        console.print(f"Readiness = {value} ({classify_readiness(value)})")

    @calc_app.command("sharpness")
    def calc_sharpness(
        ae: float = typer.Option(50.0, "--ae"),
        ra: float = typer.Option(50.0, "--ra"),
        ct: float = typer.Option(50.0, "--ct"),
        in_: float = typer.Option(50.0, "--in"),
        recovery: float = typer.Option(50.0, "--recovery"),
        formula: Optional[str] = typer.Option(None, "--formula", help="modulated or legacy"),
    ):
        """Sharpness from skills and recovery."""
        chosen = formula or get_config().engine.sharpness_formula
        try:
            sharp_formula = SharpnessFormula(chosen)
        except ValueError:
            console.print(f"[red]Unknown formula:[/red] {chosen}")
            raise typer.Exit(1)
        skills = SkillVector(ae=ae, ra=ra, ct=ct, in_=in_)
        console.print(f"Sharpness = {calculate_sharpness(skills, recovery, sharp_formula)}")

    @calc_app.command("rri")
    def calc_rri(
        sleep_hours: Optional[float] = typer.Option(None, "--sleep"),
        detox_minutes: Optional[float] = typer.Option(None, "--detox"),
        mental: Optional[str] = typer.Option(None, "--mental", help="foggy, tired, ok, clear, very_clear"),
    ):
        """Recovery Readiness Init estimate."""
        rri = compute_rri(sleep_hours, detox_minutes, mental)
        console.print(
            f"RRI = {rri.value} (sleep +{rri.sleep_bonus}, detox +{rri.detox_bonus}, mental +{rri.mental_bonus})"
        )
