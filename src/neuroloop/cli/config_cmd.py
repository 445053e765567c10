"""CLI commands for inspecting and editing ~/.neuroloop/config.yaml."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from neuroloop.config import env_var_names, get_config_path, get_config_value, save_config

console = Console()


def register(config_app: typer.Typer, get_config, set_config_value) -> None:
    """Register config commands on the config sub-app."""

    @config_app.command("show")
    def config_show(as_json: bool = typer.Option(False, "--json", help="Print raw JSON")):
        """Show the effective configuration (file + env overlay)."""
        cfg = get_config()
        if as_json:
            console.print_json(cfg.model_dump_json(indent=2))
            return
        env_by_key = {f"{s}.{f}": name for name, (s, f) in env_var_names().items()}
        table = Table(title="neuroloop config")
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_column("Env override", style="dim")
        for section, values in cfg.model_dump(mode="json").items():
            for field, value in values.items():
                key = f"{section}.{field}"
                table.add_row(key, str(value), env_by_key.get(key, ""))
        console.print(table)

    @config_app.command("get")
    def config_get(key: str = typer.Argument(..., help="Dot path, e.g. recovery.model")):
        """Print one config value."""
        val = get_config_value(get_config(), key)
        if val is None:
            console.print(f"[red]Unknown config key:[/red] {key}")
            raise typer.Exit(1)
        console.print(f"{key} = {val}")

    @config_app.command("set")
    def config_set(key: str = typer.Argument(...), value: str = typer.Argument(...)):
        """Persist a config value (dot notation: recovery.model)."""
        try:
            set_config_value(key, value)
        except ValidationError as e:
            console.print(f"[red]Rejected {key}={value}:[/red] {e.errors()[0]['msg']}")
            raise typer.Exit(1)
        console.print(f"[green]Set[/green] {key} = {value}")

    @config_app.command("init")
    def config_init(
        path: str = typer.Option(None, "--path", "-p", help="Target file (default ~/.neuroloop/config.yaml)"),
        force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
    ):
        """Write the effective configuration to disk as a starting point."""
        target = Path(path) if path else get_config_path()
        if target.exists() and not force:
            console.print(f"[yellow]{target} already exists[/yellow] (use --force to overwrite)")
            raise typer.Exit(1)
        save_config(get_config(), target)
        console.print(f"[green]Config written to[/green] {target}")
