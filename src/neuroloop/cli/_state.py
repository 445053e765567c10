"""Load local YAML/JSON state files into an in-memory repository."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import NoReturn

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from neuroloop.errors import ErrorCode, ErrorResponse, NeuroloopError
from neuroloop.repository import InMemoryMetricsRepository, UserData

console = Console()


def read_state_file(path: Path) -> InMemoryMetricsRepository:
    """Read `users: [...]` from a YAML or JSON file.

    Raises:
        NeuroloopError: NOT_FOUND for a missing file, VALIDATION_ERROR for
            unparseable or schema-invalid content.
    """
    if not path.exists():
        raise NeuroloopError(ErrorCode.NOT_FOUND, f"File not found: {path}", {"path": str(path)})
    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise NeuroloopError(
            ErrorCode.VALIDATION_ERROR, f"Unreadable state file: {e}", {"path": str(path)}
        ) from e
    if not isinstance(raw, dict) or not isinstance(raw.get("users", []), list):
        raise NeuroloopError(
            ErrorCode.VALIDATION_ERROR, "State file must be a mapping with a 'users' list", {"path": str(path)}
        )

    repo = InMemoryMetricsRepository()
    for i, entry in enumerate(raw.get("users", [])):
        try:
            repo.add_user(UserData.model_validate(entry))
        except ValidationError as e:
            raise NeuroloopError(
                ErrorCode.VALIDATION_ERROR,
                f"Invalid user #{i} in state file: {e.errors()[0]['msg']}",
                {"path": str(path), "index": i, "error_count": e.error_count()},
            ) from e
    return repo


def report_error(exc: NeuroloopError, as_json: bool = False) -> NoReturn:
    """Print a NeuroloopError (as an ErrorResponse when as_json) and exit 1."""
    if as_json:
        console.print_json(ErrorResponse.from_neuroloop_error(exc).model_dump_json())
    else:
        console.print(f"[red]{exc.code.value}:[/red] {exc.message}")
    raise typer.Exit(1)


def load_state_file(path: Path, as_json: bool = False) -> InMemoryMetricsRepository:
    """read_state_file for CLI commands: errors are reported and exit with code 1."""
    try:
        return read_state_file(path)
    except NeuroloopError as e:
        report_error(e, as_json)


def parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        console.print(f"[red]Invalid timestamp:[/red] {value}")
        raise typer.Exit(1)
