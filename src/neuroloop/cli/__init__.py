"""neuroloop CLI - inspect config and run the metrics engine on local state files."""

from __future__ import annotations

import typer

from neuroloop.config import Config, load_config, set_config_value
from neuroloop.logging_setup import setup_logging

# Bootstrap logging from config (respects NEUROLOOP_LOG_FORMAT / NEUROLOOP_LOG_LEVEL)
setup_logging(load_config())

app = typer.Typer(name="neuroloop", help="Cognitive metrics engine developer tools")
config_app = typer.Typer(help="Manage configuration")
calc_app = typer.Typer(help="One-off metric calculations")
batch_app = typer.Typer(help="Run daily batch jobs against a state file")

app.add_typer(config_app, name="config")
app.add_typer(calc_app, name="calc")
app.add_typer(batch_app, name="batch")

_config: Config | None = None


def _get_config() -> Config:
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _set_config_value(key: str, value: str) -> Config:
    global _config
    _config = set_config_value(key, value)
    return _config


# Register commands from sub-modules
from neuroloop.cli import config_cmd as _config_cmd_mod  # noqa: E402
from neuroloop.cli import metrics_cmd as _metrics_cmd_mod  # noqa: E402
from neuroloop.cli import batch_cmd as _batch_cmd_mod  # noqa: E402

_config_cmd_mod.register(config_app, _get_config, _set_config_value)
_metrics_cmd_mod.register(app, calc_app, _get_config)
_batch_cmd_mod.register(batch_app, _get_config)

if __name__ == "__main__":
    app()
