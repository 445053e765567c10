"""Configuration system for neuroloop. YAML-based with env var expansion and env var overlay."""

from __future__ import annotations

import os
import re
from datetime import date
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


# --- Config Models ---


class EngineConfig(BaseModel):
    """Formula and plan-lookup behaviour shared by every engine call."""
    # Raise on unknown plan ids instead of falling back to default_plan
    strict_plans: bool = False
    default_plan: str = "light"
    sharpness_formula: str = "modulated"  # "modulated" or "legacy"


class RecoveryConfig(BaseModel):
    """Recovery model selection and continuous-decay options."""
    model: str = "auto"  # "auto", "weekly" or "continuous_decay"
    # Users onboarded on or after this date start on the continuous model
    migration_date: date | None = None
    night_weighting: bool = False
    neutral_default: float = 50.0
    rri_valid_hours: int = 72


class BatchConfig(BaseModel):
    """Daily batch job behaviour."""
    fail_fast: bool = False
    min_snapshots: int = 10
    # Raw activity entries older than this are dropped by the daily refresh batch
    activity_retention_days: int = 30


class LoggingConfig(BaseModel):
    """Logging configuration."""
    format: str = "text"   # "text" or "json"
    level: str = "WARNING"


class Config(BaseModel):
    engine: EngineConfig = Field(default_factory=EngineConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# --- Helpers ---

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")
_ENV_PREFIX = "NEUROLOOP"
# Sections whose env names do not simply upper-case the section name
_ENV_SECTION_ALIASES = {"logging": "LOG"}


def get_config_dir() -> Path:
    """Get or create neuroloop config directory."""
    config_dir = Path.home() / ".neuroloop"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    return get_config_dir() / "config.yaml"


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR} in strings. Unset variables stay verbatim."""
    if isinstance(data, str):
        return _ENV_PATTERN.sub(lambda m: os.environ.get(m.group(1), m.group(0)), data)
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(v) for v in data]
    return data


def env_var_names() -> dict[str, tuple[str, str]]:
    """Every overridable field as {ENV_NAME: (section, field)}.

    Names follow NEUROLOOP_<SECTION>_<FIELD>, e.g. NEUROLOOP_RECOVERY_MODEL
    or NEUROLOOP_LOG_LEVEL.
    """
    names: dict[str, tuple[str, str]] = {}
    for section, section_field in Config.model_fields.items():
        model_cls = section_field.annotation
        prefix = _ENV_SECTION_ALIASES.get(section, section.upper())
        for field in model_cls.model_fields:
            names[f"{_ENV_PREFIX}_{prefix}_{field.upper()}"] = (section, field)
    return names


def _apply_env_overlay(data: dict[str, Any]) -> dict[str, Any]:
    """Lay NEUROLOOP_* variables over the YAML data.

    Values stay strings; Config validation coerces them ("1"/"no" to bool,
    "2026-05-01" to a date).
    """
    for env_name, (section, field) in env_var_names().items():
        raw_val = os.environ.get(env_name)
        if raw_val is None:
            continue
        section_data = data.get(section)
        if not isinstance(section_data, dict):
            section_data = data[section] = {}
        section_data[field] = raw_val
    return data


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def load_config(path: Path | None = None) -> Config:
    """Load config from YAML, expanding env vars, then applying NEUROLOOP_* env overlay."""
    data = _expand_env_vars(_read_yaml(path or get_config_path()))
    return Config(**_apply_env_overlay(data))


def save_config(config: Config, path: Path | None = None) -> None:
    _write_yaml(path or get_config_path(), config.model_dump(mode="json"))


def get_config_value(config: Config, key_path: str) -> Any:
    """Get nested config value via dot notation (e.g. 'recovery.model'). None when absent."""
    obj: Any = config
    for part in key_path.split("."):
        if not isinstance(obj, BaseModel) or part not in type(obj).model_fields:
            return None
        obj = getattr(obj, part)
    return obj


def set_config_value(key_path: str, value: str) -> Config:
    """Set config value via dot notation, save, and return updated config.

    The new value is validated before the file is written, so a bad value
    raises pydantic.ValidationError and leaves the file untouched.
    """
    config_path = get_config_path()
    raw = _read_yaml(config_path)
    *parents, leaf = key_path.split(".")
    node = raw
    for part in parents:
        if not isinstance(node.get(part), dict):
            node[part] = {}
        node = node[part]
    node[leaf] = value

    Config(**_expand_env_vars(raw))
    _write_yaml(config_path, raw)
    return load_config(config_path)
