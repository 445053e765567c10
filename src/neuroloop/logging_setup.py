"""Structured logging setup for neuroloop.

Every engine module logs through the "neuroloop" logger. Batch runs tag
their records with a job id and the user being computed, both carried in
context vars so nested engine calls need no extra arguments.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from neuroloop.config import Config

LOGGER_NAME = "neuroloop"
TEXT_FORMAT = "%(levelname)s %(name)s%(context)s: %(message)s"

# Per-run job id (one batch invocation) and the user currently being computed
job_id: ContextVar[str] = ContextVar("job_id", default="")
current_user: ContextVar[str] = ContextVar("current_user", default="")


class _JobContextFilter(logging.Filter):
    """Copy job_id/user_id onto the record, plus a ready-made " [job user]" tag."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_id = job_id.get("")  # type: ignore[attr-defined]
        record.user_id = current_user.get("")  # type: ignore[attr-defined]
        tags = " ".join(t for t in (record.job_id, record.user_id) if t)  # type: ignore[attr-defined]
        record.context = f" [{tags}]" if tags else ""  # type: ignore[attr-defined]
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line; job_id/user_id only when set."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.name,
        }
        for key in ("job_id", "user_id"):
            value = getattr(record, key, "")
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(config: "Config") -> logging.Logger:
    """Attach a single stream handler to the "neuroloop" logger.

    Format follows config.logging.format ("json" or text); unknown level
    names fall back to WARNING. Calling again replaces the handler.
    """
    log_cfg = config.logging
    level = getattr(logging, log_cfg.level.upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.addFilter(_JobContextFilter())
    if log_cfg.format.lower() == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    return logger


def new_job_id() -> str:
    """Generate and set a new job ID for the current context."""
    jid = uuid.uuid4().hex[:12]
    job_id.set(jid)
    return jid
