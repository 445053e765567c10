"""Tests for structured logging setup and the job/user context filter."""

from __future__ import annotations

import json
import logging

import pytest

from neuroloop.config import Config, LoggingConfig
from neuroloop.logging_setup import (
    LOGGER_NAME,
    StructuredFormatter,
    _JobContextFilter,
    current_user,
    job_id,
    new_job_id,
    setup_logging,
)


@pytest.fixture
def restore_neuroloop_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)


def _make_record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("neuroloop", logging.INFO, __file__, 1, msg, None, None)


def test_structured_formatter_basic_fields():
    payload = json.loads(StructuredFormatter().format(_make_record()))
    assert payload["level"] == "INFO"
    assert payload["message"] == "hello"
    assert payload["module"] == "neuroloop"
    assert payload["timestamp"].endswith("Z")
    assert "job_id" not in payload


def test_context_filter_injects_job_and_user():
    jid_token = job_id.set("abc123")
    user_token = current_user.set("u1")
    try:
        record = _make_record()
        _JobContextFilter().filter(record)
        payload = json.loads(StructuredFormatter().format(record))
    finally:
        job_id.reset(jid_token)
        current_user.reset(user_token)
    assert payload["job_id"] == "abc123"
    assert payload["user_id"] == "u1"
    assert record.context == " [abc123 u1]"


def test_context_filter_empty_context():
    record = _make_record()
    _JobContextFilter().filter(record)
    assert record.context == ""


def test_new_job_id_sets_context():
    jid = new_job_id()
    assert len(jid) == 12
    assert job_id.get() == jid


def test_setup_logging_json(restore_neuroloop_logger):
    logger = setup_logging(Config(logging=LoggingConfig(format="json", level="DEBUG")))
    assert logger.name == LOGGER_NAME
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, StructuredFormatter)


def test_setup_logging_is_repeatable(restore_neuroloop_logger):
    setup_logging(Config())
    logger = setup_logging(Config())
    assert len(logger.handlers) == 1


def test_setup_logging_text_and_bad_level(restore_neuroloop_logger):
    logger = setup_logging(Config(logging=LoggingConfig(format="text", level="NOPE")))
    assert logger.level == logging.WARNING
    assert not isinstance(logger.handlers[0].formatter, StructuredFormatter)
    record = _make_record("ready")
    _JobContextFilter().filter(record)
    assert logger.handlers[0].format(record) == "INFO neuroloop: ready"
