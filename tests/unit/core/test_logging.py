from __future__ import annotations

import json
import logging

import pytest

import leadflow.core.startup as startup_module
from leadflow.core.exceptions import ConfigurationError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.core.logging_config import JsonFormatter


def test_build_log_event_carries_context_and_fields():
    payload = build_log_event("board.stage_change.confirmed", LogContext(actor_id=4, lead_id=9), target="won")
    assert payload["event"] == "board.stage_change.confirmed"
    assert payload["actor_id"] == 4
    assert payload["lead_id"] == 9
    assert payload["job_id"] is None
    assert payload["target"] == "won"
    assert "timestamp" in payload


def test_json_formatter_includes_extra_fields():
    logger = logging.getLogger("leadflow.test")
    record = logger.makeRecord(
        logger.name,
        logging.WARNING,
        __file__,
        1,
        "import.poll.failed",
        None,
        None,
        extra=build_log_event("import.poll.failed", LogContext(job_id="job-1"), error="boom"),
    )
    line = json.loads(JsonFormatter().format(record))
    assert line["level"] == "WARNING"
    assert line["message"] == "import.poll.failed"
    assert line["job_id"] == "job-1"
    assert line["error"] == "boom"


def test_startup_raises_when_database_unreachable(monkeypatch):
    monkeypatch.setattr(startup_module.db_module, "verify_database_connection", lambda: False)
    with pytest.raises(ConfigurationError, match="Database connectivity check failed"):
        startup_module.validate_startup_config()


def test_bootstrap_validates_then_seeds(tmp_path, monkeypatch):
    calls = []
    monkeypatch.setattr(startup_module, "configure_logging", lambda: calls.append("logging"))
    startup_module.db_module.reset_engine(f"sqlite:///{tmp_path / 'bootstrap.db'}")
    try:
        assert startup_module.bootstrap() == 15
        assert startup_module.bootstrap() == 0
    finally:
        startup_module.db_module.reset_engine(startup_module.db_module.config.DATABASE_URL)
    assert calls == ["logging", "logging"]


def test_init_db_creates_schema_and_seeds_catalog_once(tmp_path):
    startup_module.db_module.reset_engine(f"sqlite:///{tmp_path / 'boot.db'}")
    try:
        assert startup_module.init_db() == 15
        assert startup_module.init_db() == 0
    finally:
        startup_module.db_module.reset_engine(startup_module.db_module.config.DATABASE_URL)
