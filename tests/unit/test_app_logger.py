import json
import logging

import pytest

from tax_form import app_logger


@pytest.fixture()
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_FILE", "unit.jsonl")
    app_logger.reset()
    yield tmp_path / "logs"
    app_logger.reset()


def test_log_level_from_env_filters_lines(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    app_logger.log_event("QUIET", {"n": 1})
    app_logger.log_error_event("LOUD", {"code": "IO_PERSISTENCE_FAILURE", "correlation_id": "turn-x"})
    for h in logging.getLogger(app_logger.LOGGER_NAME).handlers:
        h.flush()

    rows = [json.loads(x) for x in (log_dir / "unit.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [r["event"] for r in rows] == ["LOUD"]
    assert rows[0]["cid"] == "turn-x"
    assert rows[0]["lvl"] == "ERROR"


def test_configure_is_one_time_until_reset(log_dir):
    app_logger.configure()
    app_logger.configure()
    assert len(logging.getLogger(app_logger.LOGGER_NAME).handlers) == 1
    app_logger.reset()
    assert logging.getLogger(app_logger.LOGGER_NAME).handlers == []
