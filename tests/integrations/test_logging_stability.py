# tests/integrations/test_logging_stability.py
"""
The JSONL app log carries one TURN line per round-trip with stable keys,
and gateway failures additionally log an ERROR line with the envelope.
"""

import json
import logging

import pytest

from tax_form import app_logger
from tax_form.error_handler import RateLimited
from top_agent.controller import TopChatAgent


@pytest.fixture()
def log_file(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("LOG_FILE", "app.jsonl")
    app_logger.reset()
    yield tmp_path / "logs" / "app.jsonl"
    app_logger.reset()


def _lines(path):
    for h in logging.getLogger(app_logger.LOGGER_NAME).handlers:
        h.flush()
    return [json.loads(x) for x in path.read_text(encoding="utf-8").splitlines() if x.strip()]


def test_turn_lines_have_stable_keys(log_file, store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory(["¿Cuál es tu nombre completo?", "Gracias."]))
    agent.open_subject("u-9")
    agent.handle("hola")
    agent.handle("Ana Pérez")

    lines = _lines(log_file)
    assert lines[0]["event"] == "SESSION_OPENED"
    turns = [x for x in lines if x["event"] == "TURN"]
    assert len(turns) == 2
    for t in turns:
        assert set(t) == {"ts", "lvl", "event", "cid", "subject", "msg", "payload"}
        assert t["lvl"] == "INFO"
        assert t["subject"] == "u-9"
        assert t["cid"] == t["payload"]["correlation_id"]
        assert t["ts"].endswith("Z")


def test_gateway_failure_logs_error_and_warning_turn(log_file, store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory([RateLimited("429")]))
    agent.open_subject("u-9")
    out = agent.handle("hola")

    assert out["packet"]["ok"] is False
    assert "demasiadas peticiones" in out["reply"]

    lines = _lines(log_file)
    err = [x for x in lines if x["event"] == "GATEWAY_FAILURE"]
    turn = [x for x in lines if x["event"] == "TURN"]
    assert err and err[0]["lvl"] == "ERROR"
    assert err[0]["payload"]["code"] == "ASSISTANT_RATE_LIMITED"
    assert turn[0]["lvl"] == "WARNING"
    assert turn[0]["cid"] == err[0]["cid"]
