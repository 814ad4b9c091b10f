# tax_form/app_logger.py
"""
JSONL event log for the renta assistant.

Every line carries ts/lvl/event/cid/subject/msg and, when present, the
event payload (a TurnPacket or an error envelope). Location and level come
from LOG_DIR, LOG_FILE and LOG_LEVEL; configuration happens once per
process and reset() undoes it for tests.
"""
from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_NAME = "renta"

_state: Dict[str, Any] = {"logger": None}


class _JsonlFormatter(logging.Formatter):
    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%SZ"),
            "lvl": record.levelname,
            "event": getattr(record, "event", None),
            "cid": getattr(record, "correlation_id", None),
            "subject": getattr(record, "subject", None),
            "msg": record.getMessage() or None,
        }
        payload = getattr(record, "payload", None)
        if isinstance(payload, dict) and payload:
            line["payload"] = payload
        return json.dumps(line, ensure_ascii=False, separators=(",", ":"), default=str)


def _level(value: str | int | None) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName((value or os.getenv("LOG_LEVEL") or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure(*, root_dir: str | Path = "logs", filename: str = "app.jsonl", level: str | int | None = None) -> None:
    """Attach the JSONL file handler to the renta logger (no-op once configured)."""
    if _state["logger"] is not None:
        return

    target = Path(os.getenv("LOG_DIR", str(root_dir)))
    target.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(target / os.getenv("LOG_FILE", filename), encoding="utf-8")
    handler.setFormatter(_JsonlFormatter())

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_level(level))
    logger.propagate = False
    logger.addHandler(handler)
    _state["logger"] = logger


def reset() -> None:
    """Close and detach handlers; the next get() reconfigures from the environment."""
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    _state["logger"] = None


def get() -> logging.Logger:
    if _state["logger"] is None:
        configure()
    return _state["logger"]


def log_event(
    event: str,
    payload: Dict[str, Any],
    *,
    correlation_id: Optional[str] = None,
    subject: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    get().log(
        level,
        event,
        extra={"event": event, "payload": payload, "correlation_id": correlation_id, "subject": subject},
    )


def log_turn_packet(packet: Dict[str, Any], *, subject: Optional[str] = None) -> None:
    """One TURN line per round-trip; failed round-trips log at WARNING."""
    log_event(
        "TURN",
        packet,
        correlation_id=packet.get("correlation_id"),
        subject=subject,
        level=logging.INFO if packet.get("ok") else logging.WARNING,
    )


def log_error_event(event: str, error_obj: Dict[str, Any], *, subject: Optional[str] = None) -> None:
    log_event(event, error_obj, correlation_id=error_obj.get("correlation_id"), subject=subject, level=logging.ERROR)
