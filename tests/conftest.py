"""
tests/conftest.py

Purpose
-------
Global pytest configuration for the entire test suite.

What this does
--------------
1) Loads `.env` values at session start so OPENAI_MODEL and friends resolve
   the same way they do for the CLI.
2) Points the `renta` JSONL logger at a per-session temp directory, so no
   test writes into ./logs.
3) Provides the shared fakes: a scripted assistant gateway and a tmp store.

File / module dependencies
--------------------------
- tax_form.app_logger (log directory redirected here)
- top_agent.local_store.LocalStore (tmp-backed store fixture)
- dotenv, pytest
"""

import os
from typing import List, Sequence

import dotenv
import pytest

from tax_form import app_logger
from tax_form.error_handler import AssistantGatewayError
from tax_form.transcript import Message
from top_agent.local_store import LocalStore

dotenv.load_dotenv()


@pytest.fixture(scope="session", autouse=True)
def configure_log_root(tmp_path_factory):
    """Send every app_logger line of the run to one temp JSONL file."""
    log_dir = tmp_path_factory.mktemp("logs")
    os.environ["LOG_DIR"] = str(log_dir)
    os.environ.setdefault("OPENAI_MODEL", "gpt-4o-mini")
    app_logger.reset()
    yield log_dir
    app_logger.reset()


class FakeGateway:
    """
    Scripted assistant: each complete() pops the next reply. A reply that is
    an exception instance is raised instead. Every call records the messages
    it was given.
    """

    def __init__(self, replies: Sequence[object]):
        self.replies: List[object] = list(replies)
        self.calls: List[List[Message]] = []
        self.last_tokens = {"in": 11, "out": 7}

    async def complete(self, messages: Sequence[Message]) -> str:
        self.calls.append(list(messages))
        reply = self.replies.pop(0)
        if isinstance(reply, AssistantGatewayError):
            raise reply
        return str(reply)


@pytest.fixture()
def store(tmp_path) -> LocalStore:
    return LocalStore(tmp_path / "store")


@pytest.fixture()
def fake_gateway_factory():
    return FakeGateway
