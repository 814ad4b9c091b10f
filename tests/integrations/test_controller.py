import json

import pytest

from tax_form.error_handler import UnknownFieldError
from top_agent.controller import TopChatAgent


def test_handle_requires_open(store, fake_gateway_factory):
    with pytest.raises(RuntimeError):
        TopChatAgent(store, gateway=fake_gateway_factory([])).handle("hola")


def test_handle_maps_reply_and_writes_turn_log(store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory(["¿Cuál es tu nombre completo?", "Gracias, Ana."]))
    agent.open_subject("u-1")
    agent.handle("Hola")
    out = agent.handle("Ana Pérez")

    assert out["reply"] == "Gracias, Ana."
    assert out["footer"] is None  # the trigger was in the previous reply, not this one
    assert out["progress"]["percent_complete"] == 0

    log = store.root / "subjects" / "u-1" / "turn_log.jsonl"
    rows = [json.loads(x) for x in log.read_text(encoding="utf-8").splitlines()]
    assert [r["utterance"] for r in rows] == ["Hola", "Ana Pérez"]
    assert [m.role for m in agent.visible_messages()] == ["assistant", "user", "assistant", "user", "assistant"]


def test_name_answer_in_same_round_trip(store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory(["Perfecto, ¿es ese tu nombre completo?"]))
    agent.open_subject("u-1")
    out = agent.handle("Ana Pérez")
    assert out["footer"].splitlines()[0] == "Guardado: Nombre, Apellidos."
    assert agent.form() == {"firstName": "Ana", "lastName": "Pérez"}


def test_edit_progress_and_whats_left(store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory([]))
    agent.open_subject("u-1")
    res = agent.edit({"identification": "12345678Z", "firstName": "Ana", "lastName": "Pérez", "employmentIncome": "100"})
    assert res["durable"] is True
    assert agent.progress() == {"percent_complete": 40, "status": "in-progress"}
    left = agent.whats_left()
    assert left["identification"] == ["address", "postalCode", "city", "province"]
    with pytest.raises(UnknownFieldError):
        agent.edit({"nope": "1"})
    # reopen sees the saved record
    again = TopChatAgent(store, gateway=fake_gateway_factory([]))
    again.open_subject("u-1")
    assert again.progress()["percent_complete"] == 40


def test_onboarding(store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory([]))
    assert agent.is_onboarded("u-1") is False
    agent.complete_onboarding("u-1", first_name="Ana", last_name="Pérez", previously_filed=True)
    assert agent.is_onboarded("u-1") is True
