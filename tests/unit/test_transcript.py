import pytest
from pydantic import ValidationError

from tax_form.transcript import Message, Transcript, system_prompt, welcome_message


def _seeded() -> Transcript:
    t = Transcript()
    t.append(t.next_message("system", system_prompt("Modelo 100")))
    t.append(t.next_message("assistant", welcome_message("Modelo 100")))
    return t


def test_seeded_transcript_hides_system_message():
    t = _seeded()
    assert t.is_seeded
    assert [m.role for m in t.visible()] == ["assistant"]
    assert "nombre completo" in t.messages[0].content


def test_sequence_must_be_contiguous():
    t = _seeded()
    with pytest.raises(ValueError):
        t.append(Message(role="user", content="hola", sequence=5))
    with pytest.raises(ValidationError):
        Transcript(messages=[Message(role="system", content="s", sequence=1)])


def test_first_message_must_be_system():
    with pytest.raises(ValueError):
        Transcript().append(Message(role="user", content="hola", sequence=0))


def test_last_exchange():
    t = _seeded()
    assert t.last_exchange() is None
    t.append(t.next_message("user", "Ana Pérez"))
    t.append(t.next_message("assistant", "Gracias"))
    user, reply = t.last_exchange()
    assert (user.content, reply.content) == ("Ana Pérez", "Gracias")


def test_messages_are_immutable():
    m = Message(role="user", content="x", sequence=0)
    with pytest.raises(ValidationError):
        m.content = "y"
