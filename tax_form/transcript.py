"""
Project: Renta Assistant
File: transcript.py

Conversation transcript of one subject.

- Message: {role, content, sequence}; immutable once appended.
- Transcript: ordered messages. Sequence numbers start at 0 and are
  contiguous. The first message, when present, is the system message; it
  configures the assistant and is never shown on the chat surface.

Seeding (system prompt + assistant welcome) happens exactly once, when the
stored transcript is empty; see session.TaxFormSession.open().
"""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["system", "user", "assistant"]


class Message(BaseModel):
    role: Role
    content: str
    sequence: int = Field(ge=0)
    model_config = ConfigDict(frozen=True)


class Transcript(BaseModel):
    messages: List[Message] = Field(default_factory=list)

    @model_validator(mode="after")
    def _ordering(self) -> "Transcript":
        for idx, msg in enumerate(self.messages):
            if msg.sequence != idx:
                raise ValueError(f"message at position {idx} has sequence {msg.sequence}")
        if self.messages and self.messages[0].role != "system":
            raise ValueError("first message must be the system message")
        return self

    def __len__(self) -> int:
        return len(self.messages)

    @property
    def is_seeded(self) -> bool:
        return bool(self.messages)

    def next_message(self, role: Role, content: str) -> Message:
        """Build (do not append) the message that would come next."""
        return Message(role=role, content=content, sequence=len(self.messages))

    def append(self, message: Message) -> int:
        if message.sequence != len(self.messages):
            raise ValueError(f"expected sequence {len(self.messages)}, got {message.sequence}")
        if not self.messages and message.role != "system":
            raise ValueError("first message must be the system message")
        self.messages.append(message)
        return message.sequence

    def visible(self) -> List[Message]:
        """Messages for the chat surface (system message excluded)."""
        return [m for m in self.messages if m.role != "system"]

    def last_exchange(self) -> Optional[Tuple[Message, Message]]:
        """The newest (user, assistant) pair, if the transcript ends with one."""
        if len(self.messages) < 2:
            return None
        user, reply = self.messages[-2], self.messages[-1]
        if user.role == "user" and reply.role == "assistant":
            return user, reply
        return None


# ------------------------------------------------------------------------------
# Seed content
# ------------------------------------------------------------------------------

def system_prompt(tax_form: str) -> str:
    return (
        f"Eres un asistente fiscal especializado en la fiscalidad española y ayudas a una persona "
        f"a completar el {tax_form}.\n\n"
        "Guía al usuario paso a paso, con preguntas claras y directas, usando la terminología "
        "oficial y explicándola en un español sencillo cuando haga falta. Indica las deducciones "
        "que podrían aplicarse y responde a sus dudas sobre la declaración.\n\n"
        "Cuando necesites el nombre del contribuyente, pídele su nombre completo.\n\n"
        "No pidas datos sensibles completos como cuentas bancarias o direcciones exactas.\n\n"
        "Mantén un tono profesional y cercano, y responde siempre en español."
    )


def welcome_message(tax_form: str) -> str:
    return (
        f"Hola, soy tu asistente fiscal para la declaración de la renta ({tax_form}). "
        "Voy a ayudarte a completarla paso a paso. Para empezar, ¿presentaste la declaración "
        "el año pasado?"
    )
