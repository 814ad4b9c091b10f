#!/usr/bin/env python3
"""
Project: Renta Assistant
File: assistant_gateway.py

Assistant Gateway
-----------------
The only network call on the round-trip hot path: given the full transcript
(system message included), return the next assistant message text.

The core depends only on the `AssistantGateway` protocol. The production
implementation wraps `langchain_openai.ChatOpenAI`; model name, temperature,
token cap and credentials come from configuration, never from the core.
History is sent as-is; context-window management is the model provider's
concern.

Failure mapping
- openai.RateLimitError                         -> RateLimited
- openai.APIConnectionError / APITimeoutError   -> RemoteUnavailable
- any other openai.APIStatusError / OpenAIError -> RemoteUnavailable
- empty or non-text content                     -> InvalidResponse

Public API
- class AssistantGateway(Protocol): async complete(messages) -> str
- class OpenAIAssistantGateway:
    - __init__(model=None, *, temperature=None, max_tokens=None, client=None)
    - async complete(messages) -> str
    - last_tokens: {"in": int, "out": int}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Sequence

import openai
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from tax_form import config
from tax_form.error_handler import InvalidResponse, RateLimited, RemoteUnavailable
from tax_form.transcript import Message


class AssistantGateway(Protocol):
    async def complete(self, messages: Sequence[Message]) -> str:
        ...


_LC_TYPES = {"system": SystemMessage, "user": HumanMessage, "assistant": AIMessage}


def _to_lc_messages(messages: Sequence[Message]) -> List[BaseMessage]:
    return [_LC_TYPES[m.role](content=m.content) for m in messages]


def _extract_token_usage(ai_msg: Any) -> Dict[str, int]:
    meta = getattr(ai_msg, "response_metadata", {}) or {}
    usage = meta.get("token_usage", {}) or {}
    return {
        "in": int(usage.get("prompt_tokens", usage.get("input_tokens", 0)) or 0),
        "out": int(usage.get("completion_tokens", usage.get("output_tokens", 0)) or 0),
    }


class OpenAIAssistantGateway:
    """
    Chat-completion gateway over LangChain's ChatOpenAI.

    Pass `client` (anything exposing `async ainvoke(messages)`) to bypass
    ChatOpenAI entirely; tests use this with a fake.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Any = None,
    ) -> None:
        self.model_name: str = model or config.OPENAI_MODEL
        self.temperature: float = config.ASSISTANT_TEMPERATURE if temperature is None else temperature
        self.max_tokens: int = config.ASSISTANT_MAX_TOKENS if max_tokens is None else max_tokens
        self._client: Any = client  # created lazily if None
        self.last_tokens: Dict[str, int] = {"in": 0, "out": 0}

    def _ensure_client(self) -> Any:
        if self._client is None:
            self._client = ChatOpenAI(
                model=self.model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        return self._client

    async def complete(self, messages: Sequence[Message]) -> str:
        details = {"model": self.model_name}
        try:
            client = self._ensure_client()
            ai_msg = await client.ainvoke(_to_lc_messages(messages))
        except openai.RateLimitError as e:
            raise RateLimited(str(e), details={**details, "status": 429}) from e
        except openai.APIConnectionError as e:
            raise RemoteUnavailable(str(e), details={**details, "kind": type(e).__name__}) from e
        except openai.APIStatusError as e:
            raise RemoteUnavailable(str(e), details={**details, "status": e.status_code}) from e
        except openai.OpenAIError as e:
            raise RemoteUnavailable(str(e), details={**details, "kind": type(e).__name__}) from e

        content = getattr(ai_msg, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise InvalidResponse(
                "assistant returned no text content",
                details={**details, "content_type": type(content).__name__},
            )

        self.last_tokens = _extract_token_usage(ai_msg)
        return content.strip()
