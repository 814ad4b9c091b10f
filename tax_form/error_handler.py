# tax_form/error_handler.py
"""
Unified, actionable error envelope for the tax-form assistant.

Two layers live here:

1) The exception hierarchy raised inside the pipeline (store, gateway,
   session, review edits). Each exception class carries the stable error
   code it maps to and whether simply retrying can succeed.

2) A single, stable "error object" shape that travels in the session
   TurnPacket at packet["error"] (or None when no error), built by
   `make_error` or `error_from_exception`.

Error object contract (MUST NOT BREAK):
---------------------------------------
{
  "code": <ENUM>,              # stable, app-specific
  "origin": <str>,             # "assistant" | "io" | "session" | "review" | "unknown"
  "retryable": <bool>,         # can the user simply try again?
  "user_message": <str>,       # short, user-safe message (Spanish, rendered verbatim)
  "next_actions": <list[str]>, # 1–3 verbs the UI maps to quick replies
  "dev_message": <str|None>,   # terse technical reason, safe to log (not shown to users)
  "details": <dict>,           # diagnostics (exception type, model, status…)
  "context": <dict>,           # e.g., {"subject": "u-42", "stage": "form_write"}
  "timestamp": <iso-utc>,
  "correlation_id": <str>      # ties together logs for this round-trip
}

Usage:
------
try:
    reply = await gateway.complete(messages)
except AssistantGatewayError as exc:
    err = error_from_exception(exc, correlation_id=cid, context={"stage": "assistant"})
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union


# ----------------------------- Enums & constants -----------------------------

class ErrorCode(str, Enum):
    ASSISTANT_UNAVAILABLE = "ASSISTANT_UNAVAILABLE"
    ASSISTANT_RATE_LIMITED = "ASSISTANT_RATE_LIMITED"
    ASSISTANT_INVALID_RESPONSE = "ASSISTANT_INVALID_RESPONSE"
    IO_PERSISTENCE_FAILURE = "IO_PERSISTENCE_FAILURE"
    SEND_IN_PROGRESS = "SEND_IN_PROGRESS"
    UNKNOWN_FIELD = "UNKNOWN_FIELD"
    FORM_VALIDATION_FAILURE = "FORM_VALIDATION_FAILURE"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorOrigin(str, Enum):
    ASSISTANT = "assistant"
    IO = "io"
    SESSION = "session"
    REVIEW = "review"
    UNKNOWN = "unknown"


class NextAction(str, Enum):
    RETRY_SEND = "RETRY_SEND"
    RETRY_LATER = "RETRY_LATER"
    WAIT_FOR_REPLY = "WAIT_FOR_REPLY"
    REVIEW_FORM = "REVIEW_FORM"
    FIX_FIELD = "FIX_FIELD"


_DEFAULT_USER_MESSAGES: Mapping[ErrorCode, str] = {
    ErrorCode.ASSISTANT_UNAVAILABLE: "El asistente no está disponible ahora mismo. Vuelve a enviar tu mensaje en unos momentos.",
    ErrorCode.ASSISTANT_RATE_LIMITED: "El asistente está recibiendo demasiadas peticiones. Espera un momento y vuelve a enviar tu mensaje.",
    ErrorCode.ASSISTANT_INVALID_RESPONSE: "No se pudo procesar la respuesta del asistente. Vuelve a enviar tu mensaje.",
    ErrorCode.IO_PERSISTENCE_FAILURE: "No se pudieron guardar los cambios todavía. Puedes continuar; se volverá a intentar.",
    ErrorCode.SEND_IN_PROGRESS: "Espera a que el asistente responda antes de enviar otro mensaje.",
    ErrorCode.UNKNOWN_FIELD: "Ese campo no existe en el formulario.",
    ErrorCode.FORM_VALIDATION_FAILURE: "Revisa el valor introducido en el formulario.",
    ErrorCode.UNKNOWN_ERROR: "No se pudo procesar tu mensaje.",
}

_DEFAULT_ACTIONS: Mapping[ErrorCode, Tuple[NextAction, ...]] = {
    ErrorCode.ASSISTANT_UNAVAILABLE: (NextAction.RETRY_SEND, NextAction.REVIEW_FORM),
    ErrorCode.ASSISTANT_RATE_LIMITED: (NextAction.RETRY_LATER,),
    ErrorCode.ASSISTANT_INVALID_RESPONSE: (NextAction.RETRY_SEND,),
    ErrorCode.IO_PERSISTENCE_FAILURE: (NextAction.RETRY_LATER,),
    ErrorCode.SEND_IN_PROGRESS: (NextAction.WAIT_FOR_REPLY,),
    ErrorCode.UNKNOWN_FIELD: (NextAction.FIX_FIELD,),
    ErrorCode.FORM_VALIDATION_FAILURE: (NextAction.FIX_FIELD,),
    ErrorCode.UNKNOWN_ERROR: (NextAction.RETRY_SEND,),
}


# ------------------------------- Exceptions ----------------------------------

class TaxFormError(Exception):
    """Base class; subclasses pin the envelope code/origin they map to."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    origin: ErrorOrigin = ErrorOrigin.UNKNOWN
    retryable: bool = True

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message)
        self.details: Dict[str, Any] = dict(details or {})


class PersistenceError(TaxFormError):
    """Backing store unreachable or write rejected."""
    code = ErrorCode.IO_PERSISTENCE_FAILURE
    origin = ErrorOrigin.IO


class AssistantGatewayError(TaxFormError):
    origin = ErrorOrigin.ASSISTANT


class RemoteUnavailable(AssistantGatewayError):
    code = ErrorCode.ASSISTANT_UNAVAILABLE


class RateLimited(AssistantGatewayError):
    code = ErrorCode.ASSISTANT_RATE_LIMITED


class InvalidResponse(AssistantGatewayError):
    code = ErrorCode.ASSISTANT_INVALID_RESPONSE


class SendInProgress(TaxFormError):
    """A round-trip for this subject is still in flight."""
    code = ErrorCode.SEND_IN_PROGRESS
    origin = ErrorOrigin.SESSION


class UnknownFieldError(TaxFormError, KeyError):
    code = ErrorCode.UNKNOWN_FIELD
    origin = ErrorOrigin.REVIEW
    retryable = False

    def __str__(self) -> str:
        return Exception.__str__(self)


class FormValidationError(TaxFormError, ValueError):
    code = ErrorCode.FORM_VALIDATION_FAILURE
    origin = ErrorOrigin.REVIEW
    retryable = False


# ----------------------------- Utility helpers ------------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def new_correlation_id(prefix: str = "turn") -> str:
    """Build a correlation id that can be grepped across app and turn logs."""
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _ensure_actions(values: Optional[Sequence[Union[str, NextAction]]]) -> List[str]:
    if not values:
        return []
    out: List[str] = []
    for v in values:
        s = v.value if isinstance(v, NextAction) else str(v)
        if s and s not in out:
            out.append(s)
    # keep at most 3 per the UI guidance
    return out[:3]


# ------------------------------- Main factory --------------------------------

def make_error(
    *,
    code: Union[ErrorCode, str],
    origin: Union[ErrorOrigin, str] = ErrorOrigin.UNKNOWN,
    retryable: bool,
    user_message: Optional[str] = None,
    next_actions: Optional[Sequence[Union[str, NextAction]]] = None,
    dev_message: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
    correlation_id: Optional[str] = None,
    now: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Construct a fully-formed error object (dict) consistent with the app-wide contract.

    `user_message` and `next_actions` default from `code`; unknown codes and
    origins collapse to UNKNOWN_ERROR / unknown.
    """
    try:
        code_enum = ErrorCode(code)
    except ValueError:
        code_enum = ErrorCode.UNKNOWN_ERROR

    try:
        origin_enum = ErrorOrigin(origin)
    except ValueError:
        origin_enum = ErrorOrigin.UNKNOWN

    msg = (user_message or _DEFAULT_USER_MESSAGES[code_enum]).strip()
    actions = _ensure_actions(next_actions) or [a.value for a in _DEFAULT_ACTIONS[code_enum]]

    return {
        "code": code_enum.value,
        "origin": origin_enum.value,
        "retryable": bool(retryable),
        "user_message": msg,
        "next_actions": actions,
        "dev_message": (dev_message or None),
        "details": dict(details or {}),
        "context": dict(context or {}),
        "timestamp": (now or _now_iso()),
        "correlation_id": correlation_id or new_correlation_id(),
    }


def error_from_exception(
    exc: BaseException,
    *,
    correlation_id: Optional[str] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Wrap any exception into the envelope; unknown exception types become UNKNOWN_ERROR."""
    if isinstance(exc, TaxFormError):
        details = {"exception": type(exc).__name__, **exc.details}
        return make_error(
            code=exc.code,
            origin=exc.origin,
            retryable=exc.retryable,
            dev_message=str(exc) or None,
            details=details,
            context=context,
            correlation_id=correlation_id,
        )
    return make_error(
        code=ErrorCode.UNKNOWN_ERROR,
        origin=ErrorOrigin.UNKNOWN,
        retryable=True,
        dev_message=f"{type(exc).__name__}: {exc}",
        details={"exception": type(exc).__name__},
        context=context,
        correlation_id=correlation_id,
    )


# ------------------------------- Introspection --------------------------------

def summarize_for_log(error_obj: Optional[Mapping[str, Any]]) -> str:
    """Compact single-line summary suitable for the turn log."""
    if not error_obj:
        return ""
    code = error_obj.get("code", "UNKNOWN")
    origin = error_obj.get("origin", "unknown")
    retryable = error_obj.get("retryable", False)
    cid = error_obj.get("correlation_id", "")
    return f"{code} origin={origin} retryable={retryable} cid={cid}"
