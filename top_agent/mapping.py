# top_agent/mapping.py
from __future__ import annotations

from typing import Any, Dict, List, Tuple

from tax_form.form_schema import FIELDS

# ------------------------------------------------------------------------------
# Notice helpers (centralized copy)
# ------------------------------------------------------------------------------

_NOT_SAVED = "Los cambios aún no se han guardado; se reintentará en el próximo mensaje."

_ACTION_HINTS = {
    "RETRY_SEND": "vuelve a enviar tu mensaje",
    "RETRY_LATER": "inténtalo de nuevo en unos minutos",
    "WAIT_FOR_REPLY": "espera la respuesta del asistente",
    "REVIEW_FORM": "revisa el formulario con /form",
    "FIX_FIELD": "corrige el campo con /edit campo=valor",
}


def _labels(names: List[str]) -> str:
    return ", ".join(FIELDS[n].label if n in FIELDS else n for n in names)


def _error_message(error: Dict[str, Any]) -> str:
    msg = error.get("user_message") or "No se pudo procesar tu mensaje."
    hints = [_ACTION_HINTS[a] for a in (error.get("next_actions") or []) if a in _ACTION_HINTS]
    if hints:
        return f"{msg} (Puedes: {'; '.join(hints)}.)"
    return msg


# ------------------------------------------------------------------------------
# Main mapping
# ------------------------------------------------------------------------------

def packet_to_template(pkt: Dict[str, Any]) -> Tuple[str, List[str]]:
    """
    Deterministic mapping: session TurnPacket -> (reply_text, notices)

    reply_text is the assistant's message (or the error copy when the
    round-trip failed); notices are short status lines for the chat footer,
    e.g. ["Guardado: Nombre, Apellidos.", "Progreso: 20% (in-progress)"].
    """
    notices: List[str] = []
    error = pkt.get("error")
    progress = pkt.get("progress") or {}

    # ---------------- Failed round-trip ----------------
    if not pkt.get("ok"):
        if pkt.get("durable") is False:
            notices.append(_NOT_SAVED)
        return (_error_message(error or {}), notices)

    # ---------------- Captured fields ----------------
    applied = pkt.get("applied_fields") or []
    if applied:
        notices.append(f"Guardado: {_labels(applied)}.")
        if "percent_complete" in progress:
            notices.append(f"Progreso: {progress['percent_complete']}% ({progress.get('status')})")

    # ---------------- Non-fatal errors (e.g. not yet durable) ----------------
    if error:
        notices.append(_error_message(error))
    elif pkt.get("durable") is False:
        notices.append(_NOT_SAVED)

    return ((pkt.get("reply") or "").strip(), notices)
