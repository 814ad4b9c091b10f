#!/usr/bin/env python3
"""
Project: Renta Assistant
File: session.py (TaxFormSession)

Owns one subject's conversation and form record and runs the round-trip:
1) append the user message, 2) call the assistant gateway (the only
suspension point), 3) append the reply, 4) extract candidates from the
newest (user, assistant) pair, 5) merge them into the form record and
persist, 6) return a stable TurnPacket.

Failure semantics
- Gateway failure: the user message stays in the transcript with no reply;
  extraction and merge are skipped; packet["ok"] is False. If the user
  message could not be stored either, error.details["persistence_error"]
  carries the store failure and packet["durable"] is False.
- Persistence failure: non-fatal. In-memory state is kept, packet["durable"]
  is False, and the unwritten messages / form are flushed at the start of the
  next round-trip (in sequence order; the store treats identical re-appends
  as no-ops).
- A second send while one is in flight raises SendInProgress.
- No cancellation: once started, a round-trip runs to completion and its
  merge is applied even if the caller stopped waiting.

Methods & Classes
- class SessionStore(Protocol): the persistence calls the session needs.
- class TaxFormSession(subject, *, store, gateway, rules=None, policy=None, tax_form=None)
    - open() -> None: load transcript + record; seed system + welcome once.
    - async send(user_text) -> dict: full round-trip, returns the TurnPacket.
    - apply_edits(edits) -> dict: review-surface edits + save.
    - flush() -> dict | None: retry pending writes; error envelope or None.
    - visible_messages() -> list[Message]
    - busy / durable properties

TurnPacket (stable keys)
{
  "utterance": str, "ok": bool, "reply": str | None,
  "candidates": [{"field","value","rule"}], "applied_fields": [str],
  "progress": {"percent_complete","status"}, "durable": bool,
  "error": <error envelope> | None, "correlation_id": str,
  "tokens": {"in","out"}
}
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from tax_form import app_logger, config
from tax_form.assistant_gateway import AssistantGateway
from tax_form.error_handler import (
    AssistantGatewayError,
    PersistenceError,
    SendInProgress,
    error_from_exception,
    new_correlation_id,
    summarize_for_log,
)
from tax_form.extraction_rules import RuleTable
from tax_form.field_extractor import extract
from tax_form.form_state import FormRecord, MergePolicy, apply_manual_edits, diff, merge
from tax_form.progress import snapshot
from tax_form.transcript import Message, Transcript, system_prompt, welcome_message


class SessionStore(Protocol):
    def load_transcript(self, subject: str) -> List[Message]: ...
    def append_message(self, subject: str, message: Message) -> int: ...
    def read_form(self, subject: str) -> FormRecord: ...
    def write_form(self, subject: str, record: FormRecord) -> None: ...


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class TaxFormSession:
    def __init__(
        self,
        subject: str,
        *,
        store: SessionStore,
        gateway: AssistantGateway,
        rules: Optional[RuleTable] = None,
        policy: Optional[MergePolicy] = None,
        tax_form: Optional[str] = None,
        clock: Callable[[], str] = _now_iso,
    ) -> None:
        self.subject = str(subject)
        self.store = store
        self.gateway = gateway
        self.rules = rules
        self.policy: MergePolicy = policy or ("protect_manual" if config.PROTECT_MANUAL_EDITS else "last_write")
        self.tax_form = tax_form or config.TAX_FORM_NAME
        self._clock = clock

        self.transcript = Transcript()
        self.record = FormRecord()
        self._persisted_upto = 0      # messages[:n] are known to be stored
        self._form_dirty = False
        self._in_flight = False
        self._opened = False

    # ---------- state ----------

    @property
    def busy(self) -> bool:
        return self._in_flight

    @property
    def durable(self) -> bool:
        return self._persisted_upto == len(self.transcript) and not self._form_dirty

    def visible_messages(self) -> List[Message]:
        return self.transcript.visible()

    # ---------- open / seed ----------

    def open(self) -> None:
        """
        Load the subject's transcript and form record. An empty transcript is
        seeded with the system prompt and the assistant welcome message.
        Load failures propagate (nothing sensible can be shown without them).
        """
        stored = self.store.load_transcript(self.subject)
        self.transcript = Transcript(messages=stored)
        self._persisted_upto = len(stored)
        self.record = self.store.read_form(self.subject)
        self._form_dirty = False

        seeded = False
        if not self.transcript.is_seeded:
            self.transcript.append(self.transcript.next_message("system", system_prompt(self.tax_form)))
            self.transcript.append(self.transcript.next_message("assistant", welcome_message(self.tax_form)))
            seeded = True
            self.flush()

        self._opened = True
        app_logger.log_event(
            "SESSION_OPENED",
            {
                "messages": len(self.transcript),
                "seeded": seeded,
                "fields_set": len(self.record.fields),
                "policy": self.policy,
                "durable": self.durable,
            },
            subject=self.subject,
        )

    # ---------- persistence ----------

    def flush(self, *, correlation_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Write pending messages (in sequence order) then a dirty form record.
        Returns an error envelope on the first failure, else None.
        """
        stage = "transcript_append"
        try:
            while self._persisted_upto < len(self.transcript):
                self.store.append_message(self.subject, self.transcript.messages[self._persisted_upto])
                self._persisted_upto += 1
            if self._form_dirty:
                stage = "form_write"
                self.store.write_form(self.subject, self.record)
                self._form_dirty = False
        except PersistenceError as exc:
            err = error_from_exception(
                exc,
                correlation_id=correlation_id,
                context={"subject": self.subject, "stage": stage},
            )
            app_logger.log_error_event("PERSISTENCE_FAILURE", err, subject=self.subject)
            return err
        return None

    # ---------- round-trip ----------

    def _packet(
        self,
        *,
        cid: str,
        utterance: str,
        ok: bool,
        reply: Optional[str] = None,
        candidates: Optional[List[Dict[str, str]]] = None,
        applied_fields: Optional[List[str]] = None,
        error: Optional[Dict[str, Any]] = None,
        tokens: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        return {
            "utterance": utterance,
            "ok": ok,
            "reply": reply,
            "candidates": candidates or [],
            "applied_fields": applied_fields or [],
            "progress": snapshot(self.record).model_dump(),
            "durable": self.durable,
            "error": error,
            "correlation_id": cid,
            "tokens": tokens or {"in": 0, "out": 0},
        }

    async def send(self, user_text: str) -> Dict[str, Any]:
        if self._in_flight:
            raise SendInProgress("a round-trip is already in flight", details={"subject": self.subject})
        if not self._opened:
            raise RuntimeError("TaxFormSession is not open. Call open() first.")
        text = (user_text or "").strip()
        if not text:
            raise ValueError("message must not be empty")

        self._in_flight = True
        try:
            return await self._round_trip(text)
        finally:
            self._in_flight = False

    async def _round_trip(self, text: str) -> Dict[str, Any]:
        cid = new_correlation_id()

        # 1) user message; earlier unwritten state goes first
        self.transcript.append(self.transcript.next_message("user", text))
        io_error = self.flush(correlation_id=cid)

        # 2) gateway (sole suspension point)
        try:
            reply = await self.gateway.complete(list(self.transcript.messages))
        except AssistantGatewayError as exc:
            err = error_from_exception(exc, correlation_id=cid, context={"subject": self.subject, "stage": "assistant"})
            if io_error:
                # the user message may not be stored either
                err["details"]["persistence_error"] = summarize_for_log(io_error)
            app_logger.log_error_event("GATEWAY_FAILURE", err, subject=self.subject)
            pkt = self._packet(cid=cid, utterance=text, ok=False, error=err)
            app_logger.log_turn_packet(pkt, subject=self.subject)
            return pkt

        # 3) reply
        self.transcript.append(self.transcript.next_message("assistant", reply))
        reply_seq = len(self.transcript) - 1

        # 4) extract from the newest (user, assistant) pair
        user_msg, reply_msg = self.transcript.last_exchange()
        cands = extract(user_msg.content, reply_msg.content, rules=self.rules)

        # 5) merge (skipped entirely when nothing matched)
        applied: List[str] = []
        if cands:
            before = self.record
            self.record = merge(before, cands, policy=self.policy, sequence=reply_seq, timestamp=self._clock())
            applied = list(diff(before, self.record))
            if applied:
                self._form_dirty = True

        io_error = self.flush(correlation_id=cid) or io_error

        pkt = self._packet(
            cid=cid,
            utterance=text,
            ok=True,
            reply=reply,
            candidates=[c.model_dump() for c in cands],
            applied_fields=applied,
            error=io_error,
            tokens=dict(getattr(self.gateway, "last_tokens", {}) or {"in": 0, "out": 0}),
        )
        app_logger.log_turn_packet(pkt, subject=self.subject)
        return pkt

    # ---------- review surface ----------

    def apply_edits(self, edits: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Apply review-surface edits and save. UnknownFieldError and
        FormValidationError propagate untouched (nothing applied); a failed
        save is reported and retried on the next flush.
        """
        before = self.record
        self.record = apply_manual_edits(before, edits, timestamp=self._clock())
        changed = list(diff(before, self.record))
        if changed:
            self._form_dirty = True
        err = self.flush()
        app_logger.log_event(
            "FORM_EDITED",
            {"applied_fields": changed, "durable": self.durable},
            subject=self.subject,
        )
        return {
            "applied_fields": changed,
            "progress": snapshot(self.record).model_dump(),
            "durable": self.durable,
            "error": err,
        }
