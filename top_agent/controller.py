#!/usr/bin/env python3
# top_agent/controller.py
from __future__ import annotations

"""
TopChatAgent: thin, subject-first conversation orchestrator around TaxFormSession.

Responsibilities
---------------
- Open a subject (load transcript + form record via LocalStore, seed once).
- Run one user message through TaxFormSession.send(user_text).
- Deterministically map the session TurnPacket to a user-facing reply (mapping.packet_to_template).
- Append a turn-log line via LocalStore.
- Review-surface edits, progress, what's left, and exports on demand.
- Onboarding profile for new subjects.

Non-responsibilities
--------------------
- No filesystem knowledge (paths/layout are entirely LocalStore's concern).
- No extraction/merge logic (that lives in tax_form).
- No UI state beyond returning reply text and optional footer lines.

Public API (used by cli.py)
---------------------------
TopChatAgent(store: LocalStore, *, gateway=None)

open_subject(subject) -> None
complete_onboarding(subject, first_name, last_name, identification=None, previously_filed=False) -> SubjectProfile
is_onboarded(subject) -> bool
handle(user_text: str) -> dict   # {"packet","reply","footer","progress"}
visible_messages() -> list[Message]
edit(edits: dict) -> dict        # {"applied_fields","progress","durable","error"}
progress() -> dict               # {"percent_complete","status"}
whats_left() -> dict             # {section: [field, ...]}
form() -> dict                   # {field: value}
export(fmt: str) -> dict         # {"path": <str>}
"""

import asyncio
from typing import Any, Dict, List, Mapping, Optional

from tax_form import app_logger
from tax_form.assistant_gateway import AssistantGateway, OpenAIAssistantGateway
from tax_form.document_renderer import render
from tax_form.error_handler import PersistenceError, error_from_exception
from tax_form.onboarding import SubjectProfile, complete_onboarding as _build_profile
from tax_form.progress import missing_fields, snapshot
from tax_form.session import TaxFormSession
from tax_form.transcript import Message
from top_agent.exporter import Exporter
from top_agent.local_store import LocalStore
from top_agent.mapping import packet_to_template


class TopChatAgent:
    def __init__(self, store: LocalStore, *, gateway: Optional[AssistantGateway] = None) -> None:
        """
        Args:
            store: LocalStore instance exposing a subject-first API.
            gateway: assistant gateway; defaults to OpenAIAssistantGateway (built lazily).
        """
        self.store = store
        self._gateway = gateway

        self.subject: Optional[str] = None
        self.session: Optional[TaxFormSession] = None
        self.last_packet: Optional[Dict[str, Any]] = None

    @property
    def gateway(self) -> AssistantGateway:
        if self._gateway is None:
            self._gateway = OpenAIAssistantGateway()
        return self._gateway

    # ---------- Onboarding ----------

    def complete_onboarding(
        self,
        subject: str | int,
        *,
        first_name: str,
        last_name: str,
        identification: Optional[str] = None,
        previously_filed: bool = False,
    ) -> SubjectProfile:
        """Validate and write the profile with onboarding_completed=True."""
        profile = _build_profile(first_name, last_name, identification, previously_filed)
        self.store.write_profile(str(subject), profile)
        app_logger.log_event(
            "ONBOARDING_COMPLETED",
            {"previously_filed": profile.previously_filed, "has_identification": bool(profile.identification)},
            subject=str(subject),
        )
        return profile

    def is_onboarded(self, subject: str | int) -> bool:
        return self.store.is_onboarded(str(subject))

    # ---------- Session management ----------

    def open_subject(self, subject: str | int) -> None:
        """
        Open a subject from local storage and build its session.
        Load failures (PersistenceError) propagate to the caller.
        """
        sid = str(subject)
        session = TaxFormSession(sid, store=self.store, gateway=self.gateway)
        session.open()
        self.subject = sid
        self.session = session

    def _require(self) -> TaxFormSession:
        if not self.session or not self.subject:
            raise RuntimeError("TopChatAgent is not open. Call open_subject() first.")
        return self.session

    # ---------- Turn handling ----------

    def handle(self, user_text: str) -> Dict[str, Any]:
        """
        Run a single round-trip and persist effects.

        Returns:
            {
              "packet": <TurnPacket dict from TaxFormSession>,
              "reply": <string>,
              "footer": <optional string with status notices>,
              "progress": {"percent_complete", "status"}
            }
        """
        session = self._require()

        # 1) Session → TurnPacket
        pkt: Dict[str, Any] = asyncio.run(session.send(user_text))
        self.last_packet = pkt

        # 2) Deterministic mapping to reply + notices
        reply_text, notices = packet_to_template(pkt)

        # 3) Turn log (a failed append is logged, the turn itself already happened)
        try:
            self.store.append_turn_log(self.subject, pkt)
        except PersistenceError as exc:
            err = error_from_exception(
                exc, correlation_id=pkt.get("correlation_id"), context={"stage": "turn_log"}
            )
            app_logger.log_error_event("PERSISTENCE_FAILURE", err, subject=self.subject)

        footer = "\n".join(notices) if notices else None
        return {"packet": pkt, "reply": reply_text, "footer": footer, "progress": pkt["progress"]}

    def visible_messages(self) -> List[Message]:
        return self._require().visible_messages()

    # ---------- Review surface ----------

    def edit(self, edits: Mapping[str, Any]) -> Dict[str, Any]:
        """UnknownFieldError / FormValidationError propagate; nothing is applied."""
        return self._require().apply_edits(edits)

    def form(self) -> Dict[str, str]:
        return dict(self._require().record.fields)

    def progress(self) -> Dict[str, Any]:
        return snapshot(self._require().record).model_dump()

    def whats_left(self) -> Dict[str, List[str]]:
        return missing_fields(self._require().record)

    # ---------- Export ----------

    def export(self, fmt: str) -> Dict[str, Any]:
        """
        Render the current form record and write it to the subject's outbox.

        Args:
            fmt: "md" or "pdf"
        Returns:
            {"path": "<path to artifact>"}
        """
        session = self._require()
        fmt = (fmt or "").lower()
        if fmt not in ("md", "pdf"):
            raise ValueError(f"unsupported export format: {fmt!r} (use 'pdf' or 'md')")

        doc = render(session.record)
        exporter = Exporter(outbox_subject_dir=self.store.outbox_dir(self.subject))
        out_path = exporter.write_pdf(doc) if fmt == "pdf" else exporter.write_md(doc)
        app_logger.log_event(
            "EXPORT_WRITTEN",
            {"format": fmt, "path": out_path, "pages": doc.page_count},
            subject=self.subject,
        )
        return {"path": out_path}
