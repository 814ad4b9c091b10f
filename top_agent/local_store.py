# top_agent/local_store.py
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from tax_form import config
from tax_form.error_handler import PersistenceError
from tax_form.form_state import FormRecord
from tax_form.onboarding import SubjectProfile
from tax_form.progress import snapshot
from tax_form.transcript import Message


@dataclass(frozen=True)
class _Paths:
    root: Path
    subject: str

    @property
    def subject_dir(self) -> Path:
        return self.root / "subjects" / self.subject

    @property
    def outbox_dir(self) -> Path:
        return self.root / "outbox" / self.subject

    @property
    def transcript_jsonl(self) -> Path:
        return self.subject_dir / "transcript.jsonl"

    @property
    def form_json(self) -> Path:
        return self.subject_dir / "form.json"

    @property
    def profile_json(self) -> Path:
        return self.subject_dir / "profile.json"

    @property
    def turn_log_jsonl(self) -> Path:
        return self.subject_dir / "turn_log.jsonl"


class TranscriptStore:
    """Append-only transcript of one subject: append(message) -> sequence, load()."""

    def __init__(self, store: "LocalStore", subject: str) -> None:
        self._store = store
        self.subject = subject

    def append(self, message: Message) -> int:
        return self._store.append_message(self.subject, message)

    def load(self) -> List[Message]:
        return self._store.load_transcript(self.subject)


class LocalStore:
    """
    Local, subject-first document store.

    PUBLIC API:
    -----------
      transcript(subject) -> TranscriptStore
      load_transcript(subject) -> List[Message]
      append_message(subject, message) -> int
      read_form(subject) -> FormRecord
      write_form(subject, record) -> None
      read_profile(subject) -> SubjectProfile | None
      write_profile(subject, profile) -> None
      is_onboarded(subject) -> bool
      append_turn_log(subject, packet) -> None
      list_subjects() -> List[Dict[str, Any]]
      outbox_dir(subject) -> Path

    INTERNALS:
      - On-disk layout is private to LocalStore.
      - Every filesystem or decode failure surfaces as PersistenceError.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root if root is not None else config.STORE_ROOT)
        try:
            (self.root / "subjects").mkdir(parents=True, exist_ok=True)
            (self.root / "outbox").mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"store root unavailable: {e}", details={"root": str(self.root)}) from e

    # ------------------------------- helpers ---------------------------------

    def _p(self, subject: str | int) -> _Paths:
        return _Paths(root=self.root, subject=str(subject))

    @staticmethod
    def _read_json(path: Path) -> Dict[str, Any]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"cannot read {path}: {e}", details={"path": str(path)}) from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Expected object in {path}, got {type(data).__name__}", details={"path": str(path)})
        return data

    @staticmethod
    def _write_json_atomic(path: Path, obj: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(obj, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise PersistenceError(f"cannot write {path}: {e}", details={"path": str(path)}) from e

    @staticmethod
    def _append_jsonl(path: Path, obj: Dict[str, Any]) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(obj, ensure_ascii=False) + "\n")
        except OSError as e:
            raise PersistenceError(f"cannot append to {path}: {e}", details={"path": str(path)}) from e

    @staticmethod
    def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        out: List[Dict[str, Any]] = []
        try:
            with path.open("r", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        out.append(json.loads(line))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"cannot read {path}: {e}", details={"path": str(path)}) from e
        return out

    # ------------------------------ transcript --------------------------------

    def transcript(self, subject: str | int) -> TranscriptStore:
        return TranscriptStore(self, str(subject))

    def load_transcript(self, subject: str | int) -> List[Message]:
        rows = self._read_jsonl(self._p(subject).transcript_jsonl)
        try:
            msgs = [Message.model_validate(r) for r in rows]
        except ValidationError as e:
            raise PersistenceError(f"corrupt transcript for {subject}: {e}") from e
        msgs.sort(key=lambda m: m.sequence)
        for idx, m in enumerate(msgs):
            if m.sequence != idx:
                raise PersistenceError(
                    f"corrupt transcript for {subject}: expected sequence {idx}, found {m.sequence}",
                    details={"subject": str(subject), "sequence": m.sequence},
                )
        return msgs

    def append_message(self, subject: str | int, message: Message) -> int:
        """
        Append exactly the next sequence. A message already stored at its
        sequence with identical role/content is accepted as a no-op, so a
        re-flush after an ambiguous failure never duplicates lines.
        """
        existing = self.load_transcript(subject)
        if message.sequence < len(existing):
            if existing[message.sequence] == message:
                return message.sequence
            raise PersistenceError(
                f"sequence {message.sequence} already holds a different message",
                details={"subject": str(subject), "sequence": message.sequence},
            )
        if message.sequence > len(existing):
            raise PersistenceError(
                f"sequence gap: expected {len(existing)}, got {message.sequence}",
                details={"subject": str(subject), "sequence": message.sequence},
            )
        self._append_jsonl(self._p(subject).transcript_jsonl, message.model_dump())
        return message.sequence

    # --------------------------------- form -----------------------------------

    def read_form(self, subject: str | int) -> FormRecord:
        p = self._p(subject)
        if not p.form_json.exists():
            # First-time: an empty record
            return FormRecord()
        raw = self._read_json(p.form_json)
        try:
            return FormRecord.model_validate(raw.get("form", raw))
        except ValidationError as e:
            raise PersistenceError(f"corrupt form record for {subject}: {e}") from e

    def write_form(self, subject: str | int, record: FormRecord) -> None:
        self._write_json_atomic(self._p(subject).form_json, {"form": record.model_dump()})

    # ------------------------------- profile ----------------------------------

    def read_profile(self, subject: str | int) -> Optional[SubjectProfile]:
        p = self._p(subject)
        if not p.profile_json.exists():
            return None
        raw = self._read_json(p.profile_json)
        try:
            return SubjectProfile.model_validate(raw.get("profile", raw))
        except ValidationError as e:
            raise PersistenceError(f"corrupt profile for {subject}: {e}") from e

    def write_profile(self, subject: str | int, profile: SubjectProfile) -> None:
        self._write_json_atomic(self._p(subject).profile_json, {"profile": profile.model_dump()})

    def is_onboarded(self, subject: str | int) -> bool:
        profile = self.read_profile(subject)
        return bool(profile and profile.onboarding_completed)

    # ------------------------------- turn log ---------------------------------

    def append_turn_log(self, subject: str | int, packet: Dict[str, Any]) -> None:
        self._append_jsonl(self._p(subject).turn_log_jsonl, dict(packet))

    # ------------------------------- listings ---------------------------------

    def list_subjects(self) -> List[Dict[str, Any]]:
        """
        [{"subject": "...", "name": "...", "percent_complete": int, "status": "...", "messages": int}]
        """
        subjects_root = self.root / "subjects"
        out: List[Dict[str, Any]] = []
        for d in sorted((p for p in subjects_root.iterdir() if p.is_dir()), key=lambda p: p.name):
            subject = d.name
            profile = self.read_profile(subject)
            prog = snapshot(self.read_form(subject))
            name = f"{profile.first_name} {profile.last_name}" if profile else ""
            out.append(
                {
                    "subject": subject,
                    "name": name,
                    "percent_complete": prog.percent_complete,
                    "status": prog.status,
                    "messages": len(self.load_transcript(subject)),
                }
            )
        return out

    def outbox_dir(self, subject: str | int) -> Path:
        return self._p(subject).outbox_dir
