#!/usr/bin/env python3
"""
Project: Renta Assistant
File: form_state.py

Canonical form record and its merge semantics:
- the record is a flat map field-name -> non-empty string; unset fields are absent,
- chat candidates merge last-write per field (later candidate wins),
- review-surface edits are validated against the closed schema,
- every applied write leaves exactly one provenance row per field (the latest).

Methods & Classes
- ExtractionCandidate: transient (field, value, rule) proposal from the extractor
- FieldProvenance: last writer of a field (extractor rule or "manual")
- class FormRecord:
  - fields, provenance, schema_version
  - manual_fields() -> set[str]
  - is_set(name) -> bool
- merge(current, candidates, *, policy, sequence, timestamp) -> FormRecord
- apply_manual_edits(current, edits, *, timestamp) -> FormRecord
- diff(before, after) -> dict[str, (old, new)]

Conventions
- Functions never mutate their input record; they dump, edit the plain dict,
  and validate a fresh FormRecord.
- policy="last_write" overwrites anything, including manual edits.
  policy="protect_manual" skips candidates for fields whose last writer was manual.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tax_form.error_handler import FormValidationError, UnknownFieldError
from tax_form.form_schema import FIELDS, SCHEMA_VERSION, is_known_field

MergePolicy = Literal["last_write", "protect_manual"]
MANUAL_SOURCE = "manual"

_AMOUNT_RE = re.compile(r"^-?\d+(?:[.,]\d{1,2})?$")


# ------------------------------------------------------------------------------
# Models
# ------------------------------------------------------------------------------

class ExtractionCandidate(BaseModel):
    field: str
    value: str = Field(min_length=1)
    rule: str = "unknown"
    model_config = ConfigDict(frozen=True)

    @field_validator("field")
    @classmethod
    def _known_field(cls, v: str) -> str:
        if not is_known_field(v):
            raise ValueError(f"unknown form field: {v}")
        return v


class FieldProvenance(BaseModel):
    field: str
    value: str
    source: str                        # "extractor:<rule>" | "manual"
    sequence: Optional[int] = None     # transcript sequence of the reply that produced it
    timestamp: Optional[str] = None


class FormRecord(BaseModel):
    schema_version: str = SCHEMA_VERSION
    fields: Dict[str, str] = Field(default_factory=dict)
    provenance: List[FieldProvenance] = Field(default_factory=list)

    @field_validator("fields")
    @classmethod
    def _closed_schema(cls, v: Dict[str, str]) -> Dict[str, str]:
        unknown = sorted(k for k in v if not is_known_field(k))
        if unknown:
            raise ValueError(f"unknown form fields: {unknown}")
        empty = sorted(k for k, val in v.items() if not val)
        if empty:
            raise ValueError(f"unset fields must be absent, got empty values for: {empty}")
        return v

    def is_set(self, name: str) -> bool:
        return bool(self.fields.get(name))

    def manual_fields(self) -> Set[str]:
        return {row.field for row in self.provenance if row.source == MANUAL_SOURCE}


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _replace_prov(
    rows: List[Dict[str, Any]],
    *,
    field: str,
    value: str,
    source: str,
    sequence: Optional[int],
    timestamp: Optional[str],
) -> List[Dict[str, Any]]:
    kept = [row for row in rows if row.get("field") != field]
    kept.append(
        {
            "field": field,
            "value": value,
            "source": source,
            "sequence": sequence,
            "timestamp": timestamp,
        }
    )
    return kept


def _normalize_manual_value(name: str, value: Any) -> Optional[str]:
    """Return the value to store, or None to clear the field."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if FIELDS[name].kind == "amount" and not _AMOUNT_RE.match(text):
        raise FormValidationError(
            f"{name} must be an amount, got {text!r}",
            details={"field": name, "value": text},
        )
    return text


# ------------------------------------------------------------------------------
# Merge
# ------------------------------------------------------------------------------

def merge(
    current: FormRecord,
    candidates: Iterable[ExtractionCandidate],
    *,
    policy: MergePolicy = "last_write",
    sequence: Optional[int] = None,
    timestamp: Optional[str] = None,
) -> FormRecord:
    """
    Merge extraction candidates into a new FormRecord.

    Candidates apply in order, so the last candidate touching a field wins.
    With no candidates the result equals `current`.
    """
    data = current.model_dump(exclude_none=False)
    prov = data["provenance"]
    protected = current.manual_fields() if policy == "protect_manual" else set()

    for cand in candidates:
        if cand.field in protected:
            continue
        data["fields"][cand.field] = cand.value
        prov = _replace_prov(
            prov,
            field=cand.field,
            value=cand.value,
            source=f"extractor:{cand.rule}",
            sequence=sequence,
            timestamp=timestamp,
        )

    data["provenance"] = prov
    return FormRecord.model_validate(data)


def apply_manual_edits(
    current: FormRecord,
    edits: Mapping[str, Any],
    *,
    timestamp: Optional[str] = None,
) -> FormRecord:
    """
    Apply review-surface edits. All edits are validated before any is applied;
    an empty value clears the field.
    """
    unknown = [name for name in edits if not is_known_field(name)]
    if unknown:
        raise UnknownFieldError(f"unknown form fields: {unknown}", details={"fields": unknown})

    normalized = {name: _normalize_manual_value(name, value) for name, value in edits.items()}

    data = current.model_dump(exclude_none=False)
    prov = data["provenance"]
    for name, value in normalized.items():
        if value is None:
            data["fields"].pop(name, None)
            prov = [row for row in prov if row.get("field") != name]
            continue
        data["fields"][name] = value
        prov = _replace_prov(
            prov, field=name, value=value, source=MANUAL_SOURCE, sequence=None, timestamp=timestamp
        )

    data["provenance"] = prov
    return FormRecord.model_validate(data)


def diff(before: FormRecord, after: FormRecord) -> Dict[str, Tuple[Optional[str], Optional[str]]]:
    """Fields whose value differs between two records: {name: (old, new)}."""
    out: Dict[str, Tuple[Optional[str], Optional[str]]] = {}
    for name in sorted(set(before.fields) | set(after.fields)):
        old, new = before.fields.get(name), after.fields.get(name)
        if old != new:
            out[name] = (old, new)
    return out
