"""
progress.py
Completion percentage / status of a FormRecord, plus the per-section list of
fields still missing.

The percentage is an approximation against a fixed expected-field count; it
says nothing about whether the return is valid for the subject's situation.
"""

from __future__ import annotations

from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from tax_form.form_schema import SECTIONS
from tax_form.form_state import FormRecord

TOTAL_EXPECTED_FIELDS = 10

ProgressStatus = Literal["not-started", "in-progress", "completed"]


class ProgressSnapshot(BaseModel):
    percent_complete: int = Field(ge=0, le=100)
    status: ProgressStatus
    model_config = ConfigDict(frozen=True)


def _round_half_up(x: float) -> int:
    # percentages are non-negative, so floor(x + .5) matches the UI's rounding
    return int(x + 0.5)


def snapshot(record: FormRecord) -> ProgressSnapshot:
    filled = sum(1 for v in record.fields.values() if v)
    pct = min(100, _round_half_up(100 * filled / TOTAL_EXPECTED_FIELDS))
    if pct == 0:
        status: ProgressStatus = "not-started"
    elif pct == 100:
        status = "completed"
    else:
        status = "in-progress"
    return ProgressSnapshot(percent_complete=pct, status=status)


def missing_fields(record: FormRecord) -> Dict[str, List[str]]:
    """
    Return section name -> unset field names, in schema order.
    Sections with nothing missing are dropped.
    """
    missing: Dict[str, List[str]] = {}
    for section in SECTIONS:
        names = [f.name for f in section.fields if not record.is_set(f.name)]
        if names:
            missing[section.name] = names
    return missing
