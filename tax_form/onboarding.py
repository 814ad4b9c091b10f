"""
Project: Renta Assistant
File: onboarding.py

Subject profile captured before the first conversation ("who is filing").
Strict Pydantic model; the session reads it but never edits it.

Methods & Classes
- class SubjectProfile: {first_name, last_name, identification, previously_filed,
  onboarding_completed}; extra="forbid".
- complete_onboarding(...) -> SubjectProfile: validated profile with the
  completion flag set.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tax_form.error_handler import FormValidationError


class SubjectProfile(BaseModel):
    first_name: str = Field(...)
    last_name: str = Field(...)
    identification: Optional[str] = None
    previously_filed: bool = False
    onboarding_completed: bool = False
    model_config = ConfigDict(extra="forbid")


def complete_onboarding(
    first_name: str,
    last_name: str,
    identification: Optional[str] = None,
    previously_filed: bool = False,
) -> SubjectProfile:
    first, last = (first_name or "").strip(), (last_name or "").strip()
    missing = [name for name, value in (("first_name", first), ("last_name", last)) if not value]
    if missing:
        raise FormValidationError(f"required onboarding fields missing: {missing}", details={"fields": missing})
    ident = (identification or "").strip().upper() or None
    return SubjectProfile(
        first_name=first,
        last_name=last,
        identification=ident,
        previously_filed=bool(previously_filed),
        onboarding_completed=True,
    )
