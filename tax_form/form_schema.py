"""
Project: Renta Assistant
File: form_schema.py

Closed, versioned field schema of the Modelo 100 form record.

Field names are the persisted keys of the FormRecord (they keep the casing
the stored documents already use). Sections and the order of fields within a
section are fixed here and drive both the review surface and the document
renderer.

Methods & Classes
- FieldSpec: name, section, label (Spanish, as printed), kind ("text" | "amount")
- SectionSpec: name, title, fields (ordered)
- SCHEMA_VERSION, SECTIONS, FIELDS, FIELD_NAMES
- is_known_field(name) -> bool
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Literal, Tuple

from pydantic import BaseModel, ConfigDict

SCHEMA_VERSION = "modelo100.v1"

SectionName = Literal["identification", "income", "deductions"]
FieldKind = Literal["text", "amount"]


class FieldSpec(BaseModel):
    name: str
    section: SectionName
    label: str
    kind: FieldKind = "text"
    model_config = ConfigDict(frozen=True)


class SectionSpec(BaseModel):
    name: SectionName
    title: str
    fields: Tuple[FieldSpec, ...]
    model_config = ConfigDict(frozen=True)


def _section(name: SectionName, title: str, *rows: Tuple[str, str, FieldKind]) -> SectionSpec:
    return SectionSpec(
        name=name,
        title=title,
        fields=tuple(FieldSpec(name=n, section=name, label=lbl, kind=k) for n, lbl, k in rows),
    )


SECTIONS: Tuple[SectionSpec, ...] = (
    _section(
        "identification",
        "Datos Personales",
        ("identification", "DNI/NIE", "text"),
        ("firstName", "Nombre", "text"),
        ("lastName", "Apellidos", "text"),
        ("address", "Dirección", "text"),
        ("postalCode", "Código Postal", "text"),
        ("city", "Ciudad", "text"),
        ("province", "Provincia", "text"),
    ),
    _section(
        "income",
        "Ingresos",
        ("employmentIncome", "Rendimientos del trabajo", "amount"),
        ("selfEmploymentIncome", "Actividades económicas", "amount"),
        ("capitalGains", "Ganancias patrimoniales", "amount"),
        ("otherIncome", "Otros ingresos", "amount"),
    ),
    _section(
        "deductions",
        "Deducciones",
        ("housingDeduction", "Deducción vivienda", "amount"),
        ("pensionContributions", "Aportaciones a planes de pensiones", "amount"),
        ("charitableDonations", "Donativos", "amount"),
        ("otherDeductions", "Otras deducciones", "amount"),
    ),
)

FIELDS: Dict[str, FieldSpec] = {f.name: f for s in SECTIONS for f in s.fields}
FIELD_NAMES: FrozenSet[str] = frozenset(FIELDS)
ORDERED_FIELD_NAMES: List[str] = [f.name for s in SECTIONS for f in s.fields]


def is_known_field(name: str) -> bool:
    return name in FIELD_NAMES
