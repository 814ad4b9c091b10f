"""
Project: Renta Assistant
File: document_renderer.py

Deterministic layout of a FormRecord into page-drawing instructions.

render() is a pure function of the record's field values: the same fields
always give the same instruction list (no clock, locale or randomness), so
the serialized output can be compared byte for byte. Serializing the
instructions into a PDF is the exporter's job (top_agent/exporter.py).

Layout
- A4 page (595 x 842 pt); title at a fixed y; a vertical cursor starts at a
  fixed top offset.
- Sections in schema order. Every section after the first is preceded by an
  extra gap; each section draws its header even when it has no values.
- Field lines "<label>: <value>" in schema order; unset fields are skipped and
  do not move the cursor, so a field's position varies between records while
  its relative order does not.
- Overflow: when a line would land below the bottom margin it goes to a new
  page, starting at the continuation top. Continuation pages carry no title.

Methods & Classes
- PageLayout: frozen geometry (dataclass)
- DrawText: one text instruction (page, x, y, size, text)
- RenderedDocument: page size, page count, ordered instructions; to_json()
- render(record, layout=DEFAULT_LAYOUT) -> RenderedDocument
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

from pydantic import BaseModel, ConfigDict

from tax_form.form_schema import SECTIONS
from tax_form.form_state import FormRecord


@dataclass(frozen=True)
class PageLayout:
    page_width: int = 595
    page_height: int = 842
    margin_x: int = 50
    title: str = "Declaración de la Renta - Modelo 100"
    title_y: int = 800
    title_size: int = 18
    top_offset: int = 750
    header_size: int = 14
    header_advance: int = 30
    section_gap: int = 20
    field_size: int = 12
    line_height: int = 20
    bottom_margin: int = 50
    continuation_top: int = 800


DEFAULT_LAYOUT = PageLayout()


class DrawText(BaseModel):
    page: int
    x: int
    y: int
    size: int
    text: str
    model_config = ConfigDict(frozen=True)


class RenderedDocument(BaseModel):
    page_width: int
    page_height: int
    page_count: int
    instructions: Tuple[DrawText, ...]
    model_config = ConfigDict(frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json()

    def pages(self) -> List[List[DrawText]]:
        out: List[List[DrawText]] = [[] for _ in range(self.page_count)]
        for ins in self.instructions:
            out[ins.page - 1].append(ins)
        return out


class _Cursor:
    def __init__(self, layout: PageLayout):
        self.layout = layout
        self.page = 1
        self.y = layout.top_offset

    def place(self) -> Tuple[int, int]:
        if self.y < self.layout.bottom_margin:
            self.page += 1
            self.y = self.layout.continuation_top
        return self.page, self.y


def render(record: FormRecord, layout: PageLayout = DEFAULT_LAYOUT) -> RenderedDocument:
    out: List[DrawText] = [
        DrawText(page=1, x=layout.margin_x, y=layout.title_y, size=layout.title_size, text=layout.title)
    ]
    cur = _Cursor(layout)

    for idx, section in enumerate(SECTIONS):
        if idx > 0:
            cur.y -= layout.section_gap
        page, y = cur.place()
        out.append(DrawText(page=page, x=layout.margin_x, y=y, size=layout.header_size, text=section.title))
        cur.y -= layout.header_advance

        for fs in section.fields:
            value = record.fields.get(fs.name)
            if not value:
                continue
            page, y = cur.place()
            out.append(
                DrawText(page=page, x=layout.margin_x, y=y, size=layout.field_size, text=f"{fs.label}: {value}")
            )
            cur.y -= layout.line_height

    return RenderedDocument(
        page_width=layout.page_width,
        page_height=layout.page_height,
        page_count=cur.page,
        instructions=tuple(out),
    )
