# tests/integrations/test_exporter_pdf.py
"""
Rendered document -> reportlab PDF / Markdown, and the controller export path.
"""

import pytest

from tax_form.document_renderer import render
from tax_form.form_state import FormRecord
from top_agent.controller import TopChatAgent
from top_agent.exporter import Exporter, to_markdown, to_pdf_bytes


_RECORD = FormRecord(fields={"firstName": "Ana", "lastName": "Pérez", "employmentIncome": "23500"})


def test_pdf_bytes_are_reproducible():
    a = to_pdf_bytes(render(_RECORD))
    b = to_pdf_bytes(render(_RECORD))
    assert a.startswith(b"%PDF")
    assert a == b


def test_pdf_differs_when_fields_differ():
    other = FormRecord(fields={"firstName": "Eva"})
    assert to_pdf_bytes(render(_RECORD)) != to_pdf_bytes(render(other))


def test_markdown_layout():
    md = to_markdown(render(_RECORD))
    assert md.splitlines()[0] == "# Declaración de la Renta - Modelo 100"
    assert "## Datos Personales" in md
    assert "- Nombre: Ana" in md
    assert "- Rendimientos del trabajo: 23500" in md
    assert md.index("## Ingresos") < md.index("## Deducciones")


def test_exporter_writes_into_outbox(tmp_path):
    ex = Exporter(outbox_subject_dir=tmp_path / "outbox" / "u-1")
    pdf = ex.write_pdf(render(_RECORD))
    md = ex.write_md(render(_RECORD))
    assert pdf.endswith(".pdf") and md.endswith(".md")
    assert open(pdf, "rb").read().startswith(b"%PDF")


def test_controller_export(store, fake_gateway_factory):
    agent = TopChatAgent(store, gateway=fake_gateway_factory([]))
    agent.open_subject("u-1")
    agent.edit({"firstName": "Ana", "city": "Sevilla"})
    out = agent.export("pdf")
    assert out["path"].startswith(str(store.outbox_dir("u-1")))
    with pytest.raises(ValueError):
        agent.export("docx")
