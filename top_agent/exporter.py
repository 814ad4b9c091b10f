from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path

from reportlab.pdfgen import canvas

from tax_form.document_renderer import RenderedDocument
from tax_form.error_handler import PersistenceError

_FONT = "Helvetica"


def to_pdf_bytes(doc: RenderedDocument) -> bytes:
    """
    Serialize the instruction list with reportlab. invariant=1 pins the
    creation date and document id, so identical documents give identical bytes.
    """
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(doc.page_width, doc.page_height), invariant=1)
    for page in doc.pages():
        for ins in page:
            c.setFont(_FONT, ins.size)
            c.drawString(ins.x, ins.y, ins.text)
        c.showPage()
    c.save()
    return buf.getvalue()


def to_markdown(doc: RenderedDocument) -> str:
    """Title as H1, section headers as H2, field lines as bullets."""
    sizes = sorted({ins.size for ins in doc.instructions}, reverse=True)
    title_size = sizes[0] if sizes else 0
    header_size = sizes[1] if len(sizes) > 1 else title_size
    lines = []
    for ins in doc.instructions:
        if ins.size == title_size:
            lines += [f"# {ins.text}", ""]
        elif ins.size == header_size:
            if lines and lines[-1] != "":
                lines.append("")
            lines += [f"## {ins.text}", ""]
        else:
            lines.append(f"- {ins.text}")
    return "\n".join(lines).rstrip() + "\n"


class Exporter:
    """
    Exports always go to: local_store/outbox/<subject>/
    """
    def __init__(self, *, outbox_subject_dir: Path):
        self.dir = Path(outbox_subject_dir)
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"cannot create {self.dir}: {e}", details={"path": str(self.dir)}) from e

    def write_md(self, doc: RenderedDocument) -> str:
        out = self.dir / f"renta_{self._ts()}.md"
        self._write(out, to_markdown(doc).encode("utf-8"))
        return str(out)

    def write_pdf(self, doc: RenderedDocument) -> str:
        out = self.dir / f"renta_{self._ts()}.pdf"
        self._write(out, to_pdf_bytes(doc))
        return str(out)

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        try:
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"cannot write {path}: {e}", details={"path": str(path)}) from e

    def _ts(self) -> str:
        return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
