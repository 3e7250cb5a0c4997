from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from fpdf import FPDF

from carbonwatch.report.document import ReportDocument
from carbonwatch.report.render import render_html, render_json

LOGGER = logging.getLogger(__name__)

ExportFormat = Literal["html", "json", "pdf"]

_LATIN1_REPLACEMENTS = {
    "–": "-",
    "—": "-",
    "·": "|",
    "↑": "+",
    "↓": "-",
    "’": "'",
    "“": '"',
    "”": '"',
    "₂": "2",
}


class ExportError(RuntimeError):
    """Raised when a report document cannot be exported."""


def _safe(text: str) -> str:
    # Core PDF fonts only cover latin-1.
    for source, target in _LATIN1_REPLACEMENTS.items():
        text = text.replace(source, target)
    return text.encode("latin-1", "replace").decode("latin-1")


def _hex_to_rgb(color: str) -> tuple[int, int, int]:
    value = color.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _format_delta(value: float) -> str:
    if value == 0:
        return "0%"
    return f"{value:+g}%"


def build_pdf(document: ReportDocument) -> FPDF:
    pdf = FPDF(orientation="P", unit="mm", format="A4")
    pdf.set_auto_page_break(auto=True, margin=15)
    pdf.add_page()

    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, _safe(document.title), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 9)
    meta = (
        f"{document.period_label} | {document.entity_count} locations | "
        f"generated {document.generated_at.isoformat(timespec='seconds')}"
    )
    pdf.cell(0, 6, _safe(meta), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(4)

    if document.status != "ok":
        pdf.set_font("Helvetica", "B", 12)
        pdf.multi_cell(0, 8, _safe(document.message or ""), new_x="LMARGIN", new_y="NEXT")
        return pdf

    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, "Summary", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    for item in document.summary:
        pdf.cell(70, 6, _safe(item.label))
        pdf.cell(0, 6, _safe(item.value), new_x="LMARGIN", new_y="NEXT")
    pdf.ln(3)

    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, _safe(f"Top {len(document.top)} by CO2"), new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "B", 9)
    widths = (10, 70, 30, 25, 25, 20)
    for width, header in zip(widths, ("#", "Location", "Level", "CO2", "Temp", "Change")):
        pdf.cell(width, 7, header, border=1)
    pdf.ln()
    pdf.set_font("Helvetica", "", 9)
    for row in document.top:
        pdf.cell(widths[0], 7, str(row.rank), border=1)
        pdf.cell(widths[1], 7, _safe(row.name[:40]), border=1)
        pdf.set_fill_color(*_hex_to_rgb(row.color))
        pdf.set_text_color(255, 255, 255)
        pdf.cell(widths[2], 7, row.severity, border=1, fill=True)
        pdf.set_text_color(0, 0, 0)
        pdf.cell(widths[3], 7, f"{row.value:.2f}" if row.value is not None else "N/A", border=1)
        pdf.cell(widths[4], 7, _safe(row.temperature or "N/A"), border=1)
        pdf.cell(widths[5], 7, _format_delta(row.delta_percent), border=1)
        pdf.ln()
    pdf.ln(3)

    pdf.set_font("Helvetica", "B", 12)
    pdf.cell(0, 8, "Severity distribution", new_x="LMARGIN", new_y="NEXT")
    pdf.set_font("Helvetica", "", 10)
    for item in document.distribution:
        pdf.cell(40, 6, item.severity)
        pdf.cell(20, 6, str(item.count))
        pdf.cell(0, 6, f"{item.percentage:.1f}%", new_x="LMARGIN", new_y="NEXT")

    if document.insights:
        pdf.ln(3)
        pdf.set_font("Helvetica", "B", 12)
        pdf.cell(0, 8, "Insights", new_x="LMARGIN", new_y="NEXT")
        pdf.set_font("Helvetica", "", 10)
        for line in document.insights:
            pdf.multi_cell(0, 6, _safe(f"- {line}"), new_x="LMARGIN", new_y="NEXT")
    return pdf


def export_document(
    document: ReportDocument,
    path: Path,
    fmt: ExportFormat | None = None,
) -> Path:
    """Write the document to ``path``; the format defaults to the file suffix."""
    resolved = fmt or path.suffix.lstrip(".").lower()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if resolved == "html":
            path.write_text(render_html(document), encoding="utf-8")
        elif resolved == "json":
            path.write_text(render_json(document), encoding="utf-8")
        elif resolved == "pdf":
            build_pdf(document).output(str(path))
        else:
            raise ExportError(f"Unsupported export format: {resolved!r}")
    except ExportError:
        raise
    except Exception as exc:
        raise ExportError(f"Could not export report to {path}: {exc}") from exc
    LOGGER.info("Exported %s report to %s", resolved, path)
    return path
