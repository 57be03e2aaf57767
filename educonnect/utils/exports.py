"""
PDF and Excel documents built from already-computed report rows.

Nothing here touches the database. PDFs are A4 with a title block, a striped
table, optional chart images and a "Page i of n" footer; Excel exports are a
single flat sheet.
"""
import io
from datetime import date
from xml.sax.saxutils import escape
from typing import List, Optional, Sequence

import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for server use
import matplotlib.pyplot as plt
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

PRIMARY = colors.HexColor("#1E3A8A")
SECONDARY = colors.HexColor("#4B5563")
ACCENT = colors.HexColor("#E5E7EB")

MPL_PALETTE = ["#3B82F6", "#10B981", "#F59E0B", "#EC4899", "#8B5CF6", "#EF4444"]


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so each footer can show the page total."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_footer(total)
            super().showPage()
        super().save()

    def _draw_footer(self, total: int):
        self.saveState()
        self.setFont("Helvetica", 9)
        self.setFillColor(SECONDARY)
        self.drawCentredString(A4[0] / 2, 1.0 * cm, f"Page {self._pageNumber} of {total}")
        self.restoreState()


def export_filename(prefix: str, group: Optional[str], extension: str, on: Optional[date] = None) -> str:
    group_part = (group or "all").replace(" ", "_")
    return f"{prefix}_{group_part}_{(on or date.today()).isoformat()}.{extension}"


def _cell(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def bar_chart(labels: Sequence[str], values: Sequence[float], title: str,
              ylabel: str = "", ylim: Optional[float] = None) -> bytes:
    """Render a bar chart to PNG bytes."""
    fig, ax = plt.subplots(figsize=(8, 4))
    bar_colors = [MPL_PALETTE[i % len(MPL_PALETTE)] for i in range(len(labels))]
    ax.bar([str(label) for label in labels], list(values), color=bar_colors, edgecolor="white")
    ax.set_title(title, fontsize=12, fontweight="bold")
    if ylabel:
        ax.set_ylabel(ylabel)
    if ylim is not None:
        ax.set_ylim(0, ylim)
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)
    ax.tick_params(axis="x", rotation=30)
    fig.tight_layout()

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=120)
    plt.close(fig)
    return buf.getvalue()


def build_pdf(title: str, subtitle_lines: Sequence[str], columns: Sequence[str],
              rows: Sequence[Sequence], charts: Optional[List[bytes]] = None) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf, pagesize=A4,
        leftMargin=2 * cm, rightMargin=2 * cm, topMargin=2 * cm, bottomMargin=2 * cm,
        title=title,
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle("ReportTitle", parent=styles["Title"], textColor=PRIMARY, alignment=0)
    info_style = ParagraphStyle("ReportInfo", parent=styles["Normal"], textColor=SECONDARY)
    cell_style = ParagraphStyle("Cell", parent=styles["Normal"], fontSize=9, leading=11, textColor=SECONDARY)

    story = [Paragraph(escape(title), title_style)]
    for line in subtitle_lines:
        story.append(Paragraph(escape(line), info_style))
    story.append(Spacer(1, 0.5 * cm))

    data = [list(columns)] + [[Paragraph(escape(_cell(v)), cell_style) for v in row] for row in rows]
    col_width = (A4[0] - 4 * cm) / max(len(columns), 1)
    table = Table(data, colWidths=[col_width] * len(columns), repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("ALIGN", (0, 0), (-1, 0), "CENTER"),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, ACCENT]),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]))
    story.append(table)

    for png in charts or []:
        story.append(Spacer(1, 0.8 * cm))
        story.append(Image(io.BytesIO(png), width=16 * cm, height=8 * cm))

    doc.build(story, canvasmaker=NumberedCanvas)
    return buf.getvalue()


def build_xlsx(sheet_title: str, columns: Sequence[str], rows: Sequence[Sequence]) -> bytes:
    wb = Workbook()
    ws = wb.active
    # Excel limits sheet titles to 31 characters
    ws.title = sheet_title[:31]

    ws.append(list(columns))
    header_fill = PatternFill("solid", fgColor="1E3A8A")
    for cell in ws[1]:
        cell.font = Font(bold=True, color="FFFFFF")
        cell.fill = header_fill
        cell.alignment = Alignment(horizontal="center")

    for row in rows:
        ws.append(["" if v is None else v for v in row])

    for index, column in enumerate(columns, start=1):
        width = max([len(str(column))] + [len(str(r[index - 1])) for r in rows if r[index - 1] is not None])
        ws.column_dimensions[get_column_letter(index)].width = min(width + 2, 50)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()
