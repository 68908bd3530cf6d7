"""
Export rendering: turns a logo generation into PDF, CSV or JSON bytes.

Rendering is synchronous and CPU bound; ExportService runs it in a worker
thread under a timeout. Only metadata is rendered, never image content.
"""
import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.exceptions import RenderError
from app.models.logo_generation import LogoGeneration
from app.schemas.options import ExportSettings, ExportTemplate, ExportType
from app.utils.clock import utcnow

EXPORT_VERSION = "1.0"
MAX_JSON_BYTES = 10 * 1024 * 1024
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MISSING = "N/A"

# Header styling per template; content sections are shared
TEMPLATE_STYLES = {
    ExportTemplate.DEFAULT: {
        "title_color": "#1e293b",
        "accent_color": "#3b82f6",
        "title_font": "Helvetica-Bold",
        "title_size": 22,
        "rule": False,
    },
    ExportTemplate.PROFESSIONAL: {
        "title_color": "#0f172a",
        "accent_color": "#0f766e",
        "title_font": "Times-Bold",
        "title_size": 24,
        "rule": True,
    },
}


@dataclass
class RenderedArtifact:
    content: bytes
    byte_count: int
    content_type: str


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime(DATE_FORMAT) if value else MISSING


def _yes_no(value: Optional[bool]) -> str:
    if value is None:
        return MISSING
    return "Yes" if value else "No"


def _text(value: Any) -> str:
    if value is None or value == "":
        return MISSING
    return str(value)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class ExportRenderer:
    """Stateless renderer; one instance can be shared across requests."""

    def render(
        self,
        export_type: str,
        target: LogoGeneration,
        settings: ExportSettings,
        requested_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RenderedArtifact:
        """
        Render `target` in the requested format.

        Raises:
            RenderError: Unknown format/template, missing business name,
                oversized output or any library failure
        """
        try:
            fmt = ExportType(export_type)
        except ValueError as e:
            raise RenderError(f"Unsupported export format: {export_type}") from e
        if not isinstance(settings.template, ExportTemplate):
            raise RenderError(f"Unsupported template: {settings.template}")
        if target is None or not (target.business_name or "").strip():
            raise RenderError("Business name is required for export")

        now = now or utcnow()
        try:
            if fmt == ExportType.PDF:
                content = self._render_pdf(target, settings, now)
            elif fmt == ExportType.CSV:
                content = self._render_csv(target, settings)
            else:
                content = self._render_json(target, settings, requested_by, now)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"{fmt.value.upper()} rendering failed: {e}") from e

        return RenderedArtifact(content=content, byte_count=len(content), content_type=fmt.content_type)

    # ============== PDF ==============

    def _render_pdf(self, target: LogoGeneration, settings: ExportSettings, now: datetime) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=letter,
            rightMargin=50,
            leftMargin=50,
            topMargin=50,
            bottomMargin=50,
            title=f"{target.business_name} - Logo Export",
        )
        theme = TEMPLATE_STYLES[settings.template]
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "ExportTitle",
            parent=styles["Heading1"],
            fontName=theme["title_font"],
            fontSize=theme["title_size"],
            spaceAfter=6,
            textColor=colors.HexColor(theme["title_color"]),
        )
        subtitle_style = ParagraphStyle(
            "ExportSubtitle",
            parent=styles["Normal"],
            fontSize=11,
            textColor=colors.HexColor(theme["accent_color"]),
            spaceAfter=12,
        )
        heading_style = ParagraphStyle(
            "ExportHeading",
            parent=styles["Heading2"],
            fontSize=14,
            spaceBefore=15,
            spaceAfter=8,
            textColor=colors.HexColor("#334155"),
        )
        footer_style = ParagraphStyle(
            "ExportFooter",
            parent=styles["Normal"],
            fontSize=8,
            textColor=colors.HexColor("#94a3b8"),
        )

        elements: List[Any] = []

        # Header
        elements.append(Paragraph("Logo Design Export", title_style))
        elements.append(Paragraph(escape(target.business_name), subtitle_style))
        if theme["rule"]:
            elements.append(HRFlowable(width="100%", thickness=1.5, color=colors.HexColor(theme["accent_color"])))
        elements.append(Spacer(1, 10))

        elements.append(Paragraph("Business Information", heading_style))
        elements.append(self._key_value_table([
            ("Business Name", _text(target.business_name)),
            ("Description", _text(target.business_description)),
            ("Status", _text(target.status).title()),
            ("Created", _format_date(target.created_at)),
        ]))

        if settings.include_domains:
            elements.append(Paragraph("Domain Information", heading_style))
            elements.append(self._key_value_table([
                ("Domain Available", _yes_no(target.domain_available)),
                ("Last Checked", _format_date(target.domain_checked_at)),
            ]))

        if settings.include_logos:
            elements.append(Paragraph("Generated Logos", heading_style))
            logos = list(target.generated_logos or [])
            if logos:
                rows = [["Style", "Variation", "Dimensions", "Created"]]
                rows.extend(
                    [
                        logo.style.replace("_", " ").title(),
                        str(logo.variation_number),
                        f"{logo.image_width} x {logo.image_height}",
                        _format_date(logo.created_at),
                    ]
                    for logo in logos
                )
                table = Table(rows, colWidths=[1.8 * inch, 1.2 * inch, 1.6 * inch, 2.0 * inch])
                table.setStyle(TableStyle([
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(theme["accent_color"])),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("FONTSIZE", (0, 0), (-1, -1), 9),
                    ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e2e8f0")),
                    ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f8fafc")]),
                ]))
                elements.append(table)
            else:
                elements.append(Paragraph("No logos generated.", styles["Normal"]))

        if settings.include_metadata:
            elements.append(Paragraph("Export Metadata", heading_style))
            elements.append(self._key_value_table([
                ("Export Format", "PDF"),
                ("Template", settings.template.value.title()),
                ("Exported At", _format_date(now)),
                ("Export Version", EXPORT_VERSION),
            ]))

        # Footer
        elements.append(Spacer(1, 24))
        elements.append(Paragraph(f"Generated on {now.strftime('%B %d, %Y at %H:%M UTC')}", footer_style))
        if settings.include_branding:
            elements.append(Paragraph("Created with the AI Logo Generator", footer_style))

        doc.build(elements)
        return buffer.getvalue()

    def _key_value_table(self, rows: List[tuple]) -> Table:
        cells = [[label, Paragraph(escape(value), getSampleStyleSheet()["Normal"])] for label, value in rows]
        table = Table(cells, colWidths=[1.8 * inch, 4.8 * inch])
        table.setStyle(TableStyle([
            ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 10),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ("TEXTCOLOR", (0, 0), (0, -1), colors.HexColor("#475569")),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
        ]))
        return table

    # ============== CSV ==============

    def _render_csv(self, target: LogoGeneration, settings: ExportSettings) -> bytes:
        header = ["Business Name", "Description", "Status", "Created At"]
        row = [
            _text(target.business_name),
            _text(target.business_description),
            _text(target.status),
            _format_date(target.created_at),
        ]
        if settings.include_domains:
            header += ["Domain Available", "Domain Checked"]
            row += [_yes_no(target.domain_available), _format_date(target.domain_checked_at)]

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL)
        writer.writerow(header)
        writer.writerow(row)
        return buffer.getvalue().encode("utf-8")

    # ============== JSON ==============

    def _render_json(
        self,
        target: LogoGeneration,
        settings: ExportSettings,
        requested_by: Optional[str],
        now: datetime,
    ) -> bytes:
        generation: Dict[str, Any] = {
            "id": target.id,
            "business_name": target.business_name,
            "business_description": target.business_description,
            "status": target.status,
            "created_at": _iso(target.created_at),
            "updated_at": _iso(target.updated_at),
        }
        if settings.include_domains:
            generation["domain_available"] = target.domain_available
            generation["domain_checked_at"] = _iso(target.domain_checked_at)

        payload: Dict[str, Any] = {
            "logo_generation": generation,
            "export_metadata": {
                "export_type": ExportType.JSON.value,
                "template": settings.template.value,
                "exported_at": now.isoformat(),
                "exported_by": requested_by,
                "export_version": EXPORT_VERSION,
                "total_records": 1,
            },
        }
        if settings.include_logos:
            payload["generated_logos"] = [
                {
                    "id": logo.id,
                    "style": logo.style,
                    "variation_number": logo.variation_number,
                    "image_width": logo.image_width,
                    "image_height": logo.image_height,
                    "file_size": logo.file_size,
                    "created_at": _iso(logo.created_at),
                }
                for logo in target.generated_logos or []
            ]

        content = json.dumps(payload, indent=2, ensure_ascii=False).encode("utf-8")
        if len(content) > MAX_JSON_BYTES:
            raise RenderError("JSON export exceeds the 10 MB limit")
        return content
