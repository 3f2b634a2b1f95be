"""
Inspection report PDF renderer.

Layout works in top-down coordinates (y grows towards the bottom of the
page, the way the report was originally designed) and converts to
reportlab's bottom-up space at draw time. Section order is fixed:

    header, project, inspector, inspection details, weather (when present),
    content, findings, recommendations, labor table, equipment table,
    additional information, footer on every page.

The renderer reads frozen snapshots of the report, project and inspector, so
the ORM rows handed to ``render`` are never mutated. The finished document is
built in memory, written to a temporary sibling, fsynced and then moved into
place, so the returned path always names a complete file.
"""
import io
import json
import os
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..errors import RenderError
from ..storage.artifacts import ArtifactStore
from .naming import build_report_filename


log = structlog.get_logger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = LETTER  # 612 x 792

MARGIN_X = 40
LABEL_X = 60
VALUE_X = 180
TEXT_WIDTH = 480
CHAR_WIDTH = 6
PAGE_BREAK_Y = 720
SECTION_BREAK_Y = 600
TOP_Y = 60
FOOTER_Y = 750
ROW_HEIGHT = 18
LINE_HEIGHT = 16
VALUE_MAX = 100

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

HEADING_COLOR = colors.HexColor("#495057")
TEXT_COLOR = colors.HexColor("#212529")
MUTED_COLOR = colors.HexColor("#6c757d")
RULE_COLOR = colors.HexColor("#dee2e6")
BOX_FILL = colors.HexColor("#f8f9fa")


# Snapshots

@dataclass(frozen=True)
class ProjectSnapshot:
    name: Optional[str] = None
    location: Optional[str] = None
    client_name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    contract_day: Optional[int] = None

    @classmethod
    def from_model(cls, project) -> Optional["ProjectSnapshot"]:
        if project is None:
            return None
        return cls(
            name=project.name,
            location=project.location,
            client_name=project.client_name,
            description=project.description,
            start_date=project.start_date,
            end_date=project.end_date,
            contract_day=project.contract_day,
        )


@dataclass(frozen=True)
class InspectorSnapshot:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    job_name: Optional[str] = None

    @classmethod
    def from_model(cls, user) -> Optional["InspectorSnapshot"]:
        if user is None:
            return None
        return cls(
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            role=user.role,
            job_name=user.job_name,
        )

    @property
    def full_name(self) -> Optional[str]:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or None


@dataclass(frozen=True)
class ReportSnapshot:
    id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    jobname: Optional[str] = None
    jobid: Optional[str] = None
    inspection_type: Optional[str] = None
    findings: Optional[str] = None
    recommendations: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    weather: Optional[Dict[str, Any]] = None
    labor_breakdown_title: Optional[str] = None
    labor_breakdown: Tuple[Dict[str, Any], ...] = ()
    equipment_breakdown_title: Optional[str] = None
    equipment_breakdown: Tuple[Dict[str, Any], ...] = ()
    extra_fields: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, report) -> "ReportSnapshot":
        return cls(
            id=report.id,
            title=report.title,
            content=report.content,
            author=report.author,
            jobname=report.jobname,
            jobid=report.jobid,
            inspection_type=report.inspection_type,
            findings=report.findings,
            recommendations=report.recommendations,
            status=report.status,
            created_at=report.created_at,
            weather=dict(report.weather) if report.weather else None,
            labor_breakdown_title=report.labor_breakdown_title,
            labor_breakdown=tuple(dict(r) for r in (report.labor_breakdown or [])),
            equipment_breakdown_title=report.equipment_breakdown_title,
            equipment_breakdown=tuple(dict(r) for r in (report.equipment_breakdown or [])),
            extra_fields=tuple((report.extra_fields or {}).items()),
        )


# Text helpers

def wrap_text(text: Optional[str], max_width: int = TEXT_WIDTH, char_width: int = CHAR_WIDTH) -> List[str]:
    """Greedy word wrap using an approximate fixed character width."""
    if not text:
        return []
    lines: List[str] = []
    limit = max(1, max_width // char_width)
    for paragraph in text.replace("\r\n", "\n").split("\n"):
        current = ""
        for word in paragraph.split(" "):
            # Words wider than a line (URLs, serials) are hard-split
            while len(word) > limit:
                if current:
                    lines.append(current)
                    current = ""
                lines.append(word[:limit])
                word = word[limit:]
            candidate = f"{current} {word}" if current else word
            if len(candidate) * char_width > max_width and current:
                lines.append(current)
                current = word
            else:
                current = candidate
        lines.append(current)
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def format_field_label(key: str) -> str:
    """``safetyNotes`` / ``safety_notes`` -> ``Safety Notes:``"""
    spaced = re.sub(r"([A-Z])", r" \1", key.replace("_", " "))
    words = [w for w in spaced.split(" ") if w]
    return " ".join(w[:1].upper() + w[1:] for w in words) + ":"


def format_extra_value(value: Any) -> Optional[str]:
    """Display string for an extension value, or None when it should be skipped."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        text = "Yes" if value else "No"
    elif isinstance(value, (list, tuple)):
        text = ", ".join(str(v) for v in value) if value else "None"
    elif isinstance(value, dict):
        text = json.dumps(value)
    else:
        text = str(value)
    if len(text) > VALUE_MAX:
        text = text[:VALUE_MAX] + "..."
    return text


def _fmt_date(value: Optional[datetime]) -> str:
    return value.strftime("%m/%d/%Y") if value else "N/A"


def _fmt_datetime(value: Optional[datetime]) -> str:
    return value.strftime("%m/%d/%Y %I:%M %p") if value else "N/A"


def _with_unit(value: Any, unit: str) -> str:
    if value is None or value == "":
        return "N/A"
    return f"{value}{unit}"


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


# Layout

class _Page:
    """Cursor over a reportlab canvas in top-down coordinates."""

    def __init__(self, c: canvas.Canvas, footer_text: str):
        self.c = c
        self.y = TOP_Y
        self.page = 1
        self.footer_text = footer_text

    def text(self, x: float, y: float, value: str, font: str = FONT, size: float = 11, color=TEXT_COLOR):
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawString(x, PAGE_HEIGHT - y - size, value)

    def rule(self, y: float, width: float = 1):
        self.c.setStrokeColor(RULE_COLOR)
        self.c.setLineWidth(width)
        self.c.line(MARGIN_X, PAGE_HEIGHT - y, PAGE_WIDTH - MARGIN_X, PAGE_HEIGHT - y)

    def footer(self):
        self.rule(FOOTER_Y)
        self.text(MARGIN_X, FOOTER_Y + 8, self.footer_text, size=9, color=MUTED_COLOR)
        self.text(MARGIN_X, FOOTER_Y + 22, f"Generated on: {datetime.now().strftime('%m/%d/%Y %I:%M %p')}", size=9, color=MUTED_COLOR)
        self.text(PAGE_WIDTH - 92, FOOTER_Y + 8, f"Page {self.page}", size=9, color=MUTED_COLOR)

    def new_page(self):
        self.footer()
        self.c.showPage()
        self.page += 1
        self.y = TOP_Y

    def ensure(self, threshold: float = PAGE_BREAK_Y):
        if self.y > threshold:
            self.new_page()

    def section(self, title: str):
        self.ensure(SECTION_BREAK_Y)
        self.text(MARGIN_X, self.y, title.upper(), font=FONT_BOLD, size=14, color=HEADING_COLOR)
        self.y += 25

    def rows(self, pairs: Sequence[Tuple[str, str]]):
        for label, value in pairs:
            self.ensure()
            self.text(LABEL_X, self.y, label, font=FONT_BOLD, color=HEADING_COLOR)
            self.text(VALUE_X, self.y, value)
            self.y += ROW_HEIGHT
        self.y += 20

    def block(self, title: str, body: Optional[str]):
        if not body or not body.strip():
            return
        self.section(title)
        self.c.setFillColor(RULE_COLOR)
        self.c.rect(MARGIN_X, PAGE_HEIGHT - self.y - 2, PAGE_WIDTH - 2 * MARGIN_X, 2, stroke=0, fill=1)
        self.y += 10
        for line in wrap_text(body.strip()):
            self.ensure()
            self.text(LABEL_X, self.y, line)
            self.y += LINE_HEIGHT
        self.y += 20

    def table(self, title: str, headers: Sequence[str], keys: Sequence[str], rows: Sequence[Dict[str, Any]]):
        if not rows:
            return
        self.section(title)
        columns = [LABEL_X, 300, 420]
        for x, header in zip(columns, headers):
            self.text(x, self.y, header, font=FONT_BOLD, color=HEADING_COLOR)
        self.y += ROW_HEIGHT
        self.rule(self.y - 4)
        for row in rows:
            self.ensure()
            for x, key in zip(columns, keys):
                self.text(x, self.y, _cell(row.get(key))[:40])
            self.y += ROW_HEIGHT
        self.y += 20


class PdfRenderer:
    def __init__(
        self,
        store: ArtifactStore,
        company_name: str = "Professional Construction Services",
        logo_path: Optional[str] = None,
    ):
        self.store = store
        self.company_name = company_name
        self.logo_path = logo_path

    @classmethod
    def from_settings(cls, settings, store: ArtifactStore) -> "PdfRenderer":
        return cls(store, settings.report_company_name, settings.report_logo_path)

    def filename_for(
        self,
        report: ReportSnapshot,
        project: Optional[ProjectSnapshot],
        inspector: Optional[InspectorSnapshot],
        today: Optional[date] = None,
    ) -> str:
        return build_report_filename(
            jobname=report.jobname,
            project_name=project.name if project else None,
            inspection_type=report.inspection_type,
            inspector_first=inspector.first_name if inspector else None,
            inspector_last=inspector.last_name if inspector else None,
            author=report.author,
            today=today,
        )

    def render(self, report, project=None, inspector=None, replacing: Optional[str] = None, today: Optional[date] = None) -> Path:
        """Render ``report`` to disk and return the artifact path.

        ``report``, ``project`` and ``inspector`` may be ORM rows or
        snapshots. ``replacing`` is the report's own current artifact, which
        may be overwritten when the deterministic name is unchanged. Any
        failure raises RenderError and leaves no partial file behind.
        """
        snapshot = report if isinstance(report, ReportSnapshot) else ReportSnapshot.from_model(report)
        if project is not None and not isinstance(project, ProjectSnapshot):
            project = ProjectSnapshot.from_model(project)
        if inspector is not None and not isinstance(inspector, InspectorSnapshot):
            inspector = InspectorSnapshot.from_model(inspector)

        tmp_path: Optional[Path] = None
        try:
            target = self.store.allocate(self.filename_for(snapshot, project, inspector, today), replacing=replacing)
            data, pages = self.render_bytes(snapshot, project, inspector)
            tmp_path = target.with_name(target.name + ".part")
            with open(tmp_path, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, target)
        except Exception as e:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
            log.error("report_pdf_failed", report_id=snapshot.id, error=str(e))
            raise RenderError(f"PDF generation failed: {e}") from e
        log.info("report_pdf_generated", report_id=snapshot.id, path=str(target), pages=pages)
        return target

    def render_bytes(
        self,
        report: ReportSnapshot,
        project: Optional[ProjectSnapshot] = None,
        inspector: Optional[InspectorSnapshot] = None,
    ) -> Tuple[bytes, int]:
        """Build the document in memory. Returns the PDF bytes and the page count."""
        buf = io.BytesIO()
        c = canvas.Canvas(buf, pagesize=LETTER)
        c.setTitle(report.title or "Construction Inspection Report")
        c.setAuthor(report.author or self.company_name)
        page = _Page(c, f"Construction Inspection Report - {self.company_name}")

        self._header(page, report, project)
        page.section("Project Information")
        page.rows(self._project_rows(project))
        page.section("Inspector Information")
        page.rows(self._inspector_rows(inspector))
        page.section("Inspection Details")
        page.rows([
            ("Author:", report.author or "N/A"),
            ("Job Name:", report.jobname or "N/A"),
            ("Job ID:", report.jobid or "N/A"),
            ("Inspection Type:", report.inspection_type or "N/A"),
            ("Status:", report.status or "N/A"),
            ("Created:", _fmt_datetime(report.created_at)),
        ])
        if report.weather:
            page.section("Weather Conditions")
            page.rows(self._weather_rows(report.weather))
        page.block("Report Content", report.content)
        page.block("Findings", report.findings)
        page.block("Recommendations", report.recommendations)
        page.table(
            report.labor_breakdown_title or "Labor Breakdown",
            ("Position", "Quantity", "Hours"),
            ("position", "quantity", "hours"),
            report.labor_breakdown,
        )
        page.table(
            report.equipment_breakdown_title or "Equipment Breakdown",
            ("Equipment", "Quantity", "Hours"),
            ("equipment", "quantity", "hours"),
            report.equipment_breakdown,
        )
        extras = [
            (format_field_label(k), text)
            for k, text in ((k, format_extra_value(v)) for k, v in report.extra_fields)
            if text is not None
        ]
        if extras:
            page.section("Additional Information")
            page.rows(extras)

        page.footer()
        c.showPage()
        c.save()
        return buf.getvalue(), page.page

    def _header(self, page: _Page, report: ReportSnapshot, project: Optional[ProjectSnapshot]):
        c = page.c
        c.setFillColor(BOX_FILL)
        c.setStrokeColor(RULE_COLOR)
        c.rect(MARGIN_X, PAGE_HEIGHT - 120, PAGE_WIDTH - 2 * MARGIN_X, 80, stroke=1, fill=1)

        title_x = LABEL_X
        logo = self._logo_reader()
        if logo is not None:
            c.drawImage(logo, LABEL_X - 10, PAGE_HEIGHT - 112, width=64, height=64, preserveAspectRatio=True, mask="auto")
            title_x = LABEL_X + 64

        page.text(title_x, 55, "CONSTRUCTION INSPECTION REPORT", font=FONT_BOLD, size=18)
        page.text(title_x, 85, (report.title or "Construction Inspection Report")[:48], size=12, color=MUTED_COLOR)

        # Metadata box
        c.setFillColor(colors.white)
        c.setStrokeColor(colors.HexColor("#adb5bd"))
        c.rect(400, PAGE_HEIGHT - 112, 160, 64, stroke=1, fill=1)
        report_date = _fmt_date(report.created_at or datetime.now())
        page.text(410, 54, "Report Date:", font=FONT_BOLD, size=9, color=HEADING_COLOR)
        page.text(410, 66, report_date, size=9)
        page.text(410, 80, "Report ID:", font=FONT_BOLD, size=9, color=HEADING_COLOR)
        page.text(410, 92, (report.id or "N/A")[-8:].upper(), size=9)

        page.rule(140, width=2)
        page.y = 160

    def _logo_reader(self) -> Optional[ImageReader]:
        if not self.logo_path or not os.path.exists(self.logo_path):
            return None
        with PILImage.open(self.logo_path) as im:
            if im.mode != "RGB":
                im = im.convert("RGB")
            img_buf = io.BytesIO()
            im.save(img_buf, format="JPEG", quality=90)
        img_buf.seek(0)
        return ImageReader(img_buf)

    @staticmethod
    def _project_rows(project: Optional[ProjectSnapshot]) -> List[Tuple[str, str]]:
        p = project or ProjectSnapshot()
        return [
            ("Project Name:", p.name or "N/A"),
            ("Location:", p.location or "N/A"),
            ("Client:", p.client_name or "N/A"),
            ("Start Date:", _fmt_date(p.start_date)),
            ("Contract Day:", f"Day {p.contract_day}" if p.contract_day else "N/A"),
            ("Description:", (p.description or "N/A")[:60]),
        ]

    @staticmethod
    def _inspector_rows(inspector: Optional[InspectorSnapshot]) -> List[Tuple[str, str]]:
        i = inspector or InspectorSnapshot()
        return [
            ("Inspector:", i.full_name or "N/A"),
            ("Email:", i.email or "N/A"),
            ("Job Title:", i.job_name or "N/A"),
            ("Role:", i.role or "N/A"),
        ]

    @staticmethod
    def _weather_rows(weather: Dict[str, Any]) -> List[Tuple[str, str]]:
        rows = [
            ("Temperature:", _with_unit(weather.get("temperature"), "°F")),
            ("Conditions:", weather.get("description") or "N/A"),
            ("Humidity:", _with_unit(weather.get("humidity"), "%")),
            ("Wind Speed:", _with_unit(weather.get("windSpeed"), " mph")),
            ("Wind Direction:", weather.get("windDirection") or "N/A"),
            ("Pressure:", _with_unit(weather.get("pressure"), " inHg")),
        ]
        if weather.get("location"):
            rows.append(("Location:", str(weather["location"])))
        return rows
