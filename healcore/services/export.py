"""
Render aggregated reports into downloadable artifacts.

Renderers only read the report objects built by `healcore.services.reports`;
they never query the store or recompute metrics.
"""
from __future__ import annotations

import calendar
import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure
from matplotlib.lines import Line2D

from healcore.core.errors import ExportError
from healcore.schemas.report import MeasurementDelta, MonthlyReport, ProgramMatrix, WeeklySummary
from healcore.utils.time import utcnow

logger = logging.getLogger(__name__)

CSV_MIME = "text/csv"
PDF_MIME = "application/pdf"
PNG_MIME = "image/png"

# A4 landscape, inches
PAGE_SIZE = (11.69, 8.27)
PAGE_MARGIN = 0.6
HEADER_HEIGHT = 0.7
FOOTER_HEIGHT = 0.45
LINE_HEIGHT = 0.24

# shareable image canvas: 390 x 693 px
IMAGE_SIZE = (3.9, 6.93)
IMAGE_DPI = 100
MAX_IMAGE_DELTAS = 3

NAME_WIDTH = 18
EMAIL_WIDTH = 32

IMPROVED_COLOR = "#2e7d32"
WORSENED_COLOR = "#c62828"
NEUTRAL_COLOR = "#616161"


@dataclass(frozen=True, slots=True)
class ExportArtifact:
    filename: str
    mime_type: str
    data: bytes


ExportSink = Callable[[str, str, bytes], object]


class FileSystemSink:
    """Save artifacts under a directory; returns the written path."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def __call__(self, filename: str, mime_type: str, data: bytes) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / Path(filename).name
        path.write_bytes(data)
        logger.info("Saved %s export to %s (%s bytes)", mime_type, path, len(data))
        return path


def deliver(artifact: ExportArtifact, sink: ExportSink):
    return sink(artifact.filename, artifact.mime_type, artifact.data)


def _truncate(value: str, width: int) -> str:
    return value if len(value) <= width else value[: width - 1] + "…"


def _fmt_ts(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def _month_title(key: str) -> str:
    year, month = key.split("-")
    return f"{calendar.month_name[int(month)]} {year}"


# -- CSV ------------------------------------------------------------------

def _csv_bytes(header: list[str], rows: list[list]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


def matrix_csv(matrix: ProgramMatrix) -> ExportArtifact:
    """One row per enrolled user; numbers are written unformatted."""
    weeks = list(range(1, matrix.program_weeks + 1))
    header = (
        ["user_id", "name", "email", "enrolled_at"]
        + [f"week_{w}" for w in weeks]
        + ["total", "completion_pct", "has_start_photo", "has_finish_photo", "last_activity", "status"]
    )
    rows = [
        [str(r.user_id), r.name, r.email, _fmt_ts(r.enrolled_at)]
        + [r.weeks.get(w, 0) for w in weeks]
        + [
            r.total,
            r.completion_pct,
            str(r.has_start_photo).lower(),
            str(r.has_finish_photo).lower(),
            _fmt_ts(r.last_activity),
            r.status,
        ]
        for r in matrix.rows
    ]
    stamp = matrix.generated_at.strftime("%Y-%m-%d")
    return ExportArtifact(f"{matrix.program_id}-completions-{stamp}.csv", CSV_MIME, _csv_bytes(header, rows))


def weekly_csv(summary: WeeklySummary) -> ExportArtifact:
    """One row per day of the week."""
    header = [
        "day", "has_checkin", "is_active", "is_partial", "mood",
        "workout_completed", "breathing_practice", "water_glasses", "cardio_minutes",
    ]
    rows = [
        [
            d.day.isoformat(),
            str(d.has_checkin).lower(),
            str(d.is_active).lower(),
            str(d.is_partial).lower(),
            d.mood or "",
            str(d.workout_completed).lower(),
            str(d.breathing_practice).lower(),
            d.water_glasses,
            d.cardio_minutes,
        ]
        for d in summary.days
    ]
    return ExportArtifact(f"week-{summary.week_start.isoformat()}.csv", CSV_MIME, _csv_bytes(header, rows))


# -- PDF ------------------------------------------------------------------

class PdfLayout:
    """
    Top-down page writer over matplotlib figures. Coordinates are inches
    from the bottom-left corner. Callers reserve room with `ensure_space`
    before drawing a block, so a block is never split across pages.
    """

    def __init__(self, pdf: PdfPages, title: str, generated_at: datetime, on_new_page: Optional[Callable[["PdfLayout"], None]] = None):
        self.pdf = pdf
        self.title = title
        self.generated_at = generated_at
        self.on_new_page = on_new_page
        self.width, self.height = PAGE_SIZE
        self.left = PAGE_MARGIN
        self.bottom = PAGE_MARGIN + FOOTER_HEIGHT
        self.page = 0
        self.fig: Optional[Figure] = None
        self.y = 0.0

    def _start_page(self) -> None:
        self.page += 1
        self.fig = Figure(figsize=PAGE_SIZE)
        top = self.height - PAGE_MARGIN
        self.text(self.left, top, self.title, size=15, weight="bold")
        self.text(
            self.width - PAGE_MARGIN, top, f"Generated {self.generated_at:%Y-%m-%d %H:%M} UTC", size=8, ha="right"
        )
        self.fig.add_artist(_rule(self, top - 0.2))
        self.text(self.left, PAGE_MARGIN, self.title, size=7, color=NEUTRAL_COLOR)
        self.text(self.width - PAGE_MARGIN, PAGE_MARGIN, f"Page {self.page}", size=7, ha="right", color=NEUTRAL_COLOR)
        self.y = top - HEADER_HEIGHT
        if self.on_new_page is not None:
            self.on_new_page(self)

    def _finish_page(self) -> None:
        if self.fig is not None:
            self.pdf.savefig(self.fig)
            self.fig = None

    def ensure_space(self, height: float) -> None:
        """Break to a new page unless `height` inches fit above the footer."""
        if self.fig is None:
            self._start_page()
        elif self.y - height < self.bottom:
            self._finish_page()
            self._start_page()

    def text(self, x: float, y: float, s: str, *, size: float = 9, weight: str = "normal", ha: str = "left", color: str = "black") -> None:
        self.fig.text(x / self.width, y / self.height, s, fontsize=size, fontweight=weight, ha=ha, va="baseline", color=color)

    def line(self, s: str, *, size: float = 9, weight: str = "normal", indent: float = 0.0, color: str = "black") -> None:
        self.ensure_space(LINE_HEIGHT)
        self.text(self.left + indent, self.y, s, size=size, weight=weight, color=color)
        self.y -= LINE_HEIGHT

    def pair(self, label: str, value: str, *, value_x: float = 3.0) -> None:
        """A label and its value, always on the same line."""
        self.ensure_space(LINE_HEIGHT)
        self.text(self.left, self.y, label, color=NEUTRAL_COLOR)
        self.text(self.left + value_x, self.y, value, weight="bold")
        self.y -= LINE_HEIGHT

    def gap(self, height: float = LINE_HEIGHT / 2) -> None:
        self.y -= height

    def close(self) -> None:
        if self.fig is None:
            self._start_page()
        self._finish_page()


def _rule(layout: PdfLayout, y: float) -> Line2D:
    frac = y / layout.height
    return Line2D(
        [layout.left / layout.width, 1 - PAGE_MARGIN / layout.width], [frac, frac], linewidth=0.6, color=NEUTRAL_COLOR
    )


def _render_pdf(title: str, generated_at: datetime, draw: Callable[[PdfLayout], None], on_new_page=None) -> bytes:
    buf = io.BytesIO()
    with PdfPages(buf) as pdf:
        layout = PdfLayout(pdf, title, generated_at, on_new_page)
        draw(layout)
        layout.close()
    return buf.getvalue()


# column label, width in inches
def _matrix_columns(weeks: int) -> list[tuple[str, float]]:
    return (
        [("Name", 1.55), ("Email", 2.35), ("Enrolled", 0.85)]
        + [(f"W{w}", 0.34) for w in range(1, weeks + 1)]
        + [("Total", 0.45), ("%", 0.45), ("Start Photo", 0.8), ("Finish Photo", 0.85), ("Last Activity", 0.9)]
    )


def _draw_row(layout: PdfLayout, columns: list[tuple[str, float]], values: list[str], **style) -> None:
    layout.ensure_space(LINE_HEIGHT)
    x = layout.left
    for (_, width), value in zip(columns, values):
        layout.text(x, layout.y, value, size=7.5, **style)
        x += width
    layout.y -= LINE_HEIGHT


def matrix_pdf(matrix: ProgramMatrix) -> ExportArtifact:
    """Paginated completion table; the column header repeats on every page."""
    columns = _matrix_columns(matrix.program_weeks)
    header = [label for label, _ in columns]
    table_started = False

    def repeat_header(layout: PdfLayout) -> None:
        if table_started:
            _draw_row(layout, columns, header, weight="bold")

    def draw(layout: PdfLayout) -> None:
        nonlocal table_started
        s = matrix.summary
        layout.ensure_space(LINE_HEIGHT * 4)
        layout.pair("Enrolled", str(s.enrolled))
        layout.pair("Fully completed", str(s.fully_completed))
        layout.pair("In progress", str(s.in_progress))
        layout.pair("Not started", str(s.not_started))
        layout.gap()
        layout.ensure_space(LINE_HEIGHT * 2)
        _draw_row(layout, columns, header, weight="bold")
        table_started = True
        for r in matrix.rows:
            _draw_row(
                layout,
                columns,
                [_truncate(r.name, NAME_WIDTH), _truncate(r.email, EMAIL_WIDTH), f"{r.enrolled_at:%Y-%m-%d}"]
                + [str(r.weeks.get(w, 0)) for w in range(1, matrix.program_weeks + 1)]
                + [
                    str(r.total),
                    f"{r.completion_pct}%",
                    "Yes" if r.has_start_photo else "No",
                    "Yes" if r.has_finish_photo else "No",
                    f"{r.last_activity:%Y-%m-%d}" if r.last_activity else "-",
                ],
            )

    try:
        data = _render_pdf("Program Completion Report", matrix.generated_at, draw, repeat_header)
    except Exception as exc:
        logger.error("Rendering program matrix PDF failed: %s", exc)
        raise ExportError("Could not render the completion report", detail=str(exc)) from exc
    stamp = matrix.generated_at.strftime("%Y-%m-%d")
    return ExportArtifact(f"{matrix.program_id}-completions-{stamp}.pdf", PDF_MIME, data)


def _delta_text(d: MeasurementDelta) -> str:
    if d.change is not None:
        return f"{d.start} → {d.end} ({d.change:+d})"
    return f"{d.start} → {d.end}"


def monthly_pdf(report: MonthlyReport, generated_at: Optional[datetime] = None) -> ExportArtifact:
    def draw(layout: PdfLayout) -> None:
        layout.ensure_space(LINE_HEIGHT * 9)
        layout.line("Highlights", size=11, weight="bold")
        layout.pair("Workouts", str(report.total_workouts))
        layout.pair("Breathing sessions", str(report.total_breathing_sessions))
        layout.pair("Cardio minutes", str(report.total_cardio_minutes))
        layout.pair("Average water", f"{report.avg_water} glasses/day")
        layout.pair("Average energy", f"{report.avg_energy} / 5")
        layout.pair("Active days", f"{report.active_days} / {report.days_in_month}")
        layout.pair("Consistency", f"{report.consistency_score}%")
        layout.pair("Streak", f"{report.streak.current_streak} current, {report.streak.best_streak} best")
        layout.gap()

        if report.mood_breakdown:
            layout.ensure_space(LINE_HEIGHT * (len(report.mood_breakdown) + 1))
            layout.line("Mood", size=11, weight="bold")
            for mood, count in report.mood_breakdown.items():
                layout.pair(mood.capitalize(), str(count))
            layout.gap()

        if report.measurement_deltas:
            layout.ensure_space(LINE_HEIGHT * 2)
            layout.line("Measurements", size=11, weight="bold")
            for d in report.measurement_deltas:
                glyph, _ = delta_indicator(d)
                layout.pair(d.label, f"{_delta_text(d)} {glyph}".strip())
            layout.gap()

        layout.line(report.motivational_message, size=10, color=NEUTRAL_COLOR)

    try:
        data = _render_pdf(f"Monthly Report: {_month_title(report.month)}", generated_at or utcnow(), draw)
    except Exception as exc:
        logger.error("Rendering monthly PDF for %s failed: %s", report.month, exc)
        raise ExportError("Could not render the monthly report", detail=str(exc)) from exc
    return ExportArtifact(f"monthly-report-{report.month}.pdf", PDF_MIME, data)


# -- shareable image ------------------------------------------------------

def delta_indicator(delta: MeasurementDelta) -> tuple[str, str]:
    """
    Arrow for the direction the value moved and a colour for whether that
    move is an improvement for this metric.
    """
    if not delta.changed:
        return "", NEUTRAL_COLOR
    if delta.improved is None:
        return "→", NEUTRAL_COLOR
    if delta.change is not None:
        glyph = "▲" if delta.change > 0 else "▼"
    else:
        # free-form values: the arrow follows the improvement
        glyph = "▼" if delta.improved else "▲"
    return glyph, IMPROVED_COLOR if delta.improved else WORSENED_COLOR


def monthly_image(report: MonthlyReport) -> ExportArtifact:
    """Fixed 390x693 PNG with headline metrics, streak and top measurement changes."""
    try:
        fig = Figure(figsize=IMAGE_SIZE, dpi=IMAGE_DPI, facecolor="#fdf2f6")
        put = fig.text
        put(0.5, 0.94, "My Monthly Report", ha="center", fontsize=16, fontweight="bold")
        put(0.5, 0.90, _month_title(report.month), ha="center", fontsize=11, color=NEUTRAL_COLOR)

        tiles = [
            ("Workouts", str(report.total_workouts)),
            ("Best Streak", f"{report.streak.best_streak} days"),
            ("Active Days", f"{report.active_days}/{report.days_in_month}"),
            ("Consistency", f"{report.consistency_score}%"),
        ]
        for i, (label, value) in enumerate(tiles):
            x = 0.27 if i % 2 == 0 else 0.73
            y = 0.78 if i < 2 else 0.64
            put(x, y, value, ha="center", fontsize=18, fontweight="bold")
            put(x, y - 0.04, label, ha="center", fontsize=9, color=NEUTRAL_COLOR)

        put(0.5, 0.53, f"Current streak: {report.streak.current_streak} days", ha="center", fontsize=11)

        y = 0.44
        changed = report.changed_deltas[:MAX_IMAGE_DELTAS]
        if changed:
            put(0.08, y, "Progress", fontsize=12, fontweight="bold")
            y -= 0.06
        for d in changed:
            glyph, color = delta_indicator(d)
            put(0.08, y, d.label, fontsize=10)
            put(0.60, y, f"{d.start} → {d.end}", fontsize=10, ha="center")
            put(0.92, y, glyph, fontsize=12, ha="right", color=color)
            y -= 0.06

        put(0.5, 0.06, report.motivational_message, ha="center", fontsize=7, color=NEUTRAL_COLOR, wrap=True)

        buf = io.BytesIO()
        # no bbox_inches: the canvas size must stay fixed
        fig.savefig(buf, format="png", dpi=IMAGE_DPI, facecolor=fig.get_facecolor())
    except Exception as exc:
        logger.error("Rendering monthly image for %s failed: %s", report.month, exc)
        raise ExportError("Could not render the shareable image", detail=str(exc)) from exc
    return ExportArtifact(f"monthly-report-{report.month}.png", PNG_MIME, buf.getvalue())
