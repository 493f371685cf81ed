"""
Tests for CSV, PDF and PNG export rendering.
"""
import csv
import io
import re
import struct
import pytest
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

from healcore.core.errors import ExportError
from healcore.schemas.report import (
    DayState, MatrixRow, MatrixSummary, MeasurementDelta, MilestoneOut, MonthlyReport, ProgramMatrix,
    StreakOut, WeeklyStatsOut, WeeklySummary,
)
from healcore.services import export
from healcore.services.export import (
    IMPROVED_COLOR, NEUTRAL_COLOR, WORSENED_COLOR, FileSystemSink, delta_indicator, deliver,
    matrix_csv, matrix_pdf, monthly_image, monthly_pdf, weekly_csv,
)

GENERATED = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)
PDF_PAGE = re.compile(rb"/Type\s*/Page\b")


def make_row(i: int, total: int = 2) -> MatrixRow:
    return MatrixRow(
        user_id=uuid4(),
        name=f"Member Number {i} With A Long Surname",
        email=f"member{i}@example.com",
        enrolled_at=GENERATED - timedelta(days=30),
        weeks={1: total, 2: 0, 3: 0, 4: 0, 5: 0, 6: 0},
        total=total,
        completion_pct=round(total / 24 * 100),
        has_start_photo=i % 2 == 0,
        last_activity=GENERATED if total else None,
        status="in_progress" if total else "not_started",
    )


def make_matrix(n: int) -> ProgramMatrix:
    return ProgramMatrix(
        program_id="heal-your-core",
        program_weeks=6,
        quota=24,
        generated_at=GENERATED,
        rows=[make_row(i) for i in range(n)],
        summary=MatrixSummary(enrolled=n, in_progress=n),
    )


def make_monthly(deltas=None) -> MonthlyReport:
    return MonthlyReport(
        month="2026-03",
        days_in_month=31,
        total_checkins=12,
        total_workouts=9,
        total_breathing_sessions=5,
        total_cardio_minutes=240,
        avg_water=6.5,
        avg_energy=3.4,
        mood_breakdown={"great": 4, "good": 6, "tired": 2},
        streak=StreakOut(current_streak=4, best_streak=9),
        active_days=14,
        consistency_score=52,
        measurement_deltas=deltas if deltas is not None else [
            MeasurementDelta(metric="dr_gap", label="DR Gap", start="3 fingers", end="1 finger",
                             changed=True, improved=True),
            MeasurementDelta(metric="core_connection", label="Core Connection", start=4, end=7, change=3,
                             changed=True, improved=True),
            MeasurementDelta(metric="back_discomfort", label="Back Discomfort", start=3, end=5, change=2,
                             changed=True, improved=False),
            MeasurementDelta(metric="energy", label="Energy", start=5, end=5, change=0, changed=False,
                             improved=False),
        ],
        motivational_message="Every workout counts!",
    )


def png_size(data: bytes) -> tuple[int, int]:
    assert data[:8] == b"\x89PNG\r\n\x1a\n"
    return struct.unpack(">II", data[16:24])


class TestMatrixCsv:
    def test_columns_and_values(self):
        matrix = make_matrix(3)

        artifact = matrix_csv(matrix)
        rows = list(csv.DictReader(io.StringIO(artifact.data.decode("utf-8"))))

        assert artifact.mime_type == "text/csv"
        assert artifact.filename == "heal-your-core-completions-2026-03-31.csv"
        assert len(rows) == 3
        first = rows[0]
        assert list(first)[:4] == ["user_id", "name", "email", "enrolled_at"]
        assert first["week_1"] == "2"
        assert first["total"] == "2"
        assert first["completion_pct"] == "8"
        assert first["has_start_photo"] == "true"
        assert rows[1]["has_start_photo"] == "false"
        assert first["status"] == "in_progress"
        # full names are never truncated in CSV
        assert first["name"] == "Member Number 0 With A Long Surname"

    def test_every_numeric_cell_matches_report(self):
        matrix = make_matrix(0)
        for i in range(5):
            row = make_row(i)
            row.weeks = {w: (i + w) % 5 for w in range(1, 7)}
            row.total = sum(row.weeks.values())
            row.completion_pct = min(100, round(row.total / matrix.quota * 100))
            matrix.rows.append(row)

        parsed = list(csv.DictReader(io.StringIO(matrix_csv(matrix).data.decode("utf-8"))))

        assert len(parsed) == len(matrix.rows)
        for expected, got in zip(matrix.rows, parsed):
            assert got["user_id"] == str(expected.user_id)
            for week in range(1, matrix.program_weeks + 1):
                assert int(got[f"week_{week}"]) == expected.weeks[week]
            assert int(got["total"]) == expected.total
            assert int(got["completion_pct"]) == expected.completion_pct
            assert got["has_start_photo"] == str(expected.has_start_photo).lower()
            assert got["status"] == expected.status

    def test_empty_matrix_has_header_only(self):
        artifact = matrix_csv(make_matrix(0))

        assert artifact.data.decode("utf-8").count("\n") == 1


class TestWeeklyCsv:
    def test_one_row_per_day(self):
        start = date(2026, 3, 2)
        summary = WeeklySummary(
            week_start=start,
            week_end=start + timedelta(days=6),
            program_week=2,
            days=[DayState(day=start + timedelta(days=i), has_checkin=i < 2, water_glasses=i) for i in range(7)],
            streak=StreakOut(),
            stats=WeeklyStatsOut(),
            milestone=MilestoneOut(emoji="✨", message="Start your streak today!", is_milestone=False),
            share_message="",
            share_url="",
        )

        rows = list(csv.DictReader(io.StringIO(weekly_csv(summary).data.decode("utf-8"))))

        assert len(rows) == 7
        assert rows[0]["day"] == "2026-03-02"
        assert rows[1]["has_checkin"] == "true"
        assert rows[6]["water_glasses"] == "6"

    def test_every_numeric_cell_matches_summary(self):
        start = date(2026, 3, 2)
        days = [
            DayState(
                day=start + timedelta(days=i), has_checkin=True, is_active=i % 2 == 0,
                workout_completed=i % 3 == 0, water_glasses=i * 2, cardio_minutes=i * 15,
            )
            for i in range(7)
        ]
        summary = WeeklySummary(
            week_start=start, week_end=start + timedelta(days=6), program_week=1, days=days,
            streak=StreakOut(), stats=WeeklyStatsOut(),
            milestone=MilestoneOut(emoji="✨", message="Start your streak today!", is_milestone=False),
            share_message="", share_url="",
        )

        parsed = list(csv.DictReader(io.StringIO(weekly_csv(summary).data.decode("utf-8"))))

        for expected, got in zip(summary.days, parsed):
            assert got["day"] == expected.day.isoformat()
            assert int(got["water_glasses"]) == expected.water_glasses
            assert int(got["cardio_minutes"]) == expected.cardio_minutes
            assert got["is_active"] == str(expected.is_active).lower()
            assert got["workout_completed"] == str(expected.workout_completed).lower()


class TestDeltaIndicator:
    """Arrow follows the value, colour follows the improvement."""

    def test_unchanged(self):
        d = MeasurementDelta(metric="energy", label="Energy", start=5, end=5, change=0, changed=False, improved=False)
        assert delta_indicator(d) == ("", NEUTRAL_COLOR)

    def test_lower_is_better_drop_is_green_down_arrow(self):
        d = MeasurementDelta(metric="back_discomfort", label="Back", start=6, end=3, change=-3, changed=True, improved=True)
        assert delta_indicator(d) == ("▼", IMPROVED_COLOR)

    def test_higher_is_better_drop_is_red_down_arrow(self):
        d = MeasurementDelta(metric="core_connection", label="Core", start=7, end=4, change=-3, changed=True, improved=False)
        assert delta_indicator(d) == ("▼", WORSENED_COLOR)

    def test_rise_in_discomfort_is_red_up_arrow(self):
        d = MeasurementDelta(metric="back_discomfort", label="Back", start=3, end=5, change=2, changed=True, improved=False)
        assert delta_indicator(d) == ("▲", WORSENED_COLOR)

    def test_free_form_improvement(self):
        d = MeasurementDelta(metric="dr_gap", label="DR Gap", start="3 fingers", end="1 finger", changed=True, improved=True)
        assert delta_indicator(d) == ("▼", IMPROVED_COLOR)

    def test_incomparable(self):
        d = MeasurementDelta(metric="dr_gap", label="DR Gap", start="wide", end="narrow", changed=True, improved=None)
        assert delta_indicator(d) == ("→", NEUTRAL_COLOR)


class TestPdf:
    def test_matrix_pdf_single_page(self):
        artifact = matrix_pdf(make_matrix(3))

        assert artifact.data.startswith(b"%PDF")
        assert artifact.mime_type == "application/pdf"
        assert len(PDF_PAGE.findall(artifact.data)) == 1

    def test_matrix_pdf_paginates_and_repeats_header(self, monkeypatch):
        headers = []
        original = export._draw_row

        def spy(layout, columns, values, **style):
            if values and values[0] == "Name":
                headers.append(layout.page)
            return original(layout, columns, values, **style)

        monkeypatch.setattr(export, "_draw_row", spy)

        artifact = matrix_pdf(make_matrix(80))

        pages = len(PDF_PAGE.findall(artifact.data))
        assert pages >= 3
        assert sorted(set(headers)) == list(range(1, pages + 1))

    def test_monthly_pdf(self):
        artifact = monthly_pdf(make_monthly(), generated_at=GENERATED)

        assert artifact.filename == "monthly-report-2026-03.pdf"
        assert artifact.data.startswith(b"%PDF")

    def test_empty_monthly_pdf(self):
        report = MonthlyReport(month="2026-02", days_in_month=28, motivational_message="A new month")

        assert monthly_pdf(report, generated_at=GENERATED).data.startswith(b"%PDF")


class TestMonthlyImage:
    def test_fixed_canvas_size(self):
        artifact = monthly_image(make_monthly())

        assert artifact.mime_type == "image/png"
        assert artifact.filename == "monthly-report-2026-03.png"
        assert png_size(artifact.data) == (390, 693)

    def test_size_does_not_depend_on_content(self):
        artifact = monthly_image(make_monthly(deltas=[]))

        assert png_size(artifact.data) == (390, 693)

    def test_render_failure_raises_export_error(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("no canvas")

        monkeypatch.setattr(export.Figure, "savefig", boom)

        with pytest.raises(ExportError) as exc_info:
            monthly_image(make_monthly())
        assert exc_info.value.error_code == "EXPORT_FAILED"
        assert "no canvas" in exc_info.value.detail


class TestDelivery:
    def test_filesystem_sink(self, tmp_path):
        artifact = matrix_csv(make_matrix(1))

        path = deliver(artifact, FileSystemSink(tmp_path / "exports"))

        assert path.name == artifact.filename
        assert path.read_bytes() == artifact.data

    def test_custom_sink(self):
        received = []

        deliver(matrix_csv(make_matrix(1)), lambda name, mime, data: received.append((name, mime)))

        assert received == [("heal-your-core-completions-2026-03-31.csv", "text/csv")]
