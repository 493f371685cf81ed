"""
Report aggregation over check-ins, workout completions and measurements.

Each report issues at most one query per entity type and buckets every
timestamp into local days of the reporting timezone, using half-open
[start, end + 1 day) ranges. Metric math lives in `streaks`; this module
only gathers, groups and shapes.
"""
from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional, Sequence
from urllib.parse import quote
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from healcore.core.config import settings
from healcore.db.models import MOODS, ProgressMeasurement
from healcore.repositories import checkin_repo, completion_repo, measurement_repo, user_repo
from healcore.schemas.report import (
    DayState,
    MatrixRow,
    MatrixSummary,
    MeasurementDelta,
    MilestoneOut,
    MonthlyReport,
    ProgramMatrix,
    StreakOut,
    WeeklyStatsOut,
    WeeklySummary,
)
from healcore.services import streaks
from healcore.services.clock import Period, month_period, program_week, reporting_today, week_period
from healcore.utils.time import ensure_aware, iter_days, local_date, utcnow

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    HIGHER = "higher"
    LOWER = "lower"


# metric -> (model column, label, direction in which the value improves)
IMPROVEMENT_DIRECTION: dict[str, tuple[str, str, Direction]] = {
    "dr_gap": ("dr_gap_measurement", "DR Gap", Direction.LOWER),
    "core_connection": ("core_connection_score", "Core Connection", Direction.HIGHER),
    "back_discomfort": ("posture_back_discomfort", "Back Discomfort", Direction.LOWER),
    "energy": ("energy_level", "Energy", Direction.HIGHER),
}

STATUS_FULLY_COMPLETED = "fully_completed"
STATUS_IN_PROGRESS = "in_progress"
STATUS_NOT_STARTED = "not_started"

MOTIVATIONAL_MESSAGES = (
    (80, "You're absolutely crushing it! Your consistency is inspiring! 🌟"),
    (60, "Amazing progress! You're building habits that will last a lifetime! 💪"),
    (40, "Every workout counts! You're showing up for yourself and that matters! ❤️"),
)
FIRST_STEPS_MESSAGE = "You've taken the first steps, keep going, mama! You've got this! 🙌"
FRESH_START_MESSAGE = "A new month is a fresh start. Let's make it count together! 🌸"

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)")


def motivational_message(consistency: int, total_workouts: int) -> str:
    for threshold, message in MOTIVATIONAL_MESSAGES:
        if consistency >= threshold:
            return message
    return FIRST_STEPS_MESSAGE if total_workouts > 0 else FRESH_START_MESSAGE


def improved(metric: str, start, end) -> Optional[bool]:
    """
    Whether moving from `start` to `end` is an improvement for `metric`.
    Free-form DR gap values compare by their leading number ("2 fingers");
    None when the values cannot be compared or differ only in wording.
    """
    if start is None or end is None:
        return None
    if start == end:
        return False
    direction = IMPROVEMENT_DIRECTION[metric][2]
    if isinstance(start, str) or isinstance(end, str):
        a, b = _LEADING_NUMBER.match(str(start)), _LEADING_NUMBER.match(str(end))
        if a is None or b is None:
            return None
        start, end = float(a.group(1)), float(b.group(1))
        if start == end:
            # same width, different wording ("2 fingers" vs "2 fingers wide")
            return None
    return end > start if direction is Direction.HIGHER else end < start


def measurement_deltas(
    measurements: Sequence[ProgressMeasurement], start_at: datetime, end_at: datetime
) -> list[MeasurementDelta]:
    """
    Per metric: start is the last value recorded before `start_at`, falling
    back to the first value recorded inside the period; end is the last
    value recorded before `end_at`. Metrics without both values are omitted.
    """
    ordered = sorted(measurements, key=lambda m: ensure_aware(m.recorded_at))
    deltas = []
    for metric, (column, label, _direction) in IMPROVEMENT_DIRECTION.items():
        before, inside = [], []
        for m in ordered:
            value = getattr(m, column)
            if value is None or value == "":
                continue
            at = ensure_aware(m.recorded_at)
            if at < start_at:
                before.append(value)
            elif at < end_at:
                inside.append(value)
        start = before[-1] if before else (inside[0] if inside else None)
        end = inside[-1] if inside else (before[-1] if before else None)
        if start is None or end is None:
            continue
        numeric = not isinstance(start, str)
        deltas.append(
            MeasurementDelta(
                metric=metric,
                label=label,
                start=start,
                end=end,
                change=(end - start) if numeric else None,
                changed=start != end,
                improved=improved(metric, start, end),
            )
        )
    return deltas


def _completion_days(completions: Iterable, zone: str) -> set[date]:
    return {local_date(c.completed_at, zone) for c in completions}


def _dedupe_completions(completions: Iterable) -> list:
    seen: set[tuple] = set()
    unique = []
    for c in completions:
        key = (c.user_id, c.program_id, c.week_number, c.day_number)
        if key in seen:
            continue
        seen.add(key)
        unique.append(c)
    return unique


def share_message(week: int, stats: streaks.WeeklyStats, current_streak: int) -> str:
    return (
        f"*Week {week} Progress!* 💪\n\n"
        f"✅ Workouts: {stats.workout_days}/7 days\n"
        f"🧘 Breathing: {stats.breathing_days}/7 days\n"
        f"💧 Avg Water: {stats.avg_water_glasses} glasses/day\n"
        f"🏃 Avg Cardio: {stats.avg_cardio_minutes} min/day\n"
        f"🔥 Current Streak: {current_streak} days\n\n"
        "#PostpartumStrength #HealYourCore"
    )


def share_url(message: str) -> str:
    return f"{settings.SHARE_BASE_URL}?text={quote(message, safe='')}"


async def weekly_summary(
    db: AsyncSession,
    user_id: UUID,
    week_start: date,
    today: Optional[date] = None,
    zone: Optional[str] = None,
) -> WeeklySummary:
    """
    Seven day states, streaks as of `today`, week stats and a share link.
    """
    zone = zone or settings.REPORTING_TIMEZONE
    today = today or reporting_today(zone_name=zone)
    period = week_period(week_start)
    horizon = max(period.end, today)
    _, end_at = Period(period.start, horizon).utc_bounds(zone)

    checkins = await checkin_repo.list_checkins(db, user_id, end_exclusive=horizon + timedelta(days=1))
    completions = await completion_repo.list_completions(db, user_id, settings.PROGRAM_ID, end_at=end_at)
    enrollment = await user_repo.get_active_enrollment(db, user_id, settings.PROGRAM_ID)

    activity = streaks.overlay_completions(checkins, _completion_days(completions, zone))
    stats = streaks.weekly_stats(activity, period.start)
    streak = streaks.streak_stats(activity, today)
    by_day = {c.day: c for c in checkins}
    activity_by_day = {a.day: a for a in activity}

    days = []
    for day in iter_days(period.start, period.end):
        c = by_day.get(day)
        a = activity_by_day.get(day)
        days.append(
            DayState(
                day=day,
                has_checkin=c is not None,
                is_active=streaks.is_active(a),
                is_partial=bool(c and c.is_partial),
                mood=c.mood if c else None,
                workout_completed=bool(a and a.workout_completed),
                breathing_practice=bool(c and c.breathing_practice),
                water_glasses=(c.water_glasses or 0) if c else 0,
                cardio_minutes=(c.cardio_minutes or 0) if c else 0,
            )
        )

    enrolled_on = local_date(enrollment.enrolled_at, zone) if enrollment else None
    week = program_week(enrolled_on, today)
    message = share_message(week, stats, streak.current_streak)
    return WeeklySummary(
        week_start=period.start,
        week_end=period.end,
        program_week=week,
        days=days,
        streak=StreakOut.model_validate(streak),
        stats=WeeklyStatsOut.model_validate(stats),
        milestone=MilestoneOut.model_validate(streaks.streak_milestone(streak.current_streak)),
        share_message=message,
        share_url=share_url(message),
    )


async def monthly_report(
    db: AsyncSession,
    user_id: UUID,
    year: int,
    month: int,
    today: Optional[date] = None,
    zone: Optional[str] = None,
) -> MonthlyReport:
    """
    Totals, averages, mood breakdown, streaks as of the month's end (or
    today for the current month), consistency and measurement deltas.
    """
    zone = zone or settings.REPORTING_TIMEZONE
    today = today or reporting_today(zone_name=zone)
    period = month_period(year, month)
    start_at, end_at = period.utc_bounds(zone)
    as_of = min(period.end, today)

    checkins = await checkin_repo.list_checkins(db, user_id, end_exclusive=period.end + timedelta(days=1))
    completions = _dedupe_completions(
        await completion_repo.list_completions(db, user_id, settings.PROGRAM_ID, end_at=end_at)
    )
    measurements = await measurement_repo.list_measurements(db, user_id, settings.PROGRAM_ID)

    month_checkins = [c for c in checkins if period.contains(c.day)]
    month_completions = [c for c in completions if ensure_aware(c.completed_at) >= start_at]
    completion_days = _completion_days(completions, zone)
    activity = streaks.overlay_completions(checkins, completion_days)
    month_activity = [a for a in activity if period.contains(a.day)]

    # check-in workout days already covered by a program completion count once
    month_completion_days = _completion_days(month_completions, zone)
    reported_only = sum(1 for c in month_checkins if c.workout_completed and c.day not in month_completion_days)
    total_workouts = len(month_completions) + reported_only

    energies = [c.energy_level for c in month_checkins if c.energy_level is not None]
    moods = Counter(c.mood for c in month_checkins if c.mood)
    # days after `as_of` have not happened yet and count for neither metric
    if as_of >= period.start:
        streak = streaks.streak_stats(activity, as_of)
        consistency = streaks.consistency_score(month_activity, Period(period.start, as_of))
    else:
        streak, consistency = streaks.StreakStats(0, 0), 0
    n = len(month_checkins)

    report = MonthlyReport(
        month=f"{year:04d}-{month:02d}",
        days_in_month=period.days,
        total_checkins=n,
        total_workouts=total_workouts,
        total_breathing_sessions=sum(1 for c in month_checkins if c.breathing_practice),
        total_cardio_minutes=sum(c.cardio_minutes or 0 for c in month_checkins),
        avg_water=round(sum(c.water_glasses or 0 for c in month_checkins) / n, 1) if n else 0.0,
        avg_energy=round(sum(energies) / len(energies), 1) if energies else 0.0,
        mood_breakdown={m: moods[m] for m in MOODS if moods[m]},
        streak=StreakOut.model_validate(streak),
        active_days=sum(1 for a in month_activity if streaks.is_active(a)),
        consistency_score=consistency,
        measurement_deltas=measurement_deltas(measurements, start_at, end_at),
        motivational_message=motivational_message(consistency, total_workouts),
    )
    logger.info(
        "Built monthly report %s for user %s: %s check-ins, %s workouts", report.month, user_id, n, total_workouts
    )
    return report


def classify(total: int, quota: int) -> str:
    if total <= 0:
        return STATUS_NOT_STARTED
    if total >= quota:
        return STATUS_FULLY_COMPLETED
    return STATUS_IN_PROGRESS


def _display_name(user) -> str:
    name = f"{user.first_name or ''} {user.last_name or ''}".strip()
    return name or user.email


async def program_matrix(
    db: AsyncSession,
    program_id: Optional[str] = None,
    generated_at: Optional[datetime] = None,
) -> ProgramMatrix:
    """
    Per enrolled user: completions per program week, total, percentage of
    the full quota, photo flags, last activity and a completion status.
    """
    program_id = program_id or settings.PROGRAM_ID
    weeks = settings.PROGRAM_WEEKS
    quota = weeks * settings.WORKOUTS_PER_WEEK

    enrollments = await user_repo.list_enrollments(db, program_id)
    user_ids = [u.id for _, u in enrollments]
    completions = _dedupe_completions(await completion_repo.list_completions_for_users(db, program_id, user_ids))
    photos = await user_repo.photo_flags(db, program_id, user_ids)
    checkin_activity = await checkin_repo.last_checkin_activity(db, user_ids)

    per_user: dict[UUID, list] = defaultdict(list)
    for c in completions:
        per_user[c.user_id].append(c)

    rows, summary = [], MatrixSummary()
    seen_users: set[UUID] = set()
    for enrollment, user in enrollments:
        # re-enrollments show once, with the earliest enrollment
        if user.id in seen_users:
            continue
        seen_users.add(user.id)

        grid = {w: 0 for w in range(1, weeks + 1)}
        for c in per_user.get(user.id, []):
            if c.week_number in grid:
                grid[c.week_number] += 1
        total = sum(grid.values())

        stamps = [ensure_aware(c.completed_at) for c in per_user.get(user.id, [])]
        if user.id in checkin_activity:
            stamps.append(ensure_aware(checkin_activity[user.id]))

        status = classify(total, quota)
        kinds = photos.get(user.id, set())
        rows.append(
            MatrixRow(
                user_id=user.id,
                name=_display_name(user),
                email=user.email,
                enrolled_at=ensure_aware(enrollment.enrolled_at),
                weeks=grid,
                total=total,
                completion_pct=min(100, round(total / quota * 100)) if quota else 0,
                has_start_photo="start" in kinds,
                has_finish_photo="finish" in kinds,
                last_activity=max(stamps) if stamps else None,
                status=status,
            )
        )
        summary.enrolled += 1
        setattr(summary, status, getattr(summary, status) + 1)
        summary.with_start_photo += "start" in kinds
        summary.with_finish_photo += "finish" in kinds

    return ProgramMatrix(
        program_id=program_id,
        program_weeks=weeks,
        quota=quota,
        generated_at=generated_at or utcnow(),
        rows=rows,
        summary=summary,
    )
