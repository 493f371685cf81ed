"""
Engagement metrics derived from a user's daily check-ins.

Everything here is a pure function of the check-in records and a
reference day; nothing is persisted.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Mapping, Protocol

from healcore.services.clock import Period, week_period
from healcore.utils.time import iter_days

WATER_TARGET_GLASSES = 8
CARDIO_TARGET_MINUTES = 30

# Share of the 0-100 score carried by each component; must sum to 1
CONSISTENCY_WEIGHTS: Mapping[str, float] = {"active": 0.5, "water": 0.25, "cardio": 0.25}

# (threshold, emoji, message, is_milestone), largest threshold first
STREAK_MILESTONES = (
    (30, "🏆", "30 days strong! You're unstoppable!", True),
    (14, "⭐", "2 weeks of consistency! Amazing!", True),
    (7, "🔥", "1 week streak! Keep it up!", True),
    (3, "💪", "Building momentum!", False),
    (1, "🌱", "Great start! Every day counts", False),
)
NO_STREAK = ("✨", "Start your streak today!", False)


class CheckinLike(Protocol):
    day: date
    workout_completed: bool
    breathing_practice: bool
    water_glasses: int
    cardio_minutes: int


@dataclass(slots=True)
class StreakStats:
    current_streak: int
    best_streak: int


@dataclass(slots=True)
class StreakMilestone:
    emoji: str
    message: str
    is_milestone: bool


@dataclass(slots=True)
class WeeklyStats:
    total_checkins: int
    workout_days: int
    breathing_days: int
    avg_water_glasses: float
    avg_cardio_minutes: int


@dataclass(slots=True)
class DayActivity:
    """A day's activity with program completions folded in."""

    day: date
    workout_completed: bool = False
    breathing_practice: bool = False
    water_glasses: int = 0
    cardio_minutes: int = 0
    has_checkin: bool = True


def overlay_completions(checkins: Iterable[CheckinLike], completion_days: Iterable[date]) -> list[DayActivity]:
    """
    Merge check-ins with the local days on which a program workout was
    completed. A completion marks the day's workout done; a day with only
    completions gets a record with has_checkin=False so it never enters
    per-record averages.
    """
    merged: dict[date, DayActivity] = {
        c.day: DayActivity(
            c.day,
            bool(c.workout_completed),
            bool(c.breathing_practice),
            c.water_glasses or 0,
            c.cardio_minutes or 0,
        )
        for c in checkins
    }
    for day in completion_days:
        if day in merged:
            merged[day].workout_completed = True
        else:
            merged[day] = DayActivity(day, workout_completed=True, has_checkin=False)
    return [merged[d] for d in sorted(merged)]


def is_active(checkin: CheckinLike | None) -> bool:
    """Any recorded activity counts: workout, breathing, water or cardio."""
    if checkin is None:
        return False
    return bool(
        checkin.workout_completed
        or checkin.breathing_practice
        or (checkin.water_glasses or 0) > 0
        or (checkin.cardio_minutes or 0) > 0
    )


def _active_days(checkins: Iterable[CheckinLike], today: date) -> set[date]:
    return {c.day for c in checkins if c.day <= today and is_active(c)}


def current_streak(checkins: Iterable[CheckinLike], today: date) -> int:
    """
    Consecutive active days ending today. Today is still open, so an
    inactive today does not break a run that ended yesterday.
    """
    active = _active_days(checkins, today)
    if not active:
        return 0
    day = today if today in active else today - timedelta(days=1)
    streak = 0
    while day in active:
        streak += 1
        day -= timedelta(days=1)
    return streak


def best_streak(checkins: Iterable[CheckinLike], today: date) -> int:
    """Longest run of consecutive active days on or before `today`."""
    best = run = 0
    previous = None
    for day in sorted(_active_days(checkins, today)):
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def streak_stats(checkins: Iterable[CheckinLike], today: date) -> StreakStats:
    records = list(checkins)
    current = current_streak(records, today)
    return StreakStats(current_streak=current, best_streak=max(current, best_streak(records, today)))


def streak_milestone(streak: int) -> StreakMilestone:
    for threshold, emoji, message, milestone in STREAK_MILESTONES:
        if streak >= threshold:
            return StreakMilestone(emoji, message, milestone)
    return StreakMilestone(*NO_STREAK)


def weekly_stats(checkins: Iterable[CheckinLike], start: date) -> WeeklyStats:
    """
    Counts and averages for the Monday-anchored week at `start`. Averages
    use only days that have a check-in record.
    """
    period = week_period(start)
    in_week = [c for c in checkins if period.contains(c.day)]
    recorded = [c for c in in_week if getattr(c, "has_checkin", True)]
    n = len(recorded)
    return WeeklyStats(
        total_checkins=n,
        workout_days=sum(1 for c in in_week if c.workout_completed),
        breathing_days=sum(1 for c in in_week if c.breathing_practice),
        avg_water_glasses=round(sum(c.water_glasses or 0 for c in recorded) / n, 1) if n else 0.0,
        avg_cardio_minutes=round(sum(c.cardio_minutes or 0 for c in recorded) / n) if n else 0,
    )


def consistency_score(
    checkins: Iterable[CheckinLike],
    period: Period,
    weights: Mapping[str, float] = CONSISTENCY_WEIGHTS,
) -> int:
    """
    0-100 blend of active-day ratio and water/cardio target attainment over
    every day of `period`. Days without a record attain nothing.
    """
    if period.days <= 0:
        return 0
    by_day = {c.day: c for c in checkins if period.contains(c.day)}
    if not by_day:
        return 0

    active = water = cardio = 0.0
    for day in iter_days(period.start, period.end):
        c = by_day.get(day)
        if c is None:
            continue
        active += 1 if is_active(c) else 0
        water += min((c.water_glasses or 0) / WATER_TARGET_GLASSES, 1.0)
        cardio += min((c.cardio_minutes or 0) / CARDIO_TARGET_MINUTES, 1.0)

    blended = (
        weights["active"] * active
        + weights["water"] * water
        + weights["cardio"] * cardio
    ) / period.days
    return max(0, min(100, round(blended * 100)))
