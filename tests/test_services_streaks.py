"""
Unit tests for healcore.services.streaks module.
"""
import random
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from healcore.services.clock import Period, week_period
from healcore.services.streaks import (
    CONSISTENCY_WEIGHTS, best_streak, consistency_score, current_streak, is_active,
    overlay_completions, streak_milestone, streak_stats, weekly_stats,
)

TODAY = date(2026, 3, 15)


def ci(day, workout=False, breathing=False, water=0, cardio=0):
    return SimpleNamespace(
        day=day, workout_completed=workout, breathing_practice=breathing,
        water_glasses=water, cardio_minutes=cardio,
    )


def days_ago(n, **kw):
    return ci(TODAY - timedelta(days=n), **kw)


class TestIsActive:
    """Test is_active function."""

    @pytest.mark.parametrize("kw", [
        {"workout": True}, {"breathing": True}, {"water": 1}, {"cardio": 5},
    ])
    def test_any_activity_counts(self, kw):
        assert is_active(ci(TODAY, **kw))

    def test_mood_only_record_is_inactive(self):
        assert not is_active(ci(TODAY))

    def test_missing_record(self):
        assert not is_active(None)


class TestCurrentStreak:
    """Test current_streak function."""

    def test_empty_history(self):
        assert current_streak([], TODAY) == 0

    def test_first_checkin_today(self):
        """A first check-in today with activity is a streak of one."""
        assert current_streak([days_ago(0, water=2)], TODAY) == 1

    def test_consecutive_run(self):
        history = [days_ago(i, workout=True) for i in range(5)]

        assert current_streak(history, TODAY) == 5

    def test_inactive_today_does_not_break_run(self):
        history = [days_ago(0)] + [days_ago(i, breathing=True) for i in range(1, 4)]

        assert current_streak(history, TODAY) == 3

    def test_gap_yesterday_ends_run(self):
        history = [days_ago(0, water=1), days_ago(2, water=1), days_ago(3, water=1)]

        assert current_streak(history, TODAY) == 1

    def test_missing_today_and_yesterday(self):
        history = [days_ago(2, workout=True), days_ago(3, workout=True)]

        assert current_streak(history, TODAY) == 0

    def test_future_records_ignored(self):
        history = [days_ago(-1, workout=True), days_ago(0, workout=True)]

        assert current_streak(history, TODAY) == 1


class TestBestStreak:
    """Test best_streak function."""

    def test_longest_run_in_history(self):
        history = [days_ago(i, workout=True) for i in (1, 2)] + [days_ago(i, cardio=10) for i in range(10, 16)]

        assert best_streak(history, TODAY) == 6

    def test_empty(self):
        assert best_streak([], TODAY) == 0

    def test_stats_best_never_below_current(self):
        history = [days_ago(i, water=3) for i in range(4)]
        stats = streak_stats(history, TODAY)

        assert stats.current_streak == 4
        assert stats.best_streak == 4

    def test_current_never_exceeds_best_random_histories(self):
        """Property check over generated histories."""
        rng = random.Random(7)
        for _ in range(200):
            history = [
                days_ago(i, water=rng.choice([0, 0, 1]), workout=rng.random() < 0.3)
                for i in range(-3, 40) if rng.random() < 0.7
            ]
            stats = streak_stats(history, TODAY)
            assert stats.current_streak <= stats.best_streak


class TestStreakMilestone:
    """Test streak_milestone mapping."""

    @pytest.mark.parametrize("streak,emoji,milestone", [
        (0, "✨", False),
        (1, "🌱", False),
        (2, "🌱", False),
        (3, "💪", False),
        (6, "💪", False),
        (7, "🔥", True),
        (14, "⭐", True),
        (29, "⭐", True),
        (30, "🏆", True),
        (120, "🏆", True),
    ])
    def test_largest_threshold_wins(self, streak, emoji, milestone):
        m = streak_milestone(streak)

        assert m.emoji == emoji
        assert m.is_milestone is milestone

    def test_messages(self):
        assert streak_milestone(0).message == "Start your streak today!"
        assert streak_milestone(7).message == "1 week streak! Keep it up!"


class TestWeeklyStats:
    """Test weekly_stats function."""

    MONDAY = date(2026, 3, 2)

    def test_empty_week_is_all_zero(self):
        stats = weekly_stats([], self.MONDAY)

        assert (stats.total_checkins, stats.workout_days, stats.breathing_days) == (0, 0, 0)
        assert stats.avg_water_glasses == 0.0
        assert stats.avg_cardio_minutes == 0

    def test_averages_over_recorded_days_only(self):
        history = [
            ci(self.MONDAY, workout=True, water=8, cardio=30),
            ci(self.MONDAY + timedelta(days=3), breathing=True, water=5, cardio=0),
        ]
        stats = weekly_stats(history, self.MONDAY)

        assert stats.total_checkins == 2
        assert stats.workout_days == 1
        assert stats.breathing_days == 1
        assert stats.avg_water_glasses == 6.5
        assert stats.avg_cardio_minutes == 15

    def test_days_outside_week_excluded(self):
        history = [ci(self.MONDAY - timedelta(days=1), workout=True), ci(self.MONDAY + timedelta(days=7), workout=True)]

        assert weekly_stats(history, self.MONDAY).workout_days == 0

    def test_water_rounded_to_one_decimal(self):
        history = [ci(self.MONDAY + timedelta(days=i), water=w) for i, w in enumerate((3, 3, 4))]

        assert weekly_stats(history, self.MONDAY).avg_water_glasses == 3.3

    def test_completion_only_days_not_in_averages(self):
        history = overlay_completions([ci(self.MONDAY, water=6)], [self.MONDAY + timedelta(days=1)])
        stats = weekly_stats(history, self.MONDAY)

        assert stats.workout_days == 1
        assert stats.total_checkins == 1
        assert stats.avg_water_glasses == 6.0


class TestOverlayCompletions:
    """Test overlay_completions function."""

    def test_marks_existing_day(self):
        merged = overlay_completions([ci(TODAY, water=2)], [TODAY])

        assert len(merged) == 1
        assert merged[0].workout_completed
        assert merged[0].water_glasses == 2
        assert merged[0].has_checkin

    def test_adds_completion_only_day(self):
        merged = overlay_completions([], [TODAY])

        assert merged[0].workout_completed
        assert not merged[0].has_checkin
        assert current_streak(merged, TODAY) == 1

    def test_sorted_by_day(self):
        merged = overlay_completions([ci(TODAY)], [TODAY - timedelta(days=2)])

        assert [m.day for m in merged] == [TODAY - timedelta(days=2), TODAY]


class TestConsistencyScore:
    """Test consistency_score function."""

    def test_weights_sum_to_one(self):
        assert sum(CONSISTENCY_WEIGHTS.values()) == pytest.approx(1.0)

    def test_empty_history_is_zero(self):
        assert consistency_score([], week_period(date(2026, 3, 2))) == 0

    def test_full_attainment_is_maximum(self):
        week = week_period(date(2026, 3, 2))
        history = [ci(week.start + timedelta(days=i), workout=True, water=8, cardio=30) for i in range(7)]

        assert consistency_score(history, week) == 100

    def test_overshoot_is_capped(self):
        week = week_period(date(2026, 3, 2))
        history = [ci(week.start + timedelta(days=i), water=20, cardio=120) for i in range(7)]

        assert consistency_score(history, week) == 100

    def test_active_only(self):
        """Every day active but no water or cardio targets met scores the active weight."""
        week = week_period(date(2026, 3, 2))
        history = [ci(week.start + timedelta(days=i), workout=True) for i in range(7)]

        assert consistency_score(history, week) == round(CONSISTENCY_WEIGHTS["active"] * 100)

    def test_missing_days_attain_nothing(self):
        week = week_period(date(2026, 3, 2))
        history = [ci(week.start, workout=True, water=8, cardio=30)]

        assert consistency_score(history, week) == round(100 / 7)

    def test_custom_weights(self):
        week = week_period(date(2026, 3, 2))
        history = [ci(week.start + timedelta(days=i), water=8) for i in range(7)]

        assert consistency_score(history, week, {"active": 0.0, "water": 1.0, "cardio": 0.0}) == 100

    def test_bounded(self):
        period = Period(date(2026, 3, 1), date(2026, 3, 31))
        history = [ci(date(2026, 3, d), workout=True, water=3, cardio=10) for d in range(1, 20)]

        assert 0 <= consistency_score(history, period) <= 100
