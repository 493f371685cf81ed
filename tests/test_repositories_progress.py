"""
Integration tests for completion, measurement and user repositories.
"""
import pytest
from datetime import date, datetime, timezone

from healcore.db.models import ProgramEnrollment, ProgressPhoto, User
from healcore.repositories.completion_repo import (
    list_completions, list_completions_for_users, record_completion,
)
from healcore.repositories.measurement_repo import list_measurements, upsert_measurement
from healcore.repositories.user_repo import (
    get_active_enrollment, list_enrollments, mark_checkin_prompted, photo_flags, update_user_profile,
)

PROGRAM = "heal-your-core"


class TestRecordCompletion:
    """Test append-with-dedup completions."""

    async def test_creates(self, db_session, test_user):
        wc, created = await record_completion(db_session, test_user.id, PROGRAM, 1, 1, rating=5)

        assert created is True
        assert (wc.week_number, wc.day_number, wc.rating) == (1, 1, 5)

    async def test_repeat_returns_first_unchanged(self, db_session, test_user):
        first, _ = await record_completion(db_session, test_user.id, PROGRAM, 1, 2, notes="first")
        again, created = await record_completion(db_session, test_user.id, PROGRAM, 1, 2, notes="second")

        assert created is False
        assert again.id == first.id
        assert again.notes == "first"
        assert len(await list_completions(db_session, test_user.id)) == 1

    async def test_range_filter_is_half_open(self, db_session, test_user):
        for day, ts in enumerate(
            [datetime(2026, 2, 28, 23, 0), datetime(2026, 3, 1, 0, 0), datetime(2026, 4, 1, 0, 0)], start=1
        ):
            await record_completion(db_session, test_user.id, PROGRAM, 1, day, completed_at=ts.replace(tzinfo=timezone.utc))

        rows = await list_completions(
            db_session, test_user.id, PROGRAM,
            start_at=datetime(2026, 3, 1, tzinfo=timezone.utc), end_at=datetime(2026, 4, 1, tzinfo=timezone.utc),
        )

        assert [r.day_number for r in rows] == [2]

    async def test_for_users(self, db_session, test_user, another_user_id):
        db_session.add(User(id=another_user_id, email="other@example.com"))
        await db_session.commit()
        await record_completion(db_session, test_user.id, PROGRAM, 1, 1)
        await record_completion(db_session, another_user_id, PROGRAM, 1, 1)
        await record_completion(db_session, another_user_id, "other-program", 1, 1)

        rows = await list_completions_for_users(db_session, PROGRAM, [test_user.id, another_user_id])

        assert len(rows) == 2
        assert await list_completions_for_users(db_session, PROGRAM, []) == []


class TestMeasurements:
    """Test weekly measurement upserts."""

    async def test_later_submission_overwrites(self, db_session, test_user):
        first = await upsert_measurement(
            db_session, test_user.id, PROGRAM, 1, {"core_connection_score": 4, "notes": "sore"}
        )
        second = await upsert_measurement(db_session, test_user.id, PROGRAM, 1, {"core_connection_score": 6})

        assert second.id == first.id
        assert second.core_connection_score == 6
        assert second.notes is None
        assert len(await list_measurements(db_session, test_user.id)) == 1

    async def test_ordered_by_week(self, db_session, test_user):
        for week in (3, 1, 2):
            await upsert_measurement(db_session, test_user.id, PROGRAM, week, {"energy_level": week})

        rows = await list_measurements(db_session, test_user.id, PROGRAM)

        assert [m.week for m in rows] == [1, 2, 3]

    async def test_unknown_field(self, db_session, test_user):
        with pytest.raises(ValueError):
            await upsert_measurement(db_session, test_user.id, PROGRAM, 1, {"weight": 60})


class TestUserProfile:
    """Test profile fill and prompt tracking."""

    async def test_fills_only_empty_fields(self, db_session, test_user):
        test_user.country = "US"
        await db_session.commit()

        written = await update_user_profile(
            db_session, test_user.id, {"country": "CA", "delivery_date": date(2026, 1, 1)}
        )

        assert written == ["delivery_date"]
        assert test_user.country == "US"
        assert test_user.delivery_date == date(2026, 1, 1)

    async def test_ignores_blank_and_unknown(self, db_session, test_user):
        written = await update_user_profile(db_session, test_user.id, {"country": "", "email": "x@example.com"})

        assert written == []
        assert test_user.email == "mama@example.com"

    async def test_unknown_user(self, db_session, another_user_id):
        assert await update_user_profile(db_session, another_user_id, {"country": "US"}) == []

    async def test_mark_prompted(self, db_session, test_user):
        await mark_checkin_prompted(db_session, test_user.id)

        assert test_user.last_checkin_prompt_at is not None


class TestEnrollments:
    """Test enrollment and photo queries."""

    async def test_active_enrollment_and_listing(self, db_session, enrolled_user):
        enrollment = await get_active_enrollment(db_session, enrolled_user.id, PROGRAM)
        rows = await list_enrollments(db_session, PROGRAM)

        assert enrollment is not None
        assert [u.id for _, u in rows] == [enrolled_user.id]
        assert await get_active_enrollment(db_session, enrolled_user.id, "other") is None

    async def test_photo_flags(self, db_session, enrolled_user):
        db_session.add_all([
            ProgressPhoto(user_id=enrolled_user.id, program_id=PROGRAM, kind="start"),
            ProgressPhoto(user_id=enrolled_user.id, program_id=PROGRAM, kind="finish"),
        ])
        await db_session.commit()

        flags = await photo_flags(db_session, PROGRAM, [enrolled_user.id])

        assert flags[enrolled_user.id] == {"start", "finish"}
