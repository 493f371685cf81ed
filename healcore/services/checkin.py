from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.core.errors import CheckinNotFound, CheckinWriteError
from healcore.db.models import DailyCheckin
from healcore.repositories import checkin_repo, user_repo
from healcore.services.checkin_flow import FlowStep
from healcore.services.clock import postpartum_weeks, reporting_today

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FinalizeResult:
    checkin: DailyCheckin
    postpartum_weeks: Optional[int]
    profile_fields_written: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TodayState:
    checkin: Optional[DailyCheckin]
    needs_profile: bool
    steps: list[str]


def _present(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


async def record_step(db: AsyncSession, user_id: UUID, fields: dict, today: Optional[date] = None) -> DailyCheckin:
    """
    Persist one step of today's check-in. Repeating the call for the same
    day merges into the same record.
    """
    day = today or reporting_today()
    try:
        return await checkin_repo.upsert_checkin(db, user_id, day, _present(fields))
    except OperationalError as e:
        logger.warning("Step write failed for user %s on %s: %s", user_id, day, e)
        raise CheckinWriteError("Could not save this step, please try again", detail=str(e.orig)) from e


async def finalize_daily_checkin(
    db: AsyncSession,
    user_id: UUID,
    checkin_id: UUID,
    fields: dict,
    profile: Optional[dict] = None,
) -> FinalizeResult:
    """
    Complete a check-in:
    - fills empty profile fields from `profile` (existing values stay)
    - computes postpartum weeks at the check-in day from the delivery date
      given now, or the one already on file
    - merges the final fields and clears is_partial
    """
    ci = await checkin_repo.get_checkin_owned(db, user_id, checkin_id)
    if ci is None:
        raise CheckinNotFound("Check-in not found", detail=str(checkin_id))

    profile = _present(profile or {})
    written: list[str] = []
    if profile:
        written = await user_repo.update_user_profile(db, user_id, profile)

    user = await user_repo.get_user(db, user_id)
    delivery = profile.get("delivery_date") or (user.delivery_date if user else None)
    weeks = postpartum_weeks(delivery, ci.day)

    final = _present(fields)
    final["postpartum_weeks_at_checkin"] = weeks
    try:
        ci = await checkin_repo.finalize_checkin(db, user_id, checkin_id, final)
    except OperationalError as e:
        logger.warning("Finalize failed for check-in %s: %s", checkin_id, e)
        raise CheckinWriteError("Could not complete the check-in, please try again", detail=str(e.orig)) from e
    await user_repo.mark_checkin_prompted(db, user_id)
    return FinalizeResult(checkin=ci, postpartum_weeks=weeks, profile_fields_written=written)


async def dismiss_checkin(db: AsyncSession, user_id: UUID) -> None:
    """'Maybe later': remembers the prompt was shown. Any partial record stays partial."""
    await user_repo.mark_checkin_prompted(db, user_id)
    logger.info("Check-in prompt dismissed by user %s", user_id)


async def today_state(db: AsyncSession, user_id: UUID, today: Optional[date] = None) -> TodayState:
    day = today or reporting_today()
    ci = await checkin_repo.get_checkin_for_day(db, user_id, day)
    user = await user_repo.get_user(db, user_id)
    needs_profile = user is None or not user.country or user.delivery_date is None
    steps = [FlowStep.MOOD, FlowStep.ENERGY, FlowStep.GOALS_NOTES] + ([FlowStep.PROFILE] if needs_profile else [])
    return TodayState(checkin=ci, needs_profile=needs_profile, steps=[s.value for s in steps])
