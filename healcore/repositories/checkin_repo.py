import logging
from datetime import date, datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.core.errors import CheckinNotFound
from healcore.db.models import DailyCheckin
from healcore.utils.time import utcnow

logger = logging.getLogger(__name__)

# Columns a step write may touch; identity and lifecycle columns are excluded
WRITABLE_FIELDS = {
    "mood", "energy_level", "workout_completed", "breathing_practice",
    "water_glasses", "cardio_minutes", "gratitude", "struggles", "goals",
    "postpartum_weeks_at_checkin",
}


def _clean(fields: dict) -> dict:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown check-in fields: {', '.join(sorted(unknown))}")
    cleaned = dict(fields)
    if cleaned.get("goals") is not None:
        # tags are a set; keep first-seen order for stable output
        cleaned["goals"] = list(dict.fromkeys(cleaned["goals"]))
    return cleaned


def _apply(ci: DailyCheckin, fields: dict) -> None:
    for name, value in fields.items():
        setattr(ci, name, value)
    ci.updated_at = utcnow()


async def get_checkin_for_day(db: AsyncSession, user_id: UUID, day: date) -> DailyCheckin | None:
    res = await db.execute(select(DailyCheckin).where(DailyCheckin.user_id == user_id, DailyCheckin.day == day))
    return res.scalar_one_or_none()


async def get_checkin_owned(db: AsyncSession, user_id: UUID, checkin_id: UUID) -> DailyCheckin | None:
    res = await db.execute(select(DailyCheckin).where(DailyCheckin.id == checkin_id, DailyCheckin.user_id == user_id))
    return res.scalar_one_or_none()


async def upsert_checkin(db: AsyncSession, user_id: UUID, day: date, fields: dict) -> DailyCheckin:
    """
    Create-or-merge the (user, day) record. New rows start partial; an
    already finalized row keeps is_partial=False.
    """
    fields = _clean(fields)
    ci = await get_checkin_for_day(db, user_id, day)
    if ci is None:
        ci = DailyCheckin(user_id=user_id, day=day, is_partial=True)
        _apply(ci, fields)
        db.add(ci)
        try:
            await db.commit()
        except IntegrityError:
            # Lost a race with another write for the same day: merge into the winner
            await db.rollback()
            ci = await get_checkin_for_day(db, user_id, day)
            if ci is None:
                raise
            _apply(ci, fields)
            await db.commit()
        logger.info("Created daily check-in for user %s on %s", user_id, day)
    else:
        _apply(ci, fields)
        await db.commit()
    await db.refresh(ci)
    return ci


async def finalize_checkin(db: AsyncSession, user_id: UUID, checkin_id: UUID, fields: dict) -> DailyCheckin:
    """
    Merge the final field set and mark the record complete.
    """
    ci = await get_checkin_owned(db, user_id, checkin_id)
    if ci is None:
        raise CheckinNotFound("Check-in not found", detail=str(checkin_id))
    _apply(ci, _clean(fields))
    ci.is_partial = False
    await db.commit()
    await db.refresh(ci)
    logger.info("Finalized daily check-in %s for user %s", checkin_id, user_id)
    return ci


async def list_checkins(
    db: AsyncSession, user_id: UUID, start: Optional[date] = None, end_exclusive: Optional[date] = None
) -> list[DailyCheckin]:
    """
    Check-ins for a user in [start, end_exclusive), ordered by day.
    Open bounds are unbounded.
    """
    stmt = select(DailyCheckin).where(DailyCheckin.user_id == user_id)
    if start is not None:
        stmt = stmt.where(DailyCheckin.day >= start)
    if end_exclusive is not None:
        stmt = stmt.where(DailyCheckin.day < end_exclusive)
    res = await db.execute(stmt.order_by(DailyCheckin.day.asc()))
    return list(res.scalars())


async def last_checkin_activity(db: AsyncSession, user_ids: Iterable[UUID]) -> dict[UUID, datetime]:
    ids = list(user_ids)
    if not ids:
        return {}
    res = await db.execute(
        select(DailyCheckin.user_id, func.max(DailyCheckin.updated_at))
        .where(DailyCheckin.user_id.in_(ids))
        .group_by(DailyCheckin.user_id)
    )
    return {uid: ts for uid, ts in res.all() if ts is not None}
