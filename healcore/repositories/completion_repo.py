import logging
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.db.models import WorkoutCompletion
from healcore.utils.time import ensure_aware

logger = logging.getLogger(__name__)


async def get_completion(db: AsyncSession, user_id: UUID, program_id: str, week: int, day: int) -> WorkoutCompletion | None:
    res = await db.execute(
        select(WorkoutCompletion).where(
            WorkoutCompletion.user_id == user_id,
            WorkoutCompletion.program_id == program_id,
            WorkoutCompletion.week_number == week,
            WorkoutCompletion.day_number == day,
        )
    )
    return res.scalar_one_or_none()


async def record_completion(
    db: AsyncSession,
    user_id: UUID,
    program_id: str,
    week: int,
    day: int,
    *,
    completed_at: Optional[datetime] = None,
    rating: Optional[int] = None,
    notes: Optional[str] = None,
) -> tuple[WorkoutCompletion, bool]:
    """
    Append a completion unless (user, program, week, day) already exists.
    Returns (row, created). A re-completion leaves the first row untouched.
    """
    existing = await get_completion(db, user_id, program_id, week, day)
    if existing is not None:
        logger.info("Ignoring repeat completion of week %s day %s for user %s", week, day, user_id)
        return existing, False

    wc = WorkoutCompletion(
        user_id=user_id, program_id=program_id, week_number=week, day_number=day, rating=rating, notes=notes
    )
    if completed_at is not None:
        wc.completed_at = ensure_aware(completed_at)
    db.add(wc)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        existing = await get_completion(db, user_id, program_id, week, day)
        if existing is None:
            raise
        return existing, False
    await db.refresh(wc)
    return wc, True


async def list_completions(
    db: AsyncSession,
    user_id: UUID,
    program_id: Optional[str] = None,
    start_at: Optional[datetime] = None,
    end_at: Optional[datetime] = None,
) -> list[WorkoutCompletion]:
    """
    Completions in [start_at, end_at), oldest first.
    """
    stmt = select(WorkoutCompletion).where(WorkoutCompletion.user_id == user_id)
    if program_id is not None:
        stmt = stmt.where(WorkoutCompletion.program_id == program_id)
    if start_at is not None:
        stmt = stmt.where(WorkoutCompletion.completed_at >= start_at)
    if end_at is not None:
        stmt = stmt.where(WorkoutCompletion.completed_at < end_at)
    res = await db.execute(stmt.order_by(WorkoutCompletion.completed_at.asc()))
    return list(res.scalars())


async def list_completions_for_users(db: AsyncSession, program_id: str, user_ids: Iterable[UUID]) -> list[WorkoutCompletion]:
    ids = list(user_ids)
    if not ids:
        return []
    res = await db.execute(
        select(WorkoutCompletion)
        .where(WorkoutCompletion.program_id == program_id, WorkoutCompletion.user_id.in_(ids))
        .order_by(WorkoutCompletion.completed_at.asc())
    )
    return list(res.scalars())
