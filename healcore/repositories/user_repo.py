import logging
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.db.models import ProgramEnrollment, ProgressPhoto, User
from healcore.utils.time import utcnow

logger = logging.getLogger(__name__)

PROFILE_FIELDS = {"country", "delivery_date", "instagram_handle"}


async def get_user(db: AsyncSession, user_id: UUID) -> User | None:
    res = await db.execute(select(User).where(User.id == user_id))
    return res.scalar_one_or_none()


async def update_user_profile(db: AsyncSession, user_id: UUID, fields: dict) -> list[str]:
    """
    Fill profile fields that are currently empty. Existing values are never
    overwritten. Returns the names of the fields actually written.
    """
    user = await get_user(db, user_id)
    if user is None:
        return []
    written = []
    for name, value in fields.items():
        if name not in PROFILE_FIELDS or value in (None, ""):
            continue
        if getattr(user, name) in (None, ""):
            setattr(user, name, value)
            written.append(name)
    if written:
        await db.commit()
        logger.info("Filled profile fields %s for user %s", written, user_id)
    return written


async def mark_checkin_prompted(db: AsyncSession, user_id: UUID, at: Optional[datetime] = None) -> None:
    """Record that the check-in prompt was shown and dismissed or answered."""
    user = await get_user(db, user_id)
    if user is None:
        return
    user.last_checkin_prompt_at = at or utcnow()
    await db.commit()


async def get_active_enrollment(db: AsyncSession, user_id: UUID, program_id: str) -> ProgramEnrollment | None:
    res = await db.execute(
        select(ProgramEnrollment)
        .where(
            ProgramEnrollment.user_id == user_id,
            ProgramEnrollment.program_id == program_id,
            ProgramEnrollment.is_active.is_(True),
        )
        .order_by(ProgramEnrollment.enrolled_at.desc())
        .limit(1)
    )
    return res.scalar_one_or_none()


async def list_enrollments(db: AsyncSession, program_id: str) -> list[tuple[ProgramEnrollment, User]]:
    res = await db.execute(
        select(ProgramEnrollment, User)
        .join(User, User.id == ProgramEnrollment.user_id)
        .where(ProgramEnrollment.program_id == program_id)
        .order_by(ProgramEnrollment.enrolled_at.asc())
    )
    return [(e, u) for e, u in res.all()]


async def photo_flags(db: AsyncSession, program_id: str, user_ids: Iterable[UUID]) -> dict[UUID, set[str]]:
    ids = list(user_ids)
    flags: dict[UUID, set[str]] = defaultdict(set)
    if not ids:
        return flags
    res = await db.execute(
        select(ProgressPhoto.user_id, ProgressPhoto.kind)
        .where(ProgressPhoto.program_id == program_id, ProgressPhoto.user_id.in_(ids))
    )
    for uid, kind in res.all():
        flags[uid].add(kind)
    return flags
