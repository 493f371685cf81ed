from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healcore.db.models import ProgressMeasurement
from healcore.utils.time import ensure_aware, utcnow

MEASUREMENT_FIELDS = {
    "dr_gap_measurement", "core_connection_score", "pelvic_floor_symptoms",
    "posture_back_discomfort", "energy_level", "notes",
}


async def upsert_measurement(
    db: AsyncSession,
    user_id: UUID,
    program_id: str,
    week: int,
    fields: dict,
    recorded_at: Optional[datetime] = None,
) -> ProgressMeasurement:
    """
    One row per (user, program, week); a later submission overwrites it.
    """
    unknown = set(fields) - MEASUREMENT_FIELDS
    if unknown:
        raise ValueError(f"Unknown measurement fields: {', '.join(sorted(unknown))}")

    res = await db.execute(
        select(ProgressMeasurement).where(
            ProgressMeasurement.user_id == user_id,
            ProgressMeasurement.program_id == program_id,
            ProgressMeasurement.week == week,
        )
    )
    m = res.scalar_one_or_none()
    if m is None:
        m = ProgressMeasurement(user_id=user_id, program_id=program_id, week=week)
        db.add(m)
    for name in MEASUREMENT_FIELDS:
        setattr(m, name, fields.get(name))
    m.recorded_at = ensure_aware(recorded_at) if recorded_at else utcnow()
    await db.commit()
    await db.refresh(m)
    return m


async def list_measurements(db: AsyncSession, user_id: UUID, program_id: Optional[str] = None) -> list[ProgressMeasurement]:
    stmt = select(ProgressMeasurement).where(ProgressMeasurement.user_id == user_id)
    if program_id is not None:
        stmt = stmt.where(ProgressMeasurement.program_id == program_id)
    res = await db.execute(stmt.order_by(ProgressMeasurement.week.asc(), ProgressMeasurement.recorded_at.asc()))
    return list(res.scalars())
