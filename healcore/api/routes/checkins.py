from uuid import UUID

from fastapi import APIRouter, Depends

from healcore.api.deps import Authed
from healcore.schemas.checkin import CheckinFinalize, CheckinOut, CheckinStepWrite, TodayCheckinOut
from healcore.services.checkin import dismiss_checkin, finalize_daily_checkin, record_step, today_state

router = APIRouter(prefix="/api/daily-checkins", tags=["daily-checkins"])


@router.post("", response_model=CheckinOut)
async def write_step(payload: CheckinStepWrite, ctx=Depends(Authed)):
    ci = await record_step(ctx["db"], ctx["user_id"], payload.model_dump(exclude_unset=True))
    return ci


@router.get("/today", response_model=TodayCheckinOut)
async def today(ctx=Depends(Authed)):
    state = await today_state(ctx["db"], ctx["user_id"])
    return {"checkin": state.checkin, "needs_profile": state.needs_profile, "steps": state.steps}


@router.post("/dismiss")
async def dismiss(ctx=Depends(Authed)):
    await dismiss_checkin(ctx["db"], ctx["user_id"])
    return {"dismissed": True}


@router.post("/{checkin_id}/finalize", response_model=CheckinOut)
async def finalize(checkin_id: UUID, payload: CheckinFinalize, ctx=Depends(Authed)):
    fields = payload.model_dump(exclude_unset=True, exclude={"profile"})
    profile = payload.profile.model_dump(exclude_none=True) if payload.profile else None
    result = await finalize_daily_checkin(ctx["db"], ctx["user_id"], checkin_id, fields, profile)
    return result.checkin
