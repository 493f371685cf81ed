from fastapi import APIRouter, Depends, Response

from healcore.api.deps import Authed
from healcore.core.config import settings
from healcore.repositories.completion_repo import list_completions, record_completion
from healcore.repositories.measurement_repo import list_measurements, upsert_measurement
from healcore.schemas.progress import CompletionIn, CompletionOut, MeasurementIn, MeasurementOut

router = APIRouter(prefix="/api/progress", tags=["progress"])


@router.post("/measurements", response_model=MeasurementOut)
async def submit_measurement(payload: MeasurementIn, ctx=Depends(Authed)):
    fields = payload.model_dump(exclude={"week"})
    return await upsert_measurement(ctx["db"], ctx["user_id"], settings.PROGRAM_ID, payload.week, fields)


@router.get("/measurements", response_model=list[MeasurementOut])
async def measurements(ctx=Depends(Authed)):
    return await list_measurements(ctx["db"], ctx["user_id"], settings.PROGRAM_ID)


@router.post("/completions", response_model=CompletionOut, status_code=201)
async def complete_workout(payload: CompletionIn, response: Response, ctx=Depends(Authed)):
    wc, created = await record_completion(
        ctx["db"], ctx["user_id"], settings.PROGRAM_ID, payload.week_number, payload.day_number,
        rating=payload.rating, notes=payload.notes,
    )
    if not created:
        # first completion stands
        response.status_code = 200
    out = CompletionOut.model_validate(wc)
    out.created = created
    return out


@router.get("/completions", response_model=list[CompletionOut])
async def completions(ctx=Depends(Authed)):
    return await list_completions(ctx["db"], ctx["user_id"], settings.PROGRAM_ID)
