import logging
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from healcore.api.deps import Authed, download_response
from healcore.schemas.report import MonthlyReport, WeeklySummary
from healcore.services import export
from healcore.services.clock import parse_month_key, reporting_today, week_start as monday_of
from healcore.services.reports import monthly_report, weekly_summary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress", tags=["reports"])


def _month(month: Optional[str]) -> tuple[int, int]:
    if month is None:
        today = reporting_today()
        return today.year, today.month
    try:
        return parse_month_key(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/weekly", response_model=WeeklySummary)
async def weekly(week_start: Optional[date] = None, ctx=Depends(Authed)):
    start = monday_of(week_start or reporting_today())
    return await weekly_summary(ctx["db"], ctx["user_id"], start)


@router.get("/weekly/export")
async def weekly_export(week_start: Optional[date] = None, ctx=Depends(Authed)):
    start = monday_of(week_start or reporting_today())
    summary = await weekly_summary(ctx["db"], ctx["user_id"], start)
    return download_response(export.weekly_csv(summary))


@router.get("/monthly", response_model=MonthlyReport)
async def monthly(month: Optional[str] = None, ctx=Depends(Authed)):
    year, month_number = _month(month)
    return await monthly_report(ctx["db"], ctx["user_id"], year, month_number)


@router.get("/monthly/export")
async def monthly_export(month: Optional[str] = None, format: Literal["png", "pdf"] = "png", ctx=Depends(Authed)):
    year, month_number = _month(month)
    report = await monthly_report(ctx["db"], ctx["user_id"], year, month_number)
    render = export.monthly_image if format == "png" else export.monthly_pdf
    # matplotlib rendering is CPU bound
    artifact = await run_in_threadpool(render, report)
    logger.info("Exported monthly report %s as %s for user %s", report.month, format, ctx["user_id"])
    return download_response(artifact)
