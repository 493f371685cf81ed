import logging
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from healcore.api.deps import Authed, download_response
from healcore.schemas.report import ProgramMatrix
from healcore.services import export
from healcore.services.reports import program_matrix

logger = logging.getLogger(__name__)

# Authenticated only; role checks belong to the identity provider
router = APIRouter(prefix="/api/admin/programs", tags=["admin"])


@router.get("/{program_id}/matrix", response_model=ProgramMatrix)
async def matrix(program_id: str, ctx=Depends(Authed)):
    return await program_matrix(ctx["db"], program_id)


@router.get("/{program_id}/matrix/export")
async def matrix_export(program_id: str, format: Literal["csv", "pdf"] = "csv", ctx=Depends(Authed)):
    report = await program_matrix(ctx["db"], program_id)
    if format == "csv":
        artifact = export.matrix_csv(report)
    else:
        artifact = await run_in_threadpool(export.matrix_pdf, report)
    logger.info("Exported %s matrix for %s (%s rows)", format, program_id, len(report.rows))
    return download_response(artifact)
