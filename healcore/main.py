import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from healcore.api.routes import admin, checkins, health, progress, reports
from healcore.core.config import settings
from healcore.core.errors import HealCoreError
from healcore.core.logging import configure_logging
from healcore.schemas.common import DatabaseError, ErrorResponse


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.APP_NAME)
    logger = logging.getLogger(__name__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"], allow_credentials=True,
        allow_methods=["*"], allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(HealCoreError)
    async def healcore_error_handler(request: Request, exc: HealCoreError):
        logger.warning("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=ErrorResponse(**exc.to_dict()).model_dump())

    @app.exception_handler(ProgrammingError)
    async def programming_error_handler(request: Request, exc: ProgrammingError):
        logger.error("Database programming error: %s", exc)
        if "does not exist" in str(exc):
            return JSONResponse(
                status_code=503,
                content=ErrorResponse(
                    error="Database schema mismatch detected",
                    detail="The application schema is out of sync with the database. Run the migrations.",
                    error_code="SCHEMA_MISMATCH",
                ).model_dump(),
            )
        return JSONResponse(
            status_code=500,
            content=DatabaseError(
                error="Database query error",
                detail="There was an error executing the database query",
            ).model_dump(),
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        logger.error("Database operational error: %s", exc)
        return JSONResponse(
            status_code=503,
            content=ErrorResponse(
                error="Database connection error",
                detail="Unable to connect to the database. Please try again later.",
                error_code="DATABASE_CONNECTION_ERROR",
            ).model_dump(),
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error("Database integrity error: %s", exc)
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="Data integrity violation",
                detail="The operation violates database constraints",
                error_code="DATA_INTEGRITY_ERROR",
            ).model_dump(),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="Invalid request", detail=str(exc), error_code="INVALID_REQUEST").model_dump(),
        )

    # routes
    app.include_router(health.router)
    app.include_router(checkins.router)
    app.include_router(progress.router)
    app.include_router(reports.router)
    app.include_router(admin.router)
    return app


app = create_app()
