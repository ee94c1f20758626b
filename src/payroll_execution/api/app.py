"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

from payroll_execution.api.routes import (
    benefits_router,
    health_router,
    irregularities_router,
    payroll_runs_router,
    payslips_router,
)
from payroll_execution.config import settings
from payroll_execution.database import create_schema, dispose_db, init_db
from payroll_execution.errors import (
    AuthorizationError,
    DuplicatePeriodError,
    NotFoundError,
    PayrollError,
    StaleVersionError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: list[tuple[type[PayrollError], int]] = [
    (DuplicatePeriodError, status.HTTP_409_CONFLICT),
    (StaleVersionError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
]


def _status_for(exc: PayrollError) -> int:
    for error_type, code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db()
    await create_schema()
    logger.info("Payroll execution API %s started", settings.engine_version)
    yield
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Execution API",
        description="Monthly payroll runs: processing, approvals, irregularities and payslips",
        version=settings.engine_version,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_exception_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to 4xx responses."""
        content = {"detail": exc.message, "code": exc.code}
        if isinstance(exc, DuplicatePeriodError) and exc.existing_run_id:
            content["existing_run_id"] = exc.existing_run_id
        return JSONResponse(status_code=_status_for(exc), content=content)

    @app.exception_handler(StaleDataError)
    async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
        """A concurrent writer bumped the run version first."""
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": "Payroll run was modified concurrently",
                "code": StaleVersionError.code,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(payroll_runs_router, prefix="/api/v1")
    app.include_router(payslips_router, prefix="/api/v1")
    app.include_router(benefits_router, prefix="/api/v1")
    app.include_router(irregularities_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
