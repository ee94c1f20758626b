"""Liveness, readiness and health endpoints."""

import logging
from datetime import datetime

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.api.dependencies import DbSession
from payroll_execution.config import get_settings
from payroll_execution.models.base import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """API status plus the calculation engine version stamped on payslips."""

    status: str
    timestamp: datetime
    database: str
    version: str


async def _database_ok(db: AsyncSession) -> bool:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database check failed")
        return False
    return True


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Degraded (still 200) when the database does not answer."""
    database_ok = await _database_ok(db)
    return HealthResponse(
        status="healthy" if database_ok else "degraded",
        timestamp=utcnow(),
        database="healthy" if database_ok else "unhealthy",
        version=get_settings().engine_version,
    )


@router.get("/ready")
async def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the database answers; 503 until then."""
    if not await _database_ok(db):
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "waiting for database"}
    return {"status": "ready"}


@router.get("/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
