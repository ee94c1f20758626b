"""Irregularity review endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from payroll_execution.api.dependencies import ActorId, DbSession, committing
from payroll_execution.api.schemas import (
    ErrorResponse,
    EscalateRequest,
    IrregularityListResponse,
    IrregularityResponse,
    ResolveRequest,
)
from payroll_execution.services.irregularity_service import IrregularityService, IrregularityView

router = APIRouter(prefix="/irregularities", tags=["irregularities"])


def _to_response(view: IrregularityView) -> IrregularityResponse:
    irregularity = view.irregularity
    return IrregularityResponse(
        id=irregularity.id,
        code=irregularity.code.value,
        message=irregularity.message,
        status=irregularity.status.value,
        detail_id=view.detail_id,
        employee_id=view.employee_id,
        payroll_run_id=view.payroll_run_id,
        flagged_at=irregularity.flagged_at,
        escalated_by=irregularity.escalated_by,
        escalation_reason=irregularity.escalation_reason,
        escalated_at=irregularity.escalated_at,
        resolution=irregularity.resolution,
    )


@router.get(
    "",
    response_model=IrregularityListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_irregularities(
    db: DbSession,
    payroll_run_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> IrregularityListResponse:
    """List irregularities, optionally for one run or status."""
    listing = await IrregularityService(db).list_irregularities(
        payroll_run_id=payroll_run_id, status=status_filter
    )
    return IrregularityListResponse(
        items=[_to_response(view) for view in listing.items],
        total=listing.total,
        pending=listing.pending,
        escalated=listing.escalated,
        resolved=listing.resolved,
    )


@router.get(
    "/{irregularity_id}",
    response_model=IrregularityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_irregularity(
    db: DbSession,
    irregularity_id: Annotated[str, Path()],
) -> IrregularityResponse:
    view = await IrregularityService(db).get_irregularity(irregularity_id)
    return _to_response(view)


@router.post(
    "/{irregularity_id}/escalate",
    response_model=IrregularityResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def escalate_irregularity(
    db: DbSession,
    actor_id: ActorId,
    irregularity_id: Annotated[str, Path()],
    payload: EscalateRequest,
) -> IrregularityResponse:
    """Escalate a pending irregularity to a manager."""
    async with committing(db):
        view =await IrregularityService(db).escalate(irregularity_id, actor_id, payload.reason)
    return _to_response(view)


@router.post(
    "/{irregularity_id}/resolve",
    response_model=IrregularityResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def resolve_irregularity(
    db: DbSession,
    actor_id: ActorId,
    irregularity_id: Annotated[str, Path()],
    payload: ResolveRequest,
) -> IrregularityResponse:
    """Resolve an irregularity (approved, rejected, excluded or adjusted)."""
    async with committing(db):
        view = await IrregularityService(db).resolve(
            irregularity_id,
            actor_id,
            payload.action,
            notes=payload.notes,
            adjusted_value=payload.adjusted_value,
        )
    return _to_response(view)
