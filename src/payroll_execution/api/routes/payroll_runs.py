"""Payroll run API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from payroll_execution.api.dependencies import ActorId, DbSession, committing
from payroll_execution.api.schemas import (
    EmployeePayrollDetailResponse,
    ErrorResponse,
    PayrollRunCreate,
    PayrollRunListResponse,
    PayrollRunResponse,
    PayrollRunUpdate,
    ProcessingResponse,
    ReasonRequest,
    VersionedRequest,
)
from payroll_execution.services.run_service import PayrollRunService

router = APIRouter(prefix="/payroll-runs", tags=["payroll-runs"])

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ============================================================================
# Payroll Run CRUD
# ============================================================================


@router.post(
    "",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
async def create_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payload: PayrollRunCreate,
) -> PayrollRunResponse:
    """Create a new payroll run in draft status."""
    async with committing(db):
        run = await PayrollRunService(db).create_run(
            actor_id,
            payroll_period=payload.payroll_period,
            entity_id=payload.entity_id,
            entity=payload.entity,
            payroll_manager_id=payload.payroll_manager_id,
        )
    return PayrollRunResponse.model_validate(run)


@router.get(
    "",
    response_model=PayrollRunListResponse,
    responses={400: {"model": ErrorResponse}},
)
async def list_payroll_runs(
    db: DbSession,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    period: str | None = None,
) -> PayrollRunListResponse:
    """List payroll runs, newest first."""
    result = await PayrollRunService(db).list_runs(
        status=status_filter, period=period, page=page, limit=limit
    )
    return PayrollRunListResponse(
        items=[PayrollRunResponse.model_validate(run) for run in result.items],
        total=result.total,
        page=result.page,
        limit=result.limit,
        total_pages=result.total_pages,
    )


@router.get(
    "/{payroll_run_id}",
    response_model=PayrollRunResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll_run(
    db: DbSession,
    payroll_run_id: Annotated[UUID, Path()],
) -> PayrollRunResponse:
    """Get a specific payroll run by ID."""
    run = await PayrollRunService(db).get_run(payroll_run_id)
    return PayrollRunResponse.model_validate(run)


@router.patch(
    "/{payroll_run_id}",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def update_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: PayrollRunUpdate,
) -> PayrollRunResponse:
    """Edit a draft or rejected payroll run."""
    async with committing(db):
        run = await PayrollRunService(db).update_run(
            payroll_run_id,
            actor_id,
            payroll_period=payload.payroll_period,
            entity_id=payload.entity_id,
            entity=payload.entity,
            payroll_manager_id=payload.payroll_manager_id,
            expected_version=payload.expected_version,
        )
    return PayrollRunResponse.model_validate(run)


@router.get(
    "/{payroll_run_id}/details",
    response_model=list[EmployeePayrollDetailResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_payroll_run_details(
    db: DbSession,
    payroll_run_id: Annotated[UUID, Path()],
) -> list[EmployeePayrollDetailResponse]:
    """List the per-employee detail records of a run."""
    details = await PayrollRunService(db).list_details(payroll_run_id)
    return [EmployeePayrollDetailResponse.model_validate(d) for d in details]


# ============================================================================
# Payroll Run State Transitions
# ============================================================================


@router.post(
    "/{payroll_run_id}/submit",
    response_model=ProcessingResponse,
    responses=ERRORS,
)
async def submit_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: VersionedRequest,
) -> ProcessingResponse:
    """Submit a draft for review; processes every employee of the run."""
    service = PayrollRunService(db)
    async with committing(db):
        result = await service.submit_run(
            payroll_run_id, actor_id, expected_version=payload.expected_version
        )
    run = await service.get_run(payroll_run_id)
    return ProcessingResponse(
        run=PayrollRunResponse.model_validate(run),
        employees=result.employees,
        exceptions=result.exceptions,
        total_net_pay=result.total_net_pay,
        irregularities_count=result.irregularities_count,
    )


@router.post(
    "/{payroll_run_id}/reject",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def reject_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> PayrollRunResponse:
    """Reject a run (specialist before approval, finance at final review)."""
    async with committing(db):
        run = await PayrollRunService(db).reject_run(
            payroll_run_id, actor_id, payload.reason, expected_version=payload.expected_version
        )
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/manager-approve",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def manager_approve_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: VersionedRequest,
) -> PayrollRunResponse:
    """Manager approval: under review -> pending finance approval."""
    async with committing(db):
        run = await PayrollRunService(db).manager_approve(
            payroll_run_id, actor_id, expected_version=payload.expected_version
        )
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/finance-approve",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def finance_approve_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: VersionedRequest,
) -> PayrollRunResponse:
    """Finance approval: pending finance approval -> approved."""
    async with committing(db):
        run = await PayrollRunService(db).finance_approve(
            payroll_run_id, actor_id, expected_version=payload.expected_version
        )
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/freeze",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def freeze_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: VersionedRequest,
) -> PayrollRunResponse:
    """Lock an approved run against further changes."""
    async with committing(db):
        run = await PayrollRunService(db).lock_run(
            payroll_run_id, actor_id, expected_version=payload.expected_version
        )
    return PayrollRunResponse.model_validate(run)


@router.post(
    "/{payroll_run_id}/unfreeze",
    response_model=PayrollRunResponse,
    responses=ERRORS,
)
async def unfreeze_payroll_run(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
    payload: ReasonRequest,
) -> PayrollRunResponse:
    """Unlock a locked run; a reason is required."""
    async with committing(db):
        run = await PayrollRunService(db).unlock_run(
            payroll_run_id, actor_id, payload.reason, expected_version=payload.expected_version
        )
    return PayrollRunResponse.model_validate(run)
