"""Payslip API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from payroll_execution.api.dependencies import ActorId, DbSession, committing
from payroll_execution.api.schemas import (
    DistributionResponse,
    ErrorResponse,
    PayslipResponse,
    PayslipSummaryResponse,
)
from payroll_execution.services.run_service import PayrollRunService

router = APIRouter(tags=["payslips"])


@router.get(
    "/payroll-runs/{payroll_run_id}/payslips",
    response_model=list[PayslipResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_run_payslips(
    db: DbSession,
    payroll_run_id: Annotated[UUID, Path()],
) -> list[PayslipResponse]:
    """List the payslips produced by a run."""
    payslips = await PayrollRunService(db).list_payslips(payroll_run_id)
    return [PayslipResponse.model_validate(p) for p in payslips]


@router.post(
    "/payroll-runs/{payroll_run_id}/payslips/distribute",
    response_model=DistributionResponse,
    responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}},
)
async def distribute_run_payslips(
    db: DbSession,
    actor_id: ActorId,
    payroll_run_id: Annotated[UUID, Path()],
) -> DistributionResponse:
    """Distribute the payslips of an approved run and mark them paid."""
    async with committing(db):
        result = await PayrollRunService(db).distribute_payslips(payroll_run_id, actor_id)
    return DistributionResponse(
        payroll_run_id=result.payroll_run_id,
        payslips_generated=result.payslips_generated,
        total_net_pay_distributed=result.total_net_pay_distributed,
        total_refunds_distributed=result.total_refunds_distributed,
        distributed_at=result.distributed_at,
        status=result.status,
        message=result.message,
    )


@router.get(
    "/payslips/{payslip_id}",
    response_model=PayslipSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payslip(
    db: DbSession,
    payslip_id: Annotated[UUID, Path()],
) -> PayslipSummaryResponse:
    """Get a payslip with its earnings and deductions summary."""
    summary = await PayrollRunService(db).get_payslip(payslip_id)
    return PayslipSummaryResponse(
        payslip=PayslipResponse.model_validate(summary.payslip),
        total_earnings=summary.total_earnings,
        total_deductions=summary.total_deductions,
        net_pay=summary.net_pay,
        refunds=summary.refunds,
    )
