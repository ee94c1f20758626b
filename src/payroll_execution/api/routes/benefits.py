"""Signing bonus and termination benefit endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from payroll_execution.api.dependencies import ActorId, DbSession, committing
from payroll_execution.api.schemas import (
    BulkApprovalResponse,
    ErrorResponse,
    RejectRequest,
    SigningBonusResponse,
    SigningBonusUpdate,
    TerminationBenefitResponse,
    TerminationBenefitUpdate,
)
from payroll_execution.services.benefit_service import BenefitService

router = APIRouter(tags=["benefits"])

ERRORS = {
    400: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


# ============================================================================
# Signing bonuses
# ============================================================================


@router.get("/signing-bonuses", response_model=list[SigningBonusResponse])
async def list_signing_bonuses(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[SigningBonusResponse]:
    items = []
    for bonus, employee_name in await BenefitService(db).list_signing_bonuses(status_filter):
        resp = SigningBonusResponse.model_validate(bonus)
        resp.employee_name = employee_name
        items.append(resp)
    return items


@router.post(
    "/signing-bonuses/approve-pending",
    response_model=BulkApprovalResponse,
    responses={403: {"model": ErrorResponse}},
)
async def approve_pending_signing_bonuses(
    db: DbSession,
    actor_id: ActorId,
) -> BulkApprovalResponse:
    """Approve every pending signing bonus."""
    async with committing(db):
        result = await BenefitService(db).approve_pending_signing_bonuses(actor_id)
    return BulkApprovalResponse(
        matched_count=result.matched,
        modified_count=result.approved,
        approved_at=result.approved_at,
    )


@router.get(
    "/signing-bonuses/{bonus_id}",
    response_model=SigningBonusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_signing_bonus(
    db: DbSession,
    bonus_id: Annotated[UUID, Path()],
) -> SigningBonusResponse:
    bonus = await BenefitService(db).get_signing_bonus(bonus_id)
    return SigningBonusResponse.model_validate(bonus)


@router.patch(
    "/signing-bonuses/{bonus_id}",
    response_model=SigningBonusResponse,
    responses=ERRORS,
)
async def update_signing_bonus(
    db: DbSession,
    actor_id: ActorId,
    bonus_id: Annotated[UUID, Path()],
    payload: SigningBonusUpdate,
) -> SigningBonusResponse:
    async with committing(db):
        bonus = await BenefitService(db).update_signing_bonus(
            bonus_id,
            actor_id,
            status=payload.status,
            amount=payload.amount,
            note=payload.note,
            payment_date=payload.payment_date,
        )
    return SigningBonusResponse.model_validate(bonus)


@router.post(
    "/signing-bonuses/{bonus_id}/approve",
    response_model=SigningBonusResponse,
    responses=ERRORS,
)
async def approve_signing_bonus(
    db: DbSession,
    actor_id: ActorId,
    bonus_id: Annotated[UUID, Path()],
) -> SigningBonusResponse:
    async with committing(db):
        bonus = await BenefitService(db).approve_signing_bonus(bonus_id, actor_id)
    return SigningBonusResponse.model_validate(bonus)


@router.post(
    "/signing-bonuses/{bonus_id}/reject",
    response_model=SigningBonusResponse,
    responses=ERRORS,
)
async def reject_signing_bonus(
    db: DbSession,
    actor_id: ActorId,
    bonus_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> SigningBonusResponse:
    async with committing(db):
        bonus = await BenefitService(db).reject_signing_bonus(bonus_id, actor_id, payload.reason)
    return SigningBonusResponse.model_validate(bonus)


# ============================================================================
# Termination benefits
# ============================================================================


@router.get("/termination-benefits", response_model=list[TerminationBenefitResponse])
async def list_termination_benefits(
    db: DbSession,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> list[TerminationBenefitResponse]:
    items = []
    for benefit, employee_name in await BenefitService(db).list_termination_benefits(
        status_filter
    ):
        resp = TerminationBenefitResponse.model_validate(benefit)
        resp.employee_name = employee_name
        items.append(resp)
    return items


@router.get(
    "/termination-benefits/{benefit_id}",
    response_model=TerminationBenefitResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_termination_benefit(
    db: DbSession,
    benefit_id: Annotated[UUID, Path()],
) -> TerminationBenefitResponse:
    benefit = await BenefitService(db).get_termination_benefit(benefit_id)
    return TerminationBenefitResponse.model_validate(benefit)


@router.patch(
    "/termination-benefits/{benefit_id}",
    response_model=TerminationBenefitResponse,
    responses=ERRORS,
)
async def update_termination_benefit(
    db: DbSession,
    actor_id: ActorId,
    benefit_id: Annotated[UUID, Path()],
    payload: TerminationBenefitUpdate,
) -> TerminationBenefitResponse:
    async with committing(db):
        benefit = await BenefitService(db).update_termination_benefit(
            benefit_id,
            actor_id,
            status=payload.status,
            amount=payload.given_amount,
            note=payload.note,
        )
    return TerminationBenefitResponse.model_validate(benefit)


@router.post(
    "/termination-benefits/{benefit_id}/approve",
    response_model=TerminationBenefitResponse,
    responses=ERRORS,
)
async def approve_termination_benefit(
    db: DbSession,
    actor_id: ActorId,
    benefit_id: Annotated[UUID, Path()],
) -> TerminationBenefitResponse:
    async with committing(db):
        benefit = await BenefitService(db).approve_termination_benefit(benefit_id, actor_id)
    return TerminationBenefitResponse.model_validate(benefit)


@router.post(
    "/termination-benefits/{benefit_id}/reject",
    response_model=TerminationBenefitResponse,
    responses=ERRORS,
)
async def reject_termination_benefit(
    db: DbSession,
    actor_id: ActorId,
    benefit_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> TerminationBenefitResponse:
    async with committing(db):
        benefit = await BenefitService(db).reject_termination_benefit(
            benefit_id, actor_id, payload.reason
        )
    return TerminationBenefitResponse.model_validate(benefit)
