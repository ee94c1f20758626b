"""Signing bonus and termination benefit administration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.config import Settings, get_settings
from payroll_execution.errors import NotFoundError, PayrollValidationError
from payroll_execution.events import (
    BenefitApproved,
    BenefitRejected,
    EventEmitter,
    EventMetadata,
    get_emitter,
)
from payroll_execution.models import (
    Employee,
    EmployeeSigningBonus,
    EmployeeTerminationBenefit,
    TerminationRequest,
)
from payroll_execution.models.base import utcnow
from payroll_execution.services.authorization import AccessPolicy, Action
from payroll_execution.services.state_machine import (
    BenefitStatus,
    BonusStatus,
    SigningBonusStateMachine,
    TerminationBenefitStateMachine,
)

logger = logging.getLogger(__name__)

APPROVED_TERMINATION_STATUSES = ("APPROVED", "approved")

SIGNING_BONUS = "signing_bonus"
TERMINATION_BENEFIT = "termination_benefit"


@dataclass
class BulkApprovalResult:
    matched: int
    approved: int
    approved_at: datetime


def _employee_name(employee: Employee | None) -> str:
    if employee is None:
        return "Unknown"
    return employee.full_name or "Unknown"


class BenefitService:
    """Manual administration of signing bonuses and termination benefits.

    Both records follow the same small lifecycle (pending → approved → paid,
    or pending → rejected). Inclusion in a run, and the flip to paid, happens
    in the pay calculator; this service covers the review steps before that.
    All operations require the Payroll Specialist role.
    """

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.policy = AccessPolicy(session)
        self.emitter = emitter or get_emitter()

    # ===== Signing bonuses =====

    async def list_signing_bonuses(
        self, status: str | None = None
    ) -> list[tuple[EmployeeSigningBonus, str]]:
        """Signing bonuses with the employee's display name."""
        query = select(EmployeeSigningBonus, Employee).outerjoin(
            Employee, Employee.id == EmployeeSigningBonus.employee_id
        )
        if status:
            query = query.where(EmployeeSigningBonus.status == status)
        result = await self.session.execute(query.order_by(EmployeeSigningBonus.created_at))
        return [(bonus, _employee_name(employee)) for bonus, employee in result.all()]

    async def get_signing_bonus(self, bonus_id: UUID) -> EmployeeSigningBonus:
        bonus = await self.session.get(EmployeeSigningBonus, bonus_id)
        if bonus is None:
            raise NotFoundError(f"Signing bonus {bonus_id} not found")
        return bonus

    async def update_signing_bonus(
        self,
        bonus_id: UUID,
        actor_id: UUID,
        status: str | None = None,
        amount: Decimal | None = None,
        note: str | None = None,
        payment_date: date | datetime | None = None,
    ) -> EmployeeSigningBonus:
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        bonus = await self.get_signing_bonus(bonus_id)

        if bonus.status == BonusStatus.PAID.value:
            raise PayrollValidationError("Cannot edit signing bonus that has already been paid")
        if bonus.status == BonusStatus.REJECTED.value:
            raise PayrollValidationError("Cannot edit rejected signing bonus")

        if status is not None:
            SigningBonusStateMachine.validate_transition(
                bonus.status, status, "signing bonus update"
            )
            bonus.status = BonusStatus(status).value
        if amount is not None:
            if amount < 0:
                raise PayrollValidationError("Signing bonus amount cannot be negative")
            bonus.given_amount = amount
        if note is not None:
            bonus.note = note
        if payment_date is not None:
            if not isinstance(payment_date, datetime):
                payment_date = datetime.combine(payment_date, datetime.min.time())
            bonus.payment_date = payment_date

        await self.session.flush()
        return bonus

    async def approve_signing_bonus(self, bonus_id: UUID, actor_id: UUID) -> EmployeeSigningBonus:
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        bonus = await self.get_signing_bonus(bonus_id)
        await self.policy.validate_approver(actor_id)

        SigningBonusStateMachine.validate_transition(
            bonus.status, BonusStatus.APPROVED, "signing bonus approval"
        )

        now = utcnow()
        bonus.status = BonusStatus.APPROVED.value
        bonus.approved_by = actor_id
        bonus.approved_at = now
        bonus.payment_date = now
        await self.session.flush()

        self._emit_approved(SIGNING_BONUS, bonus.id, bonus.employee_id, bonus.given_amount, actor_id)
        return bonus

    async def approve_pending_signing_bonuses(self, actor_id: UUID) -> BulkApprovalResult:
        """Approve every PENDING signing bonus in one statement."""
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)

        now = utcnow()
        result = await self.session.execute(
            update(EmployeeSigningBonus)
            .where(EmployeeSigningBonus.status == BonusStatus.PENDING.value)
            .values(
                status=BonusStatus.APPROVED.value,
                approved_by=actor_id,
                approved_at=now,
                payment_date=now,
            )
            .execution_options(synchronize_session="fetch")
        )
        approved = result.rowcount or 0
        logger.info("Bulk-approved %d pending signing bonus(es)", approved)
        return BulkApprovalResult(matched=approved, approved=approved, approved_at=now)

    async def reject_signing_bonus(
        self, bonus_id: UUID, actor_id: UUID, reason: str
    ) -> EmployeeSigningBonus:
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        bonus = await self.get_signing_bonus(bonus_id)

        if bonus.status != BonusStatus.PENDING.value:
            raise PayrollValidationError(f"Cannot reject signing bonus in status {bonus.status}")
        if not reason or not reason.strip():
            raise PayrollValidationError("Rejection reason is required")

        bonus.status = BonusStatus.REJECTED.value
        bonus.rejection_reason = reason
        await self.session.flush()

        self._emit_rejected(SIGNING_BONUS, bonus.id, bonus.employee_id, bonus.given_amount, actor_id, reason)
        return bonus

    # ===== Termination benefits =====

    async def list_termination_benefits(
        self, status: str | None = None
    ) -> list[tuple[EmployeeTerminationBenefit, str]]:
        query = select(EmployeeTerminationBenefit, Employee).outerjoin(
            Employee, Employee.id == EmployeeTerminationBenefit.employee_id
        )
        if status:
            query = query.where(EmployeeTerminationBenefit.status == status)
        result = await self.session.execute(
            query.order_by(EmployeeTerminationBenefit.created_at)
        )
        return [(benefit, _employee_name(employee)) for benefit, employee in result.all()]

    async def get_termination_benefit(self, benefit_id: UUID) -> EmployeeTerminationBenefit:
        benefit = await self.session.get(EmployeeTerminationBenefit, benefit_id)
        if benefit is None:
            raise NotFoundError(f"Termination benefit {benefit_id} not found")
        return benefit

    async def update_termination_benefit(
        self,
        benefit_id: UUID,
        actor_id: UUID,
        status: str | None = None,
        amount: Decimal | None = None,
        note: str | None = None,
    ) -> EmployeeTerminationBenefit:
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        benefit = await self.get_termination_benefit(benefit_id)

        if benefit.status == BenefitStatus.PAID.value:
            raise PayrollValidationError(
                "Cannot edit termination benefit that has already been paid"
            )
        if benefit.status == BenefitStatus.REJECTED.value:
            raise PayrollValidationError("Cannot edit rejected termination benefit")

        if status is not None:
            TerminationBenefitStateMachine.validate_transition(
                benefit.status, status, "termination benefit update"
            )
            benefit.status = BenefitStatus(status).value
        if note is not None:
            benefit.note = note
        if amount is not None:
            if amount < 0:
                raise PayrollValidationError("Termination benefit amount cannot be negative")
            maximum = self.settings.max_termination_benefit
            if amount > maximum:
                raise PayrollValidationError(
                    f"Termination benefit amount exceeds maximum allowed ({maximum:,.0f})"
                )
            benefit.given_amount = amount

        benefit.updated_by = actor_id
        await self.session.flush()
        return benefit

    async def approve_termination_benefit(
        self, benefit_id: UUID, actor_id: UUID
    ) -> EmployeeTerminationBenefit:
        """Approve a benefit once its termination request has been approved.

        Benefits without a linked (or with a since-removed) termination
        request may be approved directly.
        """
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        benefit = await self.get_termination_benefit(benefit_id)
        await self.policy.validate_approver(actor_id)

        TerminationBenefitStateMachine.validate_transition(
            benefit.status, BenefitStatus.APPROVED, "termination benefit approval"
        )

        if benefit.termination_request_id is not None:
            request = await self.session.get(TerminationRequest, benefit.termination_request_id)
            if request is not None and request.status not in APPROVED_TERMINATION_STATUSES:
                raise PayrollValidationError(
                    "Cannot approve benefits until termination request is approved. "
                    f"Current status: {request.status}"
                )

        benefit.status = BenefitStatus.APPROVED.value
        benefit.approved_by = actor_id
        benefit.approved_at = utcnow()
        await self.session.flush()

        self._emit_approved(
            TERMINATION_BENEFIT, benefit.id, benefit.employee_id, benefit.given_amount, actor_id
        )
        return benefit

    async def reject_termination_benefit(
        self, benefit_id: UUID, actor_id: UUID, reason: str
    ) -> EmployeeTerminationBenefit:
        await self.policy.authorize(actor_id, Action.MANAGE_BENEFITS)
        benefit = await self.get_termination_benefit(benefit_id)

        if benefit.status != BenefitStatus.PENDING.value:
            raise PayrollValidationError(
                f"Cannot reject termination benefit in status {benefit.status}"
            )
        if not reason or not reason.strip():
            raise PayrollValidationError("Rejection reason is required")

        benefit.status = BenefitStatus.REJECTED.value
        benefit.rejection_reason = reason
        await self.session.flush()

        self._emit_rejected(
            TERMINATION_BENEFIT, benefit.id, benefit.employee_id, benefit.given_amount, actor_id, reason
        )
        return benefit

    # ===== Notifications =====

    def _emit_approved(
        self, kind: str, record_id: UUID, employee_id: UUID, amount: Decimal, actor_id: UUID
    ) -> None:
        self.emitter.emit(
            BenefitApproved(
                metadata=EventMetadata.create(actor_id),
                record_id=record_id,
                employee_id=employee_id,
                kind=kind,
                amount=amount,
            )
        )

    def _emit_rejected(
        self,
        kind: str,
        record_id: UUID,
        employee_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        reason: str,
    ) -> None:
        self.emitter.emit(
            BenefitRejected(
                metadata=EventMetadata.create(actor_id),
                record_id=record_id,
                employee_id=employee_id,
                kind=kind,
                amount=amount,
                reason=reason,
            )
        )
