"""Payroll run service - lifecycle operations for payroll runs."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.types import (
    ZERO,
    PaymentStatus,
    PayrollPeriod,
    RunProcessingResult,
    money,
)
from payroll_execution.config import Settings, get_settings
from payroll_execution.errors import (
    AuthorizationError,
    DuplicatePeriodError,
    NotFoundError,
    PayrollValidationError,
    RunProcessingError,
    StaleVersionError,
)
from payroll_execution.events import (
    EventEmitter,
    EventMetadata,
    PayrollRunCreated,
    PayrollRunFinanceApproved,
    PayrollRunLocked,
    PayrollRunManagerApproved,
    PayrollRunProcessingFailed,
    PayrollRunRejected,
    PayrollRunSubmitted,
    PayrollRunUnlocked,
    PayslipsDistributed,
    get_emitter,
)
from payroll_execution.models import Department, EmployeePayrollDetail, PayrollRun, Payslip
from payroll_execution.models.base import utcnow
from payroll_execution.services.authorization import AccessPolicy, Action
from payroll_execution.services.irregularity_service import IrregularityService
from payroll_execution.services.orchestrator import RunOrchestrator
from payroll_execution.services.state_machine import PayrollRunStateMachine, PayrollRunStatus

logger = logging.getLogger(__name__)

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")
INVALID_PERIOD_MESSAGE = "Invalid payrollPeriod; expected a valid date (YYYY-MM or full date)"
DEFAULT_ENTITY = "default"
UNKNOWN_DEPARTMENT = "Unknown Department"
MAX_PAGE_SIZE = 100


def parse_period(value: str | date | None, today: date | None = None) -> date:
    """Normalize a period to the first day of its month.

    Accepts 'YYYY-MM', an ISO date/datetime string or a date. None means
    the current month.
    """
    today = today or date.today()
    if value is None:
        return today.replace(day=1)
    if isinstance(value, datetime):
        return value.date().replace(day=1)
    if isinstance(value, date):
        return value.replace(day=1)

    text = str(value).strip()
    try:
        if MONTH_PATTERN.match(text):
            year, month = (int(part) for part in text.split("-"))
            return date(year, month, 1)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().replace(day=1)
    except ValueError:
        raise PayrollValidationError(INVALID_PERIOD_MESSAGE)


@dataclass
class RunPage:
    """One page of payroll runs, newest first."""

    items: list[PayrollRun]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 1


@dataclass
class PayslipSummary:
    """A payslip with its earnings/deductions totals."""

    payslip: Payslip
    total_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    refunds: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class DistributionResult:
    payroll_run_id: UUID
    payslips_generated: int
    total_net_pay_distributed: Decimal
    total_refunds_distributed: Decimal
    distributed_at: datetime
    status: str = "distributed"

    @property
    def message(self) -> str:
        return (
            f"{self.payslips_generated} payslips have been distributed and marked as paid"
        )


class PayrollRunService:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_run / update_run: specialist-owned drafts
    - submit_run: draft → under_review, processes every employee
    - reject_run: specialist (draft/under_review) or finance (pending finance)
    - manager_approve: under_review → pending_finance_approval
    - finance_approve: pending_finance_approval → approved, marks paid
    - lock_run / unlock_run: freeze and unfreeze an approved run
    - distribute_payslips: finance hands payslips out

    Mutating operations accept the run version the caller last read;
    a mismatch raises StaleVersionError. The caller commits.
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

    # ===== Queries =====

    async def get_run(self, payroll_run_id: UUID) -> PayrollRun:
        run = await self.session.get(PayrollRun, payroll_run_id)
        if run is None:
            raise NotFoundError(f"Payroll run {payroll_run_id} not found")
        return run

    async def list_runs(
        self,
        status: str | None = None,
        period: str | date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> RunPage:
        if page < 1:
            raise PayrollValidationError("page must be >= 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise PayrollValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        query = select(PayrollRun)
        if status:
            query = query.where(PayrollRun.status == status)
        if period:
            query = query.where(PayrollRun.payroll_period == parse_period(period))

        total = await self.session.scalar(select(func.count()).select_from(query.subquery())) or 0
        result = await self.session.execute(
            query.order_by(PayrollRun.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
        return RunPage(items=list(result.scalars().all()), total=total, page=page, limit=limit)

    async def list_details(self, payroll_run_id: UUID) -> list[EmployeePayrollDetail]:
        await self.get_run(payroll_run_id)
        result = await self.session.execute(
            select(EmployeePayrollDetail)
            .where(EmployeePayrollDetail.payroll_run_id == payroll_run_id)
            .order_by(EmployeePayrollDetail.created_at)
        )
        return list(result.scalars().all())

    async def list_payslips(self, payroll_run_id: UUID) -> list[Payslip]:
        await self.get_run(payroll_run_id)
        result = await self.session.execute(
            select(Payslip)
            .where(Payslip.payroll_run_id == payroll_run_id)
            .order_by(Payslip.created_at)
        )
        return list(result.scalars().all())

    async def get_payslip(self, payslip_id: UUID) -> PayslipSummary:
        payslip = await self.session.get(Payslip, payslip_id)
        if payslip is None:
            raise NotFoundError(f"Payslip {payslip_id} not found")

        earnings = payslip.earnings_details or {}
        allowances = sum(
            (Decimal(str(a.get("amount") or 0)) for a in earnings.get("allowances") or []), ZERO
        )
        refunds = earnings.get("refunds") or []
        total_earnings = (
            Decimal(str(earnings.get("baseSalary") or 0))
            + allowances
            + sum((Decimal(str(b.get("amount") or 0)) for b in earnings.get("bonuses") or []), ZERO)
            + sum((Decimal(str(b.get("amount") or 0)) for b in earnings.get("benefits") or []), ZERO)
            + sum((Decimal(str(r.get("amount") or 0)) for r in refunds), ZERO)
        )
        return PayslipSummary(
            payslip=payslip,
            total_earnings=money(total_earnings),
            total_deductions=money(payslip.total_deductions),
            net_pay=money(payslip.net_pay),
            refunds=refunds,
        )

    # ===== Draft management =====

    async def create_run(
        self,
        actor_id: UUID,
        payroll_period: str | date | None = None,
        entity_id: UUID | None = None,
        entity: str | None = None,
        payroll_manager_id: UUID | None = None,
    ) -> PayrollRun:
        """Create a draft run for an entity and month."""
        await self.policy.authorize(actor_id, Action.CREATE_RUN)

        period = self._validate_period(payroll_period)
        entity_id, entity = await self._resolve_entity(entity_id, entity)
        await self._ensure_period_free(period, entity_id)

        run = PayrollRun(
            id=uuid4(),
            run_id=f"PR-{period.strftime('%Y-%m')}-{uuid4().hex[:12].upper()}",
            payroll_period=period,
            entity=entity,
            entity_id=entity_id,
            status=PayrollRunStatus.DRAFT.value,
            payment_status=PaymentStatus.PENDING.value,
            payroll_specialist_id=actor_id,
            payroll_manager_id=payroll_manager_id,
            irregularities=[],
        )
        self.session.add(run)
        await self.session.flush()

        logger.info("Created payroll run %s for %s (%s)", run.run_id, run.period_label, entity)
        self._emit(PayrollRunCreated, run, actor_id)
        return run

    async def update_run(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        payroll_period: str | date | None = None,
        entity_id: UUID | None = None,
        entity: str | None = None,
        payroll_manager_id: UUID | None = None,
        expected_version: int | None = None,
    ) -> PayrollRun:
        """Edit a DRAFT or REJECTED run; a rejected run returns to DRAFT."""
        await self.policy.authorize(actor_id, Action.UPDATE_RUN)
        run = await self._load(payroll_run_id, expected_version)

        if not PayrollRunStateMachine.can_edit(run.status):
            raise PayrollValidationError(
                f"Cannot edit payroll in status {run.status}. "
                "Only DRAFT or REJECTED runs can be edited."
            )

        if entity_id is not None or entity is not None:
            run.entity_id, run.entity = await self._resolve_entity(entity_id, entity)
        if payroll_period is not None:
            run.payroll_period = self._validate_period(payroll_period)
        if payroll_period is not None or entity_id is not None or entity is not None:
            await self._ensure_period_free(run.payroll_period, run.entity_id, exclude=run.id)
        if payroll_manager_id is not None:
            run.payroll_manager_id = payroll_manager_id

        if run.status == PayrollRunStatus.REJECTED.value:
            PayrollRunStateMachine.validate_transition(
                run.status, PayrollRunStatus.DRAFT, "edit of rejected payroll"
            )
            run.status = PayrollRunStatus.DRAFT.value
            run.rejection_reason = None

        await self.session.flush()
        return run

    # ===== Transitions =====

    async def submit_run(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> RunProcessingResult:
        """Send a draft for review and process every employee.

        On any processing failure the work is rolled back, the run is
        returned to DRAFT with its exception counter incremented (committed),
        and RunProcessingError is raised.
        """
        await self.policy.authorize(actor_id, Action.SUBMIT_RUN)
        run = await self._load(payroll_run_id, expected_version)
        PayrollRunStateMachine.validate_transition(
            run.status, PayrollRunStatus.UNDER_REVIEW, "payroll initiation approval"
        )

        run.status = PayrollRunStatus.UNDER_REVIEW.value
        run.specialist_approval_date = utcnow()

        try:
            result = await RunOrchestrator(self.session, self.settings).process_run(run)
        except Exception as exc:
            logger.exception("Processing failed for payroll run %s", run.run_id)
            await self._revert_to_draft(payroll_run_id, str(exc), actor_id)
            raise RunProcessingError(f"Payroll processing failed: {exc}") from exc

        self.emitter.emit(
            PayrollRunSubmitted(
                metadata=EventMetadata.create(actor_id),
                **self._run_fields(run),
                employees=run.employees,
                exceptions=run.exceptions,
                total_net_pay=run.total_net_pay,
            )
        )
        return result

    async def reject_run(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> PayrollRun:
        run = await self._load(payroll_run_id, expected_version)

        if run.status in PayrollRunStateMachine.SPECIALIST_REJECTABLE:
            await self.policy.authorize(actor_id, Action.REJECT_RUN)
        elif run.status == PayrollRunStatus.PENDING_FINANCE_APPROVAL.value:
            await self.policy.authorize(actor_id, Action.FINANCE_REJECT)
        else:
            raise PayrollValidationError(f"Cannot reject payroll in status {run.status}")

        if not reason or not reason.strip():
            raise PayrollValidationError("Rejection reason is required")

        PayrollRunStateMachine.validate_transition(
            run.status, PayrollRunStatus.REJECTED, "payroll rejection"
        )
        run.status = PayrollRunStatus.REJECTED.value
        run.rejection_reason = reason
        await self.session.flush()

        self.emitter.emit(
            PayrollRunRejected(
                metadata=EventMetadata.create(actor_id), **self._run_fields(run), reason=reason
            )
        )
        return run

    async def manager_approve(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> PayrollRun:
        await self.policy.authorize(actor_id, Action.MANAGER_APPROVE)
        run = await self._load(payroll_run_id, expected_version)

        if run.status != PayrollRunStatus.UNDER_REVIEW.value:
            raise PayrollValidationError(
                f"Cannot approve payroll in status {run.status}. "
                "Must be in 'under review' status."
            )
        await self.policy.validate_approver(actor_id, run.payroll_specialist_id)

        resolved = await IrregularityService(self.session, self.emitter).auto_resolve_run(
            run, actor_id
        )
        if resolved:
            logger.info("Run %s: auto-resolved %d irregularities", run.run_id, resolved)

        PayrollRunStateMachine.validate_transition(
            run.status, PayrollRunStatus.PENDING_FINANCE_APPROVAL, "manager approval"
        )
        run.status = PayrollRunStatus.PENDING_FINANCE_APPROVAL.value
        run.payroll_manager_id = actor_id
        run.manager_approval_date = utcnow()
        await self.session.flush()

        self._emit(PayrollRunManagerApproved, run, actor_id)
        return run

    async def finance_approve(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> PayrollRun:
        await self.policy.authorize(actor_id, Action.FINANCE_APPROVE)
        run = await self._load(payroll_run_id, expected_version)

        await self.policy.validate_approver(actor_id, run.payroll_specialist_id)
        if run.payroll_manager_id is not None and run.payroll_manager_id == actor_id:
            raise AuthorizationError("Finance approver cannot be the same as manager approver")

        PayrollRunStateMachine.validate_transition(
            run.status, PayrollRunStatus.APPROVED, "finance approval"
        )
        if run.manager_approval_date is None:
            raise PayrollValidationError(
                "Payroll must be approved by manager before finance approval"
            )

        run.status = PayrollRunStatus.APPROVED.value
        run.payment_status = PaymentStatus.PAID.value
        run.finance_staff_id = actor_id
        run.finance_approval_date = utcnow()
        await self.session.execute(
            update(Payslip)
            .where(Payslip.payroll_run_id == run.id)
            .values(payment_status=PaymentStatus.PAID.value)
            .execution_options(synchronize_session="fetch")
        )
        await self.session.flush()

        logger.info("Payroll run %s approved by finance", run.run_id)
        self.emitter.emit(
            PayrollRunFinanceApproved(
                metadata=EventMetadata.create(actor_id),
                **self._run_fields(run),
                total_net_pay=run.total_net_pay,
            )
        )
        return run

    async def lock_run(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> PayrollRun:
        """Freeze an approved (or previously unfrozen) run."""
        await self.policy.authorize(actor_id, Action.LOCK_RUN)
        run = await self._load(payroll_run_id, expected_version)

        if not PayrollRunStateMachine.can_transition(run.status, PayrollRunStatus.LOCKED):
            raise PayrollValidationError("Can only freeze approved or unlocked payrolls")

        run.status = PayrollRunStatus.LOCKED.value
        run.locked_at = utcnow()
        await self.session.flush()

        self._emit(PayrollRunLocked, run, actor_id)
        return run

    async def unlock_run(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> PayrollRun:
        await self.policy.authorize(actor_id, Action.UNLOCK_RUN)
        run = await self._load(payroll_run_id, expected_version)

        if run.status != PayrollRunStatus.LOCKED.value:
            raise PayrollValidationError("Can only unfreeze locked payrolls")
        if not reason or not reason.strip():
            raise PayrollValidationError("Reason is required to unfreeze payroll")

        run.status = PayrollRunStatus.UNLOCKED.value
        run.unlock_reason = reason
        run.unlocked_at = utcnow()
        await self.session.flush()

        self.emitter.emit(
            PayrollRunUnlocked(
                metadata=EventMetadata.create(actor_id), **self._run_fields(run), reason=reason
            )
        )
        return run

    async def distribute_payslips(
        self,
        payroll_run_id: UUID,
        actor_id: UUID,
    ) -> DistributionResult:
        """Mark every payslip and detail of an approved run as paid."""
        await self.policy.authorize(actor_id, Action.DISTRIBUTE_PAYSLIPS)
        run = await self.get_run(payroll_run_id)

        if not PayrollRunStateMachine.can_distribute_payslips(run.status):
            raise PayrollValidationError(
                f"Cannot generate payslips for payroll in status {run.status}"
            )

        payslips = await self.list_payslips(payroll_run_id)
        if not payslips:
            raise PayrollValidationError(
                f"No payslips found for payroll run {payroll_run_id}. "
                "Please ensure payroll processing is complete."
            )

        now = utcnow()
        total_net = ZERO
        total_refunds = ZERO
        for payslip in payslips:
            payslip.payment_status = PaymentStatus.PAID.value
            payslip.distributed_at = now
            payslip.distributed_by = actor_id
            total_net += payslip.net_pay or ZERO
            for refund in (payslip.earnings_details or {}).get("refunds") or []:
                total_refunds += Decimal(str(refund.get("amount") or 0))

        await self.session.execute(
            update(EmployeePayrollDetail)
            .where(EmployeePayrollDetail.payroll_run_id == run.id)
            .values(payment_status=PaymentStatus.PAID.value, paid_at=now, paid_by=actor_id)
            .execution_options(synchronize_session="fetch")
        )

        run.payslips_generated = True
        run.payslips_generated_at = run.payslips_generated_at or now
        run.payslips_distributed = True
        run.payslips_distributed_at = now
        await self.session.flush()

        result = DistributionResult(
            payroll_run_id=run.id,
            payslips_generated=len(payslips),
            total_net_pay_distributed=money(total_net),
            total_refunds_distributed=money(total_refunds),
            distributed_at=now,
        )
        self.emitter.emit(
            PayslipsDistributed(
                metadata=EventMetadata.create(actor_id),
                payroll_run_id=run.id,
                run_id=run.run_id,
                payslips=result.payslips_generated,
                total_net_pay=result.total_net_pay_distributed,
                total_refunds=result.total_refunds_distributed,
            )
        )
        return result

    # ===== Helpers =====

    async def _load(self, payroll_run_id: UUID, expected_version: int | None) -> PayrollRun:
        run = await self.get_run(payroll_run_id)
        if expected_version is not None and run.version != expected_version:
            raise StaleVersionError(expected_version, run.version)
        return run

    @staticmethod
    def _validate_period(payroll_period: str | date | None) -> date:
        period = parse_period(payroll_period)
        if period > date.today():
            raise PayrollValidationError("Cannot create payroll for future period")
        return period

    async def _resolve_entity(
        self, entity_id: UUID | None, entity: str | None
    ) -> tuple[UUID | None, str]:
        """Fill in whichever of department id / entity name is missing."""
        if entity_id is not None:
            if entity:
                return entity_id, entity
            department = await self.session.get(Department, entity_id)
            return entity_id, department.name if department else UNKNOWN_DEPARTMENT

        if entity:
            department_id = await self.session.scalar(
                select(Department.id)
                .where(func.lower(Department.name) == entity.lower())
                .limit(1)
            )
            return department_id, entity
        return None, DEFAULT_ENTITY

    async def _ensure_period_free(
        self,
        period: date,
        entity_id: UUID | None,
        exclude: UUID | None = None,
    ) -> None:
        query = select(PayrollRun).where(
            PayrollRun.payroll_period == period,
            PayrollRun.status.not_in(PayrollRunStateMachine.RELEASES_PERIOD),
        )
        if entity_id is not None:
            query = query.where(PayrollRun.entity_id == entity_id)
        if exclude is not None:
            query = query.where(PayrollRun.id != exclude)

        existing = (await self.session.execute(query.limit(1))).scalar_one_or_none()
        if existing is None:
            return

        label = PayrollPeriod.for_month(period).label
        scope = f"for this department in {label}" if entity_id else f"for period {label}"
        raise DuplicatePeriodError(
            f"A payroll run already exists {scope}. "
            f"Run ID: {existing.run_id}, Status: {existing.status}",
            existing_run_id=existing.run_id,
        )

    async def _revert_to_draft(self, payroll_run_id: UUID, error: str, actor_id: UUID) -> None:
        await self.session.rollback()
        run = await self.get_run(payroll_run_id)
        run.status = PayrollRunStatus.DRAFT.value
        run.exceptions = (run.exceptions or 0) + 1
        await self.session.commit()

        self.emitter.emit_now(
            PayrollRunProcessingFailed(
                metadata=EventMetadata.create(actor_id), **self._run_fields(run), error=error
            )
        )

    def _emit(self, event_type: type, run: PayrollRun, actor_id: UUID) -> None:
        self.emitter.emit(event_type(metadata=EventMetadata.create(actor_id), **self._run_fields(run)))

    @staticmethod
    def _run_fields(run: PayrollRun) -> dict[str, Any]:
        return {
            "payroll_run_id": run.id,
            "run_id": run.run_id,
            "period": run.period_label,
            "entity": run.entity,
        }
