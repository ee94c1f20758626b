"""Irregularity review: listing, escalation and resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.irregularities import (
    load_irregularities,
    store_irregularities,
)
from payroll_execution.calculators.types import (
    Irregularity,
    IrregularityStatus,
    ResolutionAction,
)
from payroll_execution.errors import NotFoundError, PayrollValidationError
from payroll_execution.events import (
    EventEmitter,
    EventMetadata,
    IrregularityEscalated,
    IrregularityResolved,
    get_emitter,
)
from payroll_execution.models import EmployeePayrollDetail, PayrollRun
from payroll_execution.models.base import utcnow
from payroll_execution.services.authorization import AccessPolicy, Action

logger = logging.getLogger(__name__)

AUTO_RESOLVE_NOTES = "Auto-resolved on manager approval"


@dataclass
class IrregularityView:
    """An irregularity together with the detail it was raised on."""

    irregularity: Irregularity
    detail_id: UUID
    employee_id: UUID
    payroll_run_id: UUID


@dataclass
class IrregularityListing:
    items: list[IrregularityView] = field(default_factory=list)
    pending: int = 0
    escalated: int = 0
    resolved: int = 0

    @property
    def total(self) -> int:
        return len(self.items)


def parse_irregularity_id(irregularity_id: str) -> UUID:
    """Extract the detail id from '<detailId>_<digest>'."""
    detail_part, sep, _ = irregularity_id.partition("_")
    if not sep:
        raise NotFoundError("Invalid irregularity ID")
    try:
        return UUID(detail_part)
    except ValueError:
        raise NotFoundError("Invalid irregularity ID")


class IrregularityService:
    """Structured irregularity ledger operations.

    Each irregularity carries its own status; resolving one records the
    resolution on that entry and clears the detail's display string.
    """

    def __init__(
        self,
        session: AsyncSession,
        emitter: EventEmitter | None = None,
    ):
        self.session = session
        self.policy = AccessPolicy(session)
        self.emitter = emitter or get_emitter()

    async def list_irregularities(
        self,
        payroll_run_id: UUID | None = None,
        status: str | None = None,
    ) -> IrregularityListing:
        if status is not None and status not in {s.value for s in IrregularityStatus}:
            raise PayrollValidationError(f"Invalid irregularity status: {status}")

        query = select(EmployeePayrollDetail)
        if payroll_run_id is not None:
            query = query.where(EmployeePayrollDetail.payroll_run_id == payroll_run_id)
        result = await self.session.execute(query.order_by(EmployeePayrollDetail.created_at))

        listing = IrregularityListing()
        for detail in result.scalars().all():
            for irregularity in load_irregularities(detail):
                if irregularity.status == IrregularityStatus.PENDING:
                    listing.pending += 1
                elif irregularity.status == IrregularityStatus.ESCALATED:
                    listing.escalated += 1
                else:
                    listing.resolved += 1
                if status is not None and irregularity.status.value != status:
                    continue
                listing.items.append(self._view(detail, irregularity))
        return listing

    async def get_irregularity(self, irregularity_id: str) -> IrregularityView:
        detail, irregularity, _ = await self._locate(irregularity_id)
        return self._view(detail, irregularity)

    async def escalate(
        self, irregularity_id: str, actor_id: UUID, reason: str
    ) -> IrregularityView:
        await self.policy.authorize(actor_id, Action.ESCALATE_IRREGULARITY)
        if not reason or not reason.strip():
            raise PayrollValidationError("Escalation reason is required")

        detail, irregularity, entries = await self._locate(irregularity_id)
        if irregularity.status != IrregularityStatus.PENDING:
            raise PayrollValidationError("Irregularity already escalated or resolved")

        irregularity.status = IrregularityStatus.ESCALATED
        irregularity.escalated_by = str(actor_id)
        irregularity.escalation_reason = reason
        irregularity.escalated_at = utcnow()
        store_irregularities(detail, entries)
        await self.session.flush()

        self.emitter.emit(
            IrregularityEscalated(
                metadata=EventMetadata.create(actor_id),
                irregularity_id=irregularity.id,
                payroll_run_id=detail.payroll_run_id,
                employee_id=detail.employee_id,
                reason=reason,
            )
        )
        return self._view(detail, irregularity)

    async def resolve(
        self,
        irregularity_id: str,
        actor_id: UUID,
        action: str,
        notes: str | None = None,
        adjusted_value: Decimal | None = None,
    ) -> IrregularityView:
        await self.policy.authorize(actor_id, Action.RESOLVE_IRREGULARITY)
        try:
            resolution_action = ResolutionAction(action)
        except ValueError:
            valid = ", ".join(a.value for a in ResolutionAction)
            raise PayrollValidationError(f"Invalid action. Must be one of: {valid}")

        detail, irregularity, entries = await self._locate(irregularity_id)
        if irregularity.status == IrregularityStatus.RESOLVED:
            raise PayrollValidationError("Irregularity already resolved")

        irregularity.status = IrregularityStatus.RESOLVED
        irregularity.resolution = self._resolution(
            resolution_action, notes, actor_id, adjusted_value
        )
        store_irregularities(detail, entries)
        detail.exceptions = ""
        await self.session.flush()

        logger.info(
            "Irregularity %s %s by %s", irregularity.id, resolution_action.value, actor_id
        )
        self.emitter.emit(
            IrregularityResolved(
                metadata=EventMetadata.create(actor_id),
                irregularity_id=irregularity.id,
                payroll_run_id=detail.payroll_run_id,
                employee_id=detail.employee_id,
                action=resolution_action.value,
            )
        )
        return self._view(detail, irregularity)

    async def auto_resolve_run(self, run: PayrollRun, actor_id: UUID) -> int:
        """Mark every open irregularity of the run approved (manager approval)."""
        result = await self.session.execute(
            select(EmployeePayrollDetail).where(EmployeePayrollDetail.payroll_run_id == run.id)
        )
        resolved = 0
        for detail in result.scalars().all():
            entries = load_irregularities(detail)
            changed = False
            for irregularity in entries:
                if irregularity.is_open:
                    irregularity.status = IrregularityStatus.RESOLVED
                    irregularity.resolution = self._resolution(
                        ResolutionAction.APPROVED, AUTO_RESOLVE_NOTES, actor_id
                    )
                    changed = True
                    resolved += 1
            if changed:
                store_irregularities(detail, entries)
        return resolved

    async def _locate(
        self, irregularity_id: str
    ) -> tuple[EmployeePayrollDetail, Irregularity, list[Irregularity]]:
        detail_id = parse_irregularity_id(irregularity_id)
        detail = await self.session.get(EmployeePayrollDetail, detail_id)
        if detail is None:
            raise NotFoundError("Source payroll detail not found")

        entries = load_irregularities(detail)
        for irregularity in entries:
            if irregularity.id == irregularity_id:
                return detail, irregularity, entries
        raise NotFoundError("Irregularity not found")

    @staticmethod
    def _resolution(
        action: ResolutionAction,
        notes: str | None,
        actor_id: UUID,
        adjusted_value: Decimal | None = None,
    ) -> dict[str, Any]:
        resolution: dict[str, Any] = {
            "action": action.value,
            "notes": notes,
            "resolvedBy": str(actor_id),
            "resolvedAt": utcnow().isoformat(),
        }
        if adjusted_value is not None:
            resolution["adjustedValue"] = str(adjusted_value)
        return resolution

    @staticmethod
    def _view(detail: EmployeePayrollDetail, irregularity: Irregularity) -> IrregularityView:
        return IrregularityView(
            irregularity=irregularity,
            detail_id=detail.id,
            employee_id=detail.employee_id,
            payroll_run_id=detail.payroll_run_id,
        )
