"""Tests for irregularity detection and review."""

from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_execution.calculators.irregularities import (
    IrregularityDetector,
    attach_irregularities,
)
from payroll_execution.calculators.types import DetectedIrregularity, IrregularityCode
from payroll_execution.errors import AuthorizationError, NotFoundError, PayrollValidationError
from payroll_execution.events import IrregularityEscalated, IrregularityResolved
from payroll_execution.models import EmployeePayrollDetail
from payroll_execution.services.irregularity_service import (
    IrregularityService,
    parse_irregularity_id,
)


def make_detail(**overrides) -> EmployeePayrollDetail:
    values = dict(
        id=uuid4(),
        employee_id=uuid4(),
        payroll_run_id=uuid4(),
        base_salary=Decimal("6000"),
        allowances=Decimal("0"),
        tax_amount=Decimal("600"),
        deductions=Decimal("600"),
        overtime_pay=Decimal("0"),
        net_salary=Decimal("5400"),
        bank_status="valid",
        irregularities=[],
    )
    values.update(overrides)
    return EmployeePayrollDetail(**values)


class TestIrregularityDetector:
    detector = IrregularityDetector("EGP")

    def codes(self, detail):
        return [found.code for found in self.detector.detect(detail)]

    def test_clean_detail(self):
        assert self.codes(make_detail()) == []

    def test_invalid_bank_status(self):
        found = self.detector.detect(make_detail(bank_status="closed"))
        assert [f.code for f in found] == [IrregularityCode.INVALID_BANK_STATUS]
        assert found[0].message == 'Invalid bank status: "closed"'

    def test_missing_bank_not_flagged_twice(self):
        detail = make_detail(
            bank_status="missing",
            irregularities=[{"code": "missing_bank_account"}],
        )
        assert self.codes(detail) == []

    def test_negative_net_salary(self):
        found = self.detector.detect(make_detail(net_salary=Decimal("-150")))
        assert found[0].code == IrregularityCode.NEGATIVE_NET_SALARY
        assert found[0].message == "Negative net salary: EGP -150"

    def test_excessive_overtime(self):
        assert self.codes(make_detail(overtime_pay=Decimal("3100"))) == [
            IrregularityCode.EXCESSIVE_OVERTIME
        ]
        # Exactly 50% is allowed
        assert self.codes(make_detail(overtime_pay=Decimal("3000"))) == []

    def test_high_deductions(self):
        detail = make_detail(deductions=Decimal("3700"), net_salary=Decimal("2300"))
        found = self.detector.detect(detail)
        assert [f.code for f in found] == [IrregularityCode.HIGH_DEDUCTIONS]
        assert found[0].message == "Deductions (61.7%) exceed 60% of gross"


class TestLedgerHelpers:
    def test_attach_extends_exception_string(self):
        detail = make_detail()
        attach_irregularities(
            detail,
            [DetectedIrregularity(IrregularityCode.SALARY_SPIKE, "Sudden salary spike")],
        )
        attach_irregularities(
            detail,
            [DetectedIrregularity(IrregularityCode.MISSING_BANK_ACCOUNT, "Missing bank account")],
        )

        assert detail.exceptions == "Sudden salary spike; Missing bank account"
        ids = [entry["id"] for entry in detail.irregularities]
        assert len(set(ids)) == 2
        assert all(i.startswith(f"{detail.id}_") for i in ids)
        assert all(entry["status"] == "pending" for entry in detail.irregularities)

    def test_parse_irregularity_id(self):
        detail_id = uuid4()
        assert parse_irregularity_id(f"{detail_id}_ab12cd34") == detail_id

        with pytest.raises(NotFoundError):
            parse_irregularity_id("not-an-id")
        with pytest.raises(NotFoundError):
            parse_irregularity_id("garbage_ab12cd34")


@pytest.fixture
def service(session, emitter) -> IrregularityService:
    return IrregularityService(session, emitter)


@pytest.fixture
async def flagged_detail(session, make_employee, draft_run) -> EmployeePayrollDetail:
    employee = await make_employee(bank_account=None)
    detail = make_detail(
        employee_id=employee.id,
        payroll_run_id=draft_run.id,
        bank_status="missing",
    )
    attach_irregularities(
        detail,
        [
            DetectedIrregularity(IrregularityCode.MISSING_BANK_ACCOUNT, "Missing bank account"),
            DetectedIrregularity(IrregularityCode.SALARY_SPIKE, "Sudden salary spike"),
        ],
    )
    session.add(detail)
    await session.flush()
    return detail


class TestIrregularityService:
    @pytest.mark.asyncio
    async def test_list_counts_by_status(self, service, flagged_detail, draft_run):
        listing = await service.list_irregularities(payroll_run_id=draft_run.id)

        assert listing.total == 2
        assert listing.pending == 2
        assert listing.escalated == 0
        assert listing.items[0].detail_id == flagged_detail.id
        assert listing.items[0].irregularity.code == IrregularityCode.MISSING_BANK_ACCOUNT

        with pytest.raises(PayrollValidationError, match="Invalid irregularity status"):
            await service.list_irregularities(status="open")

    @pytest.mark.asyncio
    async def test_escalate(self, service, actors, flagged_detail, received_events):
        irregularity_id = flagged_detail.irregularities[0]["id"]

        view = await service.escalate(irregularity_id, actors.specialist.id, "Bank file rejected")

        assert view.irregularity.status.value == "escalated"
        assert view.irregularity.escalated_by == str(actors.specialist.id)
        assert flagged_detail.irregularities[0]["escalationReason"] == "Bank file rejected"
        assert isinstance(received_events[-1], IrregularityEscalated)

        with pytest.raises(PayrollValidationError, match="already escalated or resolved"):
            await service.escalate(irregularity_id, actors.specialist.id, "Again")

        listing = await service.list_irregularities(status="escalated")
        assert [item.irregularity.id for item in listing.items] == [irregularity_id]
        assert listing.pending == 1

    @pytest.mark.asyncio
    async def test_escalation_needs_reason(self, service, actors, flagged_detail):
        irregularity_id = flagged_detail.irregularities[0]["id"]

        with pytest.raises(PayrollValidationError, match="Escalation reason is required"):
            await service.escalate(irregularity_id, actors.specialist.id, " ")

    @pytest.mark.asyncio
    async def test_resolve(self, service, actors, flagged_detail, received_events):
        irregularity_id = flagged_detail.irregularities[1]["id"]

        view = await service.resolve(
            irregularity_id,
            actors.manager.id,
            "adjusted",
            notes="Raise confirmed by HR",
            adjusted_value=Decimal("5500"),
        )

        assert view.irregularity.status.value == "resolved"
        assert view.irregularity.resolution["action"] == "adjusted"
        assert view.irregularity.resolution["adjustedValue"] == "5500"
        assert flagged_detail.exceptions == ""
        # Other entries stay open
        assert flagged_detail.irregularities[0]["status"] == "pending"
        assert isinstance(received_events[-1], IrregularityResolved)

        with pytest.raises(PayrollValidationError, match="already resolved"):
            await service.resolve(irregularity_id, actors.manager.id, "approved")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["approved", "rejected", "excluded", "adjusted"])
    async def test_every_action_clears_exceptions(
        self, service, actors, flagged_detail, received_events, action
    ):
        irregularity_id = flagged_detail.irregularities[0]["id"]
        assert flagged_detail.exceptions

        view = await service.resolve(irregularity_id, actors.manager.id, action, notes="Reviewed")

        assert view.irregularity.resolution["action"] == action
        assert view.irregularity.resolution["resolvedBy"] == str(actors.manager.id)
        assert flagged_detail.exceptions == ""
        assert received_events[-1].action == action

    @pytest.mark.asyncio
    async def test_resolve_guards(self, service, actors, flagged_detail):
        irregularity_id = flagged_detail.irregularities[0]["id"]

        with pytest.raises(AuthorizationError):
            await service.resolve(irregularity_id, actors.specialist.id, "approved")
        with pytest.raises(PayrollValidationError, match="Invalid action"):
            await service.resolve(irregularity_id, actors.manager.id, "ignore")
        with pytest.raises(NotFoundError, match="Irregularity not found"):
            await service.resolve(f"{flagged_detail.id}_00000000", actors.manager.id, "approved")
        with pytest.raises(NotFoundError, match="Source payroll detail not found"):
            await service.resolve(f"{uuid4()}_00000000", actors.manager.id, "approved")

    @pytest.mark.asyncio
    async def test_auto_resolve_run(self, service, actors, flagged_detail, draft_run):
        resolved = await service.auto_resolve_run(draft_run, actors.manager.id)

        assert resolved == 2
        assert {e["status"] for e in flagged_detail.irregularities} == {"resolved"}
        assert flagged_detail.irregularities[0]["resolution"]["notes"] == (
            "Auto-resolved on manager approval"
        )
        # The display string survives auto-resolution
        assert flagged_detail.exceptions == "Missing bank account; Sudden salary spike"
