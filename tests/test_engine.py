"""Tests for the per-employee pay calculator."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from payroll_execution.calculators.engine import EmployeePayCalculator
from payroll_execution.calculators.rate_resolver import RateResolver
from payroll_execution.calculators.types import AttendanceSummary, PayrollPeriod
from payroll_execution.errors import PayrollValidationError
from payroll_execution.models import (
    CompanySettings,
    Dispute,
    EmployeePayrollDetail,
    EmployeeSigningBonus,
    EmployeeTerminationBenefit,
    LeaveRequest,
    LeaveType,
    PayrollRun,
    Payslip,
    Refund,
    SigningBonusPolicy,
    TerminationBenefitPolicy,
    TerminationRequest,
)

MARCH_2024 = date(2024, 3, 1)
APRIL_2024 = date(2024, 4, 1)


def codes(detail: EmployeePayrollDetail) -> list[str]:
    return [entry["code"] for entry in detail.irregularities]


async def calculate(session, settings, employee, run, month=MARCH_2024):
    snapshot = await RateResolver(session).load_snapshot()
    calculator = EmployeePayCalculator(session, snapshot, settings)
    result = await calculator.calculate(employee, run, PayrollPeriod.for_month(month))
    await session.flush()
    detail = await session.get(EmployeePayrollDetail, result.detail_id)
    return result, detail


class TestProration:
    """Proration by worked days and attendance."""

    def test_prorate_by_days_without_schedule(self):
        prorated = EmployeePayCalculator.prorate(
            Decimal("6000"), AttendanceSummary(), Decimal("15"), 30
        )
        assert prorated == Decimal("3000.00")

    def test_prorate_uses_lower_of_work_and_day_ratio(self):
        attendance = AttendanceSummary(actual_work_minutes=240, scheduled_work_minutes=480)

        # Work ratio 0.5 wins over a full month of days
        assert EmployeePayCalculator.prorate(
            Decimal("6000"), attendance, Decimal("31"), 31
        ) == Decimal("3000.00")

        # Day ratio wins when it is lower
        attendance = AttendanceSummary(actual_work_minutes=480, scheduled_work_minutes=480)
        assert EmployeePayCalculator.prorate(
            Decimal("6000"), attendance, Decimal("15"), 30
        ) == Decimal("3000.00")


class TestEmployeePay:
    """Full pipeline for one employee."""

    @pytest.mark.asyncio
    async def test_full_month_without_configuration(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("6000.00")
        assert detail.base_salary == Decimal("6000.00")
        assert detail.prorated_gross == Decimal("6000.00")
        assert detail.tax_amount == Decimal("0")
        assert detail.days_in_month == 31
        assert detail.bank_status == "valid"
        assert detail.irregularities == []
        assert detail.exceptions is None

    @pytest.mark.asyncio
    async def test_tax_on_base_salary(
        self, session, test_settings, make_employee, tax_rule, draft_run
    ):
        employee = await make_employee()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert detail.tax_amount == Decimal("600.00")
        assert detail.deductions == Decimal("600.00")
        assert detail.net_salary == Decimal("5400.00")
        assert result.net_pay == Decimal("5400.00")
        assert detail.deductions_breakdown["taxReason"] == "Income Tax 0-50K: 10% of 6000"

        payslip = await session.get(Payslip, result.payslip_id)
        assert payslip.payroll_detail_id == detail.id
        assert payslip.net_pay == Decimal("5400.00")
        assert payslip.deductions_details["taxes"][0]["amount"] == "600.00"

    @pytest.mark.asyncio
    async def test_unpaid_leave_prorates_gross_but_not_tax(
        self, session, test_settings, make_employee, tax_rule, draft_run
    ):
        employee = await make_employee()
        unpaid = LeaveType(code="UNPAID", name="Unpaid leave", paid=False)
        session.add(unpaid)
        await session.flush()
        session.add(
            LeaveRequest(
                employee_id=employee.id,
                leave_type_id=unpaid.id,
                date_from=date(2024, 4, 8),
                date_to=date(2024, 4, 12),
                duration_days=Decimal("5"),
                status="APPROVED",
            )
        )
        await session.flush()

        result, detail = await calculate(
            session, test_settings, employee, draft_run, month=APRIL_2024
        )

        assert detail.days_worked == Decimal("25")
        assert detail.prorated_gross == Decimal("5000.00")
        assert detail.tax_amount == Decimal("600.00")
        assert result.net_pay == Decimal("4400.00")
        assert detail.deductions_breakdown["unpaidLeaveReason"] == "5 unpaid leave day(s) deducted"

    @pytest.mark.asyncio
    async def test_inactive_employee_is_rejected(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee(status="SUSPENDED")

        with pytest.raises(PayrollValidationError, match="does not have active status"):
            await calculate(session, test_settings, employee, draft_run)

    @pytest.mark.asyncio
    async def test_missing_bank_account_is_flagged(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee(bank_account=None)

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("6000.00")
        assert detail.bank_status == "missing"
        assert codes(detail) == ["missing_bank_account"]
        assert detail.exceptions == "Missing bank account"

    @pytest.mark.asyncio
    async def test_salary_spike_against_previous_run(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        previous = PayrollRun(
            run_id="PR-2024-02-TEST",
            payroll_period=date(2024, 2, 1),
            entity="Finance",
            status="locked",
        )
        session.add(previous)
        await session.flush()
        session.add(
            EmployeePayrollDetail(
                employee_id=employee.id,
                payroll_run_id=previous.id,
                base_salary=Decimal("4000"),
            )
        )
        await session.flush()

        _, detail = await calculate(session, test_settings, employee, draft_run)

        assert codes(detail) == ["salary_spike"]
        assert "50.0% increase (4000 -> 6000)" in detail.exceptions

    @pytest.mark.asyncio
    async def test_salary_spike_baseline_skips_later_periods_and_errors(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        history = [
            (date(2024, 1, 1), Decimal("4000"), False),
            (date(2024, 2, 1), Decimal("0"), True),
            (date(2024, 4, 1), Decimal("6000"), False),
        ]
        for period, base_salary, failed in history:
            other = PayrollRun(
                run_id=f"PR-{period:%Y-%m}-HIST",
                payroll_period=period,
                entity="Finance",
                status="draft",
            )
            session.add(other)
            await session.flush()
            session.add(
                EmployeePayrollDetail(
                    employee_id=employee.id,
                    payroll_run_id=other.id,
                    base_salary=base_salary,
                    is_processing_error=failed,
                )
            )
            await session.flush()

        _, detail = await calculate(session, test_settings, employee, draft_run)

        # January is the last good detail before March
        assert codes(detail) == ["salary_spike"]
        assert "50.0% increase (4000 -> 6000)" in detail.exceptions


class TestRefunds:
    """Refund inclusion and the minimum-wage floor."""

    @pytest.mark.asyncio
    async def test_dispute_refund_is_paid(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        dispute = Dispute(
            dispute_code="DISP-0001",
            employee_id=employee.id,
            description="Overtime not paid",
            amount=Decimal("250"),
        )
        session.add(dispute)
        await session.flush()
        refund = Refund(
            employee_id=employee.id,
            dispute_id=dispute.id,
            amount=Decimal("250"),
            description="Overtime correction",
        )
        session.add(refund)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("6250.00")
        assert result.refunds_paid == [refund.id]
        assert detail.refunds == Decimal("250.00")
        assert detail.final_gross == Decimal("6250.00")
        assert codes(detail) == ["refunds_included"]

        assert refund.status == "paid"
        assert refund.paid_in_payroll_run_id == draft_run.id

        payslip = await session.get(Payslip, result.payslip_id)
        line = payslip.earnings_details["refunds"][0]
        assert line["type"] == "dispute-refund"
        assert line["dispute"]["disputeId"] == "DISP-0001"
        assert line["referenceId"] == str(refund.id)

    @pytest.mark.asyncio
    async def test_floor_defers_refunds(
        self, session, test_settings, make_employee, tax_rule, draft_run
    ):
        session.add(CompanySettings(minimum_wage=Decimal("6000"), currency="EGP"))
        employee = await make_employee()
        refund = Refund(employee_id=employee.id, amount=Decimal("300"))
        session.add(refund)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        # 6000 + 300 - 600 = 5700, raised to the minimum wage
        assert result.floor_applied is True
        assert result.net_pay == Decimal("6000.00")
        assert result.refunds_deferred == [refund.id]
        assert detail.net_pay == Decimal("6000.00")
        assert detail.refunds == Decimal("0")
        assert detail.refund_details[0]["status"] == "deferred"
        assert codes(detail) == ["minimum_wage_floor", "refunds_deferred"]
        assert "Adjusted from 5700.00 to 6000.00" in detail.exceptions

        assert refund.status == "deferred"
        assert refund.deferred_in_payroll_run_id == draft_run.id
        assert refund.paid_in_payroll_run_id is None

        payslip = await session.get(Payslip, result.payslip_id)
        assert payslip.earnings_details["refunds"] == []
        assert payslip.net_pay == Decimal("6000.00")

    @pytest.mark.asyncio
    async def test_deferred_refund_paid_in_next_run(
        self, session, test_settings, make_employee, tax_rule, draft_run
    ):
        company = CompanySettings(minimum_wage=Decimal("6000"), currency="EGP")
        session.add(company)
        employee = await make_employee()
        refund = Refund(employee_id=employee.id, amount=Decimal("300"))
        session.add(refund)
        await session.flush()

        march, _ = await calculate(session, test_settings, employee, draft_run)
        assert march.refunds_deferred == [refund.id]

        company.minimum_wage = Decimal("5000")
        april = PayrollRun(
            run_id="PR-2024-04-TEST",
            payroll_period=APRIL_2024,
            entity="Finance",
            status="under_review",
        )
        session.add(april)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, april, APRIL_2024)

        # 6000 + 300 - 600 clears the lowered floor
        assert result.floor_applied is False
        assert result.refunds_paid == [refund.id]
        assert result.net_pay == Decimal("5700.00")
        assert detail.refunds == Decimal("300.00")
        assert detail.refund_details[0]["status"] == "paid"

        assert refund.status == "paid"
        assert refund.paid_in_payroll_run_id == april.id
        assert refund.paid_at is not None
        assert refund.deferred_in_payroll_run_id == draft_run.id
        assert refund.deferral_reason is None

    @pytest.mark.asyncio
    async def test_floor_leaves_approved_bonus_unpaid(
        self, session, test_settings, make_employee, tax_rule, draft_run
    ):
        session.add(CompanySettings(minimum_wage=Decimal("6000"), currency="EGP"))
        employee = await make_employee()
        bonus = EmployeeSigningBonus(
            employee_id=employee.id, given_amount=Decimal("1000"), status="approved"
        )
        session.add(bonus)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert result.floor_applied is True
        assert result.net_pay == Decimal("6000.00")
        assert result.bonus_paid == Decimal("0")
        assert detail.bonus == Decimal("0")

        assert bonus.status == "approved"
        assert bonus.paid_in_payroll_run_id is None
        payslip = await session.get(Payslip, result.payslip_id)
        assert payslip.earnings_details["bonuses"] == []

    @pytest.mark.asyncio
    async def test_zero_refund_is_skipped(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        session.add(Refund(employee_id=employee.id, amount=Decimal("0")))
        await session.flush()

        result, _ = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("6000.00")
        assert result.refunds_paid == []


class TestBonusesAndBenefits:
    """Signing bonuses and termination benefits flowing through a run."""

    @pytest.mark.asyncio
    async def test_approved_signing_bonus_is_paid(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        bonus = EmployeeSigningBonus(
            employee_id=employee.id, given_amount=Decimal("1000"), status="approved"
        )
        session.add(bonus)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("7000.00")
        assert result.bonus_paid == Decimal("1000.00")
        assert detail.bonus == Decimal("1000.00")
        assert bonus.status == "paid"
        assert bonus.paid_in_payroll_run_id == draft_run.id

        payslip = await session.get(Payslip, result.payslip_id)
        assert payslip.earnings_details["bonuses"] == [
            {"id": str(bonus.id), "type": "signing_bonus", "amount": "1000.00"}
        ]

    @pytest.mark.asyncio
    async def test_pending_signing_bonus_is_not_paid(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee()
        session.add(
            EmployeeSigningBonus(
                employee_id=employee.id, given_amount=Decimal("1000"), status="pending"
            )
        )
        await session.flush()

        result, _ = await calculate(session, test_settings, employee, draft_run)

        assert result.net_pay == Decimal("6000.00")

    @pytest.mark.asyncio
    async def test_mid_month_hire_gets_prorated_pay_and_pending_bonus(
        self, session, test_settings, make_employee, draft_run
    ):
        session.add(
            SigningBonusPolicy(position_name="Accountant", amount=Decimal("1500"), status="approved")
        )
        employee = await make_employee(date_of_hire=date(2024, 4, 16))

        result, detail = await calculate(
            session, test_settings, employee, draft_run, month=APRIL_2024
        )

        assert detail.days_worked == Decimal("15")
        assert result.net_pay == Decimal("3000.00")

        bonuses = (
            await session.execute(
                select(EmployeeSigningBonus).where(EmployeeSigningBonus.employee_id == employee.id)
            )
        ).scalars().all()
        assert len(bonuses) == 1
        assert bonuses[0].status == "pending"
        assert bonuses[0].given_amount == Decimal("1500")

    @pytest.mark.asyncio
    async def test_hire_without_policy_creates_no_bonus(
        self, session, test_settings, make_employee, draft_run
    ):
        employee = await make_employee(date_of_hire=date(2024, 3, 1), position="Intern")

        await calculate(session, test_settings, employee, draft_run)

        count = (
            await session.execute(
                select(EmployeeSigningBonus).where(EmployeeSigningBonus.employee_id == employee.id)
            )
        ).scalars().all()
        assert count == []

    @pytest.mark.asyncio
    async def test_termination_prorates_and_creates_benefit(
        self, session, test_settings, make_employee, draft_run
    ):
        session.add(
            TerminationBenefitPolicy(name="End of service", amount=Decimal("2000"), status="approved")
        )
        employee = await make_employee()
        termination = TerminationRequest(
            employee_id=employee.id,
            status="APPROVED",
            effective_date=date(2024, 3, 15),
        )
        session.add(termination)
        await session.flush()

        result, detail = await calculate(session, test_settings, employee, draft_run)

        assert detail.days_worked == Decimal("15")
        # 6000 / 31 * 15
        assert result.net_pay == Decimal("2903.23")

        benefit = (
            await session.execute(
                select(EmployeeTerminationBenefit).where(
                    EmployeeTerminationBenefit.employee_id == employee.id
                )
            )
        ).scalar_one()
        assert benefit.status == "pending"
        assert benefit.given_amount == Decimal("2000")
        assert benefit.termination_request_id == termination.id

    def test_error_detail_carries_processing_error(self):
        detail = EmployeePayCalculator.build_error_detail(uuid4(), uuid4(), "boom")

        assert detail.is_processing_error is True
        assert detail.net_pay == Decimal("0")
        assert codes(detail) == ["processing_error"]
        assert detail.exceptions == "boom"
