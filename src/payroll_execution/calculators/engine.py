"""Employee pay calculator - the per-employee payroll pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.attendance import AttendanceAggregator
from payroll_execution.calculators.irregularities import attach_irregularities
from payroll_execution.calculators.penalties import PenaltyCalculator
from payroll_execution.calculators.rate_resolver import (
    calculate_insurance,
    calculate_tax,
    resolve_allowances,
    resolve_base_salary,
)
from payroll_execution.calculators.types import (
    ZERO,
    AttendanceSummary,
    BankStatus,
    ConfigurationSnapshot,
    DetectedIrregularity,
    EmployeePayResult,
    IrregularityCode,
    PaymentStatus,
    PayrollPeriod,
    format_number,
    money,
)
from payroll_execution.config import Settings, get_settings
from payroll_execution.errors import PayrollValidationError
from payroll_execution.models import (
    Claim,
    Dispute,
    Employee,
    EmployeeAllowance,
    EmployeePayrollDetail,
    EmployeePenalty,
    EmployeeSigningBonus,
    EmployeeTerminationBenefit,
    PayGrade,
    PayrollRun,
    Payslip,
    Refund,
    SigningBonusPolicy,
    TerminationBenefitPolicy,
    TerminationRequest,
)
from payroll_execution.models.base import utcnow
from payroll_execution.services.state_machine import (
    BenefitStatus,
    BonusStatus,
    RefundStatus,
    SigningBonusStateMachine,
    TerminationBenefitStateMachine,
)

logger = logging.getLogger(__name__)

APPROVED_TERMINATION_STATUSES = ("APPROVED", "approved")
ELIGIBLE_REFUND_STATUSES = (RefundStatus.PENDING.value, RefundStatus.DEFERRED.value)
FLOOR_DEFERRAL_REASON = "Minimum wage floor applied"


@dataclass
class RefundLine:
    """An eligible refund and its payslip breakdown entry."""

    refund: Refund
    amount: Decimal
    breakdown: dict[str, Any]


@dataclass
class PayComputation:
    """Intermediate figures for one employee, before persistence."""

    base_salary: Decimal = ZERO
    allowances: Decimal = ZERO
    allowance_items: list[dict[str, Any]] = field(default_factory=list)
    days_worked: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    attendance: AttendanceSummary = field(default_factory=AttendanceSummary)
    prorated_gross: Decimal = ZERO
    final_gross: Decimal = ZERO
    tax_amount: Decimal = ZERO
    tax_reason: str = ""
    tax_entries: list[dict[str, Any]] = field(default_factory=list)
    insurance_amount: Decimal = ZERO
    insurance_reason: str = ""
    insurance_entries: list[dict[str, Any]] = field(default_factory=list)
    misconduct_penalty: Decimal = ZERO
    missing_work_penalty: Decimal = ZERO
    missing_work_reason: str = ""
    lateness_penalty: Decimal = ZERO
    lateness_reason: str = ""
    overtime_pay: Decimal = ZERO
    overtime_reason: str = ""
    overtime_hours: Decimal = ZERO
    overtime_rate: Decimal = ZERO
    total_refunds: Decimal = ZERO

    @property
    def gross_salary(self) -> Decimal:
        return self.base_salary + self.allowances

    @property
    def total_penalties(self) -> Decimal:
        return money(self.misconduct_penalty + self.missing_work_penalty + self.lateness_penalty)

    @property
    def total_deductions(self) -> Decimal:
        return money(self.tax_amount + self.insurance_amount)

    @property
    def net_salary(self) -> Decimal:
        return money(self.final_gross - self.total_deductions)

    @property
    def net_pay(self) -> Decimal:
        return money(self.net_salary - self.total_penalties + self.overtime_pay)

    def penalty_items(self) -> list[dict[str, str]]:
        items = []
        if self.misconduct_penalty > 0:
            items.append(
                {
                    "reason": "Misconduct penalties (from Payroll Tracking)",
                    "amount": str(self.misconduct_penalty),
                }
            )
        if self.missing_work_penalty > 0:
            items.append(
                {
                    "reason": self.missing_work_reason
                    or f"Missing work: {self.attendance.missing_work_minutes} minutes",
                    "amount": str(self.missing_work_penalty),
                }
            )
        if self.lateness_penalty > 0:
            items.append(
                {
                    "reason": self.lateness_reason
                    or f"Lateness: {self.attendance.lateness_minutes} minutes",
                    "amount": str(self.lateness_penalty),
                }
            )
        return items


class EmployeePayCalculator:
    """Computes and persists one employee's pay for a run.

    Pipeline (stable order per employee):
    1) Collect eligible refunds with dispute/claim provenance
    2) Validate active status
    3) Resolve base salary and allowances
    4) Compute days worked (hire, termination, unpaid leave)
    5) Aggregate attendance, penalties and overtime
    6) Prorate gross, compute tax and insurance
    7) Net salary / net pay
    8) Minimum-wage floor (early exit, refunds deferred)
    9) Flag irregularities, include approved bonus and benefit
    10) Persist detail, payslip and refund markers

    All figures are computed before anything is added to the session, so a
    failure in steps 1-7 leaves no partial detail behind.
    """

    def __init__(
        self,
        session: AsyncSession,
        snapshot: ConfigurationSnapshot,
        settings: Settings | None = None,
    ):
        self.session = session
        self.snapshot = snapshot
        self.settings = settings or get_settings()
        self.attendance = AttendanceAggregator(session, self.settings.default_scheduled_minutes)
        self.penalties = PenaltyCalculator(snapshot)

    async def calculate(
        self,
        employee: Employee,
        run: PayrollRun,
        period: PayrollPeriod,
    ) -> EmployeePayResult:
        """Calculate pay for a single employee and stage the records."""
        days_in_month = period.days_in_month
        calc = PayComputation()

        # 1) Refunds
        refunds = await self._eligible_refunds(employee.id)
        calc.total_refunds = money(sum((r.amount for r in refunds), ZERO))

        # 2) Active status
        if not employee.is_active:
            raise PayrollValidationError(
                f"Employee {employee.id} does not have active status. "
                f"Current status: {employee.status}"
            )

        # 3) Base salary and allowances
        pay_grade_salary = await self._pay_grade_salary(employee)
        calc.base_salary = resolve_base_salary(
            pay_grade_salary,
            employee.base_salary,
            self.snapshot.minimum_wage,
            self.settings.fallback_base_salary,
        )
        employee_allowances = await self._employee_allowances(employee.id)
        calc.allowances = resolve_allowances(employee_allowances, self.snapshot)
        if employee_allowances is not None:
            calc.allowance_items = [
                {"name": a.get("name"), "amount": str(a.get("amount") or 0)}
                for a in employee_allowances
            ]
        else:
            calc.allowance_items = [a.to_dict() for a in self.snapshot.allowances]

        # 4) Days worked
        days_worked = Decimal(days_in_month)
        if employee.date_of_hire and period.contains(employee.date_of_hire):
            days_from_hire = (period.end - employee.date_of_hire).days + 1
            days_worked = Decimal(min(days_from_hire, days_in_month))
            await self._auto_create_signing_bonus(employee)

        termination = await self._approved_termination(employee.id)
        if termination is not None and termination.effective_date:
            if period.contains(termination.effective_date):
                days_until_term = (termination.effective_date - period.start).days + 1
                days_worked = min(Decimal(days_until_term), days_worked)
                await self._auto_create_termination_benefit(employee, termination)

        calc.unpaid_leave_days = await self.attendance.unpaid_leave_days(
            employee.id, period.start, period.end
        )
        calc.days_worked = max(ZERO, days_worked - calc.unpaid_leave_days)

        # 5) Attendance, penalties, overtime
        calc.attendance = await self.attendance.summarize(employee.id, period.start, period.end)
        penalties = self.penalties.calculate_penalties(
            calc.base_salary, calc.attendance, days_in_month
        )
        calc.missing_work_penalty = penalties.missing_work_penalty
        calc.missing_work_reason = penalties.missing_work_reason
        calc.lateness_penalty = penalties.lateness_penalty
        calc.lateness_reason = penalties.lateness_reason

        overtime = self.penalties.calculate_overtime(
            calc.base_salary, calc.attendance.overtime_minutes, days_in_month
        )
        calc.overtime_pay = overtime.overtime_pay
        calc.overtime_reason = overtime.overtime_reason
        calc.overtime_hours = overtime.overtime_hours
        calc.overtime_rate = overtime.overtime_rate

        calc.misconduct_penalty = await self._misconduct_penalties(employee.id)

        # 6) Proration, tax, insurance
        calc.prorated_gross = self.prorate(
            calc.gross_salary, calc.attendance, calc.days_worked, days_in_month
        )

        tax = calculate_tax(self.snapshot.tax_rules, calc.base_salary)
        calc.tax_amount = tax.amount
        calc.tax_reason = tax.reason
        if tax.rule is not None:
            calc.tax_entries = [
                {
                    "name": tax.rule.name or "Tax",
                    "rate": format_number(tax.rule.rate or ZERO),
                    "amount": str(tax.amount),
                }
            ]

        insurance = calculate_insurance(
            self.snapshot.insurance_brackets, calc.base_salary, calc.prorated_gross
        )
        calc.insurance_amount = insurance.amount
        calc.insurance_reason = insurance.reason
        if insurance.bracket is not None:
            calc.insurance_entries = [
                {**insurance.bracket.to_dict(), "amount": str(insurance.amount)}
            ]

        # 7) Net figures
        calc.final_gross = money(calc.prorated_gross + calc.total_refunds)
        bank_status = BankStatus.VALID if employee.has_bank_account else BankStatus.MISSING

        # 8) Minimum-wage floor
        minimum_wage = self.snapshot.minimum_wage or ZERO
        prorated_minimum = money(minimum_wage / days_in_month * calc.days_worked)
        if minimum_wage > 0 and calc.net_pay < prorated_minimum:
            return self._persist_floor_adjusted(
                employee, run, period, calc, refunds, bank_status, prorated_minimum
            )

        # 9) Irregularities, bonus and benefit
        flagged: list[DetectedIrregularity] = []
        if refunds:
            flagged.append(
                DetectedIrregularity(
                    IrregularityCode.REFUNDS_INCLUDED,
                    f"{len(refunds)} refund(s): +{format_number(calc.total_refunds)} "
                    f"{self.snapshot.currency}",
                )
            )

        net_pay = calc.net_pay
        if net_pay < 0:
            flagged.append(
                DetectedIrregularity(
                    IrregularityCode.NEGATIVE_NET_PAY,
                    f"Negative net pay: {net_pay:.2f}",
                )
            )
            net_pay = ZERO

        if bank_status == BankStatus.MISSING:
            flagged.append(
                DetectedIrregularity(IrregularityCode.MISSING_BANK_ACCOUNT, "Missing bank account")
            )

        spike = await self._salary_spike(employee.id, run, calc.base_salary)
        if spike is not None:
            flagged.append(spike)

        bonus = await self._approved_signing_bonus(employee.id)
        benefit = await self._approved_termination_benefit(employee.id)
        bonus_amount = money(bonus.given_amount) if bonus else ZERO
        benefit_amount = money(benefit.given_amount) if benefit else ZERO
        net_pay = money(net_pay + bonus_amount + benefit_amount)

        # 10) Persist
        now = utcnow()
        detail = self._build_detail(
            employee, run, period, calc, bank_status, net_pay, bonus_amount, benefit_amount
        )
        detail.refunds = calc.total_refunds
        detail.refund_details = [
            {**line.breakdown, "status": RefundStatus.PAID.value} for line in refunds
        ]
        attach_irregularities(detail, flagged, now)
        self.session.add(detail)

        if bonus is not None:
            SigningBonusStateMachine.validate_transition(bonus.status, BonusStatus.PAID)
            bonus.status = BonusStatus.PAID.value
            bonus.payment_date = now
            bonus.paid_in_payroll_run_id = run.id
        if benefit is not None:
            TerminationBenefitStateMachine.validate_transition(benefit.status, BenefitStatus.PAID)
            benefit.status = BenefitStatus.PAID.value
            benefit.paid_in_payroll_run_id = run.id

        payslip = self._build_payslip(
            employee,
            run,
            detail,
            calc,
            refunds,
            net_pay,
            bonuses=[self._bonus_entry(bonus)] if bonus else [],
            benefits=[self._benefit_entry(benefit)] if benefit else [],
        )
        self.session.add(payslip)

        for line in refunds:
            line.refund.status = RefundStatus.PAID.value
            line.refund.paid_in_payroll_run_id = run.id
            line.refund.paid_at = now
            line.refund.deferral_reason = None

        logger.debug(
            "Employee %s in run %s: net pay %s (%s refund(s) paid)",
            employee.id,
            run.run_id,
            net_pay,
            len(refunds),
        )
        return EmployeePayResult(
            employee_id=employee.id,
            detail_id=detail.id,
            net_pay=net_pay,
            payslip_id=payslip.id,
            refunds_paid=[line.refund.id for line in refunds],
            bonus_paid=bonus_amount,
            benefit_paid=benefit_amount,
        )

    @staticmethod
    def prorate(
        gross_salary: Decimal,
        attendance: AttendanceSummary,
        days_worked: Decimal,
        days_in_month: int,
    ) -> Decimal:
        """Scale gross by worked time, bounded by the worked-days ratio.

        Without schedule data, gross is prorated by days only.
        """
        if attendance.has_schedule:
            work_ratio = min(
                Decimal(attendance.actual_work_minutes)
                / Decimal(attendance.scheduled_work_minutes),
                Decimal(1),
            )
            days_ratio = Decimal(days_worked) / Decimal(days_in_month)
            return money(gross_salary * min(work_ratio, days_ratio))
        return money(gross_salary / Decimal(days_in_month) * Decimal(days_worked))

    @staticmethod
    def build_error_detail(
        employee_id: UUID, run_id: UUID, message: str
    ) -> EmployeePayrollDetail:
        """Synthetic detail recorded when an employee fails to process."""
        detail = EmployeePayrollDetail(
            id=uuid4(),
            employee_id=employee_id,
            payroll_run_id=run_id,
            base_salary=ZERO,
            allowances=ZERO,
            deductions=ZERO,
            net_salary=ZERO,
            net_pay=ZERO,
            bank_status=BankStatus.MISSING.value,
            is_processing_error=True,
            payment_status=PaymentStatus.PENDING.value,
            deductions_breakdown={},
            attendance_summary={},
            overtime_details={},
            refund_details=[],
            irregularities=[],
        )
        attach_irregularities(
            detail,
            [DetectedIrregularity(IrregularityCode.PROCESSING_ERROR, message or "Processing error")],
        )
        return detail

    # ===== Persistence helpers =====

    def _persist_floor_adjusted(
        self,
        employee: Employee,
        run: PayrollRun,
        period: PayrollPeriod,
        calc: PayComputation,
        refunds: list[RefundLine],
        bank_status: BankStatus,
        prorated_minimum: Decimal,
    ) -> EmployeePayResult:
        """Write a floor-adjusted detail; refunds are deferred, bonuses skipped."""
        flagged = [
            DetectedIrregularity(
                IrregularityCode.MINIMUM_WAGE_FLOOR,
                f"Net pay below minimum wage. Adjusted from {calc.net_pay:.2f} "
                f"to {prorated_minimum:.2f}",
            )
        ]
        if bank_status == BankStatus.MISSING:
            flagged.append(
                DetectedIrregularity(IrregularityCode.MISSING_BANK_ACCOUNT, "Missing bank account")
            )
        if refunds:
            flagged.append(
                DetectedIrregularity(
                    IrregularityCode.REFUNDS_DEFERRED,
                    f"{len(refunds)} refund(s) deferred to next payroll: "
                    f"+{format_number(calc.total_refunds)} {self.snapshot.currency}",
                )
            )

        now = utcnow()
        detail = self._build_detail(
            employee, run, period, calc, bank_status, prorated_minimum, ZERO, ZERO
        )
        detail.refunds = ZERO
        detail.refund_details = [
            {**line.breakdown, "status": RefundStatus.DEFERRED.value} for line in refunds
        ]
        attach_irregularities(detail, flagged, now)
        self.session.add(detail)

        payslip = self._build_payslip(
            employee, run, detail, calc, [], prorated_minimum, bonuses=[], benefits=[]
        )
        payslip.total_gross_salary = calc.prorated_gross
        self.session.add(payslip)

        for line in refunds:
            line.refund.status = RefundStatus.DEFERRED.value
            line.refund.deferred_in_payroll_run_id = run.id
            line.refund.deferral_reason = FLOOR_DEFERRAL_REASON

        logger.info(
            "Employee %s in run %s: net pay raised to minimum wage %s; %s refund(s) deferred",
            employee.id,
            run.run_id,
            prorated_minimum,
            len(refunds),
        )
        return EmployeePayResult(
            employee_id=employee.id,
            detail_id=detail.id,
            net_pay=prorated_minimum,
            floor_applied=True,
            payslip_id=payslip.id,
            refunds_deferred=[line.refund.id for line in refunds],
        )

    def _build_detail(
        self,
        employee: Employee,
        run: PayrollRun,
        period: PayrollPeriod,
        calc: PayComputation,
        bank_status: BankStatus,
        net_pay: Decimal,
        bonus_amount: Decimal,
        benefit_amount: Decimal,
    ) -> EmployeePayrollDetail:
        unpaid_reason = (
            f"{format_number(calc.unpaid_leave_days)} unpaid leave day(s) deducted"
            if calc.unpaid_leave_days > 0
            else ""
        )
        return EmployeePayrollDetail(
            id=uuid4(),
            employee_id=employee.id,
            payroll_run_id=run.id,
            base_salary=calc.base_salary,
            allowances=calc.allowances,
            prorated_gross=calc.prorated_gross,
            final_gross=calc.final_gross,
            tax_amount=calc.tax_amount,
            insurance_amount=calc.insurance_amount,
            deductions=calc.total_deductions,
            penalties=calc.total_penalties,
            overtime_pay=calc.overtime_pay,
            refunds=ZERO,
            bonus=bonus_amount,
            benefit=benefit_amount,
            net_salary=calc.net_salary,
            net_pay=net_pay,
            days_in_month=period.days_in_month,
            days_worked=calc.days_worked,
            unpaid_leave_days=calc.unpaid_leave_days,
            deductions_breakdown={
                "tax": str(calc.tax_amount),
                "taxReason": calc.tax_reason,
                "insurance": str(calc.insurance_amount),
                "insuranceReason": calc.insurance_reason,
                "penalties": {
                    "misconduct": str(calc.misconduct_penalty),
                    "misconductReason": (
                        "From Payroll Tracking - Employee Penalties"
                        if calc.misconduct_penalty > 0
                        else ""
                    ),
                    "missingWork": str(calc.missing_work_penalty),
                    "missingWorkReason": calc.missing_work_reason,
                    "lateness": str(calc.lateness_penalty),
                    "latenessReason": calc.lateness_reason,
                    "total": str(calc.total_penalties),
                },
                "unpaidLeaveDays": format_number(calc.unpaid_leave_days),
                "unpaidLeaveReason": unpaid_reason,
                "total": str(money(calc.total_deductions + calc.total_penalties)),
            },
            attendance_summary=calc.attendance.to_dict(calc.unpaid_leave_days),
            overtime_details={
                "minutes": calc.attendance.overtime_minutes,
                "hours": str(calc.overtime_hours),
                "rate": format_number(calc.overtime_rate),
                "amount": str(calc.overtime_pay),
                "reason": calc.overtime_reason,
            },
            refund_details=[],
            bank_status=bank_status.value,
            irregularities=[],
            payment_status=PaymentStatus.PENDING.value,
        )

    def _build_payslip(
        self,
        employee: Employee,
        run: PayrollRun,
        detail: EmployeePayrollDetail,
        calc: PayComputation,
        refunds: list[RefundLine],
        net_pay: Decimal,
        bonuses: list[dict[str, Any]],
        benefits: list[dict[str, Any]],
    ) -> Payslip:
        return Payslip(
            id=uuid4(),
            employee_id=employee.id,
            payroll_run_id=run.id,
            payroll_detail_id=detail.id,
            earnings_details={
                "baseSalary": str(calc.base_salary),
                "allowances": calc.allowance_items,
                "refunds": [
                    {
                        "type": line.breakdown["type"],
                        "description": line.breakdown["description"],
                        "amount": line.breakdown["amount"],
                        "referenceId": line.breakdown["refundId"],
                        "dispute": line.breakdown.get("dispute"),
                        "claim": line.breakdown.get("claim"),
                    }
                    for line in refunds
                ],
                "bonuses": bonuses,
                "benefits": benefits,
            },
            deductions_details={
                "taxes": calc.tax_entries,
                "insurances": calc.insurance_entries,
                "penalties": calc.penalty_items(),
                "taxAmount": str(calc.tax_amount),
                "insuranceAmount": str(calc.insurance_amount),
                "penaltiesAmount": str(calc.total_penalties),
            },
            total_gross_salary=calc.final_gross,
            total_deductions=money(calc.total_deductions + calc.total_penalties),
            net_pay=net_pay,
            payment_status=PaymentStatus.PENDING.value,
        )

    @staticmethod
    def _bonus_entry(bonus: EmployeeSigningBonus) -> dict[str, Any]:
        return {
            "id": str(bonus.id),
            "type": "signing_bonus",
            "amount": str(money(bonus.given_amount)),
        }

    @staticmethod
    def _benefit_entry(benefit: EmployeeTerminationBenefit) -> dict[str, Any]:
        return {
            "id": str(benefit.id),
            "type": "termination_benefit",
            "amount": str(money(benefit.given_amount)),
        }

    # ===== Lookups =====

    async def _eligible_refunds(self, employee_id: UUID) -> list[RefundLine]:
        """Pending or deferred refunds never paid in any run."""
        result = await self.session.execute(
            select(Refund)
            .where(
                Refund.employee_id == employee_id,
                Refund.status.in_(ELIGIBLE_REFUND_STATUSES),
                Refund.paid_in_payroll_run_id.is_(None),
            )
            .order_by(Refund.created_at)
        )
        lines: list[RefundLine] = []
        for refund in result.scalars().all():
            amount = money(refund.amount)
            if amount <= 0:
                logger.debug("Skipping refund %s with amount %s", refund.id, amount)
                continue

            breakdown: dict[str, Any] = {
                "refundId": str(refund.id),
                "amount": str(amount),
                "description": refund.description or "Employee refund",
                "type": "refund",
            }
            if refund.dispute_id is not None:
                dispute = await self.session.get(Dispute, refund.dispute_id)
                if dispute is not None:
                    breakdown["dispute"] = {
                        "id": str(dispute.id),
                        "disputeId": dispute.dispute_code,
                        "description": dispute.description,
                        "originalAmount": str(dispute.amount or ZERO),
                    }
                    breakdown["type"] = "dispute-refund"
            if refund.claim_id is not None:
                claim = await self.session.get(Claim, refund.claim_id)
                if claim is not None:
                    breakdown["claim"] = {
                        "id": str(claim.id),
                        "claimId": claim.claim_code,
                        "description": claim.description,
                        "claimType": claim.claim_type,
                        "originalAmount": str(claim.amount or claim.approved_amount or ZERO),
                    }
                    breakdown["type"] = "claim-refund"
            lines.append(RefundLine(refund=refund, amount=amount, breakdown=breakdown))
        return lines

    async def _pay_grade_salary(self, employee: Employee) -> Decimal | None:
        if employee.pay_grade_id is None:
            return None
        grade = await self.session.get(PayGrade, employee.pay_grade_id)
        if grade is None or grade.status != "approved":
            logger.warning(
                "Pay grade %s for employee %s not found or not approved",
                employee.pay_grade_id,
                employee.id,
            )
            return None
        return grade.base_salary

    async def _employee_allowances(self, employee_id: UUID) -> list[dict[str, Any]] | None:
        result = await self.session.execute(
            select(EmployeeAllowance)
            .where(
                EmployeeAllowance.employee_id == employee_id,
                EmployeeAllowance.status == "approved",
            )
            .order_by(EmployeeAllowance.created_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None or not isinstance(row.allowances, list):
            return None
        return row.allowances

    async def _approved_termination(self, employee_id: UUID) -> TerminationRequest | None:
        result = await self.session.execute(
            select(TerminationRequest)
            .where(
                TerminationRequest.employee_id == employee_id,
                TerminationRequest.status.in_(APPROVED_TERMINATION_STATUSES),
            )
            .order_by(TerminationRequest.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _misconduct_penalties(self, employee_id: UUID) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(EmployeePenalty.amount), 0)).where(
                EmployeePenalty.employee_id == employee_id
            )
        )
        return money(result.scalar_one())

    async def _salary_spike(
        self, employee_id: UUID, run: PayrollRun, base_salary: Decimal
    ) -> DetectedIrregularity | None:
        """Compare base salary with the employee's last calculated detail of an earlier period."""
        result = await self.session.execute(
            select(EmployeePayrollDetail.base_salary)
            .join(PayrollRun, PayrollRun.id == EmployeePayrollDetail.payroll_run_id)
            .where(
                EmployeePayrollDetail.employee_id == employee_id,
                EmployeePayrollDetail.is_processing_error.is_(False),
                PayrollRun.payroll_period < run.payroll_period,
            )
            .order_by(PayrollRun.payroll_period.desc(), EmployeePayrollDetail.created_at.desc())
            .limit(1)
        )
        previous = result.scalar_one_or_none()
        if not previous or previous <= 0:
            return None

        change = (base_salary - previous) / previous * 100
        if change <= self.settings.salary_spike_threshold_percent:
            return None
        return DetectedIrregularity(
            IrregularityCode.SALARY_SPIKE,
            f"Sudden salary spike: {change:.1f}% increase "
            f"({format_number(previous)} -> {format_number(base_salary)})",
        )

    async def _approved_signing_bonus(self, employee_id: UUID) -> EmployeeSigningBonus | None:
        result = await self.session.execute(
            select(EmployeeSigningBonus)
            .where(
                EmployeeSigningBonus.employee_id == employee_id,
                EmployeeSigningBonus.status == BonusStatus.APPROVED.value,
            )
            .order_by(EmployeeSigningBonus.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _approved_termination_benefit(
        self, employee_id: UUID
    ) -> EmployeeTerminationBenefit | None:
        result = await self.session.execute(
            select(EmployeeTerminationBenefit)
            .where(
                EmployeeTerminationBenefit.employee_id == employee_id,
                EmployeeTerminationBenefit.status == BenefitStatus.APPROVED.value,
            )
            .order_by(EmployeeTerminationBenefit.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ===== Automatic bonus / benefit creation =====

    async def _auto_create_signing_bonus(self, employee: Employee) -> None:
        """Create a pending signing bonus for a mid-period hire.

        Only when an approved policy exists for the employee's position and
        no signing bonus was ever created for the employee. Runs in its own
        SAVEPOINT so a failure is logged without failing the employee.
        """
        employee_id = employee.id
        try:
            async with self.session.begin_nested():
                existing = await self.session.execute(
                    select(EmployeeSigningBonus.id)
                    .where(EmployeeSigningBonus.employee_id == employee_id)
                    .limit(1)
                )
                if existing.scalar_one_or_none() is not None or not employee.position:
                    return

                policy = (
                    await self.session.execute(
                        select(SigningBonusPolicy)
                        .where(
                            SigningBonusPolicy.position_name == employee.position,
                            SigningBonusPolicy.status == "approved",
                        )
                        .order_by(SigningBonusPolicy.created_at)
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if policy is None or not policy.amount or policy.amount <= 0:
                    return

                self.session.add(
                    EmployeeSigningBonus(
                        employee_id=employee_id,
                        policy_id=policy.id,
                        given_amount=policy.amount,
                        status=BonusStatus.PENDING.value,
                    )
                )
                await self.session.flush()
            logger.info("Created pending signing bonus for employee %s", employee_id)
        except Exception:
            logger.exception("Error auto-processing signing bonus for employee %s", employee_id)

    async def _auto_create_termination_benefit(
        self, employee: Employee, termination: TerminationRequest
    ) -> None:
        """Create a pending termination benefit for an approved termination."""
        employee_id = employee.id
        termination_id = termination.id
        try:
            async with self.session.begin_nested():
                existing = await self.session.execute(
                    select(EmployeeTerminationBenefit.id)
                    .where(
                        EmployeeTerminationBenefit.employee_id == employee_id,
                        EmployeeTerminationBenefit.termination_request_id == termination_id,
                    )
                    .limit(1)
                )
                if existing.scalar_one_or_none() is not None:
                    return

                policy = (
                    await self.session.execute(
                        select(TerminationBenefitPolicy)
                        .where(TerminationBenefitPolicy.status == "approved")
                        .order_by(TerminationBenefitPolicy.created_at)
                        .limit(1)
                    )
                ).scalar_one_or_none()
                if policy is None:
                    return

                self.session.add(
                    EmployeeTerminationBenefit(
                        employee_id=employee_id,
                        policy_id=policy.id,
                        termination_request_id=termination_id,
                        given_amount=policy.amount or ZERO,
                        status=BenefitStatus.PENDING.value,
                    )
                )
                await self.session.flush()
            logger.info("Created pending termination benefit for employee %s", employee_id)
        except Exception:
            logger.exception(
                "Error auto-processing termination benefit for employee %s", employee_id
            )
