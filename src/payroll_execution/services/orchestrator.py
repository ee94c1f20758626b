"""Run orchestrator - processes every eligible employee of a payroll run."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.engine import EmployeePayCalculator
from payroll_execution.calculators.irregularities import IrregularityDetector, attach_irregularities
from payroll_execution.calculators.rate_resolver import RateResolver
from payroll_execution.calculators.types import (
    ZERO,
    ConfigurationSnapshot,
    PayrollPeriod,
    RunProcessingResult,
    money,
)
from payroll_execution.config import Settings, get_settings
from payroll_execution.errors import PayrollValidationError
from payroll_execution.models import (
    Department,
    Employee,
    EmployeePayrollDetail,
    PayrollRun,
)
from payroll_execution.models.employee import ACTIVE_EMPLOYEE_STATUSES

logger = logging.getLogger(__name__)

REPROCESS_MESSAGE = "Payroll details already exist for this run. Cannot reprocess."


class RunOrchestrator:
    """Processes a payroll run end to end.

    Steps:
    1) Refuse if the run already has detail records
    2) Resolve the active roster for the run's entity
    3) Resolve the configuration snapshot once
    4) Calculate each employee, isolating per-employee failures
    5) Run irregularity detection over the persisted details
    6) Recompute run totals from the persisted details

    The orchestrator never commits; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def process_run(self, run: PayrollRun) -> RunProcessingResult:
        result = RunProcessingResult(payroll_run_id=run.id)

        if await self._detail_count(run) > 0:
            raise PayrollValidationError(REPROCESS_MESSAGE)

        period = PayrollPeriod.for_month(run.payroll_period)
        employees = await self._eligible_employees(run)
        logger.info(
            "Run %s: %d active employee(s) for period %s",
            run.run_id,
            len(employees),
            period.label,
        )

        if not employees:
            run.employees = 0
            run.exceptions = 0
            run.total_net_pay = ZERO
            await self.session.flush()
            return result

        snapshot = await RateResolver(self.session).load_snapshot()
        calculator = EmployeePayCalculator(self.session, snapshot, self.settings)

        for employee in employees:
            employee_id = employee.id
            try:
                # One SAVEPOINT per employee: a failed calculation or a
                # rejected row rolls back that employee's writes only
                async with self.session.begin_nested():
                    pay = await calculator.calculate(employee, run, period)
                    await self.session.flush()
            except Exception as exc:
                logger.exception("Error processing employee %s in run %s", employee_id, run.run_id)
                self.session.add(
                    EmployeePayCalculator.build_error_detail(
                        employee_id, run.id, str(exc) or "Processing error"
                    )
                )
                # A failure here is not employee-specific; let it abort the run
                await self.session.flush()
                result.exceptions += 1
            else:
                result.employees += 1
                result.results.append(pay)

        await self._detect_irregularities(run, snapshot)
        await self._apply_totals(run, result)
        return result

    async def _detail_count(self, run: PayrollRun) -> int:
        count = await self.session.scalar(
            select(func.count())
            .select_from(EmployeePayrollDetail)
            .where(EmployeePayrollDetail.payroll_run_id == run.id)
        )
        return count or 0

    async def _eligible_employees(self, run: PayrollRun) -> list[Employee]:
        """Active employees, limited to the run's department when one resolves."""
        query = select(Employee).where(Employee.status.in_(ACTIVE_EMPLOYEE_STATUSES))

        department_id = run.entity_id
        if department_id is None and run.entity:
            department_id = await self.session.scalar(
                select(Department.id)
                .where(
                    or_(
                        Department.name == run.entity,
                        func.lower(Department.name) == run.entity.lower(),
                    )
                )
                .limit(1)
            )
            if department_id is None:
                logger.info(
                    "Run %s: no department named %r, processing all active employees",
                    run.run_id,
                    run.entity,
                )

        if department_id is not None:
            query = query.where(Employee.primary_department_id == department_id)

        result = await self.session.execute(query.order_by(Employee.employee_number))
        return list(result.scalars().all())

    async def _run_details(self, run: PayrollRun) -> list[EmployeePayrollDetail]:
        result = await self.session.execute(
            select(EmployeePayrollDetail)
            .where(EmployeePayrollDetail.payroll_run_id == run.id)
            .order_by(EmployeePayrollDetail.created_at)
        )
        return list(result.scalars().all())

    async def _detect_irregularities(
        self, run: PayrollRun, snapshot: ConfigurationSnapshot
    ) -> None:
        detector = IrregularityDetector(snapshot.currency)
        flagged = 0
        for detail in await self._run_details(run):
            if detail.is_processing_error:
                continue
            found = detector.detect(detail)
            if found:
                attach_irregularities(detail, found)
                flagged += 1
        if flagged:
            logger.info("Run %s: irregularities detected on %d detail(s)", run.run_id, flagged)
        await self.session.flush()

    async def _apply_totals(self, run: PayrollRun, result: RunProcessingResult) -> None:
        """Write run totals summed from the persisted details."""
        details = await self._run_details(run)

        def total(attr: str) -> Decimal:
            return money(sum((getattr(d, attr) or ZERO for d in details), ZERO))

        summary: list[str] = []
        irregular = 0
        for detail in details:
            if detail.exceptions and detail.exceptions.strip():
                irregular += 1
                summary.append(f"Employee {detail.employee_id}: {detail.exceptions}")

        run.employees = result.employees
        run.exceptions = result.exceptions
        run.total_net_pay = total("net_pay")
        run.total_base_salary = total("base_salary")
        run.total_allowances = total("allowances")
        run.total_gross = money(run.total_base_salary + run.total_allowances)
        run.total_tax = total("tax_amount")
        run.total_insurance = total("insurance_amount")
        run.total_penalties = total("penalties")
        run.total_deductions = money(run.total_tax + run.total_insurance + run.total_penalties)
        run.total_overtime = total("overtime_pay")
        run.total_refunds = total("refunds")
        run.total_bonuses = total("bonus")
        run.total_benefits = total("benefit")
        run.irregularities_count = irregular
        run.irregularities = summary[: self.settings.irregularity_summary_limit]
        await self.session.flush()

        result.total_net_pay = run.total_net_pay
        result.irregularities_count = irregular
        logger.info(
            "Run %s processed: %d employee(s), %d exception(s), net %s",
            run.run_id,
            run.employees,
            run.exceptions,
            run.total_net_pay,
        )
