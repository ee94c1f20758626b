"""Tests for attendance aggregation, penalties and overtime."""

from datetime import date
from decimal import Decimal

import pytest

from payroll_execution.calculators.attendance import AttendanceAggregator, aggregate_attendance
from payroll_execution.calculators.penalties import PenaltyCalculator
from payroll_execution.calculators.types import (
    AttendanceSummary,
    ConfigurationSnapshot,
    LatenessRuleConfig,
    OvertimeRuleConfig,
    ShortTimeRuleConfig,
)
from payroll_execution.models import (
    AttendanceRecord,
    LeaveRequest,
    LeaveType,
    Shift,
    ShiftAssignment,
)

# 6000 over a 30-day month: 25/hour
BASE = Decimal("6000")
DAYS = 30


class TestPenaltyCalculator:
    def test_hourly_rate(self):
        assert PenaltyCalculator.hourly_rate(BASE, DAYS) == Decimal("25")
        assert PenaltyCalculator.hourly_rate(BASE, 0) == Decimal("0")

    def test_missing_work_at_full_rate_without_rule(self):
        calc = PenaltyCalculator(ConfigurationSnapshot())
        attendance = AttendanceSummary(actual_work_minutes=360, scheduled_work_minutes=480)

        result = calc.calculate_penalties(BASE, attendance, DAYS)

        # 120 minutes @ 25/60 per minute
        assert result.missing_work_penalty == Decimal("50.00")
        assert result.missing_work_reason == "Missing 120 minutes @ full rate"

    def test_missing_work_with_short_time_rule(self):
        snapshot = ConfigurationSnapshot(
            short_time_rule=ShortTimeRuleConfig(deduction_rate=Decimal("50"))
        )
        attendance = AttendanceSummary(actual_work_minutes=360, scheduled_work_minutes=480)

        result = PenaltyCalculator(snapshot).calculate_penalties(BASE, attendance, DAYS)

        assert result.missing_work_penalty == Decimal("25.00")
        assert "50% rate (Short Time Rule)" in result.missing_work_reason

    def test_lateness_with_grace_and_cap(self):
        snapshot = ConfigurationSnapshot(
            lateness_rule=LatenessRuleConfig(
                grace_minutes=10,
                penalty_per_minute=Decimal("2"),
                max_penalty=Decimal("50"),
            )
        )
        calc = PenaltyCalculator(snapshot)

        within_cap = calc.calculate_penalties(BASE, AttendanceSummary(lateness_minutes=30), DAYS)
        assert within_cap.lateness_penalty == Decimal("40.00")
        assert within_cap.lateness_reason.startswith("20 late minutes (after 10min grace)")

        capped = calc.calculate_penalties(BASE, AttendanceSummary(lateness_minutes=100), DAYS)
        assert capped.lateness_penalty == Decimal("50.00")

        graced = calc.calculate_penalties(BASE, AttendanceSummary(lateness_minutes=5), DAYS)
        assert graced.lateness_penalty == Decimal("0")

    def test_no_attendance_no_penalties(self):
        result = PenaltyCalculator(ConfigurationSnapshot()).calculate_penalties(
            BASE, AttendanceSummary(), DAYS
        )
        assert result.total == Decimal("0.00")

    def test_overtime_default_multiplier(self):
        result = PenaltyCalculator(ConfigurationSnapshot()).calculate_overtime(BASE, 120, DAYS)

        # 2h * 25 * 1.5
        assert result.overtime_pay == Decimal("75.00")
        assert result.overtime_hours == Decimal("2.00")
        assert result.overtime_reason == "2.00 hours @ 150% rate"

    def test_overtime_configured_multiplier(self):
        snapshot = ConfigurationSnapshot(overtime_rule=OvertimeRuleConfig(multiplier=Decimal("2")))
        result = PenaltyCalculator(snapshot).calculate_overtime(BASE, 60, DAYS)

        assert result.overtime_pay == Decimal("50.00")

    def test_no_overtime(self):
        result = PenaltyCalculator(ConfigurationSnapshot()).calculate_overtime(BASE, 0, DAYS)
        assert result.overtime_pay == Decimal("0")
        assert result.overtime_reason == "No overtime"


class TestAttendanceAggregation:
    def test_aggregate_counts_only_worked_days(self):
        records = [
            AttendanceRecord(work_date=date(2024, 3, 4), total_work_minutes=480, overtime_minutes=30, lateness_minutes=5),
            AttendanceRecord(work_date=date(2024, 3, 5), total_work_minutes=0, overtime_minutes=0, lateness_minutes=0),
        ]

        summary = aggregate_attendance(records, lambda record: 480)

        assert summary.actual_work_minutes == 480
        assert summary.scheduled_work_minutes == 960
        assert summary.missing_work_minutes == 480
        assert summary.overtime_minutes == 30
        assert summary.lateness_minutes == 5
        assert summary.working_days == 1

    @pytest.mark.asyncio
    async def test_summarize_uses_shift_schedule(self, session, make_employee):
        employee = await make_employee()
        shift = Shift(name="Short day", scheduled_minutes=360)
        session.add(shift)
        await session.flush()
        session.add_all(
            [
                ShiftAssignment(
                    employee_id=employee.id,
                    shift_id=shift.id,
                    start_date=date(2024, 3, 1),
                    end_date=None,
                    status="approved",
                ),
                AttendanceRecord(employee_id=employee.id, work_date=date(2024, 3, 4), total_work_minutes=360),
                AttendanceRecord(employee_id=employee.id, work_date=date(2024, 3, 5), total_work_minutes=300),
                # Outside the period
                AttendanceRecord(employee_id=employee.id, work_date=date(2024, 4, 1), total_work_minutes=480),
            ]
        )
        await session.flush()

        summary = await AttendanceAggregator(session, 480).summarize(
            employee.id, date(2024, 3, 1), date(2024, 3, 31)
        )

        assert summary.actual_work_minutes == 660
        assert summary.scheduled_work_minutes == 720
        assert summary.working_days == 2

    @pytest.mark.asyncio
    async def test_summarize_without_records(self, session, make_employee):
        employee = await make_employee()
        summary = await AttendanceAggregator(session, 480).summarize(
            employee.id, date(2024, 3, 1), date(2024, 3, 31)
        )
        assert summary == AttendanceSummary()

    @pytest.mark.asyncio
    async def test_unpaid_leave_days(self, session, make_employee):
        employee = await make_employee()
        unpaid = LeaveType(code="UNPAID", name="Unpaid leave", paid=False)
        annual = LeaveType(code="ANNUAL", name="Annual leave", paid=True)
        session.add_all([unpaid, annual])
        await session.flush()
        session.add_all(
            [
                LeaveRequest(
                    employee_id=employee.id,
                    leave_type_id=unpaid.id,
                    date_from=date(2024, 3, 10),
                    date_to=date(2024, 3, 12),
                    duration_days=Decimal("3"),
                    status="APPROVED",
                ),
                # Paid leave does not count
                LeaveRequest(
                    employee_id=employee.id,
                    leave_type_id=annual.id,
                    date_from=date(2024, 3, 20),
                    date_to=date(2024, 3, 21),
                    duration_days=Decimal("2"),
                    status="APPROVED",
                ),
                # Pending requests do not count
                LeaveRequest(
                    employee_id=employee.id,
                    leave_type_id=unpaid.id,
                    date_from=date(2024, 3, 25),
                    date_to=date(2024, 3, 25),
                    duration_days=Decimal("1"),
                    status="PENDING",
                ),
            ]
        )
        await session.flush()

        days = await AttendanceAggregator(session, 480).unpaid_leave_days(
            employee.id, date(2024, 3, 1), date(2024, 3, 31)
        )

        assert days == Decimal("3")
