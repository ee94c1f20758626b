"""Attendance and unpaid-leave aggregation for a payroll period."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.types import ZERO, AttendanceSummary
from payroll_execution.config import get_settings
from payroll_execution.models import (
    AttendanceRecord,
    LeaveRequest,
    LeaveType,
    Shift,
    ShiftAssignment,
)

APPROVED_LEAVE_STATUSES = ("APPROVED", "approved")


def aggregate_attendance(
    records: Iterable[AttendanceRecord],
    scheduled_minutes_for: Callable[[AttendanceRecord], int],
) -> AttendanceSummary:
    """Sum daily records into a period summary.

    A record counts as a working day only when it has worked minutes.
    """
    actual = scheduled = overtime = lateness = working_days = 0
    for record in records:
        worked = record.total_work_minutes or 0
        actual += worked
        overtime += record.overtime_minutes or 0
        lateness += record.lateness_minutes or 0
        scheduled += scheduled_minutes_for(record)
        if worked > 0:
            working_days += 1

    return AttendanceSummary(
        actual_work_minutes=actual,
        scheduled_work_minutes=scheduled,
        overtime_minutes=overtime,
        lateness_minutes=lateness,
        working_days=working_days,
    )


class AttendanceAggregator:
    """Read-only aggregation over attendance, shift and leave records."""

    def __init__(self, session: AsyncSession, default_scheduled_minutes: int | None = None):
        self.session = session
        if default_scheduled_minutes is None:
            default_scheduled_minutes = get_settings().default_scheduled_minutes
        self.default_scheduled_minutes = default_scheduled_minutes

    async def summarize(
        self, employee_id: UUID, period_start: date, period_end: date
    ) -> AttendanceSummary:
        """Aggregate actual/scheduled/overtime/lateness minutes for a period."""
        result = await self.session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.work_date >= period_start,
                AttendanceRecord.work_date <= period_end,
            )
            .order_by(AttendanceRecord.work_date)
        )
        records = list(result.scalars().all())
        if not records:
            return AttendanceSummary()

        shifts = await self._shift_assignments(employee_id, period_start, period_end)

        def scheduled_minutes_for(record: AttendanceRecord) -> int:
            for start, end, minutes in shifts:
                if start <= record.work_date and (end is None or record.work_date <= end):
                    return minutes
            return self.default_scheduled_minutes

        return aggregate_attendance(records, scheduled_minutes_for)

    async def unpaid_leave_days(
        self, employee_id: UUID, period_start: date, period_end: date
    ) -> Decimal:
        """Total duration of approved unpaid leave overlapping the period."""
        result = await self.session.execute(
            select(func.coalesce(func.sum(LeaveRequest.duration_days), 0))
            .join(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(APPROVED_LEAVE_STATUSES),
                LeaveRequest.date_from <= period_end,
                LeaveRequest.date_to >= period_start,
                LeaveType.paid.is_(False),
            )
        )
        total = result.scalar_one()
        return Decimal(str(total)) if total else ZERO

    async def _shift_assignments(
        self, employee_id: UUID, period_start: date, period_end: date
    ) -> list[tuple[date, date | None, int]]:
        result = await self.session.execute(
            select(ShiftAssignment.start_date, ShiftAssignment.end_date, Shift.scheduled_minutes)
            .join(Shift, Shift.id == ShiftAssignment.shift_id)
            .where(
                ShiftAssignment.employee_id == employee_id,
                ShiftAssignment.status == "approved",
                ShiftAssignment.start_date <= period_end,
                or_(
                    ShiftAssignment.end_date.is_(None),
                    ShiftAssignment.end_date >= period_start,
                ),
            )
            .order_by(ShiftAssignment.start_date.desc())
        )
        return [(row[0], row[1], row[2]) for row in result.all()]
