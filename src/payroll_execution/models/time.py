"""Time management and leave models consumed by payroll."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, TimestampMixin


class Shift(Base, IdMixin, TimestampMixin):
    """Shift definition with its scheduled length."""

    __tablename__ = "shift"

    name: Mapped[str] = mapped_column(String, nullable=False)
    scheduled_minutes: Mapped[int] = mapped_column(Integer, nullable=False)


class ShiftAssignment(Base, IdMixin, TimestampMixin):
    """Assignment of an employee to a shift over a date range."""

    __tablename__ = "shift_assignment"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    shift_id: Mapped[UUID] = mapped_column(
        ForeignKey("shift.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class AttendanceRecord(Base, IdMixin, TimestampMixin):
    """One employee's attendance for one day."""

    __tablename__ = "attendance_record"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_work_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lateness_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LeaveType(Base, IdMixin, TimestampMixin):
    """Leave type; paid=False marks unpaid leave."""

    __tablename__ = "leave_type"

    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class LeaveRequest(Base, IdMixin, TimestampMixin):
    """Leave request; only approved requests count against payroll."""

    __tablename__ = "leave_request"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    leave_type_id: Mapped[UUID] = mapped_column(
        ForeignKey("leave_type.id"),
        nullable=False,
    )
    date_from: Mapped[date] = mapped_column(Date, nullable=False)
    date_to: Mapped[date] = mapped_column(Date, nullable=False)
    duration_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
