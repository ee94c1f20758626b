"""Employee, organization and role models (read-only to payroll execution)."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, JSONType, TimestampMixin

ACTIVE_EMPLOYEE_STATUSES = ("ACTIVE", "Active", "active")


class Department(Base, IdMixin, TimestampMixin):
    """Organizational unit a payroll run can target."""

    __tablename__ = "department"

    name: Mapped[str] = mapped_column(String, nullable=False)
    code: Mapped[str | None] = mapped_column(String, nullable=True)


class PayGrade(Base, IdMixin, TimestampMixin):
    """Approved pay grade carrying a base salary."""

    __tablename__ = "pay_grade"

    grade: Mapped[str] = mapped_column(String, nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    gross_salary: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class Employee(Base, IdMixin, TimestampMixin):
    """Employee profile."""

    __tablename__ = "employee"

    employee_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="ACTIVE")
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    primary_department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("department.id"),
        nullable=True,
    )
    pay_grade_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("pay_grade.id"),
        nullable=True,
    )
    base_salary: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    bank_account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    date_of_hire: Mapped[date | None] = mapped_column(Date, nullable=True)

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_EMPLOYEE_STATUSES

    @property
    def has_bank_account(self) -> bool:
        return bool(self.bank_account_number and self.bank_account_number.strip())


class EmployeeSystemRole(Base, IdMixin, TimestampMixin):
    """System roles granted to an employee."""

    __tablename__ = "employee_system_role"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    roles: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class TerminationRequest(Base, IdMixin, TimestampMixin):
    """Offboarding request; only approved requests affect payroll."""

    __tablename__ = "termination_request"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
