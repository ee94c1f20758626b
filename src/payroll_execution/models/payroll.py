"""Payroll run, employee payroll detail, and payslip models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, JSONType, TimestampMixin

ZERO = Decimal("0")


class PayrollRun(Base, IdMixin, TimestampMixin):
    """One payroll cycle for an entity and month."""

    __tablename__ = "payroll_run"

    run_id: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    payroll_period: Mapped[date] = mapped_column(Date, nullable=False)
    entity: Mapped[str] = mapped_column(String, nullable=False, default="default")
    entity_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("department.id"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    payment_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    unlock_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Aggregates, recomputed from persisted details after processing
    employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    exceptions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_net_pay: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_tax: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_insurance: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_penalties: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_allowances: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_base_salary: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_overtime: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_refunds: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_bonuses: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    total_benefits: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False, default=ZERO)
    irregularities_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    irregularities: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Approval chain
    payroll_specialist_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.id"),
        nullable=True,
    )
    payroll_manager_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.id"),
        nullable=True,
    )
    finance_staff_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.id"),
        nullable=True,
    )
    specialist_approval_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    manager_approval_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    finance_approval_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unlocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Payslip distribution
    payslips_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payslips_distributed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payslips_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    payslips_distributed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Optimistic concurrency token
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'under_review', 'pending_finance_approval', "
            "'approved', 'locked', 'unlocked', 'rejected', 'cancelled')",
            name="payroll_run_status_check",
        ),
        CheckConstraint(
            "payment_status IN ('pending', 'paid')",
            name="payroll_run_payment_status_check",
        ),
    )

    @property
    def period_label(self) -> str:
        """Month label, e.g. '2024-03'."""
        return self.payroll_period.strftime("%Y-%m")


class EmployeePayrollDetail(Base, IdMixin, TimestampMixin):
    """One employee's computed breakdown for one run."""

    __tablename__ = "employee_payroll_detail"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="CASCADE"),
        nullable=False,
    )

    base_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    allowances: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    prorated_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    final_gross: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    insurance_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    penalties: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    overtime_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    refunds: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    bonus: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    benefit: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    net_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)

    days_in_month: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    days_worked: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=ZERO)
    unpaid_leave_days: Mapped[Decimal] = mapped_column(Numeric(6, 2), nullable=False, default=ZERO)

    # JSON documents hold amounts as strings
    deductions_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    attendance_summary: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    overtime_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    refund_details: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    bank_status: Mapped[str] = mapped_column(String, nullable=False, default="valid")
    exceptions: Mapped[str | None] = mapped_column(Text, nullable=True)
    irregularities: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    is_processing_error: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    payment_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "payroll_run_id",
            name="employee_payroll_detail_employee_run_unique",
        ),
    )

    @property
    def gross_salary(self) -> Decimal:
        """Unprorated gross (base + allowances)."""
        return (self.base_salary or ZERO) + (self.allowances or ZERO)


class Payslip(Base, IdMixin, TimestampMixin):
    """Employee-facing payslip derived 1:1 from a payroll detail."""

    __tablename__ = "payslip"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.id", ondelete="CASCADE"),
        nullable=False,
    )
    payroll_detail_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee_payroll_detail.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    earnings_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    deductions_details: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    total_gross_salary: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    payment_status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    distributed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    distributed_by: Mapped[UUID | None] = mapped_column(nullable=True)
