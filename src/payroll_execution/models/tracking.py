"""Payroll tracking models: refunds and their originating disputes/claims."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, TimestampMixin


class Dispute(Base, IdMixin, TimestampMixin):
    """Payslip dispute raised by an employee."""

    __tablename__ = "dispute"

    dispute_code: Mapped[str] = mapped_column(String, nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="under_review")


class Claim(Base, IdMixin, TimestampMixin):
    """Expense claim raised by an employee."""

    __tablename__ = "claim"

    claim_code: Mapped[str] = mapped_column(String, nullable=False)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    claim_type: Mapped[str | None] = mapped_column(String, nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    approved_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="under_review")


class Refund(Base, IdMixin, TimestampMixin):
    """Money owed to an employee, paid through the next eligible payroll run."""

    __tablename__ = "refund"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    dispute_id: Mapped[UUID | None] = mapped_column(ForeignKey("dispute.id"), nullable=True)
    claim_id: Mapped[UUID | None] = mapped_column(ForeignKey("claim.id"), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")

    # Set once the refund is included in a payslip; never cleared
    paid_in_payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id"),
        nullable=True,
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Last run that had to hold the refund back (minimum-wage floor)
    deferred_in_payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id"),
        nullable=True,
    )
    deferral_reason: Mapped[str | None] = mapped_column(String, nullable=True)


class EmployeePenalty(Base, IdMixin, TimestampMixin):
    """Misconduct penalty recorded against an employee."""

    __tablename__ = "employee_penalty"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reason: Mapped[str | None] = mapped_column(String, nullable=True)
