"""Signing bonus and termination benefit models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, TimestampMixin


class SigningBonusPolicy(Base, IdMixin, TimestampMixin):
    """Configured signing bonus for a position."""

    __tablename__ = "signing_bonus_policy"

    position_name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class TerminationBenefitPolicy(Base, IdMixin, TimestampMixin):
    """Configured termination/resignation benefit."""

    __tablename__ = "termination_benefit_policy"

    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class EmployeeSigningBonus(Base, IdMixin, TimestampMixin):
    """A signing bonus owed to one employee.

    pending -> approved -> paid, or pending -> rejected.
    """

    __tablename__ = "employee_signing_bonus"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    policy_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("signing_bonus_policy.id"),
        nullable=True,
    )
    given_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_in_payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id"),
        nullable=True,
    )


class EmployeeTerminationBenefit(Base, IdMixin, TimestampMixin):
    """A termination/resignation benefit owed to one employee.

    pending -> approved -> paid, or pending -> rejected.
    """

    __tablename__ = "employee_termination_benefit"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    policy_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("termination_benefit_policy.id"),
        nullable=True,
    )
    termination_request_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("termination_request.id"),
        nullable=True,
    )
    given_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_in_payroll_run_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_run.id"),
        nullable=True,
    )
