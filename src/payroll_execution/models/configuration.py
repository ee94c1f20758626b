"""Payroll configuration models: tax, insurance, allowances and time rules."""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_execution.models.base import Base, IdMixin, JSONType, TimestampMixin


class TaxRule(Base, IdMixin, TimestampMixin):
    """Tax rule; the salary band is encoded in the name (e.g. 'Income Tax 0-50K')."""

    __tablename__ = "tax_rule"

    name: Mapped[str] = mapped_column(String, nullable=False)
    rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")


class InsuranceBracket(Base, IdMixin, TimestampMixin):
    """Insurance contribution bracket by inclusive salary range."""

    __tablename__ = "insurance_bracket"

    name: Mapped[str] = mapped_column(String, nullable=False)
    min_salary: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    max_salary: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    employee_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    employer_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")


class Allowance(Base, IdMixin, TimestampMixin):
    """System-wide allowance definition."""

    __tablename__ = "allowance"

    name: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")


class EmployeeAllowance(Base, IdMixin, TimestampMixin):
    """Employee-specific allowance list overriding the system defaults."""

    __tablename__ = "employee_allowance"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
    )
    # [{"name": "Housing", "amount": "500"}]
    allowances: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class CompanySettings(Base, IdMixin, TimestampMixin):
    """Company-wide payroll settings."""

    __tablename__ = "company_settings"

    minimum_wage: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)


class LatenessRule(Base, IdMixin, TimestampMixin):
    """Lateness penalty rule."""

    __tablename__ = "lateness_rule"

    name: Mapped[str] = mapped_column(String, nullable=False)
    grace_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penalty_per_minute: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False, default=Decimal("0"))
    max_penalty: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")


class OvertimeRule(Base, IdMixin, TimestampMixin):
    """Overtime pay multiplier rule."""

    __tablename__ = "overtime_rule"

    name: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[Decimal | None] = mapped_column(Numeric(6, 3), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")


class ShortTimeRule(Base, IdMixin, TimestampMixin):
    """Missing-work (short time) deduction rule."""

    __tablename__ = "short_time_rule"

    name: Mapped[str] = mapped_column(String, nullable=False)
    deduction_rate: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
