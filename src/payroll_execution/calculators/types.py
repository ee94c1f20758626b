"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

import calendar
import hashlib
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any
from uuid import UUID

ZERO = Decimal("0")
CENT = Decimal("0.01")


def money(value: Decimal | int | float | str | None) -> Decimal:
    """Quantize a value to cents (half-up)."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def format_number(value: Decimal | int | float) -> str:
    """Render a number for audit reason strings ('6000', '12.5')."""
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


class BankStatus(str, Enum):
    """Bank account status recorded on a payroll detail."""

    VALID = "valid"
    MISSING = "missing"


class PaymentStatus(str, Enum):
    """Payment status for runs, details and payslips."""

    PENDING = "pending"
    PAID = "paid"


class IrregularityCode(str, Enum):
    """Kinds of irregularity recorded on a payroll detail."""

    # Raised while calculating
    MINIMUM_WAGE_FLOOR = "minimum_wage_floor"
    NEGATIVE_NET_PAY = "negative_net_pay"
    MISSING_BANK_ACCOUNT = "missing_bank_account"
    SALARY_SPIKE = "salary_spike"
    REFUNDS_INCLUDED = "refunds_included"
    REFUNDS_DEFERRED = "refunds_deferred"
    PROCESSING_ERROR = "processing_error"

    # Raised by the detector after the run is processed
    INVALID_BANK_STATUS = "invalid_bank_status"
    NEGATIVE_NET_SALARY = "negative_net_salary"
    ZERO_NET_SALARY = "zero_net_salary"
    EXCESSIVE_TAX = "excessive_tax"
    EXCESSIVE_OVERTIME = "excessive_overtime"
    HIGH_DEDUCTIONS = "high_deductions"


class IrregularityStatus(str, Enum):
    """Review status of a single irregularity."""

    PENDING = "pending"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class ResolutionAction(str, Enum):
    """Actions accepted when resolving an irregularity."""

    APPROVED = "approved"
    REJECTED = "rejected"
    EXCLUDED = "excluded"
    ADJUSTED = "adjusted"


@dataclass(frozen=True)
class PayrollPeriod:
    """Calendar month covered by a run."""

    start: date
    end: date

    @classmethod
    def for_month(cls, any_day: date) -> PayrollPeriod:
        last = calendar.monthrange(any_day.year, any_day.month)[1]
        return cls(
            start=any_day.replace(day=1),
            end=any_day.replace(day=last),
        )

    @property
    def days_in_month(self) -> int:
        return self.end.day

    @property
    def label(self) -> str:
        return self.start.strftime("%Y-%m")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


# ===== Configuration snapshot =====


@dataclass(frozen=True)
class TaxRuleConfig:
    """Approved tax rule; its salary band is named in the rule name."""

    rule_id: UUID | None
    name: str
    rate: Decimal | None
    description: str | None = None


@dataclass(frozen=True)
class InsuranceBracketConfig:
    """Approved insurance bracket.

    A missing min_salary means 0; a missing or zero max_salary means unbounded.
    """

    bracket_id: UUID | None
    name: str
    min_salary: Decimal | None
    max_salary: Decimal | None
    employee_rate: Decimal | None
    employer_rate: Decimal | None = None

    def matches(self, base_salary: Decimal) -> bool:
        lower = self.min_salary if self.min_salary is not None else ZERO
        if base_salary < lower:
            return False
        if not self.max_salary:
            return True
        return base_salary <= self.max_salary

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.bracket_id) if self.bracket_id else None,
            "name": self.name,
            "minSalary": str(self.min_salary) if self.min_salary is not None else None,
            "maxSalary": str(self.max_salary) if self.max_salary is not None else None,
            "employeeRate": str(self.employee_rate) if self.employee_rate is not None else None,
            "employerRate": str(self.employer_rate) if self.employer_rate is not None else None,
        }


@dataclass(frozen=True)
class AllowanceRuleConfig:
    """Approved system-wide allowance."""

    allowance_id: UUID | None
    name: str
    amount: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.allowance_id) if self.allowance_id else None,
            "name": self.name,
            "amount": str(self.amount),
        }


@dataclass(frozen=True)
class LatenessRuleConfig:
    """Lateness penalty rule; a missing max_penalty means uncapped."""

    grace_minutes: int = 0
    penalty_per_minute: Decimal = ZERO
    max_penalty: Decimal | None = None


@dataclass(frozen=True)
class OvertimeRuleConfig:
    """Overtime rule; a missing multiplier falls back to 1.5."""

    multiplier: Decimal | None = None


@dataclass(frozen=True)
class ShortTimeRuleConfig:
    """Short time rule; a missing deduction rate falls back to 100%."""

    deduction_rate: Decimal | None = None


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """Immutable configuration resolved once per run.

    The pay calculator reads configuration from this object only.
    """

    tax_rules: tuple[TaxRuleConfig, ...] = ()
    insurance_brackets: tuple[InsuranceBracketConfig, ...] = ()
    allowances: tuple[AllowanceRuleConfig, ...] = ()
    minimum_wage: Decimal = ZERO
    currency: str = "EGP"
    lateness_rule: LatenessRuleConfig | None = None
    overtime_rule: OvertimeRuleConfig | None = None
    short_time_rule: ShortTimeRuleConfig | None = None

    @property
    def total_system_allowances(self) -> Decimal:
        return sum((a.amount for a in self.allowances), ZERO)


# ===== Attendance and penalties =====


@dataclass(frozen=True)
class AttendanceSummary:
    """Aggregated attendance for one employee over one period."""

    actual_work_minutes: int = 0
    scheduled_work_minutes: int = 0
    overtime_minutes: int = 0
    lateness_minutes: int = 0
    working_days: int = 0

    @property
    def missing_work_minutes(self) -> int:
        return max(0, self.scheduled_work_minutes - self.actual_work_minutes)

    @property
    def has_schedule(self) -> bool:
        return self.scheduled_work_minutes > 0

    def to_dict(self, unpaid_leave_days: Decimal = ZERO) -> dict[str, Any]:
        return {
            "actualWorkMinutes": self.actual_work_minutes,
            "scheduledWorkMinutes": self.scheduled_work_minutes,
            "missingWorkMinutes": self.missing_work_minutes,
            "overtimeMinutes": self.overtime_minutes,
            "latenessMinutes": self.lateness_minutes,
            "workingDays": self.working_days,
            "unpaidLeaveDays": format_number(unpaid_leave_days),
        }


@dataclass(frozen=True)
class PenaltyResult:
    """Missing-work and lateness penalties with audit reasons."""

    missing_work_penalty: Decimal = ZERO
    missing_work_reason: str = ""
    lateness_penalty: Decimal = ZERO
    lateness_reason: str = ""

    @property
    def total(self) -> Decimal:
        return money(self.missing_work_penalty + self.lateness_penalty)


@dataclass(frozen=True)
class OvertimeResult:
    """Overtime pay with audit reason."""

    overtime_pay: Decimal = ZERO
    overtime_reason: str = "No overtime"
    overtime_hours: Decimal = ZERO
    overtime_rate: Decimal = ZERO


# ===== Irregularities =====


def irregularity_id(detail_id: UUID, index: int, code: str, message: str) -> str:
    """Stable irregularity id: '<detailId>_<8 hex chars>'."""
    digest = hashlib.sha256(f"{index}:{code}:{message}".encode()).hexdigest()[:8]
    return f"{detail_id}_{digest}"


@dataclass
class Irregularity:
    """One tagged irregularity on a payroll detail."""

    id: str
    code: IrregularityCode
    message: str
    status: IrregularityStatus = IrregularityStatus.PENDING
    flagged_at: datetime | None = None
    escalated_by: str | None = None
    escalation_reason: str | None = None
    escalated_at: datetime | None = None
    resolution: dict[str, Any] | None = None

    @property
    def is_open(self) -> bool:
        return self.status != IrregularityStatus.RESOLVED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code.value,
            "message": self.message,
            "status": self.status.value,
            "flaggedAt": self.flagged_at.isoformat() if self.flagged_at else None,
            "escalatedBy": self.escalated_by,
            "escalationReason": self.escalation_reason,
            "escalatedAt": self.escalated_at.isoformat() if self.escalated_at else None,
            "resolution": self.resolution,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Irregularity:
        flagged_at = data.get("flaggedAt")
        escalated_at = data.get("escalatedAt")
        return cls(
            id=data["id"],
            code=IrregularityCode(data["code"]),
            message=data["message"],
            status=IrregularityStatus(data.get("status", IrregularityStatus.PENDING.value)),
            flagged_at=datetime.fromisoformat(flagged_at) if flagged_at else None,
            escalated_by=data.get("escalatedBy"),
            escalation_reason=data.get("escalationReason"),
            escalated_at=datetime.fromisoformat(escalated_at) if escalated_at else None,
            resolution=data.get("resolution"),
        )


@dataclass(frozen=True)
class DetectedIrregularity:
    """Output of a detection rule before it is attached to a detail."""

    code: IrregularityCode
    message: str


# ===== Results =====


@dataclass
class EmployeePayResult:
    """Outcome of calculating one employee within a run."""

    employee_id: UUID
    detail_id: UUID
    net_pay: Decimal
    floor_applied: bool = False
    payslip_id: UUID | None = None
    refunds_paid: list[UUID] = field(default_factory=list)
    refunds_deferred: list[UUID] = field(default_factory=list)
    bonus_paid: Decimal = ZERO
    benefit_paid: Decimal = ZERO


@dataclass
class RunProcessingResult:
    """Outcome of processing a whole run."""

    payroll_run_id: UUID
    employees: int = 0
    exceptions: int = 0
    total_net_pay: Decimal = ZERO
    irregularities_count: int = 0
    results: list[EmployeePayResult] = field(default_factory=list)
