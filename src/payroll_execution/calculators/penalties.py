"""Missing-work, lateness and overtime calculation."""

from __future__ import annotations

from decimal import Decimal

from payroll_execution.calculators.types import (
    ZERO,
    AttendanceSummary,
    ConfigurationSnapshot,
    OvertimeResult,
    PenaltyResult,
    format_number,
    money,
)

HOURS_PER_DAY = 8
DEFAULT_OVERTIME_MULTIPLIER = Decimal("1.5")
FULL_DEDUCTION_RATE = Decimal("100")


class PenaltyCalculator:
    """Converts attendance minutes into currency using the configured rules.

    The hourly rate is base salary / (days in month * 8). Every amount comes
    with the reason string persisted on the payroll detail.
    """

    def __init__(self, snapshot: ConfigurationSnapshot):
        self.snapshot = snapshot

    @staticmethod
    def hourly_rate(base_salary: Decimal, days_in_month: int) -> Decimal:
        if days_in_month <= 0:
            return ZERO
        return Decimal(base_salary) / Decimal(days_in_month * HOURS_PER_DAY)

    def calculate_penalties(
        self,
        base_salary: Decimal,
        attendance: AttendanceSummary,
        days_in_month: int,
    ) -> PenaltyResult:
        minute_rate = self.hourly_rate(base_salary, days_in_month) / 60

        missing_penalty = ZERO
        missing_reason = ""
        missing = attendance.missing_work_minutes
        if missing > 0:
            rule = self.snapshot.short_time_rule
            if rule is not None:
                rate = rule.deduction_rate or FULL_DEDUCTION_RATE
                missing_penalty = missing * minute_rate * rate / 100
                missing_reason = (
                    f"Missing {missing} minutes @ {format_number(rate)}% rate (Short Time Rule)"
                )
            else:
                missing_penalty = missing * minute_rate
                missing_reason = f"Missing {missing} minutes @ full rate"

        lateness_penalty = ZERO
        lateness_reason = ""
        late = attendance.lateness_minutes
        if late > 0:
            rule = self.snapshot.lateness_rule
            if rule is not None:
                chargeable = max(0, late - rule.grace_minutes)
                if chargeable > 0:
                    lateness_penalty = chargeable * rule.penalty_per_minute
                    if rule.max_penalty is not None:
                        lateness_penalty = min(lateness_penalty, rule.max_penalty)
                    lateness_reason = (
                        f"{chargeable} late minutes (after {rule.grace_minutes}min grace) "
                        f"@ {format_number(rule.penalty_per_minute)}/min"
                    )
            else:
                lateness_penalty = late * minute_rate
                lateness_reason = f"{late} late minutes @ minute rate"

        return PenaltyResult(
            missing_work_penalty=money(missing_penalty),
            missing_work_reason=missing_reason,
            lateness_penalty=money(lateness_penalty),
            lateness_reason=lateness_reason,
        )

    def calculate_overtime(
        self,
        base_salary: Decimal,
        overtime_minutes: int,
        days_in_month: int,
    ) -> OvertimeResult:
        if overtime_minutes <= 0:
            return OvertimeResult()

        hours = Decimal(overtime_minutes) / 60
        rule = self.snapshot.overtime_rule
        multiplier = DEFAULT_OVERTIME_MULTIPLIER
        if rule is not None and rule.multiplier:
            multiplier = rule.multiplier

        pay = hours * self.hourly_rate(base_salary, days_in_month) * multiplier
        return OvertimeResult(
            overtime_pay=money(pay),
            overtime_reason=f"{money(hours)} hours @ {format_number(multiplier * 100)}% rate",
            overtime_hours=money(hours),
            overtime_rate=multiplier,
        )
