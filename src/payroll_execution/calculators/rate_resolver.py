"""Tax rule, insurance bracket, salary and allowance resolution."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.calculators.types import (
    ZERO,
    AllowanceRuleConfig,
    ConfigurationSnapshot,
    InsuranceBracketConfig,
    LatenessRuleConfig,
    OvertimeRuleConfig,
    ShortTimeRuleConfig,
    TaxRuleConfig,
    format_number,
    money,
)
from payroll_execution.config import get_settings
from payroll_execution.models import (
    Allowance,
    CompanySettings,
    InsuranceBracket,
    LatenessRule,
    OvertimeRule,
    ShortTimeRule,
    TaxRule,
)

APPROVED = "approved"

# (name marker, lower bound exclusive, upper bound inclusive)
TAX_BANDS: tuple[tuple[str, Decimal | None, Decimal | None], ...] = (
    ("0-50K", None, Decimal("50000")),
    ("50K-100K", Decimal("50000"), Decimal("100000")),
    ("100K-150K", Decimal("100000"), Decimal("150000")),
    ("150K-200K", Decimal("150000"), Decimal("200000")),
    ("200K+", Decimal("200000"), None),
)


@dataclass(frozen=True)
class TaxResolution:
    """Tax amount for one employee with its audit reason."""

    rule: TaxRuleConfig | None
    amount: Decimal
    reason: str


@dataclass(frozen=True)
class InsuranceResolution:
    """Insurance amount for one employee with its audit reason."""

    bracket: InsuranceBracketConfig | None
    amount: Decimal
    reason: str


def _band_matches(name: str, base_salary: Decimal) -> bool:
    for marker, lower, upper in TAX_BANDS:
        if marker not in name:
            continue
        if lower is not None and base_salary <= lower:
            continue
        if upper is not None and base_salary > upper:
            continue
        return True
    return False


def resolve_tax_rule(
    tax_rules: Sequence[TaxRuleConfig], base_salary: Decimal
) -> TaxRuleConfig | None:
    """Find the tax rule whose named salary band contains base_salary.

    First match wins; falls back to the first configured rule. Returns None
    only when no rules are configured.
    """
    for rule in tax_rules:
        if _band_matches(rule.name or "", base_salary):
            return rule
    return tax_rules[0] if tax_rules else None


def resolve_insurance_bracket(
    brackets: Iterable[InsuranceBracketConfig], base_salary: Decimal
) -> InsuranceBracketConfig | None:
    """Find the first bracket with min <= base_salary <= max."""
    for bracket in brackets:
        if bracket.matches(base_salary):
            return bracket
    return None


def calculate_tax(
    tax_rules: Sequence[TaxRuleConfig], base_salary: Decimal
) -> TaxResolution:
    """Tax is always computed on base salary, never on prorated gross."""
    rule = resolve_tax_rule(tax_rules, base_salary)
    if rule is None:
        return TaxResolution(rule=None, amount=ZERO, reason="No applicable tax rule")

    amount = ZERO
    if rule.rate:
        amount = money(base_salary * rule.rate / 100)
    rate = format_number(rule.rate or ZERO)
    reason = f"{rule.name}: {rate}% of {format_number(base_salary)}"
    return TaxResolution(rule=rule, amount=amount, reason=reason)


def calculate_insurance(
    brackets: Sequence[InsuranceBracketConfig],
    base_salary: Decimal,
    prorated_gross: Decimal,
) -> InsuranceResolution:
    """Bracket is chosen by base salary; the rate applies to prorated gross."""
    bracket = resolve_insurance_bracket(brackets, base_salary)
    if bracket is None:
        return InsuranceResolution(
            bracket=None, amount=ZERO, reason="No applicable insurance bracket"
        )

    amount = ZERO
    if bracket.employee_rate:
        amount = money(prorated_gross * bracket.employee_rate / 100)
    rate = format_number(bracket.employee_rate or ZERO)
    reason = f"Insurance: {rate}% of {money(prorated_gross)}"
    return InsuranceResolution(bracket=bracket, amount=amount, reason=reason)


def resolve_base_salary(
    pay_grade_salary: Decimal | None,
    employee_salary: Decimal | None,
    minimum_wage: Decimal,
    fallback_salary: Decimal | None = None,
) -> Decimal:
    """Base salary fallback order.

    approved pay grade -> employee override -> minimum wage -> hard floor.
    A zero value at any step falls through to the next.
    """
    if fallback_salary is None:
        fallback_salary = get_settings().fallback_base_salary
    for candidate in (pay_grade_salary, employee_salary, minimum_wage):
        if candidate:
            return money(candidate)
    return money(fallback_salary)


def resolve_allowances(
    employee_allowances: list[dict[str, Any]] | None,
    snapshot: ConfigurationSnapshot,
) -> Decimal:
    """Employee-specific allowances win over the approved system allowances."""
    if employee_allowances is not None:
        return money(
            sum((Decimal(str(a.get("amount") or 0)) for a in employee_allowances), ZERO)
        )
    return money(snapshot.total_system_allowances)


class RateResolver:
    """Loads the approved payroll configuration into an immutable snapshot.

    Called once per run; the snapshot is then threaded through every
    employee calculation.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()

    async def load_snapshot(self) -> ConfigurationSnapshot:
        """Resolve tax rules, brackets, allowances, time rules and minimum wage."""
        tax_rules = await self._approved(TaxRule)
        brackets = await self._approved(InsuranceBracket)
        allowances = await self._approved(Allowance)

        company = (
            await self.session.execute(
                select(CompanySettings).order_by(CompanySettings.created_at).limit(1)
            )
        ).scalar_one_or_none()

        lateness = await self._first_approved(LatenessRule)
        overtime = await self._first_approved(OvertimeRule)
        short_time = await self._first_approved(ShortTimeRule)

        return ConfigurationSnapshot(
            tax_rules=tuple(
                TaxRuleConfig(
                    rule_id=r.id,
                    name=r.name,
                    rate=r.rate,
                    description=r.description,
                )
                for r in tax_rules
            ),
            insurance_brackets=tuple(
                InsuranceBracketConfig(
                    bracket_id=b.id,
                    name=b.name,
                    min_salary=b.min_salary,
                    max_salary=b.max_salary,
                    employee_rate=b.employee_rate,
                    employer_rate=b.employer_rate,
                )
                for b in brackets
            ),
            allowances=tuple(
                AllowanceRuleConfig(allowance_id=a.id, name=a.name, amount=a.amount or ZERO)
                for a in allowances
            ),
            minimum_wage=(company.minimum_wage or ZERO) if company else ZERO,
            currency=(company.currency if company and company.currency else None)
            or self.settings.company_currency,
            lateness_rule=(
                LatenessRuleConfig(
                    grace_minutes=lateness.grace_minutes or 0,
                    penalty_per_minute=lateness.penalty_per_minute or ZERO,
                    max_penalty=lateness.max_penalty or None,
                )
                if lateness
                else None
            ),
            overtime_rule=OvertimeRuleConfig(multiplier=overtime.multiplier) if overtime else None,
            short_time_rule=(
                ShortTimeRuleConfig(deduction_rate=short_time.deduction_rate)
                if short_time
                else None
            ),
        )

    async def _approved(self, model: Any) -> list[Any]:
        result = await self.session.execute(
            select(model).where(model.status == APPROVED).order_by(model.created_at, model.name)
        )
        return list(result.scalars().all())

    async def _first_approved(self, model: Any) -> Any | None:
        rows = await self._approved(model)
        return rows[0] if rows else None
