"""Irregularity detection rules and ledger helpers."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import inspect
from sqlalchemy.orm.attributes import flag_modified

from payroll_execution.calculators.types import (
    ZERO,
    DetectedIrregularity,
    Irregularity,
    IrregularityCode,
    IrregularityStatus,
    format_number,
    irregularity_id,
)
from payroll_execution.models import EmployeePayrollDetail
from payroll_execution.models.base import utcnow

VALID_BANK_STATUSES = ("valid", "verified", "active")

EXCEPTION_SEPARATOR = "; "

TAX_LIMIT_PERCENT = Decimal("100")
OVERTIME_LIMIT_PERCENT = Decimal("50")
DEDUCTIONS_LIMIT_PERCENT = Decimal("60")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return (part / whole * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


class IrregularityDetector:
    """Scans a computed payroll detail for anomalous patterns.

    Rules:
    - invalid or missing bank status
    - negative net salary
    - zero net salary
    - tax >= 100% of gross
    - overtime > 50% of base
    - deductions > 60% of gross

    Gross here is base + allowances (unprorated).
    """

    def __init__(self, currency: str):
        self.currency = currency

    def detect(self, detail: EmployeePayrollDetail) -> list[DetectedIrregularity]:
        found: list[DetectedIrregularity] = []
        existing_codes = {entry.get("code") for entry in detail.irregularities or []}

        bank_status = detail.bank_status or ""
        if (
            bank_status.lower() not in VALID_BANK_STATUSES
            and IrregularityCode.MISSING_BANK_ACCOUNT.value not in existing_codes
        ):
            found.append(
                DetectedIrregularity(
                    IrregularityCode.INVALID_BANK_STATUS,
                    f'Invalid bank status: "{bank_status or "Not provided"}"',
                )
            )

        net_salary = detail.net_salary or ZERO
        if net_salary < 0:
            found.append(
                DetectedIrregularity(
                    IrregularityCode.NEGATIVE_NET_SALARY,
                    f"Negative net salary: {self.currency} {format_number(net_salary)}",
                )
            )
        elif net_salary == 0:
            found.append(
                DetectedIrregularity(
                    IrregularityCode.ZERO_NET_SALARY,
                    "Zero net salary after deductions",
                )
            )

        base = detail.base_salary or ZERO
        gross = detail.gross_salary
        tax = detail.tax_amount or ZERO
        if gross > 0 and tax > 0:
            pct = _percent(tax, gross)
            if pct >= TAX_LIMIT_PERCENT:
                found.append(
                    DetectedIrregularity(
                        IrregularityCode.EXCESSIVE_TAX,
                        f"Tax ({pct}%) exceeds gross salary",
                    )
                )

        overtime = detail.overtime_pay or ZERO
        if base > 0 and overtime > 0:
            pct = _percent(overtime, base)
            if pct > OVERTIME_LIMIT_PERCENT:
                found.append(
                    DetectedIrregularity(
                        IrregularityCode.EXCESSIVE_OVERTIME,
                        f"Overtime ({pct}%) exceeds 50% of base",
                    )
                )

        deductions = detail.deductions or ZERO
        if gross > 0:
            pct = _percent(deductions, gross)
            if pct > DEDUCTIONS_LIMIT_PERCENT:
                found.append(
                    DetectedIrregularity(
                        IrregularityCode.HIGH_DEDUCTIONS,
                        f"Deductions ({pct}%) exceed 60% of gross",
                    )
                )

        return found


def attach_irregularities(
    detail: EmployeePayrollDetail,
    found: Iterable[DetectedIrregularity],
    now: datetime | None = None,
) -> list[Irregularity]:
    """Append tagged entries to the detail and extend its exception string.

    The detail must already have its id assigned.
    """
    now = now or utcnow()
    entries = list(detail.irregularities or [])
    added: list[Irregularity] = []
    for item in found:
        irregularity = Irregularity(
            id=irregularity_id(detail.id, len(entries), item.code.value, item.message),
            code=item.code,
            message=item.message,
            status=IrregularityStatus.PENDING,
            flagged_at=now,
        )
        entries.append(irregularity.to_dict())
        added.append(irregularity)

    if added:
        detail.irregularities = entries
        messages = [detail.exceptions] if detail.exceptions else []
        messages.extend(i.message for i in added)
        detail.exceptions = EXCEPTION_SEPARATOR.join(messages)
        _flag_if_persistent(detail)
    return added


def load_irregularities(detail: EmployeePayrollDetail) -> list[Irregularity]:
    return [Irregularity.from_dict(entry) for entry in detail.irregularities or []]


def store_irregularities(
    detail: EmployeePayrollDetail, irregularities: Iterable[Irregularity]
) -> None:
    detail.irregularities = [i.to_dict() for i in irregularities]
    _flag_if_persistent(detail)


def _flag_if_persistent(detail: EmployeePayrollDetail) -> None:
    if inspect(detail).persistent:
        flag_modified(detail, "irregularities")
