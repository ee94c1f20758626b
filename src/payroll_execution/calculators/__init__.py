"""Payroll calculation components."""

from payroll_execution.calculators.attendance import AttendanceAggregator
from payroll_execution.calculators.engine import EmployeePayCalculator, PayComputation
from payroll_execution.calculators.irregularities import IrregularityDetector
from payroll_execution.calculators.penalties import PenaltyCalculator
from payroll_execution.calculators.rate_resolver import RateResolver

__all__ = [
    "AttendanceAggregator",
    "EmployeePayCalculator",
    "PayComputation",
    "IrregularityDetector",
    "PenaltyCalculator",
    "RateResolver",
]
