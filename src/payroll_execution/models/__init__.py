"""ORM models for payroll execution."""

from payroll_execution.models.base import Base
from payroll_execution.models.benefits import (
    EmployeeSigningBonus,
    EmployeeTerminationBenefit,
    SigningBonusPolicy,
    TerminationBenefitPolicy,
)
from payroll_execution.models.configuration import (
    Allowance,
    CompanySettings,
    EmployeeAllowance,
    InsuranceBracket,
    LatenessRule,
    OvertimeRule,
    ShortTimeRule,
    TaxRule,
)
from payroll_execution.models.employee import (
    Department,
    Employee,
    EmployeeSystemRole,
    PayGrade,
    TerminationRequest,
)
from payroll_execution.models.payroll import EmployeePayrollDetail, PayrollRun, Payslip
from payroll_execution.models.time import (
    AttendanceRecord,
    LeaveRequest,
    LeaveType,
    Shift,
    ShiftAssignment,
)
from payroll_execution.models.tracking import Claim, Dispute, EmployeePenalty, Refund

__all__ = [
    "Base",
    "Allowance",
    "AttendanceRecord",
    "Claim",
    "CompanySettings",
    "Department",
    "Dispute",
    "Employee",
    "EmployeeAllowance",
    "EmployeePayrollDetail",
    "EmployeePenalty",
    "EmployeeSigningBonus",
    "EmployeeSystemRole",
    "EmployeeTerminationBenefit",
    "InsuranceBracket",
    "LatenessRule",
    "LeaveRequest",
    "LeaveType",
    "OvertimeRule",
    "PayGrade",
    "PayrollRun",
    "Payslip",
    "Refund",
    "ShiftAssignment",
    "Shift",
    "ShortTimeRule",
    "SigningBonusPolicy",
    "TaxRule",
    "TerminationBenefitPolicy",
    "TerminationRequest",
]
