"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Common
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None


class VersionedRequest(BaseModel):
    """Body carrying the run version the caller last read; required on every run change."""

    expected_version: int = Field(ge=1)


class ReasonRequest(VersionedRequest):
    """Transition that requires a reason (reject, unfreeze)."""

    reason: str = ""


# ============================================================================
# Payroll Run schemas
# ============================================================================


class PayrollRunCreate(BaseModel):
    """Schema for creating a new payroll run.

    payroll_period accepts 'YYYY-MM' or an ISO date; omitted means the
    current month.
    """

    payroll_period: str | None = None
    entity_id: UUID | None = None
    entity: str | None = None
    payroll_manager_id: UUID | None = None


class PayrollRunUpdate(VersionedRequest):
    """Schema for editing a draft or rejected payroll run."""

    payroll_period: str | None = None
    entity_id: UUID | None = None
    entity: str | None = None
    payroll_manager_id: UUID | None = None


class PayrollRunResponse(BaseModel):
    """Schema for payroll run response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_id: str
    payroll_period: date
    entity: str
    entity_id: UUID | None = None
    status: str
    payment_status: str
    rejection_reason: str | None = None
    unlock_reason: str | None = None
    employees: int
    exceptions: int
    total_gross: Decimal
    total_net_pay: Decimal
    total_tax: Decimal
    total_insurance: Decimal
    total_deductions: Decimal
    total_penalties: Decimal
    total_allowances: Decimal
    total_base_salary: Decimal
    total_overtime: Decimal
    total_refunds: Decimal
    total_bonuses: Decimal
    total_benefits: Decimal
    irregularities_count: int
    irregularities: list[str] = Field(default_factory=list)
    payroll_specialist_id: UUID | None = None
    payroll_manager_id: UUID | None = None
    finance_staff_id: UUID | None = None
    specialist_approval_date: datetime | None = None
    manager_approval_date: datetime | None = None
    finance_approval_date: datetime | None = None
    locked_at: datetime | None = None
    unlocked_at: datetime | None = None
    payslips_generated: bool
    payslips_distributed: bool
    version: int
    created_at: datetime
    updated_at: datetime


class PayrollRunListResponse(BaseModel):
    """Schema for listing payroll runs."""

    items: list[PayrollRunResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ProcessingResponse(BaseModel):
    """Schema for the outcome of submitting a run for review."""

    run: PayrollRunResponse
    employees: int
    exceptions: int
    total_net_pay: Decimal
    irregularities_count: int


# ============================================================================
# Detail and Payslip schemas
# ============================================================================


class EmployeePayrollDetailResponse(BaseModel):
    """Schema for one employee's payroll detail."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    payroll_run_id: UUID
    base_salary: Decimal
    allowances: Decimal
    prorated_gross: Decimal
    final_gross: Decimal
    tax_amount: Decimal
    insurance_amount: Decimal
    deductions: Decimal
    penalties: Decimal
    overtime_pay: Decimal
    refunds: Decimal
    bonus: Decimal
    benefit: Decimal
    net_salary: Decimal
    net_pay: Decimal
    days_in_month: int
    days_worked: Decimal
    unpaid_leave_days: Decimal
    deductions_breakdown: dict[str, Any] = Field(default_factory=dict)
    attendance_summary: dict[str, Any] = Field(default_factory=dict)
    overtime_details: dict[str, Any] = Field(default_factory=dict)
    refund_details: list[dict[str, Any]] = Field(default_factory=list)
    bank_status: str
    exceptions: str | None = None
    irregularities: list[dict[str, Any]] = Field(default_factory=list)
    is_processing_error: bool
    payment_status: str


class PayslipResponse(BaseModel):
    """Schema for payslip response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    payroll_run_id: UUID
    payroll_detail_id: UUID
    earnings_details: dict[str, Any] = Field(default_factory=dict)
    deductions_details: dict[str, Any] = Field(default_factory=dict)
    total_gross_salary: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    payment_status: str
    distributed_at: datetime | None = None
    distributed_by: UUID | None = None


class PayslipSummaryResponse(BaseModel):
    """Payslip plus its earnings/deductions summary."""

    payslip: PayslipResponse
    total_earnings: Decimal
    total_deductions: Decimal
    net_pay: Decimal
    refunds: list[dict[str, Any]] = Field(default_factory=list)


class DistributionResponse(BaseModel):
    """Schema for payslip distribution result."""

    payroll_run_id: UUID
    payslips_generated: int
    total_net_pay_distributed: Decimal
    total_refunds_distributed: Decimal
    distributed_at: datetime
    status: str
    message: str


# ============================================================================
# Signing bonus / termination benefit schemas
# ============================================================================


class SigningBonusResponse(BaseModel):
    """Schema for signing bonus response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    policy_id: UUID | None = None
    given_amount: Decimal
    status: str
    payment_date: datetime | None = None
    note: str | None = None
    rejection_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_in_payroll_run_id: UUID | None = None
    employee_name: str | None = None


class TerminationBenefitResponse(BaseModel):
    """Schema for termination benefit response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    policy_id: UUID | None = None
    termination_request_id: UUID | None = None
    given_amount: Decimal
    status: str
    note: str | None = None
    rejection_reason: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_in_payroll_run_id: UUID | None = None
    employee_name: str | None = None


class SigningBonusUpdate(BaseModel):
    status: str | None = None
    amount: Decimal | None = None
    note: str | None = None
    payment_date: datetime | None = None


class TerminationBenefitUpdate(BaseModel):
    status: str | None = None
    given_amount: Decimal | None = None
    note: str | None = None


class RejectRequest(BaseModel):
    reason: str = ""


class BulkApprovalResponse(BaseModel):
    matched_count: int
    modified_count: int
    approved_at: datetime


# ============================================================================
# Irregularity schemas
# ============================================================================


class IrregularityResponse(BaseModel):
    """Schema for one structured irregularity."""

    id: str
    code: str
    message: str
    status: str
    detail_id: UUID
    employee_id: UUID
    payroll_run_id: UUID
    flagged_at: datetime | None = None
    escalated_by: str | None = None
    escalation_reason: str | None = None
    escalated_at: datetime | None = None
    resolution: dict[str, Any] | None = None


class IrregularityListResponse(BaseModel):
    items: list[IrregularityResponse]
    total: int
    pending: int
    escalated: int
    resolved: int


class EscalateRequest(BaseModel):
    reason: str = ""


class ResolveRequest(BaseModel):
    action: str
    notes: str | None = None
    adjusted_value: Decimal | None = None
