"""Payroll run, signing bonus and termination benefit state machines."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from payroll_execution.errors import PayrollValidationError


class PayrollRunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    PENDING_FINANCE_APPROVAL = "pending_finance_approval"
    APPROVED = "approved"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class BonusStatus(str, Enum):
    """Signing bonus status values."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class BenefitStatus(str, Enum):
    """Termination benefit status values."""

    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


class RefundStatus(str, Enum):
    """Refund status values.

    Deferred refunds were held back by the minimum-wage floor and are
    picked up again by the next run.
    """

    PENDING = "pending"
    DEFERRED = "deferred"
    PAID = "paid"


class InvalidTransitionError(PayrollValidationError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = _value(from_status)
        self.to_status = _value(to_status)
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


def _value(status: str) -> str:
    return status.value if isinstance(status, Enum) else str(status)


class _StateMachine:
    """Shared transition-table behavior."""

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_value(from_status), [])
        return _value(to_status) in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, operation: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status, operation)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return list(cls.VALID_TRANSITIONS.get(_value(current_status), []))

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.VALID_TRANSITIONS.get(_value(status))


class PayrollRunStateMachine(_StateMachine):
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → under_review (specialist submits, triggers processing)
    - draft → rejected
    - under_review → pending_finance_approval (manager approves)
    - under_review → rejected
    - pending_finance_approval → approved (finance approves)
    - pending_finance_approval → rejected
    - approved → locked
    - locked → unlocked (reason required)
    - unlocked → locked
    - rejected → draft (re-edit)
    """

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        PayrollRunStatus.DRAFT.value: [
            PayrollRunStatus.UNDER_REVIEW.value,
            PayrollRunStatus.REJECTED.value,
        ],
        PayrollRunStatus.UNDER_REVIEW.value: [
            PayrollRunStatus.PENDING_FINANCE_APPROVAL.value,
            PayrollRunStatus.REJECTED.value,
        ],
        PayrollRunStatus.PENDING_FINANCE_APPROVAL.value: [
            PayrollRunStatus.APPROVED.value,
            PayrollRunStatus.REJECTED.value,
        ],
        PayrollRunStatus.APPROVED.value: [PayrollRunStatus.LOCKED.value],
        PayrollRunStatus.LOCKED.value: [PayrollRunStatus.UNLOCKED.value],
        PayrollRunStatus.UNLOCKED.value: [PayrollRunStatus.LOCKED.value],
        PayrollRunStatus.REJECTED.value: [PayrollRunStatus.DRAFT.value],
        PayrollRunStatus.CANCELLED.value: [],  # Terminal state
    }

    # Statuses a specialist may edit
    EDITABLE = {
        PayrollRunStatus.DRAFT.value,
        PayrollRunStatus.REJECTED.value,
    }

    # Rejection by the specialist is limited to these statuses
    SPECIALIST_REJECTABLE = {
        PayrollRunStatus.DRAFT.value,
        PayrollRunStatus.UNDER_REVIEW.value,
    }

    # Runs in these statuses do not block a new run for the same period
    RELEASES_PERIOD = {
        PayrollRunStatus.REJECTED.value,
        PayrollRunStatus.CANCELLED.value,
    }

    # Payslips can be distributed once finance has approved
    PAYSLIPS_DISTRIBUTABLE = {
        PayrollRunStatus.APPROVED.value,
        PayrollRunStatus.LOCKED.value,
    }

    @classmethod
    def can_edit(cls, status: str) -> bool:
        return _value(status) in cls.EDITABLE

    @classmethod
    def can_distribute_payslips(cls, status: str) -> bool:
        return _value(status) in cls.PAYSLIPS_DISTRIBUTABLE


class SigningBonusStateMachine(_StateMachine):
    """pending → approved → paid, or pending → rejected."""

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        BonusStatus.PENDING.value: [BonusStatus.APPROVED.value, BonusStatus.REJECTED.value],
        BonusStatus.APPROVED.value: [BonusStatus.PAID.value],
        BonusStatus.PAID.value: [],  # Terminal state
        BonusStatus.REJECTED.value: [],  # Terminal state
    }


class TerminationBenefitStateMachine(_StateMachine):
    """pending → approved → paid, or pending → rejected."""

    VALID_TRANSITIONS: ClassVar[dict[str, list[str]]] = {
        BenefitStatus.PENDING.value: [BenefitStatus.APPROVED.value, BenefitStatus.REJECTED.value],
        BenefitStatus.APPROVED.value: [BenefitStatus.PAID.value],
        BenefitStatus.PAID.value: [],  # Terminal state
        BenefitStatus.REJECTED.value: [],  # Terminal state
    }
