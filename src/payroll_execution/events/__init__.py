"""Payroll notification events."""

from payroll_execution.events.emitter import EventBatch, EventEmitter, get_emitter, log_event
from payroll_execution.events.types import (
    BenefitApproved,
    BenefitRejected,
    DomainEvent,
    EventCategory,
    EventMetadata,
    IrregularityEscalated,
    IrregularityResolved,
    PayrollRunCreated,
    PayrollRunFinanceApproved,
    PayrollRunLocked,
    PayrollRunManagerApproved,
    PayrollRunProcessingFailed,
    PayrollRunRejected,
    PayrollRunSubmitted,
    PayrollRunUnlocked,
    PayslipsDistributed,
)

__all__ = [
    "EventBatch",
    "EventEmitter",
    "get_emitter",
    "log_event",
    "BenefitApproved",
    "BenefitRejected",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "IrregularityEscalated",
    "IrregularityResolved",
    "PayrollRunCreated",
    "PayrollRunFinanceApproved",
    "PayrollRunLocked",
    "PayrollRunManagerApproved",
    "PayrollRunProcessingFailed",
    "PayrollRunRejected",
    "PayrollRunSubmitted",
    "PayrollRunUnlocked",
    "PayslipsDistributed",
]
