"""Domain event types for payroll execution.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Serializable for notification delivery

Events describe transitions that already happened. Consumers are
notification channels; none of them can veto or undo a transition.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from payroll_execution.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL_RUN = "payroll_run"
    PAYSLIP = "payslip"
    BENEFIT = "benefit"
    IRREGULARITY = "irregularity"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    actor_id: UUID | None
    source_service: str = "payroll_execution"

    @classmethod
    def create(cls, actor_id: UUID | None = None) -> EventMetadata:
        return cls(event_id=uuid4(), timestamp=utcnow(), actor_id=actor_id)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type
        return _serialize_dict(data)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payroll Run Events
# =============================================================================


@dataclass(frozen=True)
class _RunEvent(DomainEvent):
    payroll_run_id: UUID
    run_id: str
    period: str
    entity: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL_RUN


@dataclass(frozen=True)
class PayrollRunCreated(_RunEvent):
    """A draft run was created by a payroll specialist."""


@dataclass(frozen=True)
class PayrollRunSubmitted(_RunEvent):
    """A run was processed and sent to the payroll manager for review."""

    employees: int
    exceptions: int
    total_net_pay: Decimal


@dataclass(frozen=True)
class PayrollRunProcessingFailed(_RunEvent):
    """Run processing failed; the run is back in draft."""

    error: str


@dataclass(frozen=True)
class PayrollRunRejected(_RunEvent):
    """A run was rejected with a reason."""

    reason: str


@dataclass(frozen=True)
class PayrollRunManagerApproved(_RunEvent):
    """The payroll manager approved; finance approval is pending."""


@dataclass(frozen=True)
class PayrollRunFinanceApproved(_RunEvent):
    """Finance approved; the run is final and marked paid."""

    total_net_pay: Decimal


@dataclass(frozen=True)
class PayrollRunLocked(_RunEvent):
    """The run was frozen."""


@dataclass(frozen=True)
class PayrollRunUnlocked(_RunEvent):
    """The run was unfrozen with a reason."""

    reason: str


# =============================================================================
# Payslip Events
# =============================================================================


@dataclass(frozen=True)
class PayslipsDistributed(DomainEvent):
    """Payslips of a run were distributed to employees."""

    payroll_run_id: UUID
    run_id: str
    payslips: int
    total_net_pay: Decimal
    total_refunds: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYSLIP


# =============================================================================
# Signing Bonus / Termination Benefit Events
# =============================================================================


@dataclass(frozen=True)
class _BenefitEvent(DomainEvent):
    record_id: UUID
    employee_id: UUID
    kind: str  # 'signing_bonus' or 'termination_benefit'
    amount: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.BENEFIT


@dataclass(frozen=True)
class BenefitApproved(_BenefitEvent):
    """A signing bonus or termination benefit was approved."""


@dataclass(frozen=True)
class BenefitRejected(_BenefitEvent):
    """A signing bonus or termination benefit was rejected."""

    reason: str


# =============================================================================
# Irregularity Events
# =============================================================================


@dataclass(frozen=True)
class _IrregularityEvent(DomainEvent):
    irregularity_id: str
    payroll_run_id: UUID
    employee_id: UUID

    @property
    def category(self) -> EventCategory:
        return EventCategory.IRREGULARITY


@dataclass(frozen=True)
class IrregularityEscalated(_IrregularityEvent):
    """An irregularity was escalated to the payroll manager."""

    reason: str


@dataclass(frozen=True)
class IrregularityResolved(_IrregularityEvent):
    """An irregularity was resolved."""

    action: str
