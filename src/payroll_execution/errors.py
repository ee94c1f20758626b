"""Exception hierarchy for payroll execution."""

from __future__ import annotations


class PayrollError(Exception):
    """Base class for payroll execution errors."""

    code = "PAYROLL_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PayrollValidationError(PayrollError):
    """Invalid input, missing reason, bad period or illegal operation."""

    code = "VALIDATION_ERROR"


class DuplicatePeriodError(PayrollValidationError):
    """A non-rejected run already exists for the entity and period."""

    code = "DUPLICATE_PERIOD"

    def __init__(self, message: str, existing_run_id: str | None = None):
        self.existing_run_id = existing_run_id
        super().__init__(message)


class NotFoundError(PayrollError):
    """Referenced record does not exist."""

    code = "NOT_FOUND"


class AuthorizationError(PayrollError):
    """Wrong role, self-approval or inactive approver."""

    code = "FORBIDDEN"


class StaleVersionError(PayrollError):
    """Caller presented a run version that is no longer current."""

    code = "STALE_VERSION"

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payroll run was modified concurrently (expected version {expected}, found {actual})"
        )


class RunProcessingError(PayrollError):
    """Run-level processing failed; the run was reverted to draft."""

    code = "PROCESSING_FAILED"
