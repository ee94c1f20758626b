"""Role-based capability checks for payroll operations."""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.errors import AuthorizationError, NotFoundError
from payroll_execution.models import Employee, EmployeeSystemRole


class Role(str, Enum):
    """System roles involved in payroll execution."""

    PAYROLL_SPECIALIST = "Payroll Specialist"
    PAYROLL_MANAGER = "Payroll Manager"
    FINANCE_STAFF = "Finance Staff"


class Action(str, Enum):
    """Guarded operations."""

    CREATE_RUN = "create_run"
    UPDATE_RUN = "update_run"
    SUBMIT_RUN = "submit_run"
    REJECT_RUN = "reject_run"
    MANAGER_APPROVE = "manager_approve"
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    LOCK_RUN = "lock_run"
    UNLOCK_RUN = "unlock_run"
    DISTRIBUTE_PAYSLIPS = "distribute_payslips"
    MANAGE_BENEFITS = "manage_benefits"
    ESCALATE_IRREGULARITY = "escalate_irregularity"
    RESOLVE_IRREGULARITY = "resolve_irregularity"


CAPABILITIES: dict[Action, Role] = {
    Action.CREATE_RUN: Role.PAYROLL_SPECIALIST,
    Action.UPDATE_RUN: Role.PAYROLL_SPECIALIST,
    Action.SUBMIT_RUN: Role.PAYROLL_SPECIALIST,
    Action.REJECT_RUN: Role.PAYROLL_SPECIALIST,
    Action.MANAGER_APPROVE: Role.PAYROLL_MANAGER,
    Action.FINANCE_APPROVE: Role.FINANCE_STAFF,
    Action.FINANCE_REJECT: Role.FINANCE_STAFF,
    Action.LOCK_RUN: Role.PAYROLL_MANAGER,
    Action.UNLOCK_RUN: Role.PAYROLL_MANAGER,
    Action.DISTRIBUTE_PAYSLIPS: Role.FINANCE_STAFF,
    Action.MANAGE_BENEFITS: Role.PAYROLL_SPECIALIST,
    Action.ESCALATE_IRREGULARITY: Role.PAYROLL_SPECIALIST,
    Action.RESOLVE_IRREGULARITY: Role.PAYROLL_MANAGER,
}

SELF_APPROVAL_MESSAGE = "Self-approval not allowed. Record must be approved by a different user."


class AccessPolicy:
    """Single entry point for role membership and approver checks.

    Every mutating service call goes through `authorize` before touching
    state; approvals additionally go through `validate_approver`.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def required_role(action: Action) -> Role:
        return CAPABILITIES[action]

    async def roles_of(self, actor_id: UUID) -> set[str]:
        """Active system roles granted to an employee."""
        result = await self.session.execute(
            select(EmployeeSystemRole).where(
                EmployeeSystemRole.employee_id == actor_id,
                EmployeeSystemRole.is_active.is_(True),
            )
        )
        roles: set[str] = set()
        for assignment in result.scalars().all():
            roles.update(assignment.roles or [])
        return roles

    async def authorize(self, actor_id: UUID, action: Action) -> Role:
        """Raise AuthorizationError unless the actor holds the action's role."""
        role = self.required_role(action)
        if role.value not in await self.roles_of(actor_id):
            raise AuthorizationError(f"User does not have required role: {role.value}")
        return role

    async def validate_approver(
        self,
        approver_id: UUID,
        *prior_actors: UUID | None,
    ) -> Employee:
        """Approver must exist, be active and differ from every prior actor."""
        approver = await self.session.get(Employee, approver_id)
        if approver is None:
            raise NotFoundError("Approver employee not found")
        if not approver.is_active:
            raise AuthorizationError("Approver must be an active employee")
        if any(prior is not None and prior == approver_id for prior in prior_actors):
            raise AuthorizationError(SELF_APPROVAL_MESSAGE)
        return approver
