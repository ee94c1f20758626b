"""API routes."""

from payroll_execution.api.routes.benefits import router as benefits_router
from payroll_execution.api.routes.health import router as health_router
from payroll_execution.api.routes.irregularities import router as irregularities_router
from payroll_execution.api.routes.payroll_runs import router as payroll_runs_router
from payroll_execution.api.routes.payslips import router as payslips_router

__all__ = [
    "benefits_router",
    "health_router",
    "irregularities_router",
    "payroll_runs_router",
    "payslips_router",
]
