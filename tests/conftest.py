"""Pytest fixtures for payroll execution tests."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_execution.config import Settings, get_settings
from payroll_execution.events import EventEmitter
from payroll_execution.models import (
    Base,
    CompanySettings,
    Department,
    Employee,
    EmployeeSystemRole,
    PayrollRun,
    TaxRule,
)
from payroll_execution.services.authorization import Role

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MARCH_2024 = date(2024, 3, 1)


@dataclass
class Actors:
    """Employees holding the three payroll roles."""

    specialist: Employee
    manager: Employee
    finance: Employee


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def test_settings() -> Settings:
    """Settings pinned to the test database and default thresholds."""
    return replace(
        get_settings(),
        database_url=TEST_DATABASE_URL,
        company_currency="EGP",
        fallback_base_salary=Decimal("6000"),
        default_scheduled_minutes=480,
        salary_spike_threshold_percent=Decimal("25"),
        max_termination_benefit=Decimal("5000000"),
    )


@pytest.fixture
def received_events() -> list:
    return []


@pytest.fixture
def emitter(received_events: list) -> EventEmitter:
    """Isolated emitter recording every event into `received_events`."""
    emitter = EventEmitter()
    emitter.on_all(received_events.append)
    return emitter


@pytest.fixture
async def company_settings(session: AsyncSession) -> CompanySettings:
    """Company settings without a minimum wage."""
    company = CompanySettings(minimum_wage=Decimal("0"), currency="EGP")
    session.add(company)
    await session.flush()
    return company


@pytest.fixture
async def tax_rule(session: AsyncSession) -> TaxRule:
    """Approved 10% income tax for the lowest band."""
    rule = TaxRule(name="Income Tax 0-50K", rate=Decimal("10"), status="approved")
    session.add(rule)
    await session.flush()
    return rule


@pytest.fixture
async def finance_department(session: AsyncSession) -> Department:
    department = Department(name="Finance", code="FIN")
    session.add(department)
    await session.flush()
    return department


@pytest.fixture
async def payroll_office(session: AsyncSession) -> Department:
    """Department of the role holders, kept apart from processed employees."""
    department = Department(name="Payroll Office", code="PAY")
    session.add(department)
    await session.flush()
    return department


@pytest.fixture
def make_employee(
    session: AsyncSession, finance_department: Department
) -> Callable[..., Awaitable[Employee]]:
    """Factory for Finance employees; bank account and old hire date by default."""
    counter = {"n": 0}

    async def _make(
        base_salary: Decimal | str | None = "6000",
        status: str = "ACTIVE",
        bank_account: str | None = "EG380019000500000000263180002",
        date_of_hire: date | None = date(2020, 1, 1),
        position: str | None = "Accountant",
        department_id=None,
    ) -> Employee:
        counter["n"] += 1
        employee = Employee(
            employee_number=f"FIN{counter['n']:03d}",
            first_name="Employee",
            last_name=str(counter["n"]),
            status=status,
            position=position,
            primary_department_id=department_id or finance_department.id,
            base_salary=Decimal(base_salary) if base_salary is not None else None,
            bank_account_number=bank_account,
            date_of_hire=date_of_hire,
        )
        session.add(employee)
        await session.flush()
        return employee

    return _make


@pytest.fixture
async def actors(session: AsyncSession, payroll_office: Department) -> Actors:
    """Specialist, manager and finance staff, each with a single role."""
    holders = {}
    for key, role in (
        ("specialist", Role.PAYROLL_SPECIALIST),
        ("manager", Role.PAYROLL_MANAGER),
        ("finance", Role.FINANCE_STAFF),
    ):
        employee = Employee(
            employee_number=f"PAY-{key}",
            first_name=key.title(),
            last_name="User",
            status="ACTIVE",
            primary_department_id=payroll_office.id,
            bank_account_number="EG000000000000000000000000001",
            date_of_hire=date(2019, 1, 1),
        )
        session.add(employee)
        await session.flush()
        session.add(EmployeeSystemRole(employee_id=employee.id, roles=[role.value]))
        holders[key] = employee
    await session.flush()
    return Actors(**holders)


@pytest.fixture
async def draft_run(
    session: AsyncSession, finance_department: Department, actors: Actors
) -> PayrollRun:
    """Draft run for Finance, March 2024."""
    run = PayrollRun(
        id=uuid4(),
        run_id="PR-2024-03-TEST",
        payroll_period=MARCH_2024,
        entity="Finance",
        entity_id=finance_department.id,
        status="draft",
        payment_status="pending",
        payroll_specialist_id=actors.specialist.id,
        irregularities=[],
    )
    session.add(run)
    await session.flush()
    return run
