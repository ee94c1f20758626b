"""API endpoint tests.

Tests the FastAPI routes against an in-memory database; fixture data is
committed first because every request runs in its own session.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_execution.api.app import create_app
from payroll_execution.api.dependencies import get_db_session
from payroll_execution.config import get_settings
from payroll_execution.errors import PayrollValidationError
from payroll_execution.events import get_emitter
from payroll_execution.models import EmployeeSigningBonus
from payroll_execution.services.benefit_service import BenefitService

pytestmark = pytest.mark.asyncio

RUNS = "/api/v1/payroll-runs"


@dataclass
class Seed:
    department_id: UUID
    specialist: str
    manager: str
    finance: str
    bonus_id: UUID


def as_actor(actor_id: str) -> dict[str, str]:
    return {"X-Actor-ID": actor_id}


@pytest.fixture
async def seed(session, actors, finance_department, tax_rule, make_employee) -> Seed:
    """Two Finance employees (one without a bank account) and a pending bonus."""
    await make_employee()
    unbanked = await make_employee(bank_account=None)
    bonus = EmployeeSigningBonus(
        employee_id=unbanked.id, given_amount=Decimal("750"), status="pending"
    )
    session.add(bonus)
    await session.commit()
    return Seed(
        department_id=finance_department.id,
        specialist=str(actors.specialist.id),
        manager=str(actors.manager.id),
        finance=str(actors.finance.id),
        bonus_id=bonus.id,
    )


@pytest.fixture
async def client(session_factory):
    app = create_app()

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_session
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False), base_url="http://test"
    ) as client:
        yield client


@pytest.fixture
def published():
    """Events delivered by the process-wide emitter during the test."""
    events = []
    handler = events.append
    get_emitter().on_all(handler)
    yield events
    get_emitter().off(handler)


async def create_run(client: AsyncClient, seed: Seed, period: str = "2024-03") -> dict:
    response = await client.post(
        RUNS,
        headers=as_actor(seed.specialist),
        json={"payroll_period": period, "entity_id": str(seed.department_id)},
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestHealthEndpoints:
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["version"] == get_settings().engine_version

    async def test_readiness_and_liveness(self, client: AsyncClient):
        assert (await client.get("/ready")).json() == {"status": "ready"}
        assert (await client.get("/live")).json() == {"status": "alive"}

    async def test_database_down(self, client: AsyncClient, monkeypatch):
        async def refuse(self, statement, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(AsyncSession, "execute", refuse)

        health = await client.get("/health")
        assert health.status_code == 200
        assert health.json()["status"] == "degraded"
        assert health.json()["database"] == "unhealthy"

        ready = await client.get("/ready")
        assert ready.status_code == 503
        assert (await client.get("/live")).status_code == 200


class TestPayrollRunCRUD:
    async def test_create_run(self, client: AsyncClient, seed: Seed):
        data = await create_run(client, seed)

        assert data["status"] == "draft"
        assert data["payment_status"] == "pending"
        assert data["entity"] == "Finance"
        assert data["payroll_period"] == "2024-03-01"
        assert data["run_id"].startswith("PR-2024-03-")
        assert data["payroll_specialist_id"] == seed.specialist
        assert data["version"] == 1

    async def test_duplicate_period(self, client: AsyncClient, seed: Seed):
        first = await create_run(client, seed)

        response = await client.post(
            RUNS,
            headers=as_actor(seed.specialist),
            json={"payroll_period": "2024-03-15", "entity": "Finance"},
        )

        assert response.status_code == 409
        data = response.json()
        assert data["code"] == "DUPLICATE_PERIOD"
        assert data["existing_run_id"] == first["run_id"]

    async def test_requires_actor_header(self, client: AsyncClient, seed: Seed):
        response = await client.post(RUNS, json={"payroll_period": "2024-03"})
        assert response.status_code == 400
        assert response.json()["detail"] == "X-Actor-ID header is required"

        response = await client.post(
            RUNS, headers={"X-Actor-ID": "not-a-uuid"}, json={"payroll_period": "2024-03"}
        )
        assert response.status_code == 400

    async def test_wrong_role_is_forbidden(self, client: AsyncClient, seed: Seed):
        response = await client.post(
            RUNS, headers=as_actor(seed.finance), json={"payroll_period": "2024-03"}
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    async def test_invalid_and_future_periods(self, client: AsyncClient, seed: Seed):
        for period in ("2024-13", "2999-01"):
            response = await client.post(
                RUNS, headers=as_actor(seed.specialist), json={"payroll_period": period}
            )
            assert response.status_code == 400
            assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_get_and_list(self, client: AsyncClient, seed: Seed):
        created = await create_run(client, seed)

        response = await client.get(f"{RUNS}/{created['id']}")
        assert response.status_code == 200
        assert response.json()["run_id"] == created["run_id"]

        listing = (await client.get(RUNS, params={"status": "draft"})).json()
        assert listing["total"] == 1
        assert listing["total_pages"] == 1
        assert [run["id"] for run in listing["items"]] == [created["id"]]

        empty = (await client.get(RUNS, params={"period": "2024-02"})).json()
        assert empty["items"] == []

    async def test_run_not_found(self, client: AsyncClient, seed: Seed):
        response = await client.get(f"{RUNS}/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    async def test_stale_version(self, client: AsyncClient, seed: Seed):
        created = await create_run(client, seed)

        response = await client.patch(
            f"{RUNS}/{created['id']}",
            headers=as_actor(seed.specialist),
            json={"payroll_period": "2024-02", "expected_version": 7},
        )

        assert response.status_code == 409
        assert response.json()["code"] == "STALE_VERSION"

        response = await client.patch(
            f"{RUNS}/{created['id']}",
            headers=as_actor(seed.specialist),
            json={"payroll_period": "2024-02", "expected_version": created["version"]},
        )
        assert response.status_code == 200
        assert response.json()["payroll_period"] == "2024-02-01"


class TestPayrollRunLifecycle:
    async def test_submit_approve_and_distribute(self, client: AsyncClient, seed: Seed):
        run = await create_run(client, seed)
        run_url = f"{RUNS}/{run['id']}"

        response = await client.post(
            f"{run_url}/submit",
            headers=as_actor(seed.specialist),
            json={"expected_version": run["version"]},
        )
        assert response.status_code == 200, response.text
        processed = response.json()
        assert processed["employees"] == 2
        assert processed["exceptions"] == 0
        assert Decimal(processed["total_net_pay"]) == Decimal("10800")
        assert processed["irregularities_count"] == 1
        assert processed["run"]["status"] == "under_review"

        details = (await client.get(f"{run_url}/details")).json()
        assert len(details) == 2
        assert {d["bank_status"] for d in details} == {"valid", "missing"}

        response = await client.post(
            f"{run_url}/manager-approve",
            headers=as_actor(seed.manager),
            json={"expected_version": processed["run"]["version"]},
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "pending_finance_approval"

        response = await client.post(
            f"{run_url}/finance-approve",
            headers=as_actor(seed.finance),
            json={"expected_version": response.json()["version"]},
        )
        assert response.status_code == 200, response.text
        approved = response.json()
        assert approved["status"] == "approved"
        assert approved["payment_status"] == "paid"

        payslips = (await client.get(f"{run_url}/payslips")).json()
        assert len(payslips) == 2

        summary = (await client.get(f"/api/v1/payslips/{payslips[0]['id']}")).json()
        assert Decimal(summary["net_pay"]) == Decimal("5400")

        response = await client.post(
            f"{run_url}/payslips/distribute", headers=as_actor(seed.finance)
        )
        assert response.status_code == 200, response.text
        distribution = response.json()
        assert distribution["payslips_generated"] == 2
        assert Decimal(distribution["total_net_pay_distributed"]) == Decimal("10800")

        current = (await client.get(run_url)).json()
        response = await client.post(
            f"{run_url}/freeze",
            headers=as_actor(seed.manager),
            json={"expected_version": current["version"]},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "locked"

        response = await client.post(
            f"{run_url}/unfreeze",
            headers=as_actor(seed.manager),
            json={"reason": "", "expected_version": response.json()["version"]},
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Reason is required to unfreeze payroll"

    async def test_reject_requires_reason(self, client: AsyncClient, seed: Seed):
        run = await create_run(client, seed)
        reject_url = f"{RUNS}/{run['id']}/reject"

        response = await client.post(
            reject_url,
            headers=as_actor(seed.specialist),
            json={"reason": "", "expected_version": run["version"]},
        )
        assert response.status_code == 400

        response = await client.post(
            reject_url,
            headers=as_actor(seed.specialist),
            json={"reason": "Wrong entity", "expected_version": run["version"]},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["rejection_reason"] == "Wrong entity"

    async def test_manager_approval_requires_review(self, client: AsyncClient, seed: Seed):
        run = await create_run(client, seed)

        response = await client.post(
            f"{RUNS}/{run['id']}/manager-approve",
            headers=as_actor(seed.manager),
            json={"expected_version": run["version"]},
        )

        assert response.status_code == 400
        assert "Must be in 'under review' status" in response.json()["detail"]

    @pytest.mark.parametrize(
        "transition", ["submit", "manager-approve", "finance-approve", "freeze", "reject", "unfreeze"]
    )
    async def test_transitions_require_version(
        self, client: AsyncClient, seed: Seed, transition: str
    ):
        run = await create_run(client, seed)

        response = await client.post(
            f"{RUNS}/{run['id']}/{transition}",
            headers=as_actor(seed.specialist),
            json={"reason": "Checked"},
        )

        assert response.status_code == 422
        assert (await client.get(f"{RUNS}/{run['id']}")).json()["status"] == "draft"


class TestCommitScopedEvents:
    async def test_published_after_commit(
        self, client: AsyncClient, seed: Seed, published: list
    ):
        response = await client.post(
            f"/api/v1/signing-bonuses/{seed.bonus_id}/approve",
            headers=as_actor(seed.specialist),
        )

        assert response.status_code == 200
        assert [e.event_type for e in published] == ["BenefitApproved"]

    async def test_dropped_when_commit_fails(
        self, client: AsyncClient, seed: Seed, published: list, monkeypatch
    ):
        async def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(AsyncSession, "commit", failing_commit)

        response = await client.post(
            f"/api/v1/signing-bonuses/{seed.bonus_id}/approve",
            headers=as_actor(seed.specialist),
        )

        assert response.status_code == 500
        assert published == []
        monkeypatch.undo()
        bonus = (await client.get(f"/api/v1/signing-bonuses/{seed.bonus_id}")).json()
        assert bonus["status"] == "pending"

    async def test_dropped_when_operation_fails(
        self, client: AsyncClient, seed: Seed, published: list, monkeypatch
    ):
        approve = BenefitService.approve_signing_bonus

        async def approve_then_fail(self, bonus_id, actor_id):
            await approve(self, bonus_id, actor_id)
            raise PayrollValidationError("Payment calendar is closed")

        monkeypatch.setattr(BenefitService, "approve_signing_bonus", approve_then_fail)

        response = await client.post(
            f"/api/v1/signing-bonuses/{seed.bonus_id}/approve",
            headers=as_actor(seed.specialist),
        )

        assert response.status_code == 400
        assert published == []
        bonus = (await client.get(f"/api/v1/signing-bonuses/{seed.bonus_id}")).json()
        assert bonus["status"] == "pending"


class TestBenefitEndpoints:
    async def test_list_and_approve_bonus(self, client: AsyncClient, seed: Seed):
        listing = (await client.get("/api/v1/signing-bonuses", params={"status": "pending"})).json()
        assert [b["id"] for b in listing] == [str(seed.bonus_id)]
        assert listing[0]["employee_name"] == "Employee 2"

        response = await client.post(
            f"/api/v1/signing-bonuses/{seed.bonus_id}/approve",
            headers=as_actor(seed.specialist),
        )
        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["approved_by"] == seed.specialist

    async def test_reject_bonus_needs_reason(self, client: AsyncClient, seed: Seed):
        url = f"/api/v1/signing-bonuses/{seed.bonus_id}/reject"

        response = await client.post(url, headers=as_actor(seed.specialist), json={"reason": ""})
        assert response.status_code == 400

        response = await client.post(
            url, headers=as_actor(seed.specialist), json={"reason": "Duplicate offer"}
        )
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Duplicate offer"

    async def test_bulk_approval(self, client: AsyncClient, seed: Seed):
        response = await client.post(
            "/api/v1/signing-bonuses/approve-pending", headers=as_actor(seed.specialist)
        )

        assert response.status_code == 200
        assert response.json()["matched_count"] == 1
        assert response.json()["modified_count"] == 1

    async def test_missing_benefit(self, client: AsyncClient, seed: Seed):
        response = await client.get(f"/api/v1/termination-benefits/{uuid4()}")
        assert response.status_code == 404


class TestIrregularityEndpoints:
    async def test_escalate_and_resolve(self, client: AsyncClient, seed: Seed):
        run = await create_run(client, seed)
        response = await client.post(
            f"{RUNS}/{run['id']}/submit",
            headers=as_actor(seed.specialist),
            json={"expected_version": run["version"]},
        )
        assert response.status_code == 200, response.text

        listing = (
            await client.get("/api/v1/irregularities", params={"payroll_run_id": run["id"]})
        ).json()
        assert listing["total"] == 1
        assert listing["pending"] == 1
        (item,) = listing["items"]
        assert item["code"] == "missing_bank_account"

        url = f"/api/v1/irregularities/{item['id']}"
        response = await client.post(
            f"{url}/escalate",
            headers=as_actor(seed.specialist),
            json={"reason": "Bank details requested"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "escalated"

        response = await client.post(
            f"{url}/resolve", headers=as_actor(seed.specialist), json={"action": "approved"}
        )
        assert response.status_code == 403

        response = await client.post(
            f"{url}/resolve",
            headers=as_actor(seed.manager),
            json={"action": "excluded", "notes": "Paid by cheque"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "resolved"
        assert response.json()["resolution"]["action"] == "excluded"

    async def test_unknown_irregularity(self, client: AsyncClient, seed: Seed):
        response = await client.get("/api/v1/irregularities/not-an-id")
        assert response.status_code == 404
