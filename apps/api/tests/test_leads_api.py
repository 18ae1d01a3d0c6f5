from __future__ import annotations

import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_api.core.config import get_settings
from crm_api.core.database import Base, get_db
from crm_api.crm.api import get_current_user
from crm_api.crm.service import ActorUser
from crm_api.main import app


OWNER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("BASE_CURRENCY", "AUD")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> ActorUser:
        return ActorUser(owner_id=OWNER_ID, user_id=OWNER_ID, name="Sales Rep", correlation_id="corr-lead")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_contact(client: TestClient, company_name: str, person: str) -> str:
    response = client.post(
        "/api/contacts",
        json={
            "company_name": company_name,
            "company_email": f"info@{company_name.lower()}.test",
            "phone_number": "123",
            "contact_persons": [{"name": person}],
        },
    )
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _manual_lead(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    payload = {
        "is_manual_entry": True,
        "contact_person_name": "Sam Walker",
        "company": "Beta Corp",
        "value": "1,500.50",
        "subscription": "200",
    }
    payload.update(overrides)
    response = client.post("/api/leads", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_manual_lead_defaults_currency_and_base_amounts(client: TestClient) -> None:
    lead = _manual_lead(client)

    assert lead["currency_code"] == "AUD"
    assert Decimal(str(lead["value"])) == Decimal("1500.50")
    assert Decimal(str(lead["base_value"])) == Decimal("1500.50")
    assert Decimal(str(lead["base_subscription"])) == Decimal("200")
    assert lead["contact_name"] == "Sam Walker"
    assert lead["stage"] == "New Lead"
    assert lead["contact_id"] is None


def test_foreign_currency_lead_leaves_base_amounts_empty(client: TestClient) -> None:
    lead = _manual_lead(client, currency_code="USD")

    assert lead["base_value"] is None


def test_manual_lead_requires_person_name(client: TestClient) -> None:
    response = client.post("/api/leads", json={"is_manual_entry": True, "company": "Beta", "value": 10})

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "contact_person_name"


def test_linked_lead_requires_existing_contact(client: TestClient) -> None:
    missing = client.post("/api/leads", json={"value": 10})
    assert missing.status_code == 400
    assert missing.json()["details"][0]["field"] == "contact_id"

    unknown = client.post("/api/leads", json={"contact_id": str(uuid.uuid4()), "value": 10})
    assert unknown.status_code == 400
    assert unknown.json()["details"][0]["field"] == "contact_id"


def test_linked_lead_takes_company_and_name_from_contact(client: TestClient) -> None:
    contact_id = _create_contact(client, "Gamma", "Gia Ng")

    response = client.post("/api/leads", json={"contact_id": contact_id, "value": 99})

    assert response.status_code == 201
    body = response.json()
    assert body["company"] == "Gamma"
    assert body["contact_name"] == "Gia Ng"


def test_negative_amount_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/leads",
        json={"is_manual_entry": True, "contact_person_name": "Sam", "company": "Beta", "value": -5},
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "value"


def test_changing_contact_is_audited_with_labels(client: TestClient) -> None:
    first = _create_contact(client, "Gamma", "Gia Ng")
    second = _create_contact(client, "Delta", "Dee Lin")
    lead = client.post("/api/leads", json={"contact_id": first, "value": 10}).json()

    updated = client.put(f"/api/leads/{lead['id']}", json={"contact_id": second, "stage": "Qualified"})
    assert updated.status_code == 200
    assert updated.json()["contact_name"] == "Dee Lin"

    audit = client.get(f"/api/leads/audit/{lead['id']}").json()["audit_logs"]
    changes = {item["field"]: item for item in audit[0]["changes"]}
    assert changes["stage"]["old_value"] == "New Lead"
    assert changes["stage"]["new_value"] == "Qualified"
    assert changes["contact_id"]["old_value"] == "Gia Ng"
    assert changes["contact_id"]["new_value"] == "Dee Lin"


def test_update_value_in_base_currency_keeps_base_value_in_step(client: TestClient) -> None:
    lead = _manual_lead(client)

    updated = client.put(f"/api/leads/{lead['id']}", json={"value": "2,000"})

    assert Decimal(str(updated.json()["base_value"])) == Decimal("2000")


def test_switching_to_base_currency_fills_base_amounts(client: TestClient) -> None:
    lead = _manual_lead(client, currency_code="USD", value="1,000")
    assert lead["base_value"] is None

    updated = client.put(f"/api/leads/{lead['id']}", json={"currency_code": "AUD"})

    assert updated.status_code == 200, updated.text
    body = updated.json()
    assert body["currency_code"] == "AUD"
    assert Decimal(str(body["base_value"])) == Decimal("1000")
    assert Decimal(str(body["base_subscription"])) == Decimal("200")


def test_unknown_stage_is_rejected(client: TestClient) -> None:
    lead = _manual_lead(client)

    response = client.put(f"/api/leads/{lead['id']}", json={"stage": "Maybe"})

    assert response.status_code == 400


def test_pipeline_summary_groups_by_stage(client: TestClient) -> None:
    _manual_lead(client, value=100)
    _manual_lead(client, value=200)
    _manual_lead(client, value=50, stage="Qualified")

    response = client.get("/api/leads/pipeline/summary")

    assert response.status_code == 200
    summary = {item["stage"]: item for item in response.json()}
    assert summary["New Lead"]["count"] == 2
    assert Decimal(str(summary["New Lead"]["total_value"])) == Decimal("300")
    assert summary["Qualified"]["count"] == 1
    assert len(summary["Qualified"]["leads"]) == 1


def test_list_leads_filters_by_stage_and_search(client: TestClient) -> None:
    _manual_lead(client, company="Beta Corp")
    _manual_lead(client, company="Omega Ltd", stage="Negotiation")

    by_stage = client.get("/api/leads", params={"stage": "Negotiation"}).json()
    assert [item["company"] for item in by_stage] == ["Omega Ltd"]

    by_text = client.get("/api/leads", params={"q": "beta"}).json()
    assert [item["company"] for item in by_text] == ["Beta Corp"]


def test_deleted_lead_is_gone(client: TestClient) -> None:
    lead = _manual_lead(client)

    assert client.delete(f"/api/leads/{lead['id']}").status_code == 200
    assert client.get(f"/api/leads/{lead['id']}").status_code == 404
    assert client.delete(f"/api/leads/{lead['id']}").status_code == 404
