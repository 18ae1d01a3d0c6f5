from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
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
from crm_api.storage import LocalBlobStore, get_blob_store


OWNER_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")


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
        return ActorUser(owner_id=OWNER_ID, user_id=OWNER_ID, name="Finance Lead", correlation_id="corr-chargeable")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_chargeable(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    payload = {
        "quote_send_date": "2026-01-05",
        "customer_name": "Acme",
        "chargeable_type": "Consulting",
        "amount": "2,000.00",
    }
    payload.update(overrides)
    response = client.post("/api/chargeables", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_chargeable_sets_creator_and_base_amount(client: TestClient) -> None:
    chargeable = _create_chargeable(client)

    assert chargeable["created_by"] == "Finance Lead"
    assert chargeable["updated_by"] is None
    assert chargeable["currency_code"] == "AUD"
    assert Decimal(str(chargeable["base_amount"])) == Decimal("2000")
    assert chargeable["payment_received"] == "no"


def test_switching_to_base_currency_fills_base_amount(client: TestClient) -> None:
    chargeable = _create_chargeable(client, currency_code="USD")
    assert chargeable["base_amount"] is None

    updated = client.put(f"/api/chargeables/{chargeable['id']}", json={"currency_code": "AUD"})

    assert updated.status_code == 200, updated.text
    assert Decimal(str(updated.json()["base_amount"])) == Decimal("2000")


def test_unknown_status_value_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/chargeables",
        json={
            "quote_send_date": "2026-01-05",
            "customer_name": "Acme",
            "chargeable_type": "Consulting",
            "amount": 10,
            "invoice_sent": "maybe",
        },
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "invoice_sent"


def test_update_sets_updated_by_and_audits_changes(client: TestClient) -> None:
    chargeable = _create_chargeable(client)

    response = client.put(
        f"/api/chargeables/{chargeable['id']}",
        json={"invoice_sent": "yes", "follow_ups": 2, "quote_send_date": "2026-01-05"},
    )

    assert response.status_code == 200
    assert response.json()["updated_by"] == "Finance Lead"
    audit = client.get(f"/api/chargeables/audit/{chargeable['id']}").json()["audit_logs"]
    assert {change["field"] for change in audit[0]["changes"]} == {"invoice_sent", "follow_ups"}


def test_search_requires_term_and_matches_text(client: TestClient) -> None:
    _create_chargeable(client, customer_name="Acme", chargeable_type="Consulting")
    _create_chargeable(client, customer_name="Globex", chargeable_type="Licence")

    missing = client.get("/api/chargeables/search")
    assert missing.status_code == 400
    assert missing.json()["details"][0]["field"] == "term"

    results = client.get("/api/chargeables/search", params={"term": "consult"}).json()
    assert [item["customer_name"] for item in results] == ["Acme"]


def test_customer_listing_is_case_insensitive(client: TestClient) -> None:
    _create_chargeable(client, customer_name="Acme")
    _create_chargeable(client, customer_name="Globex")

    results = client.get("/api/chargeables/customer/ACME").json()

    assert [item["customer_name"] for item in results] == ["Acme"]


def test_customer_dropdown_merges_chargeables_and_contacts(client: TestClient) -> None:
    _create_chargeable(client, customer_name="Globex")
    _create_chargeable(client, customer_name="Globex")
    client.post(
        "/api/contacts",
        json={"company_name": "acme", "company_email": "info@acme.test", "phone_number": "1"},
    )

    assert client.get("/api/chargeables/dropdown/customers").json() == ["acme", "Globex"]


def test_chargeable_with_unknown_contact_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/chargeables",
        json={
            "quote_send_date": "2026-01-05",
            "customer_name": "Acme",
            "chargeable_type": "Consulting",
            "amount": 10,
            "contact_id": str(uuid.uuid4()),
        },
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "contact_id"


def test_audit_listing_search_and_actor_views(client: TestClient) -> None:
    first = _create_chargeable(client)
    _create_chargeable(client, customer_name="Globex")
    client.put(f"/api/chargeables/{first['id']}", json={"payment_received": "yes"})

    everything = client.get("/api/chargeables/audit").json()
    assert everything["pagination"]["total"] == 3

    updates = client.get("/api/chargeables/audit/search", params={"action": "update"}).json()
    assert updates["pagination"]["total"] == 1
    assert updates["audit_logs"][0]["changes"][0]["field"] == "payment_received"

    by_text = client.get("/api/chargeables/audit/search", params={"q": "payment_received"}).json()
    assert by_text["pagination"]["total"] == 1

    today = datetime.now(timezone.utc).date()
    in_range = client.get(
        "/api/chargeables/audit/search",
        params={"start_date": today.isoformat(), "end_date": today.isoformat()},
    ).json()
    assert in_range["pagination"]["total"] == 3

    reversed_range = client.get(
        "/api/chargeables/audit/search",
        params={"start_date": today.isoformat(), "end_date": (today - timedelta(days=1)).isoformat()},
    )
    assert reversed_range.status_code == 400

    mine = client.get(f"/api/chargeables/audit/user/{OWNER_ID}").json()
    assert mine["pagination"]["total"] == 3
    assert client.get(f"/api/chargeables/audit/user/{uuid.uuid4()}").json()["pagination"]["total"] == 0

    paged = client.get("/api/chargeables/audit", params={"limit": 2, "page": 2}).json()
    assert paged["pagination"] == {"total": 3, "page": 2, "pages": 2, "limit": 2}
    assert len(paged["audit_logs"]) == 1


def test_chargeable_attachments_round_trip(client: TestClient, tmp_path) -> None:  # type: ignore[no-untyped-def]
    store = LocalBlobStore(tmp_path, "/files")
    app.dependency_overrides[get_blob_store] = lambda: store
    chargeable = _create_chargeable(client)

    uploaded = client.post(
        f"/api/chargeables/{chargeable['id']}/attachments",
        files=[("files", ("po.pdf", b"%PDF", "application/pdf"))],
    )
    assert uploaded.status_code == 201
    storage_id = uploaded.json()[0]["storage_id"]
    assert store.exists(storage_id)

    assert client.delete(f"/api/chargeables/{chargeable['id']}").status_code == 200
    assert not store.exists(storage_id)
