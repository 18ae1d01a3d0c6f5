from __future__ import annotations

import threading
import uuid
from collections.abc import Generator

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
from crm_api.storage import StoredBlob, get_blob_store


OWNER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")


class MemoryBlobStore:
    def __init__(self) -> None:
        self.blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, content: bytes, content_type: str | None) -> StoredBlob:
        with self._lock:
            self.blobs[key] = content
        return StoredBlob(storage_id=key, url=self.url_for(key))

    def delete(self, storage_id: str) -> None:
        with self._lock:
            self.blobs.pop(storage_id, None)

    def url_for(self, storage_id: str) -> str:
        return f"https://blobs.example.test/{storage_id}"


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
def setup_env() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def blob_store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
def client(db_session: Session, blob_store: MemoryBlobStore) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    def override_get_current_user() -> ActorUser:
        return ActorUser(owner_id=OWNER_ID, user_id=OWNER_ID, name="Jane Doe", correlation_id="corr-contact")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _create_contact(client: TestClient, **overrides) -> dict:  # type: ignore[no-untyped-def]
    payload = {
        "contact_type": "customer",
        "company_name": "Acme Pty Ltd",
        "company_email": "info@acme.test",
        "phone_number": "+61 2 5550 1234",
        "company_address": {"country": "Australia", "state": "NSW"},
        "contact_persons": [{"name": "Ann Lee", "email": "ann@acme.test"}],
    }
    payload.update(overrides)
    response = client.post("/api/contacts", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_contact_returns_display_name_and_legacy_view(client: TestClient) -> None:
    body = _create_contact(client)

    assert body["owner_id"] == str(OWNER_ID)
    assert body["display_name"] == "Ann Lee"
    assert body["legacy"] == {
        "name": "Ann Lee",
        "email": "info@acme.test",
        "phone": "+61 2 5550 1234",
        "company": "Acme Pty Ltd",
    }
    assert body["row_version"] == 1


def test_create_contact_accepts_legacy_flat_payload(client: TestClient) -> None:
    response = client.post(
        "/api/contacts",
        json={"company": "Old Co", "email": "old@co.test", "phone": "555", "name": "Bob"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["company_name"] == "Old Co"
    assert body["contact_persons"][0]["name"] == "Bob"
    assert body["contact_type"] == "prospect"


def test_create_contact_validation_errors_use_envelope(client: TestClient) -> None:
    response = client.post("/api/contacts", json={"company_name": "No Email"}, headers={"x-correlation-id": "corr-400"})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_error"
    assert body["correlation_id"] == "corr-400"
    fields = {item["field"] for item in body["details"]}
    assert {"company_email", "phone_number"} <= fields


def test_list_contacts_filters_and_sorts(client: TestClient) -> None:
    _create_contact(client, company_name="Zeta", contact_type="prospect")
    _create_contact(client, company_name="Alpha", contact_type="customer")

    by_name = client.get("/api/contacts", params={"sort": "company_name"})
    assert [item["company_name"] for item in by_name.json()] == ["Alpha", "Zeta"]

    prospects = client.get("/api/contacts", params={"contact_type": "prospect"})
    assert [item["company_name"] for item in prospects.json()] == ["Zeta"]

    bad_sort = client.get("/api/contacts", params={"sort": "password"})
    assert bad_sort.status_code == 400
    assert bad_sort.json()["details"][0]["field"] == "sort"


def test_update_contact_records_field_changes(client: TestClient) -> None:
    contact = _create_contact(client)

    response = client.put(f"/api/contacts/{contact['id']}", json={"phone_number": "999", "website": "https://acme.test"})
    assert response.status_code == 200
    assert response.json()["row_version"] == 2

    audit = client.get(f"/api/contacts/audit/{contact['id']}")
    assert audit.status_code == 200
    entries = audit.json()["audit_logs"]
    assert [item["action"] for item in entries] == ["update", "create"]
    assert entries[0]["actor_name"] == "Jane Doe"
    assert {change["field"] for change in entries[0]["changes"]} == {"phone_number", "website"}


def test_update_with_identical_values_writes_no_audit_entry(client: TestClient) -> None:
    contact = _create_contact(client)

    client.put(f"/api/contacts/{contact['id']}", json={"company_name": contact["company_name"]})

    audit = client.get(f"/api/contacts/audit/{contact['id']}")
    assert audit.json()["pagination"]["total"] == 1


def test_update_contact_rejects_null_for_required_field(client: TestClient) -> None:
    contact = _create_contact(client)

    response = client.put(f"/api/contacts/{contact['id']}", json={"company_email": None})

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "company_email"


def test_delete_contact_keeps_audit_history(client: TestClient) -> None:
    contact = _create_contact(client)

    deleted = client.delete(f"/api/contacts/{contact['id']}")
    assert deleted.status_code == 200
    assert deleted.json() == {"id": contact["id"], "deleted": True}

    missing = client.get(f"/api/contacts/{contact['id']}")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"

    audit = client.get(f"/api/contacts/audit/{contact['id']}")
    assert audit.status_code == 200
    assert audit.json()["audit_logs"][0]["changes"] == [{"field": "status", "old_value": "Active", "new_value": "Deleted"}]


def test_audit_for_unknown_contact_is_not_found(client: TestClient) -> None:
    response = client.get(f"/api/contacts/audit/{uuid.uuid4()}")
    assert response.status_code == 404


def test_attachment_upload_download_and_delete(client: TestClient, blob_store: MemoryBlobStore) -> None:
    contact = _create_contact(client)

    uploaded = client.post(
        f"/api/contacts/{contact['id']}/attachments",
        files=[
            ("files", ("brief.pdf", b"%PDF-1.4", "application/pdf")),
            ("files", ("notes.txt", b"hello", "text/plain")),
        ],
    )
    assert uploaded.status_code == 201, uploaded.text
    attachments = uploaded.json()
    assert [item["file_name"] for item in attachments] == ["brief.pdf", "notes.txt"]
    assert len(blob_store.blobs) == 2

    download = client.get(
        f"/api/contacts/{contact['id']}/attachments/{attachments[0]['id']}",
        follow_redirects=False,
    )
    assert download.status_code == 307
    assert download.headers["location"] == attachments[0]["storage_url"]

    removed = client.delete(f"/api/contacts/{contact['id']}/attachments/{attachments[0]['id']}")
    assert removed.status_code == 200
    assert [item["file_name"] for item in removed.json()] == ["notes.txt"]
    assert len(blob_store.blobs) == 1

    audit = client.get(f"/api/contacts/audit/{contact['id']}").json()["audit_logs"]
    new_values = [item["changes"][0]["new_value"] for item in audit]
    assert "Added 2 attachments" in new_values
    assert "Attachment deleted" in new_values


def test_attachment_with_disallowed_type_is_rejected(client: TestClient) -> None:
    contact = _create_contact(client)

    response = client.post(
        f"/api/contacts/{contact['id']}/attachments",
        files=[("files", ("virus.exe", b"MZ", "application/octet-stream"))],
    )

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "files[0]"


def test_logo_set_and_clear(client: TestClient, blob_store: MemoryBlobStore) -> None:
    contact = _create_contact(client)

    with_logo = client.post(
        f"/api/contacts/{contact['id']}/logo",
        files={"file": ("logo.png", b"\x89PNG", "image/png")},
    )
    assert with_logo.status_code == 200
    assert with_logo.json()["company_logo"]["file_name"] == "logo.png"

    cleared = client.delete(f"/api/contacts/{contact['id']}/logo")
    assert cleared.status_code == 200
    assert cleared.json()["company_logo"] is None
    assert blob_store.blobs == {}

    again = client.delete(f"/api/contacts/{contact['id']}/logo")
    assert again.status_code == 404
