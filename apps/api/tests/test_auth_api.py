from __future__ import annotations

import re
import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from crm_api.core.auth import create_access_token, hash_password, verify_password
from crm_api.core.config import get_settings
from crm_api.core.database import Base, get_db
from crm_api.main import app
from crm_api.mail import get_mailer


class RecordingMailer:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str, str | None]] = []

    def send(self, to: str, subject: str, text: str, html: str | None = None) -> None:
        self.sent.append((to, subject, text, html))


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
    monkeypatch.setenv("JWT_SECRET", "test-secret")
    monkeypatch.setenv("FRONTEND_URL", "https://crm.example.com")
    monkeypatch.setenv("ALLOW_ANONYMOUS_WRITES", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture()
def client(db_session: Session, mailer: RecordingMailer) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _signup(client: TestClient, email: str = "jane@example.com", password: str = "s3cret-pass") -> dict:
    response = client.post("/api/auth/signup", json={"name": "Jane Doe", "email": email, "password": password})
    assert response.status_code == 201, response.text
    return response.json()


def _auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_password_hash_round_trip() -> None:
    encoded = hash_password("correct horse", iterations=1000)

    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password("correct horse", encoded)
    assert not verify_password("wrong", encoded)
    assert not verify_password("anything", "not-a-hash")


def test_signup_login_and_me(client: TestClient) -> None:
    signed_up = _signup(client, email="Jane@Example.COM")
    assert signed_up["token_type"] == "bearer"
    assert signed_up["user"]["email"] == "jane@example.com"

    login = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "s3cret-pass"})
    assert login.status_code == 200

    me = client.get("/api/auth/me", headers=_auth(login.json()["access_token"]))
    assert me.status_code == 200
    assert me.json()["name"] == "Jane Doe"


def test_duplicate_signup_is_a_validation_error(client: TestClient) -> None:
    _signup(client)

    response = client.post("/api/auth/signup", json={"name": "Other", "email": "jane@example.com", "password": "another-pass"})

    assert response.status_code == 400
    assert response.json()["details"] == [{"field": "email", "message": "email is already registered"}]


def test_login_with_wrong_password_fails(client: TestClient) -> None:
    _signup(client)

    response = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "nope-nope"})

    assert response.status_code == 401
    assert response.json()["code"] == "invalid_credentials"


def test_token_failures_are_distinguished(client: TestClient) -> None:
    user = _signup(client)["user"]

    missing = client.get("/api/auth/me")
    assert missing.status_code == 401
    assert missing.json()["code"] == "token_missing"

    garbage = client.get("/api/auth/me", headers=_auth("not-a-jwt"))
    assert garbage.json()["code"] == "token_invalid"

    expired = client.get("/api/auth/me", headers=_auth(create_access_token(uuid.UUID(user["id"]), expires_minutes=-5)))
    assert expired.json()["code"] == "token_expired"

    orphan = client.get("/api/auth/me", headers=_auth(create_access_token(uuid.uuid4())))
    assert orphan.status_code == 401
    assert orphan.json()["code"] == "user_not_found"


def test_crm_endpoints_require_a_token(client: TestClient) -> None:
    response = client.get("/api/contacts")

    assert response.status_code == 401
    assert response.json()["code"] == "token_missing"


def test_authenticated_writes_are_owned_and_audited_by_the_user(client: TestClient) -> None:
    signed_up = _signup(client)
    headers = _auth(signed_up["access_token"])

    created = client.post(
        "/api/contacts",
        json={"company_name": "Acme", "company_email": "info@acme.test", "phone_number": "1"},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["owner_id"] == signed_up["user"]["id"]

    audit = client.get(f"/api/contacts/audit/{created.json()['id']}", headers=headers).json()
    assert audit["audit_logs"][0]["actor_name"] == "Jane Doe"
    assert audit["audit_logs"][0]["actor_id"] == signed_up["user"]["id"]


def test_anonymous_writes_fall_back_to_default_actor(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALLOW_ANONYMOUS_WRITES", "true")
    get_settings.cache_clear()

    created = client.post(
        "/api/contacts",
        json={"company_name": "Acme", "company_email": "info@acme.test", "phone_number": "1"},
    )

    assert created.status_code == 201
    assert created.json()["owner_id"] == get_settings().default_actor_id
    audit = client.get(f"/api/contacts/audit/{created.json()['id']}").json()
    assert audit["audit_logs"][0]["actor_name"] == "System"


def test_forgot_and_reset_password(client: TestClient, mailer: RecordingMailer) -> None:
    _signup(client)

    forgot = client.post("/api/auth/forgot-password", json={"email": "jane@example.com"})
    assert forgot.status_code == 200
    assert mailer.sent[0][0] == "jane@example.com"
    match = re.search(r"https://crm\.example\.com/reset-password/(\S+)", mailer.sent[0][2])
    assert match is not None
    token = match.group(1)

    reset = client.post("/api/auth/reset-password", json={"token": token, "password": "brand-new-pass"})
    assert reset.status_code == 200

    login = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "brand-new-pass"})
    assert login.status_code == 200

    reused = client.post("/api/auth/reset-password", json={"token": token, "password": "another-pass"})
    assert reused.status_code == 400
    assert reused.json()["details"][0]["field"] == "token"


def test_forgot_password_for_unknown_email_is_not_found(client: TestClient, mailer: RecordingMailer) -> None:
    response = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

    assert response.status_code == 404
    assert mailer.sent == []
