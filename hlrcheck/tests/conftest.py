import os

# must be set before hlrcheck.app.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = ""
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["SEVEN_IO_API_KEY"] = "test-seven-key"
os.environ["MILLIONVERIFIER_API_KEY"] = "test-mv-key"
os.environ["JWT_SECRET_KEY"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

import hlrcheck.app.models  # noqa: F401
from hlrcheck.app.db import Base, engine, SessionLocal
from hlrcheck.app.services import hlr_client, email_client
from hlrcheck.app.services.auth_service import create_user, create_user_session
from hlrcheck.app.services.cache import clear_memory_cache


@pytest.fixture(autouse=True)
def no_network_calls(monkeypatch):
    """Block all external requests (safety)."""
    def blocked(*a, **kw):
        raise RuntimeError("NETWORK CALL BLOCKED IN TEST")

    monkeypatch.setattr("requests.post", blocked)
    monkeypatch.setattr("requests.get", blocked)
    monkeypatch.setattr("requests.put", blocked)
    monkeypatch.setattr("requests.delete", blocked)
    yield


@pytest.fixture(autouse=True)
def fresh_db():
    """In-memory SQLite: tables created and dropped around every test."""
    Base.metadata.create_all(bind=engine)
    clear_memory_cache()
    yield
    Base.metadata.drop_all(bind=engine)
    clear_memory_cache()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make(username="alice", password="secret123", role="user", **extra):
        return create_user(db, username, password, role=role, **extra)
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user("root", role="admin")


@pytest.fixture
def auth_headers(db):
    def _headers(u):
        token, _ = create_user_session(db, u)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def client(monkeypatch):
    from hlrcheck.app.main import app

    # batches are run explicitly in tests
    monkeypatch.setattr("hlrcheck.app.routers.batches.enqueue_batch", lambda kind, batch_id, items=None: True)
    monkeypatch.setattr("hlrcheck.app.routers.admin.enqueue_batch", lambda kind, batch_id, items=None: True)
    return TestClient(app)


# ---------- Provider fakes ----------
def _hlr_payload(number, valid=True):
    return {
        "success": True,
        "international_format_number": number,
        "national_format_number": number[3:],
        "country_code": "DE",
        "country_name": "Germany",
        "country_prefix": "49",
        "current_carrier": {"name": "Telekom", "network_code": "26201", "country": "DE", "network_type": "mobile"},
        "original_carrier": {"name": "Telekom", "network_code": "26201"},
        "valid_number": "valid" if valid else "not_valid",
        "reachable": "reachable" if valid else "unknown",
        "ported": "not_ported",
        "roaming": {"status": "not_roaming"},
        "gsm_code": "0",
        "gsm_message": "No error",
    }


@pytest.fixture
def hlr_payload():
    return _hlr_payload


@pytest.fixture
def fake_hlr(monkeypatch):
    """Fake Seven.io lookups; numbers ending in 0 are invalid, in 9 fail."""
    calls = []

    def lookup(number):
        calls.append(number)
        if number.endswith("9"):
            raise hlr_client.HlrLookupError("API error: 500")
        return _hlr_payload(number, valid=not number.endswith("0"))

    monkeypatch.setattr(hlr_client, "lookup", lookup)
    return calls


@pytest.fixture
def fake_email(monkeypatch):
    calls = []

    def verify(email, timeout=10):
        calls.append(email)
        if email.startswith("bad"):
            return {"email": email, "quality": "bad", "result": "invalid", "subresult": "invalid", "resultcode": 6}
        if email.startswith("any"):
            return {"email": email, "quality": "risky", "result": "catch_all", "subresult": "catch_all", "resultcode": 2}
        return {"email": email, "quality": "good", "result": "ok", "subresult": "ok", "resultcode": 1, "free": True}

    monkeypatch.setattr(email_client, "verify_email", verify)
    return calls
