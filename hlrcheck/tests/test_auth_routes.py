from hlrcheck.app.models import AccessRequest, AuditLog
from hlrcheck.app.services import telegram_service


def test_needs_setup_then_setup_admin(client):
    assert client.get("/api/auth/needs-setup").json() == {"needs_setup": True}

    r = client.post("/api/auth/setup-admin", json={"username": "root", "password": "secret123"})
    assert r.status_code == 201
    body = r.json()
    assert body["user"]["role"] == "admin"
    assert "admin.permissions" in body["user"]["permissions"]

    assert client.get("/api/auth/needs-setup").json() == {"needs_setup": False}
    r = client.post("/api/auth/setup-admin", json={"username": "again", "password": "secret123"})
    assert r.status_code == 403


def test_login_sets_cookie_and_me_works(client, user):
    r = client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
    assert r.status_code == 200
    assert r.json()["token_type"] == "bearer"
    assert "access_token" in r.cookies

    # cookie is sent automatically by the client
    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == "alice"
    assert "hlr.single" in me.json()["permissions"]


def test_bearer_token_auth(client, user, auth_headers):
    r = client.get("/api/auth/me", headers=auth_headers(user))
    assert r.status_code == 200


def test_unauthenticated_is_401(client):
    assert client.get("/api/auth/me").status_code == 401


def test_bad_login(client, user):
    r = client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    assert r.status_code == 401
    assert r.json()["detail"]["attempts_left"] == 4


def test_logout_revokes_session(client, user, auth_headers):
    headers = auth_headers(user)
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_sessions_and_terminate_others(client, user, auth_headers):
    mine = auth_headers(user)
    other = auth_headers(user)

    sessions = client.get("/api/auth/sessions", headers=mine).json()
    assert len(sessions) == 2
    assert sum(1 for s in sessions if s["is_current"]) == 1

    r = client.post("/api/auth/sessions/terminate-others", headers=mine)
    assert r.json()["terminated"] == 1
    assert client.get("/api/auth/me", headers=other).status_code == 401
    assert client.get("/api/auth/me", headers=mine).status_code == 200


def test_terminate_foreign_session_is_404(client, user, make_user, auth_headers):
    bob = make_user("bob")
    auth_headers(bob)
    headers = auth_headers(user)
    sessions = client.get("/api/auth/sessions", headers=auth_headers(bob)).json()
    r = client.delete(f"/api/auth/sessions/{sessions[0]['id']}", headers=headers)
    assert r.status_code == 404


def test_change_password_route(client, user, auth_headers):
    headers = auth_headers(user)
    r = client.post("/api/auth/change-password", headers=headers,
                    json={"old_password": "wrong", "new_password": "another1"})
    assert r.status_code == 400
    r = client.post("/api/auth/change-password", headers=headers,
                    json={"old_password": "secret123", "new_password": "another1"})
    assert r.status_code == 200


def test_login_history(client, user):
    client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
    history = client.get("/api/auth/login-history").json()
    assert [h["action"] for h in history][:2] == ["login", "login_failed"]


def test_me_stats(client, user, auth_headers):
    stats = client.get("/api/auth/me/stats", headers=auth_headers(user)).json()
    assert stats["total_checks"] == 0
    assert stats["usage"] == {"today": 0, "week": 0, "month": 0}


def test_access_request_is_public_and_notifies(client, db, monkeypatch):
    sent = []
    monkeypatch.setattr(telegram_service, "send_telegram_message", lambda db, text, parse_mode="HTML": sent.append(text) or True)

    r = client.post("/api/auth/access-request", json={"name": "Jo", "email": "Jo@Example.com", "telegram": "@jo"})
    assert r.status_code == 201
    assert db.query(AccessRequest).one().email == "jo@example.com"
    assert "Jo" in sent[0]
    assert db.query(AuditLog).filter_by(action="access_request").count() == 1

    r = client.post("/api/auth/access-request", json={"name": "Jo again", "email": "jo@example.com"})
    assert r.status_code == 409


def test_access_request_rejects_bad_email(client):
    r = client.post("/api/auth/access-request", json={"name": "Jo", "email": "nope"})
    assert r.status_code == 422
