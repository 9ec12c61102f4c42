from hlrcheck.app.models import AccessRequest, AuditLog, CustomRole, HlrBatch, User
from hlrcheck.app.repositories.setting_repository import SettingRepository
from hlrcheck.app.services import telegram_service
from hlrcheck.app.services.batch_processor import create_batch, run_batch

NUMBERS = ["+4915112345671", "+4915112345672"]


# ---------- users ----------
def test_admin_creates_and_lists_users(client, admin, auth_headers):
    headers = auth_headers(admin)
    r = client.post("/api/admin/users", headers=headers,
                    json={"username": "carol", "password": "secret123", "role": "viewer", "daily_limit": 50})
    assert r.status_code == 201
    assert r.json()["permissions"] == ["hlr.history", "email.history"]
    assert r.json()["daily_limit"] == 50

    names = [u["username"] for u in client.get("/api/admin/users", headers=headers).json()]
    assert set(names) == {"root", "carol"}


def test_regular_user_is_forbidden(client, user, auth_headers):
    assert client.get("/api/admin/users", headers=auth_headers(user)).status_code == 403


def test_manager_cannot_grant_or_touch_admin(client, admin, make_user, auth_headers):
    manager = auth_headers(make_user("mgr", role="manager"))
    r = client.post("/api/admin/users", headers=manager,
                    json={"username": "evil", "password": "secret123", "role": "admin"})
    assert r.status_code == 403
    assert client.patch(f"/api/admin/users/{admin.id}", headers=manager, json={"name": "x"}).status_code == 403
    assert client.delete(f"/api/admin/users/{admin.id}", headers=manager).status_code == 403


def test_self_protection(client, admin, auth_headers):
    headers = auth_headers(admin)
    assert client.delete(f"/api/admin/users/{admin.id}", headers=headers).status_code == 400
    assert client.patch(f"/api/admin/users/{admin.id}", headers=headers, json={"role": "user"}).status_code == 400
    assert client.patch(f"/api/admin/users/{admin.id}", headers=headers, json={"is_active": False}).status_code == 400


def test_update_custom_permissions(client, db, admin, user, auth_headers):
    headers = auth_headers(admin)
    r = client.patch(f"/api/admin/users/{user.id}", headers=headers,
                     json={"custom_permissions": ["hlr.single"]})
    assert r.json()["permissions"] == ["hlr.single"]

    r = client.patch(f"/api/admin/users/{user.id}", headers=headers, json={"custom_permissions": ["nope"]})
    assert r.status_code == 400

    r = client.patch(f"/api/admin/users/{user.id}", headers=headers, json={"custom_permissions": None})
    assert "hlr.batch" in r.json()["permissions"]


def test_reset_password_revokes_sessions(client, admin, user, auth_headers):
    user_headers = auth_headers(user)
    r = client.post(f"/api/admin/users/{user.id}/reset-password", headers=auth_headers(admin), json={})
    new_password = r.json()["password"]
    assert len(new_password) == 12

    assert client.get("/api/auth/me", headers=user_headers).status_code == 401
    r = client.post("/api/auth/login", json={"username": "alice", "password": new_password})
    assert r.status_code == 200


def test_unlock_user(client, db, admin, user, auth_headers):
    for _ in range(5):
        client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    assert client.post("/api/auth/login", json={"username": "alice", "password": "secret123"}).status_code == 403

    client.post(f"/api/admin/users/{user.id}/unlock", headers=auth_headers(admin))
    assert client.post("/api/auth/login", json={"username": "alice", "password": "secret123"}).status_code == 200


def test_delete_user(client, db, admin, user, auth_headers):
    assert client.delete(f"/api/admin/users/{user.id}", headers=auth_headers(admin)).status_code == 200
    db.expire_all()
    assert db.get(User, user.id) is None


# ---------- invites ----------
def test_invite_flow(client, admin, auth_headers):
    headers = auth_headers(admin)
    invite = client.post("/api/admin/invites", headers=headers,
                         json={"email": "new@example.com", "expires_in_days": 7}).json()
    assert len(invite["code"]) == 16
    assert invite["expires_at"] is not None

    r = client.post("/api/auth/register",
                    json={"invite_code": invite["code"], "username": "newbie", "password": "secret123"})
    assert r.status_code == 201
    assert r.json()["user"]["email"] == "new@example.com"
    client.cookies.clear()

    listed = client.get("/api/admin/invites", headers=headers).json()
    assert listed[0]["used_by"] == r.json()["user"]["id"]
    assert client.delete(f"/api/admin/invites/{invite['id']}", headers=headers).status_code == 200


# ---------- roles ----------
def test_builtin_role_override_and_reset(client, admin, user, auth_headers):
    headers = auth_headers(admin)
    r = client.put("/api/admin/roles/user/permissions", headers=headers, json={"permissions": ["hlr.single"]})
    assert r.json() == {"role": "user", "permissions": ["hlr.single"]}

    user_headers = auth_headers(user)
    assert client.post("/api/hlr/batches", headers=user_headers, json={"items": NUMBERS}).status_code == 403

    roles = {r["id"]: r for r in client.get("/api/admin/roles", headers=headers).json()["builtin"]}
    assert roles["user"]["is_customized"] is True

    client.delete("/api/admin/roles/user/permissions", headers=headers)
    assert "hlr.batch" in client.get("/api/auth/me", headers=user_headers).json()["permissions"]


def test_admin_role_cannot_be_overridden(client, admin, auth_headers):
    r = client.put("/api/admin/roles/admin/permissions", headers=auth_headers(admin), json={"permissions": []})
    assert r.status_code == 400
    r = client.put("/api/admin/roles/user/permissions", headers=auth_headers(admin), json={"permissions": ["x.y"]})
    assert r.status_code == 400


def test_custom_roles(client, db, admin, user, auth_headers):
    headers = auth_headers(admin)
    r = client.post("/api/admin/custom-roles", headers=headers,
                    json={"name": "support", "permissions": ["email.single", "email.history"]})
    assert r.status_code == 201
    role_id = r.json()["id"]

    assert client.post("/api/admin/custom-roles", headers=headers, json={"name": "support"}).status_code == 409
    assert client.post("/api/admin/custom-roles", headers=headers, json={"name": "Admin"}).status_code == 400

    client.patch(f"/api/admin/users/{user.id}", headers=headers, json={"custom_role_id": role_id})
    me = client.get("/api/auth/me", headers=auth_headers(user)).json()
    assert me["permissions"] == ["email.single", "email.history"]

    # in use
    assert client.delete(f"/api/admin/custom-roles/{role_id}", headers=headers).status_code == 409

    r = client.patch(f"/api/admin/custom-roles/{role_id}", headers=headers, json={"permissions": ["email.single"]})
    assert r.json()["permissions"] == ["email.single"]
    assert r.json()["users_count"] == 1

    client.patch(f"/api/admin/users/{user.id}", headers=headers, json={"custom_role_id": None})
    assert client.delete(f"/api/admin/custom-roles/{role_id}", headers=headers).status_code == 200
    assert db.query(CustomRole).count() == 0


def test_permission_catalogue(client, admin, auth_headers):
    perms = client.get("/api/admin/permissions", headers=auth_headers(admin)).json()
    assert {"id", "name", "description", "category"} <= set(perms[0])


# ---------- audit ----------
def test_audit_log_search(client, admin, user, auth_headers):
    client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
    client.cookies.clear()
    headers = auth_headers(admin)

    body = client.get("/api/admin/audit-logs?action=login", headers=headers).json()
    assert body["total"] == 1
    assert body["items"][0]["user_id"] == user.id

    history = client.get(f"/api/admin/login-history?user_id={user.id}", headers=headers).json()
    assert [h["action"] for h in history] == ["login"]


# ---------- access requests ----------
def _request_access(db, **kw):
    req = AccessRequest(name=kw.get("name", "Jo Doe"), email=kw.get("email"), status="pending")
    db.add(req)
    db.commit()
    return req


def test_approve_access_request(client, db, admin, auth_headers):
    req = _request_access(db, email="jo@example.com")
    headers = auth_headers(admin)
    assert client.get("/api/admin/access-requests/pending-count", headers=headers).json() == {"count": 1}

    r = client.post(f"/api/admin/access-requests/{req.id}/approve", headers=headers, json={"role": "viewer"})
    assert r.status_code == 200
    body = r.json()
    assert body["username"] == "jo"
    assert body["request"]["status"] == "approved"

    r = client.post("/api/auth/login", json={"username": "jo", "password": body["password"]})
    assert r.json()["user"]["role"] == "viewer"
    client.cookies.clear()

    # already processed
    r = client.post(f"/api/admin/access-requests/{req.id}/approve", headers=headers, json={})
    assert r.status_code == 400


def test_approve_suggests_unique_username(client, db, admin, make_user, auth_headers):
    make_user("jo.doe")
    req = _request_access(db, name="Jo Doe")
    r = client.post(f"/api/admin/access-requests/{req.id}/approve", headers=auth_headers(admin), json={})
    assert r.json()["username"] == "jo.doe2"


def test_reject_and_delete_access_request(client, db, admin, auth_headers):
    req = _request_access(db)
    headers = auth_headers(admin)
    r = client.post(f"/api/admin/access-requests/{req.id}/reject", headers=headers, json={"comment": "no"})
    assert r.json()["status"] == "rejected"
    assert r.json()["admin_comment"] == "no"

    assert client.get("/api/admin/access-requests?status=pending", headers=headers).json() == []
    assert client.delete(f"/api/admin/access-requests/{req.id}", headers=headers).status_code == 200


# ---------- settings ----------
def test_telegram_settings(client, db, admin, auth_headers, monkeypatch):
    headers = auth_headers(admin)
    client.put("/api/admin/settings/telegram", headers=headers,
               json={"bot_token": "123456789:ABCDEFGHIJ", "chat_id": "-100200"})

    body = client.get("/api/admin/settings/telegram", headers=headers).json()
    assert body == {"bot_token": "123456...GHIJ", "chat_id": "-100200", "configured": True}

    seen = {}

    def fake_test(token, chat_id):
        seen.update(token=token, chat_id=chat_id)
        return {"success": True, "message": "Test message sent"}

    monkeypatch.setattr("hlrcheck.app.routers.admin.test_telegram_connection", fake_test)
    assert client.post("/api/admin/settings/telegram/test", headers=headers, json={}).json()["success"] is True
    assert seen == {"token": "123456789:ABCDEFGHIJ", "chat_id": "-100200"}

    client.delete("/api/admin/settings/telegram", headers=headers)
    assert client.get("/api/admin/settings/telegram", headers=headers).json()["configured"] is False


def test_balance_threshold_resets_last_alert(client, db, admin, auth_headers):
    repo = SettingRepository(db)
    repo.set_value(telegram_service.BALANCE_LAST_SENT_KEY, "2026-01-01T00:00:00")
    headers = auth_headers(admin)

    assert client.put("/api/admin/settings/balance-threshold", headers=headers, json={"threshold": 5}).json() == {"threshold": 5.0}
    assert client.get("/api/admin/settings/balance-threshold", headers=headers).json() == {"threshold": 5.0}
    db.expire_all()
    assert repo.get_value(telegram_service.BALANCE_LAST_SENT_KEY) is None


def test_settings_need_permission(client, make_user, auth_headers):
    manager = auth_headers(make_user("mgr", role="manager"))
    assert client.get("/api/admin/settings/telegram", headers=manager).status_code == 403


# ---------- statistics ----------
def test_statistics(client, db, admin, user, auth_headers, fake_hlr):
    batch, _ = create_batch(db, user, "hlr", NUMBERS)
    run_batch("hlr", batch.id)

    stats = client.get("/api/admin/statistics", headers=auth_headers(admin)).json()
    assert stats["users"] == {"total": 2, "active": 2}
    assert stats["hlr"]["total_checks"] == 2
    assert stats["total_checks"] == 2

    per_user = client.get(f"/api/admin/users/{user.id}/stats", headers=auth_headers(admin)).json()
    assert per_user["valid_numbers"] == 2
    assert per_user["usage"]["today"] == 2


# ---------- batch control ----------
def test_admin_batch_control(client, db, admin, user, auth_headers, monkeypatch):
    queued = []
    monkeypatch.setattr("hlrcheck.app.routers.admin.enqueue_batch",
                        lambda kind, batch_id, items=None: queued.append(batch_id) or True)
    batch, _ = create_batch(db, user, "hlr", NUMBERS)
    headers = auth_headers(admin)

    listing = client.get("/api/admin/batches/hlr", headers=headers).json()
    assert listing["total"] == 1
    assert listing["items"][0]["username"] == "alice"

    r = client.post(f"/api/admin/batches/hlr/{batch.id}/pause", headers=headers)
    assert r.json()["status"] == "paused"
    assert client.post(f"/api/admin/batches/hlr/{batch.id}/pause", headers=headers).status_code == 400

    assert [b["id"] for b in client.get("/api/admin/batches/hlr/incomplete", headers=headers).json()] == [batch.id]

    r = client.post(f"/api/admin/batches/hlr/{batch.id}/resume", headers=headers)
    assert r.json()["batch"]["status"] == "pending"
    assert queued == [batch.id]

    results = client.get(f"/api/admin/batches/hlr/{batch.id}/results", headers=headers).json()
    assert results["total"] == 0

    assert client.delete(f"/api/admin/batches/hlr/{batch.id}", headers=headers).status_code == 200
    db.expire_all()
    assert db.get(HlrBatch, batch.id) is None
    assert db.query(AuditLog).filter_by(action="delete_batch").count() == 1


def test_admin_batches_unknown_kind(client, admin, auth_headers):
    assert client.get("/api/admin/batches/sms", headers=auth_headers(admin)).status_code == 422
