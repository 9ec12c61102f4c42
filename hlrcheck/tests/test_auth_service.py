from datetime import timedelta

import pytest
from fastapi import HTTPException

from hlrcheck.app.models import AuditLog, InviteCode, UserSession
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.services import auth_service
from hlrcheck.app.utils.security import decode_token, hash_token, parse_user_agent


def test_login_issues_token_and_session(db, user):
    u, token = auth_service.login(db, "alice", "secret123")
    payload = decode_token(token)
    assert payload["sub"] == str(u.id)
    assert payload["username"] == "alice"
    assert payload["jti"]

    session = db.query(UserSession).filter_by(token_hash=hash_token(token)).one()
    assert session.user_id == u.id
    assert u.last_signed_in is not None


def test_wrong_password_counts_attempts(db, user):
    with pytest.raises(HTTPException) as exc:
        auth_service.login(db, "alice", "nope")
    assert exc.value.status_code == 401
    assert exc.value.detail["attempts_left"] == 4
    db.refresh(user)
    assert user.failed_login_attempts == 1


def test_lockout_after_five_failures(db, user):
    for _ in range(4):
        with pytest.raises(HTTPException):
            auth_service.login(db, "alice", "nope")
    with pytest.raises(HTTPException) as exc:
        auth_service.login(db, "alice", "nope")
    assert exc.value.status_code == 403
    assert exc.value.detail["message"] == "Account locked"

    # correct password is refused while locked
    with pytest.raises(HTTPException) as exc:
        auth_service.login(db, "alice", "secret123")
    assert exc.value.status_code == 403


def test_lock_expires(db, user):
    user.locked_until = utcnow() - timedelta(seconds=1)
    db.commit()
    u, _ = auth_service.login(db, "alice", "secret123")
    assert u.locked_until is None


def test_unknown_user_is_audited(db):
    with pytest.raises(HTTPException) as exc:
        auth_service.login(db, "ghost", "whatever")
    assert exc.value.status_code == 401
    assert db.query(AuditLog).filter_by(action="login_failed").count() == 1


def test_inactive_user_cannot_login(db, make_user):
    make_user("bob", is_active=False)
    with pytest.raises(HTTPException) as exc:
        auth_service.login(db, "bob", "secret123")
    assert exc.value.status_code == 403


def test_resolve_session_rejects_revoked(db, user):
    token, session = auth_service.create_user_session(db, user)
    assert auth_service.resolve_session(db, token)[0].id == user.id

    session.revoked = True
    db.commit()
    with pytest.raises(HTTPException) as exc:
        auth_service.resolve_session(db, token)
    assert exc.value.status_code == 401


def test_resolve_session_rejects_garbage(db):
    with pytest.raises(HTTPException):
        auth_service.resolve_session(db, "not-a-jwt")


def test_setup_admin_only_once(db):
    assert auth_service.needs_setup(db)
    admin = auth_service.setup_admin(db, "root", "secret123")
    assert admin.role == "admin"
    assert not auth_service.needs_setup(db)
    with pytest.raises(HTTPException) as exc:
        auth_service.setup_admin(db, "root2", "secret123")
    assert exc.value.status_code == 403


def test_create_user_validation(db, user):
    with pytest.raises(HTTPException) as exc:
        auth_service.create_user(db, "alice", "secret123")
    assert exc.value.status_code == 409
    with pytest.raises(HTTPException) as exc:
        auth_service.create_user(db, "bob", "123")
    assert exc.value.status_code == 400


def test_register_with_invite(db, admin):
    db.add(InviteCode(code="ABCDEF1234567890", created_by=admin.id, email="new@example.com", is_active=True))
    db.commit()

    u = auth_service.register_with_invite(db, " abcdef1234567890 ", "newbie", "secret123")
    assert u.email == "new@example.com"

    invite = db.query(InviteCode).one()
    assert invite.used_by == u.id
    assert invite.is_active is False

    with pytest.raises(HTTPException):
        auth_service.register_with_invite(db, "ABCDEF1234567890", "another", "secret123")


def test_expired_invite_is_rejected(db, admin):
    db.add(InviteCode(code="EXPIRED000000000", created_by=admin.id, is_active=True,
                      expires_at=utcnow() - timedelta(days=1)))
    db.commit()
    with pytest.raises(HTTPException):
        auth_service.register_with_invite(db, "EXPIRED000000000", "late", "secret123")


def test_change_password(db, user):
    with pytest.raises(HTTPException):
        auth_service.change_password(db, user, "wrong", "newsecret")
    auth_service.change_password(db, user, "secret123", "newsecret")
    auth_service.login(db, "alice", "newsecret")


def test_parse_user_agent():
    ua = parse_user_agent(
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    )
    assert ua["browser"] == "Chrome"
    assert ua["os"] == "Windows"
