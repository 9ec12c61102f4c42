# hlrcheck/app/services/access_request_service.py

import logging
import re
from typing import Optional, Tuple

from fastapi import HTTPException, status

from hlrcheck.app.models import AccessRequest, User
from hlrcheck.app.models.base import utcnow
from hlrcheck.app.repositories.access_request_repository import AccessRequestRepository
from hlrcheck.app.repositories.user_repository import UserRepository
from hlrcheck.app.services.audit import log_action
from hlrcheck.app.services.auth_service import create_user
from hlrcheck.app.services.permissions import BUILTIN_ROLES
from hlrcheck.app.services.telegram_service import notify_new_access_request
from hlrcheck.app.utils.security import generate_password

logger = logging.getLogger(__name__)

_USERNAME_CHARS = re.compile(r"[^a-z0-9_.-]")


def create_access_request(db, data: dict, request=None) -> AccessRequest:
    repo = AccessRequestRepository(db)
    email = data.get("email")
    if email and repo.get_pending_by_email(email):
        raise HTTPException(status.HTTP_409_CONFLICT, "A request for this email is already pending")

    req = repo.create({**data, "status": "pending"})
    log_action(db, None, "access_request", f"Access request from {req.name}", request)

    # notification failures never block the request itself
    notify_new_access_request(db, req.name, telegram=req.telegram, email=req.email)
    return req


def _suggest_username(db, req: AccessRequest) -> str:
    base = (req.email.split("@")[0] if req.email else req.name).lower()
    base = _USERNAME_CHARS.sub("", base.replace(" ", ".")) or "user"
    users = UserRepository(db)
    candidate, n = base, 1
    while users.get_by_username(candidate):
        n += 1
        candidate = f"{base}{n}"
    return candidate


def _get_pending(db, request_id: int) -> AccessRequest:
    req = AccessRequestRepository(db).get(request_id)
    if req is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Request not found")
    if req.status != "pending":
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Request already {req.status}")
    return req


def approve_request(
    db,
    admin: User,
    request_id: int,
    username: Optional[str] = None,
    password: Optional[str] = None,
    role: str = "user",
    comment: Optional[str] = None,
    request=None,
) -> Tuple[AccessRequest, User, str]:
    """Creates the account. Returns (request, user, plain_password)."""
    req = _get_pending(db, request_id)
    if role not in BUILTIN_ROLES:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unknown role: {role}")

    username = (username or "").strip() or _suggest_username(db, req)
    password = password or generate_password()
    user = create_user(db, username, password, role=role, name=req.name, email=req.email)

    AccessRequestRepository(db).update(req, {
        "status": "approved",
        "processed_by": admin.id,
        "processed_at": utcnow(),
        "admin_comment": comment,
        "created_user_id": user.id,
    })
    log_action(db, admin.id, "approve_access_request", f"Request #{req.id} approved as {user.username}", request)
    return req, user, password


def reject_request(db, admin: User, request_id: int, comment: Optional[str] = None, request=None) -> AccessRequest:
    req = _get_pending(db, request_id)
    AccessRequestRepository(db).update(req, {
        "status": "rejected",
        "processed_by": admin.id,
        "processed_at": utcnow(),
        "admin_comment": comment,
    })
    log_action(db, admin.id, "reject_access_request", f"Request #{req.id} rejected", request)
    return req
