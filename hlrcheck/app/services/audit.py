# hlrcheck/app/services/audit.py

import logging
from typing import Optional, Dict, Any

from fastapi import Request

from hlrcheck.app.models import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    xff = request.headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def log_action(
    db,
    user_id: Optional[int],
    action: str,
    details: Optional[str] = None,
    request: Optional[Request] = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Write an audit row. Audit failures are logged, never raised into the
    caller's business flow.
    """
    try:
        db.add(AuditLog(
            user_id=user_id,
            action=action,
            details=(details or "")[:1024] or None,
            ip_address=client_ip(request),
            user_agent=(request.headers.get("user-agent") or "")[:512] if request is not None else None,
            meta=meta,
        ))
        db.commit()
    except Exception:
        logger.exception("audit log write failed for action=%s", action)
        db.rollback()
