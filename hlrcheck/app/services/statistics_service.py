# hlrcheck/app/services/statistics_service.py

from typing import Any, Dict

from sqlalchemy import select, func

from hlrcheck.app.models import User, HlrBatch, EmailBatch, AccessRequest
from hlrcheck.app.services.user_limits import current_usage


def _batch_totals(db, model, user_id: int | None = None) -> Dict[str, int]:
    stmt = select(
        func.count(model.id),
        func.coalesce(func.sum(model.processed), 0),
        func.coalesce(func.sum(model.valid), 0),
        func.coalesce(func.sum(model.invalid), 0),
    )
    if user_id is not None:
        stmt = stmt.where(model.user_id == user_id)
    batches, checks, valid, invalid = db.execute(stmt).one()
    return {
        "batches": int(batches),
        "total_checks": int(checks),
        "valid": int(valid),
        "invalid": int(invalid),
    }


def get_statistics(db) -> Dict[str, Any]:
    """Admin dashboard totals."""
    users_total = db.execute(select(func.count(User.id))).scalar_one()
    users_active = db.execute(select(func.count(User.id)).where(User.is_active.is_(True))).scalar_one()
    pending = db.execute(
        select(func.count(AccessRequest.id)).where(AccessRequest.status == "pending")
    ).scalar_one()

    hlr = _batch_totals(db, HlrBatch)
    email = _batch_totals(db, EmailBatch)
    return {
        "users": {"total": int(users_total), "active": int(users_active)},
        "hlr": hlr,
        "email": email,
        "total_checks": hlr["total_checks"] + email["total_checks"],
        "pending_access_requests": int(pending),
    }


def get_user_stats(db, user: User) -> Dict[str, Any]:
    hlr = _batch_totals(db, HlrBatch, user.id)
    email = _batch_totals(db, EmailBatch, user.id)
    today, week, month = current_usage(user)
    return {
        "total_checks": hlr["total_checks"] + email["total_checks"],
        "valid_numbers": hlr["valid"],
        "invalid_numbers": hlr["invalid"],
        "hlr": hlr,
        "email": email,
        "usage": {"today": today, "week": week, "month": month},
        "limits": {
            "daily": user.daily_limit,
            "weekly": user.weekly_limit,
            "monthly": user.monthly_limit,
            "batch": user.batch_limit,
        },
    }
