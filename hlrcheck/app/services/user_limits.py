# hlrcheck/app/services/user_limits.py

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update

from hlrcheck.app.models import User
from hlrcheck.app.models.base import utcnow

logger = logging.getLogger(__name__)


class LimitExceededError(Exception):
    pass


@dataclass
class LimitCheck:
    allowed: bool
    reason: Optional[str] = None


def _period_keys(now: datetime):
    iso = now.isocalendar()
    return (
        now.strftime("%Y-%m-%d"),
        f"{iso[0]}-W{iso[1]:02d}",
        now.strftime("%Y-%m"),
    )


def current_usage(user: User, now: Optional[datetime] = None):
    """(today, week, month) counters with stale periods read as zero."""
    day, week, month = _period_keys(now or utcnow())
    return (
        user.checks_today or 0 if user.last_check_date == day else 0,
        user.checks_this_week or 0 if user.last_check_week == week else 0,
        user.checks_this_month or 0 if user.last_check_month == month else 0,
    )


def check_user_limits(user: User, count: int, now: Optional[datetime] = None) -> LimitCheck:
    """Zero / null limits are unlimited; admins are never limited."""
    if user.role == "admin":
        return LimitCheck(True)

    if user.batch_limit and count > user.batch_limit:
        return LimitCheck(False, f"Batch limit exceeded. Max: {user.batch_limit}")

    today, week, month = current_usage(user, now)
    for label, used, limit in (
        ("Daily", today, user.daily_limit),
        ("Weekly", week, user.weekly_limit),
        ("Monthly", month, user.monthly_limit),
    ):
        if limit and used + count > limit:
            return LimitCheck(False, f"{label} limit exceeded. Used: {used}/{limit}")

    return LimitCheck(True)


def ensure_within_limits(user: User, count: int) -> None:
    check = check_user_limits(user, count)
    if not check.allowed:
        raise LimitExceededError(check.reason)


def increment_user_checks(db, user: User, count: int, now: Optional[datetime] = None) -> None:
    """
    Roll stale periods over, then add count. Same-period increments are
    done in SQL so parallel requests do not lose updates.
    """
    if count <= 0:
        return
    day, week, month = _period_keys(now or utcnow())

    values = {}
    for counter, marker, key in (
        ("checks_today", "last_check_date", day),
        ("checks_this_week", "last_check_week", week),
        ("checks_this_month", "last_check_month", month),
    ):
        if getattr(user, marker) == key:
            values[counter] = getattr(User, counter) + count
        else:
            values[counter] = count
            values[marker] = key

    db.execute(update(User).where(User.id == user.id).values(**values))
    db.commit()
    db.refresh(user)
