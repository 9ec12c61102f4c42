from sqlalchemy import select
from hlrcheck.app.models import AuditLog
from .base import BaseRepository

LOGIN_ACTIONS = ("login", "login_failed", "logout")


class AuditLogRepository(BaseRepository[AuditLog]):
    def __init__(self, db):
        super().__init__(db, AuditLog)

    def search(self, user_id: int | None = None, action: str | None = None, skip: int = 0, limit: int = 50):
        stmt = select(AuditLog)
        criteria = []
        if user_id is not None:
            criteria.append(AuditLog.user_id == user_id)
        if action:
            criteria.append(AuditLog.action == action)
        if criteria:
            stmt = stmt.where(*criteria)
        rows = self.db.execute(
            stmt.order_by(AuditLog.id.desc()).offset(skip).limit(limit)
        ).scalars().all()
        return list(rows), self.count(*criteria)

    def login_history(self, user_id: int | None = None, limit: int = 100):
        stmt = select(AuditLog).where(AuditLog.action.in_(LOGIN_ACTIONS))
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        return list(self.db.execute(stmt.order_by(AuditLog.id.desc()).limit(limit)).scalars().all())
