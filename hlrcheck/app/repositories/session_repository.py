from sqlalchemy import select, update
from hlrcheck.app.models import UserSession
from .base import BaseRepository


class SessionRepository(BaseRepository[UserSession]):
    def __init__(self, db):
        super().__init__(db, UserSession)

    def get_by_token_hash(self, token_hash: str):
        return self.db.execute(
            select(UserSession).where(UserSession.token_hash == token_hash)
        ).scalar_one_or_none()

    def list_active(self, user_id: int, now):
        return list(self.db.execute(
            select(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.revoked.is_(False),
                UserSession.expires_at > now,
            )
            .order_by(UserSession.last_activity.desc())
        ).scalars().all())

    def revoke_all(self, user_id: int, except_id: int | None = None) -> int:
        stmt = update(UserSession).where(
            UserSession.user_id == user_id, UserSession.revoked.is_(False)
        )
        if except_id is not None:
            stmt = stmt.where(UserSession.id != except_id)
        result = self.db.execute(stmt.values(revoked=True))
        self.db.commit()
        return result.rowcount or 0
