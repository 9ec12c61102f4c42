from sqlalchemy import select
from hlrcheck.app.models import AccessRequest
from .base import BaseRepository


class AccessRequestRepository(BaseRepository[AccessRequest]):
    def __init__(self, db):
        super().__init__(db, AccessRequest)

    def get_pending_by_email(self, email: str):
        return self.db.execute(
            select(AccessRequest).where(
                AccessRequest.email == email, AccessRequest.status == "pending"
            )
        ).scalars().first()

    def list_by_status(self, status: str | None = None):
        stmt = select(AccessRequest)
        if status:
            stmt = stmt.where(AccessRequest.status == status)
        return list(self.db.execute(stmt.order_by(AccessRequest.id.desc())).scalars().all())

    def pending_count(self) -> int:
        return self.count(AccessRequest.status == "pending")
