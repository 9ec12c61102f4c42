from sqlalchemy import select
from hlrcheck.app.models import InviteCode
from .base import BaseRepository


class InviteCodeRepository(BaseRepository[InviteCode]):
    def __init__(self, db):
        super().__init__(db, InviteCode)

    def get_by_code(self, code: str):
        return self.db.execute(
            select(InviteCode).where(InviteCode.code == code)
        ).scalar_one_or_none()
