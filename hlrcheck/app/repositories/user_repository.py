from sqlalchemy import select
from hlrcheck.app.models import User
from .base import BaseRepository


class UserRepository(BaseRepository[User]):
    def __init__(self, db):
        super().__init__(db, User)

    def get_by_username(self, username: str):
        result = self.db.execute(
            select(User).where(User.username == username)
        )
        return result.scalar_one_or_none()

    def has_any_admin(self) -> bool:
        return self.count(User.role == "admin") > 0

    def count_with_role(self, role: str) -> int:
        return self.count(User.role == role)

    def list_all(self):
        result = self.db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())
