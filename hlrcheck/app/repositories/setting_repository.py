from sqlalchemy import select
from hlrcheck.app.models import AppSetting
from .base import BaseRepository


class SettingRepository(BaseRepository[AppSetting]):
    def __init__(self, db):
        super().__init__(db, AppSetting)

    def get_value(self, key: str, default: str | None = None) -> str | None:
        row = self.db.execute(
            select(AppSetting).where(AppSetting.key == key)
        ).scalar_one_or_none()
        if row is None or row.value is None:
            return default
        return row.value

    def set_value(self, key: str, value: str | None) -> None:
        row = self.db.execute(
            select(AppSetting).where(AppSetting.key == key)
        ).scalar_one_or_none()
        if row is None:
            row = AppSetting(key=key, value=value)
        else:
            row.value = value
        self.db.add(row)
        self.db.commit()

    def delete_keys(self, *keys: str) -> None:
        for row in self.db.execute(select(AppSetting).where(AppSetting.key.in_(keys))).scalars().all():
            self.db.delete(row)
        self.db.commit()
