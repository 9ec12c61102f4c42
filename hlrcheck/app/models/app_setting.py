from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class AppSetting(Base, IdMixin, TimestampMixin):
    """
    Key/value runtime settings editable from the admin UI
    (telegram_bot_token, telegram_chat_id, balance_alert_threshold, ...).
    """

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self):
        return f"<AppSetting key={self.key}>"
