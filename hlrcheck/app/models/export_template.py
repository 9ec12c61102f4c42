from sqlalchemy import String, Boolean, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from hlrcheck.app.db import Base
from hlrcheck.app.models.base import IdMixin, TimestampMixin


class ExportTemplate(Base, IdMixin, TimestampMixin):
    """
    Saved column selection for exports. kind is "hlr" or "email".
    """

    __tablename__ = "export_templates"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    kind: Mapped[str] = mapped_column(String(16), default="hlr", nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    fields: Mapped[list] = mapped_column(JSON, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("idx_export_template_user_kind", "user_id", "kind"),
    )

    def __repr__(self):
        return f"<ExportTemplate id={self.id} name='{self.name}' kind={self.kind}>"
