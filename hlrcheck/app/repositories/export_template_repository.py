from sqlalchemy import select, update
from hlrcheck.app.models import ExportTemplate
from .base import BaseRepository


class ExportTemplateRepository(BaseRepository[ExportTemplate]):
    def __init__(self, db):
        super().__init__(db, ExportTemplate)

    def list_user_templates(self, user_id: int, kind: str | None = None):
        stmt = select(ExportTemplate).where(ExportTemplate.user_id == user_id)
        if kind:
            stmt = stmt.where(ExportTemplate.kind == kind)
        return list(self.db.execute(stmt.order_by(ExportTemplate.id)).scalars().all())

    def clear_default(self, user_id: int, kind: str):
        self.db.execute(
            update(ExportTemplate)
            .where(ExportTemplate.user_id == user_id, ExportTemplate.kind == kind)
            .values(is_default=False)
        )
