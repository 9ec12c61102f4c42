from sqlalchemy import select, update, delete, func

from hlrcheck.app.models import HlrBatch, HlrResult, EmailBatch, EmailResult, User
from .base import BaseRepository

INCOMPLETE_STATUSES = ("pending", "processing", "paused")


class BatchRepository(BaseRepository):
    """
    Shared queries for HLR and email batches.
    result_model / input_column describe where per-item rows live.
    """

    def __init__(self, db, model, result_model, input_column: str):
        super().__init__(db, model)
        self.result_model = result_model
        self.input_column = input_column

    # -----------------------------
    # Batches
    # -----------------------------
    def list_user_batches(self, user_id: int, skip: int = 0, limit: int = 50):
        result = self.db.execute(
            select(self.model)
            .where(self.model.user_id == user_id)
            .order_by(self.model.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())

    def list_all_with_owner(self, skip: int = 0, limit: int = 50):
        """Returns (batch, username, name) tuples."""
        result = self.db.execute(
            select(self.model, User.username, User.name)
            .join(User, User.id == self.model.user_id, isouter=True)
            .order_by(self.model.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.all())

    def list_incomplete(self, user_id: int | None = None):
        stmt = select(self.model).where(
            self.model.status.in_(INCOMPLETE_STATUSES),
            self.model.processed < self.model.total,
        )
        if user_id is not None:
            stmt = stmt.where(self.model.user_id == user_id)
        return list(self.db.execute(stmt.order_by(self.model.id.desc())).scalars().all())

    def get_status(self, batch_id: int) -> str | None:
        return self.db.execute(
            select(self.model.status).where(self.model.id == batch_id)
        ).scalar_one_or_none()

    def set_status(self, batch_id: int, status: str, **extra):
        self.db.execute(
            update(self.model).where(self.model.id == batch_id).values(status=status, **extra)
        )
        self.db.commit()

    def set_status_unless_paused(self, batch_id: int, status: str, **extra) -> bool:
        """Conditional status switch; False when an admin paused the batch first."""
        result = self.db.execute(
            update(self.model)
            .where(self.model.id == batch_id, self.model.status != "paused")
            .values(status=status, **extra)
        )
        self.db.commit()
        return result.rowcount > 0

    def increment_counters(self, batch_id: int, **deltas):
        """
        Row-level atomic increment: UPDATE ... SET processed = processed + 1.
        Safe with concurrent runners on the same batch.
        """
        values = {
            name: getattr(self.model, name) + amount
            for name, amount in deltas.items()
            if amount
        }
        if not values:
            return
        self.db.execute(update(self.model).where(self.model.id == batch_id).values(**values))

    def delete_with_results(self, batch) -> None:
        self.db.execute(delete(self.result_model).where(self.result_model.batch_id == batch.id))
        self.db.delete(batch)
        self.db.commit()

    # -----------------------------
    # Results
    # -----------------------------
    def checked_inputs(self, batch_id: int) -> set:
        column = getattr(self.result_model, self.input_column)
        result = self.db.execute(
            select(column).where(self.result_model.batch_id == batch_id)
        )
        return set(result.scalars().all())

    def list_results(self, batch_id: int, skip: int = 0, limit: int | None = None):
        stmt = (
            select(self.result_model)
            .where(self.result_model.batch_id == batch_id)
            .order_by(self.result_model.id)
            .offset(skip)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars().all())

    def count_results(self, batch_id: int) -> int:
        return int(self.db.execute(
            select(func.count()).select_from(self.result_model)
            .where(self.result_model.batch_id == batch_id)
        ).scalar_one())


class HlrBatchRepository(BatchRepository):
    def __init__(self, db):
        super().__init__(db, HlrBatch, HlrResult, "phone_number")


class EmailBatchRepository(BatchRepository):
    def __init__(self, db):
        super().__init__(db, EmailBatch, EmailResult, "email")


def batch_repository_for(kind: str, db) -> BatchRepository:
    if kind == "hlr":
        return HlrBatchRepository(db)
    if kind == "email":
        return EmailBatchRepository(db)
    raise ValueError(f"unknown batch kind: {kind}")
