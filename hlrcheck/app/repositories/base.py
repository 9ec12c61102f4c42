from sqlalchemy.orm import Session
from sqlalchemy import select, func
from typing import Type, TypeVar, Generic, Optional, List

ModelType = TypeVar("ModelType")


class BaseRepository(Generic[ModelType]):
    def __init__(self, db: Session, model: Type[ModelType]):
        self.db = db
        self.model = model

    def get(self, id: int) -> Optional[ModelType]:
        return self.db.get(self.model, id)

    def list(self, limit: int = 100, skip: int = 0) -> List[ModelType]:
        result = self.db.execute(
            select(self.model).order_by(self.model.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    def count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        return int(self.db.execute(stmt).scalar_one())

    def create(self, obj_data: dict) -> ModelType:
        obj = self.model(**obj_data)
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def update(self, obj: ModelType, update_data: dict) -> ModelType:
        for field, value in update_data.items():
            setattr(obj, field, value)
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def delete(self, obj: ModelType):
        self.db.delete(obj)
        self.db.commit()
        return True
