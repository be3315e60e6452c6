from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ConflictError
from .base import Repositories, Repository


def _criteria(model, filters: Dict[str, Any]):
    clauses = []
    for field, value in filters.items():
        column = getattr(model, field)
        if isinstance(value, (list, tuple, set, frozenset)):
            clauses.append(column.in_(list(value)))
        else:
            # `== None` renders as IS NULL
            clauses.append(column == value)
    return clauses


class SqlRepository(Repository):
    """Session-backed repository; every write commits, as the CRUD layer always has."""

    def __init__(self, db: Session, model, unique: Sequence = ()):
        self.db = db
        self.model = model
        self.unique = tuple(unique)

    def get(self, entity_id: int):
        return self.db.get(self.model, entity_id)

    def find(self, **filters: Any) -> List:
        return (
            self.db.query(self.model)
            .filter(*_criteria(self.model, filters))
            .order_by(self.model.id)
            .all()
        )

    def count(self, **filters: Any) -> int:
        return self.db.query(self.model).filter(*_criteria(self.model, filters)).count()

    def add(self, entity):
        self.db.add(entity)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"{self.model.__name__} already exists")
        self.db.refresh(entity)
        return entity

    def update(self, entity_id: int, **changes: Any):
        entity = self.get(entity_id)
        if entity is None:
            return None
        for field, value in changes.items():
            setattr(entity, field, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"{self.model.__name__} already exists")
        self.db.refresh(entity)
        return entity

    def update_if(self, entity_id: int, expected: Dict[str, Any], **changes: Any):
        # Single UPDATE ... WHERE so the check and the write cannot interleave
        stmt = (
            update(self.model)
            .where(self.model.id == entity_id, *_criteria(self.model, expected))
            .values(**changes)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount == 0:
            return None
        # commit expired the identity map, so this reloads the row
        return self.get(entity_id)

    def delete(self, entity_id: int) -> bool:
        entity = self.get(entity_id)
        if entity is None:
            return False
        self.db.delete(entity)
        self.db.commit()
        return True


class SqlRepositories(Repositories):
    def __init__(self, db: Session):
        self.db = db
        super().__init__(lambda model, unique=(): SqlRepository(db, model, unique))
