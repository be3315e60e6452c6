import copy
import itertools
import threading
from typing import Any, Dict, List, Sequence

from ..errors import ConflictError
from .base import Repositories, Repository, unique_key


def _snapshot(entity):
    """Detached copy, so callers never see (or make) changes outside a write."""
    model = type(entity)
    values = {c.name: copy.deepcopy(getattr(entity, c.name)) for c in model.__table__.columns}
    return model(**values)


def _matches(entity, filters: Dict[str, Any]) -> bool:
    for field, value in filters.items():
        current = getattr(entity, field)
        if isinstance(value, (list, tuple, set, frozenset)):
            if current not in value:
                return False
        elif current != value:
            return False
    return True


class MemoryRepository(Repository):
    """Dict-backed repository. Reads and writes return snapshots, like rows from a database.

    All repositories of one store share a lock, so `update_if` is atomic with
    respect to every other write in the process.
    """

    def __init__(self, lock: threading.RLock, model, unique: Sequence = ()):
        self._lock = lock
        self._rows: Dict[int, Any] = {}
        self._ids = itertools.count(1)
        self.model = model
        self.unique = tuple(unique_key(key) for key in unique)

    def get(self, entity_id: int):
        with self._lock:
            row = self._rows.get(entity_id)
            return _snapshot(row) if row is not None else None

    def find(self, **filters: Any) -> List:
        with self._lock:
            return [
                _snapshot(row) for _, row in sorted(self._rows.items()) if _matches(row, filters)
            ]

    def _check_unique(self, entity, ignore_id=None) -> None:
        for key in self.unique:
            where = key.where or {}
            if not _matches(entity, where):
                continue
            values = [getattr(entity, field) for field in key.fields]
            for row_id, row in self._rows.items():
                if row_id == ignore_id or not _matches(row, where):
                    continue
                if [getattr(row, field) for field in key.fields] == values:
                    raise ConflictError(f"{self.model.__name__} already exists")

    def add(self, entity):
        with self._lock:
            self._check_unique(entity)
            entity.id = next(self._ids)
            self._rows[entity.id] = _snapshot(entity)
            return entity

    def update(self, entity_id: int, **changes: Any):
        with self._lock:
            entity = self._rows.get(entity_id)
            if entity is None:
                return None
            touched = set(changes)
            if any(touched & (set(key.fields) | set(key.where or {})) for key in self.unique):
                candidate = _snapshot(entity)
                for field, value in changes.items():
                    setattr(candidate, field, value)
                self._check_unique(candidate, ignore_id=entity_id)
            for field, value in changes.items():
                setattr(entity, field, copy.deepcopy(value))
            return _snapshot(entity)

    def update_if(self, entity_id: int, expected: Dict[str, Any], **changes: Any):
        with self._lock:
            entity = self._rows.get(entity_id)
            if entity is None or not _matches(entity, expected):
                return None
            return self.update(entity_id, **changes)

    def delete(self, entity_id: int) -> bool:
        with self._lock:
            return self._rows.pop(entity_id, None) is not None


class MemoryRepositories(Repositories):
    def __init__(self):
        self._lock = threading.RLock()
        super().__init__(lambda model, unique=(): MemoryRepository(self._lock, model, unique))
