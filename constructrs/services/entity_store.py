"""
Thin document-style store over SQLAlchemy models.

Every lookup is keyed by a 24-hex-character id; malformed ids are rejected
before a query is issued.
"""
import re
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ..errors import ValidationError


_OBJECT_ID_RE = re.compile(r"^[0-9a-fA-F]{24}$")

T = TypeVar("T")


def is_valid_object_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_OBJECT_ID_RE.match(value))


def require_object_id(value: Any, field: str = "id") -> str:
    if not is_valid_object_id(value):
        raise ValidationError(f"Invalid {field} format", [f"{field}: must be a 24-character hex id"])
    return value.lower()


class EntityStore(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def find_by_id(self, entity_id: str, field: str = "id") -> Optional[T]:
        entity_id = require_object_id(entity_id, field)
        return self.db.get(self.model, entity_id)

    def find_many(self, ids: Iterable[str]) -> List[T]:
        ids = [require_object_id(i) for i in ids]
        if not ids:
            return []
        return self.db.query(self.model).filter(self.model.id.in_(ids)).all()

    def find_all(self, **filters: Any) -> List[T]:
        query = self.db.query(self.model)
        for key, value in filters.items():
            if value is not None:
                query = query.filter(getattr(self.model, key) == value)
        return query.all()

    def insert(self, values: Dict[str, Any]) -> T:
        row = self.model(**values)
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def update_by_id(self, entity_id: str, values: Dict[str, Any]) -> Optional[T]:
        row = self.find_by_id(entity_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        self.db.commit()
        self.db.refresh(row)
        return row

    def delete_by_id(self, entity_id: str) -> bool:
        row = self.find_by_id(entity_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.commit()
        return True

    def delete_many(self, ids: Optional[Iterable[str]] = None) -> int:
        """Delete the given ids, or every row when ids is None."""
        query = self.db.query(self.model)
        if ids is not None:
            ids = [require_object_id(i) for i in ids]
            if not ids:
                return 0
            query = query.filter(self.model.id.in_(ids))
        count = query.delete(synchronize_session=False)
        self.db.commit()
        return count
