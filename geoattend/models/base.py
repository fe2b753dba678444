"""Declarative base shared by the persisted models."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from geoattend import db
from geoattend.utils.helpers import isoformat, utcnow


class BaseModel(db.Model):
    """Integer primary key, aware UTC timestamps and small persistence helpers."""

    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def save(self) -> 'BaseModel':
        db.session.add(self)
        db.session.commit()
        return self

    def update(self, **kwargs) -> 'BaseModel':
        """Set known columns and commit; unknown keys are ignored."""
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)

        self.updated_at = utcnow()
        db.session.commit()
        return self

    def to_dict(self, exclude: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Column values as JSON-friendly data."""
        exclude = set(exclude or ())
        result = {}

        for column in self.__table__.columns:
            if column.name in exclude:
                continue
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = isoformat(value)
            elif isinstance(value, Enum):
                value = value.value
            result[column.name] = value

        return result

    @classmethod
    def get_by_id(cls, id: int) -> Optional['BaseModel']:
        return db.session.get(cls, id)

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} {self.id}>'
