"""
SQLAlchemy Base Configuration

Declarative base with a constraint naming convention shared by all
progress engine tables.
"""

from typing import Any, Dict

from sqlalchemy import MetaData, inspect
from sqlalchemy.orm import declarative_base

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s"
}

metadata = MetaData(naming_convention=convention)

Base = declarative_base(metadata=metadata)


class ModelBase(Base):
    """Base class for all progress engine tables."""

    __abstract__ = True

    def update(self, data: Dict[str, Any]) -> None:
        """Set every key of ``data`` that names a column; other keys are ignored."""
        for key, value in data.items():
            if key in self.__table__.columns:
                setattr(self, key, value)

    def __repr__(self) -> str:
        identity = inspect(self).identity
        key = identity[0] if identity and len(identity) == 1 else identity
        return f"<{type(self).__name__} {key}>"
