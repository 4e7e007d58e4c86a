"""
Declarative base shared by all ORM models.
"""

from sqlalchemy.orm import DeclarativeBase


class BaseModel(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    def to_dict(self) -> dict:
        """Column values keyed by attribute name."""
        return {
            column.key: getattr(self, column.key)
            for column in self.__mapper__.column_attrs
        }
