"""
Stakeholder model - growers and funders referenced by earnings.

The table is owned by another service; this API only reads it to resolve
display names and phone numbers.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class Stakeholder(BaseModel):
    """A person or organization taking part in a planting contract."""

    __tablename__ = "stakeholder"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)

    type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    org_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Stakeholder(id={self.id}, name={self.display_name})>"

    @property
    def display_name(self) -> str:
        if self.org_name:
            return self.org_name
        return " ".join(part for part in (self.first_name, self.last_name) if part)
