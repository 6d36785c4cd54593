"""Client model: the people a company bills."""
from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import TenantMixin, TimestampMixin, new_uuid

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .job import Job


class Client(TenantMixin, TimestampMixin, db.Model):
    """Tenant-scoped client record."""

    __tablename__ = "clients"
    __table_args__ = (Index("ix_clients_company_name", "company_id", "name"),)

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    email: Mapped[str] = mapped_column(db.String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(db.String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(db.Text, nullable=True)

    jobs: Mapped[list["Job"]] = relationship("Job", back_populates="client", passive_deletes=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
        }

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<Client {self.name}>"
