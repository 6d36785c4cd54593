"""Shared model mixins for multi-tenant enforcement and auditing."""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from ..extensions import db


def new_uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """Adds immutable creation and managed update timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        db.DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )


class TenantMixin:
    """Enforces company ownership on every tenant-scoped record.

    Companies are not stored rows; ``company_id`` is the opaque partition key
    shared by profiles, clients, jobs, payments and receipts.
    """

    @declared_attr.directive
    def company_id(cls) -> Mapped[str]:  # noqa: D401 - SQLAlchemy pattern
        return mapped_column(db.String(36), nullable=False, index=True)

    @classmethod
    def scoped_to_company(cls, company_id: str):
        """Restrict queries to a specific company to avoid cross-tenant leaks."""
        return cls.query.filter_by(company_id=company_id)
