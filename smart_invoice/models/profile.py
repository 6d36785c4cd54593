"""Profile model: one row per authenticated user, bound to a company."""
from __future__ import annotations

import enum

from sqlalchemy import Index, false, text
from sqlalchemy.orm import Mapped, mapped_column

from ..extensions import db
from .base import TimestampMixin, new_uuid


class ProfileRole(str, enum.Enum):
    """Roles a user can hold inside a company."""

    INVOICE_OWNER = "invoice_owner"
    TEAMMATE = "teammate"


class Profile(TimestampMixin, db.Model):
    """Authenticated user with tenant binding and Stripe Connect state."""

    __tablename__ = "profiles"
    __table_args__ = (
        Index("ix_profiles_company_id", "company_id"),
        Index("ix_profiles_stripe_account_id", "stripe_account_id"),
    )

    # Identifier issued by the hosted auth provider (JWT ``sub``)
    id: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    email: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    company_id: Mapped[str | None] = mapped_column(db.String(36), nullable=True)
    role: Mapped[ProfileRole] = mapped_column(
        db.Enum(ProfileRole, native_enum=False, validate_strings=True, name="profile_role"),
        nullable=False,
        default=ProfileRole.INVOICE_OWNER,
        server_default=text("'invoice_owner'"),
    )
    is_demo: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=false())
    stripe_account_id: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    stripe_connected: Mapped[bool] = mapped_column(
        db.Boolean, nullable=False, default=False, server_default=false()
    )

    def ensure_company(self) -> str:
        """Provision a tenant id the first time the profile is used."""
        if not self.company_id:
            self.company_id = new_uuid()
        return self.company_id

    def regenerate_company_id(self) -> str:
        """Replace the tenant id. Existing rows stay under the old id."""
        self.company_id = new_uuid()
        return self.company_id

    @property
    def is_owner(self) -> bool:
        return self.role == ProfileRole.INVOICE_OWNER

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "company_id": self.company_id,
            "role": self.role.value,
            "is_demo": self.is_demo,
            "stripe_connected": self.stripe_connected,
            "stripe_account_id": self.stripe_account_id,
        }

    def __repr__(self) -> str:  # pragma: no cover - repr helper
        return f"<Profile {self.email} @ company {self.company_id}>"
