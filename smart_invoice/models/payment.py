"""Payment and receipt models recording settled checkouts."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Index, UniqueConstraint, false, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import TenantMixin, TimestampMixin, new_uuid, utcnow

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .job import Job


class PaymentStatus(str, enum.Enum):
    """Payment transaction states."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Payment(TenantMixin, TimestampMixin, db.Model):
    """Stripe's view of a settled checkout for a job."""

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("checkout_session_id", name="uq_payments_checkout_session"),
        Index("ix_payments_status", "company_id", "status"),
    )

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_uuid)
    job_id: Mapped[str] = mapped_column(
        db.String(36),
        db.ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(db.Integer, nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        db.Enum(PaymentStatus, native_enum=False, validate_strings=True, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
        server_default=text("'pending'"),
    )
    paid_at: Mapped[datetime | None] = mapped_column(db.DateTime, nullable=True)
    payment_method: Mapped[str] = mapped_column(db.String(32), nullable=False, server_default=text("'stripe'"))
    payment_intent_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    checkout_session_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    card_saved: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=false())

    job: Mapped["Job"] = relationship("Job", back_populates="payments")

    def mark_paid(self, *, paid_at: datetime | None = None, payment_intent_id: str | None = None) -> None:
        self.status = PaymentStatus.PAID
        self.paid_at = paid_at or utcnow()
        if payment_intent_id:
            self.payment_intent_id = payment_intent_id

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Payment {self.checkout_session_id} {self.status.value} {self.amount}>"


class Receipt(TenantMixin, db.Model):
    """Rendered, immutable receipt for one completed checkout session."""

    __tablename__ = "receipts"
    __table_args__ = (UniqueConstraint("session_id", name="uq_receipts_session_id"),)

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_uuid)
    job_id: Mapped[str] = mapped_column(
        db.String(36),
        db.ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    amount_paid: Mapped[int] = mapped_column(db.Integer, nullable=False)
    base_amount_cents: Mapped[int] = mapped_column(db.Integer, nullable=False)
    fee_cents: Mapped[int] = mapped_column(db.Integer, nullable=False)
    receipt_html: Mapped[str] = mapped_column(db.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    job: Mapped["Job"] = relationship("Job", foreign_keys=[job_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "session_id": self.session_id,
            "amount_paid": self.amount_paid,
            "base_amount_cents": self.base_amount_cents,
            "fee_cents": self.fee_cents,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Receipt {self.id} session={self.session_id}>"
