"""Job model: a billable unit of work for a client."""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, Index, Numeric, false, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from .base import TenantMixin, TimestampMixin, new_uuid, utcnow

if TYPE_CHECKING:  # pragma: no cover - typing only
    from .client import Client
    from .payment import Payment


class JobStatus(str, enum.Enum):
    """Lifecycle states for jobs."""

    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    TEST = "test"


class JobFrequency(str, enum.Enum):
    """Recurrence intervals for recurring jobs."""

    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"


class Job(TenantMixin, TimestampMixin, db.Model):
    """Tenant-scoped job with its payment-link and settlement state."""

    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_jobs_price_positive"),
        CheckConstraint(
            "(is_recurring AND frequency IS NOT NULL) OR (NOT is_recurring AND frequency IS NULL)",
            name="ck_jobs_frequency_when_recurring",
        ),
        Index("ix_jobs_status", "company_id", "status"),
        Index("ix_jobs_schedule", "is_recurring", "scheduled_date"),
    )

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    client_id: Mapped[str] = mapped_column(
        db.String(36),
        db.ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        db.Enum(JobStatus, native_enum=False, validate_strings=True, name="job_status"),
        nullable=False,
        default=JobStatus.PENDING,
        server_default=text("'pending'"),
    )
    scheduled_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    is_recurring: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False, server_default=false())
    frequency: Mapped[JobFrequency | None] = mapped_column(
        db.Enum(JobFrequency, native_enum=False, validate_strings=True, name="job_frequency"),
        nullable=True,
    )
    notification_phone: Mapped[str | None] = mapped_column(db.String(32), nullable=True)

    # Payment link state, overwritten on every regeneration
    payment_url: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    checkout_session_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True, index=True)
    payment_base_cents: Mapped[int | None] = mapped_column(db.Integer, nullable=True)
    payment_fee_cents: Mapped[int | None] = mapped_column(db.Integer, nullable=True)

    paid_at: Mapped[datetime | None] = mapped_column(db.DateTime, nullable=True)
    receipt_id: Mapped[str | None] = mapped_column(
        db.String(36),
        db.ForeignKey("receipts.id", ondelete="SET NULL", use_alter=True, name="fk_jobs_receipt_id"),
        nullable=True,
    )

    client: Mapped["Client"] = relationship("Client", back_populates="jobs", lazy="joined")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="Payment.created_at.desc()",
    )

    @property
    def is_paid(self) -> bool:
        return self.status in (JobStatus.PAID, JobStatus.COMPLETED)

    def mark_paid(self, paid_at: datetime | None = None) -> bool:
        """Move the job to paid. Returns False when it was already settled."""
        if self.is_paid:
            return False
        self.status = JobStatus.PAID
        self.paid_at = paid_at or utcnow()
        return True

    def record_payment_link(self, *, url: str, session_id: str, base_cents: int, fee_cents: int) -> None:
        """Store the latest checkout link together with the fee it was priced at."""
        self.payment_url = url
        self.checkout_session_id = session_id
        self.payment_base_cents = base_cents
        self.payment_fee_cents = fee_cents

    def reset_payment_state(self) -> None:
        self.payment_url = None
        self.checkout_session_id = None
        self.payment_base_cents = None
        self.payment_fee_cents = None
        self.paid_at = None
        self.receipt_id = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "price": str(self.price),
            "status": self.status.value,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "is_recurring": self.is_recurring,
            "frequency": self.frequency.value if self.frequency else None,
            "notification_phone": self.notification_phone,
            "payment_url": self.payment_url,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "receipt_id": self.receipt_id,
        }

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<Job {self.id} {self.title} {self.price}>"
