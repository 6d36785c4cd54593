"""Receipt rendering and storage for completed checkouts."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Job, Receipt
from ..models.base import utcnow
from .fees import FeeBreakdown, price_to_cents


class ReceiptError(RuntimeError):
    """Raised when a receipt cannot be produced from the given inputs."""


def realized_breakdown(job: Job, amount_paid: int) -> FeeBreakdown:
    """Split what the customer actually paid into base and fee.

    The base is the one priced into the payment link; the job's current price
    is only used for links created before the snapshot existed.
    """
    if job.payment_base_cents:
        base_cents = job.payment_base_cents
    else:
        try:
            base_cents = price_to_cents(job.price)
        except ValueError as exc:
            raise ReceiptError(f"Job {job.id} has no usable price: {exc}") from None
    return FeeBreakdown(base_cents=base_cents, fee_cents=amount_paid - base_cents)


def _to_major(cents: int) -> Decimal:
    return Decimal(cents) / 100


def render_receipt(job: Job, *, session_id: str, breakdown: FeeBreakdown, paid_at: datetime) -> str:
    return render_template(
        "receipts/receipt.html",
        app_name=current_app.config.get("APP_NAME", "Smart Invoice"),
        invoice_number=job.id[:8].upper(),
        payment_date=paid_at.strftime("%m/%d/%Y"),
        service_name=job.title or "Service",
        client_name=job.client.name if job.client is not None else "N/A",
        base_amount=_to_major(breakdown.base_cents),
        fee_amount=_to_major(breakdown.fee_cents),
        total_amount=_to_major(breakdown.total_cents),
        session_id=session_id,
        generated_on=utcnow().strftime("%m/%d/%Y"),
    )


def generate_receipt(
    job_id: str, session_id: str, amount_paid: int, paid_at: Optional[datetime] = None
) -> Optional[Receipt]:
    """Create the receipt for ``session_id`` and link it to the job.

    Returns the existing receipt when one was already stored for the session,
    and ``None`` when the receipt could not be persisted.
    """
    if not session_id:
        raise ReceiptError("Checkout session id is required")
    if isinstance(amount_paid, bool) or not isinstance(amount_paid, int) or amount_paid <= 0:
        raise ReceiptError(f"Invalid amount paid: {amount_paid!r}")

    job = db.session.get(Job, job_id)
    if job is None:
        raise ReceiptError(f"Job {job_id} not found")

    existing = Receipt.query.filter_by(session_id=session_id).first()
    if existing is not None:
        current_app.logger.info("Receipt for session %s already exists (%s)", session_id, existing.id)
        return existing

    breakdown = realized_breakdown(job, amount_paid)
    if breakdown.fee_cents < 0:
        current_app.logger.warning(
            "Amount paid %s for job %s is below its base %s", amount_paid, job.id, breakdown.base_cents
        )

    paid_at = paid_at or job.paid_at or utcnow()
    receipt = Receipt(
        company_id=job.company_id,
        job_id=job.id,
        session_id=session_id,
        amount_paid=amount_paid,
        base_amount_cents=breakdown.base_cents,
        fee_cents=breakdown.fee_cents,
        receipt_html=render_receipt(job, session_id=session_id, breakdown=breakdown, paid_at=paid_at),
    )

    try:
        db.session.add(receipt)
        db.session.flush()
        job.receipt_id = receipt.id
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to store receipt for job %s (session %s)", job_id, session_id)
        return None

    current_app.logger.info(
        "Receipt %s stored for job %s: base=%s fee=%s total=%s",
        receipt.id,
        job.id,
        breakdown.base_cents,
        breakdown.fee_cents,
        breakdown.total_cents,
    )
    return receipt
