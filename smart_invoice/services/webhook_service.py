"""Stripe webhook reconciliation: mark jobs paid and issue receipts."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Job, Payment, Receipt
from ..models.base import utcnow
from . import stripe_gateway
from .receipt_service import ReceiptError, generate_receipt

COMPLETED_EVENT = "checkout.session.completed"


class WebhookRejected(ValueError):
    """Raised for deliveries that must be answered with HTTP 400."""


class WebhookPersistenceError(RuntimeError):
    """Raised when the paid state could not be committed; Stripe should retry."""


def verify_event(payload: bytes, signature: str | None):
    stripe = stripe_gateway.get_stripe()
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise stripe_gateway.PaymentConfigurationError(
            "Stripe configuration missing. Provide STRIPE_WEBHOOK_SECRET."
        )
    if not signature:
        raise WebhookRejected("Missing Stripe-Signature header")
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        raise WebhookRejected(f"Webhook signature verification failed: {exc}") from None
    return event.to_dict()


def handle_stripe_webhook(payload: bytes, signature: str | None) -> dict:
    """Verify and apply one Stripe event. Returns the acknowledgement body."""
    event = verify_event(payload, signature)
    event_type = event.get("type")
    if event_type != COMPLETED_EVENT:
        current_app.logger.info("Ignoring Stripe event %s", event_type)
        return {"received": True}

    session = event.get("data", {}).get("object") or {}
    session_id = session.get("id")
    metadata = session.get("metadata") or {}
    job_id = metadata.get("job_id")
    if not job_id or not session_id:
        raise WebhookRejected("No job_id in session metadata")

    job = db.session.get(Job, job_id)
    if job is None:
        raise WebhookRejected(f"Job {job_id} not found")
    claimed_company = metadata.get("company_id")
    if claimed_company and claimed_company != job.company_id:
        current_app.logger.warning(
            "Session %s claims company %s but job %s belongs to %s", session_id, claimed_company, job_id, job.company_id
        )
        raise WebhookRejected("Session metadata does not match job")

    if Receipt.query.filter_by(session_id=session_id).first() is not None:
        current_app.logger.info("Duplicate delivery for session %s ignored", session_id)
        return {"received": True}

    amount_paid = session.get("amount_total")
    paid_at = utcnow()
    payment = Payment.query.filter_by(checkout_session_id=session_id).first()
    if payment is None:
        if not _record_payment(job, session, amount_paid, paid_at):
            current_app.logger.info("Session %s was recorded concurrently", session_id)
            return {"received": True}
    else:
        current_app.logger.info("Payment for session %s already recorded; retrying receipt", session_id)
        amount_paid = payment.amount
        paid_at = payment.paid_at or paid_at

    _issue_receipt(job.id, session_id, amount_paid, paid_at)
    return {"received": True}


def _record_payment(job: Job, session: Any, amount_paid: Any, paid_at: datetime) -> bool:
    """Commit the paid state. Returns False when another delivery already did."""
    if isinstance(amount_paid, bool) or not isinstance(amount_paid, int):
        raise WebhookRejected("Session has no amount_total")

    payment = Payment(
        company_id=job.company_id,
        job_id=job.id,
        amount=amount_paid,
        checkout_session_id=session.get("id"),
    )
    payment.mark_paid(paid_at=paid_at, payment_intent_id=session.get("payment_intent"))
    transitioned = job.mark_paid(paid_at=paid_at)

    try:
        db.session.add(payment)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return False
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment for job %s", job.id)
        raise WebhookPersistenceError(str(exc)) from exc

    if transitioned:
        current_app.logger.info("Job %s marked paid (session %s, %s cents)", job.id, payment.checkout_session_id, amount_paid)
    else:
        current_app.logger.info("Job %s was already settled; payment %s recorded", job.id, payment.checkout_session_id)
    return True


def _issue_receipt(job_id: str, session_id: str, amount_paid: int, paid_at: datetime) -> None:
    try:
        receipt = generate_receipt(job_id, session_id, amount_paid, paid_at)
    except ReceiptError as exc:
        current_app.logger.warning("Receipt for session %s not generated: %s", session_id, exc)
        return
    except Exception:  # noqa: BLE001 - receipts must never fail the webhook
        current_app.logger.exception("Unexpected error generating receipt for session %s", session_id)
        return
    if receipt is None:
        current_app.logger.warning("Receipt for session %s will be retried on redelivery", session_id)
