"""Tests for smart_invoice/services/webhook_service.py and POST /webhooks/stripe

Covers:
- signature verification before any state is read
- checkout.session.completed: job paid, payment recorded, receipt issued
- idempotency on the session id, receipt retries, tenant mismatch

Payloads are signed with the test webhook secret and verified by the real
``stripe`` library, so the handler sees genuine ``stripe.Event`` objects.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from decimal import Decimal
from unittest.mock import patch

import stripe
from sqlalchemy.exc import OperationalError

from conftest import COMPANY_A, COMPANY_B, make_client, make_job
from smart_invoice.config import TestingConfig
from smart_invoice.extensions import db
from smart_invoice.models import Job, JobStatus, Payment, PaymentStatus, Receipt


def completed_event(job, session_id="cs_test_123", amount_total=10_420, **metadata_overrides) -> dict:
    metadata = {"job_id": job.id, "company_id": job.company_id, "routing_method": "platform_only"}
    metadata.update(metadata_overrides)
    return {
        "id": "evt_test",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "payment_intent": "pi_test_123",
                "metadata": {key: value for key, value in metadata.items() if value is not None},
            }
        },
    }


def sign(payload: str, secret: str = TestingConfig.STRIPE_WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _post(client, event: dict, *, signature: str | None = None):
    payload = json.dumps(event)
    return client.post(
        "/webhooks/stripe",
        data=payload,
        headers={"Stripe-Signature": signature or sign(payload)},
        content_type="application/json",
    )


class TestSignature:
    """Verify deliveries are authenticated first."""

    def test_tampered_payload_is_rejected(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)
        signature = sign(json.dumps(event))
        event["data"]["object"]["amount_total"] = 1

        response = _post(client, event, signature=signature)

        assert response.status_code == 400
        assert db.session.get(Job, job.id).status == JobStatus.PENDING
        assert Payment.query.count() == 0

    def test_wrong_secret_is_rejected(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)

        response = _post(client, event, signature=sign(json.dumps(event), secret="whsec_other"))

        assert response.status_code == 400
        assert "signature" in response.get_json()["error"]

    def test_stale_timestamp_is_rejected(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)

        response = _post(client, event, signature=sign(json.dumps(event), timestamp=int(time.time()) - 3600))

        assert response.status_code == 400

    def test_missing_signature_header(self, app, client) -> None:
        with patch.object(stripe.Webhook, "construct_event") as construct_event:
            response = client.post("/webhooks/stripe", data=b"{}")

        assert response.status_code == 400
        construct_event.assert_not_called()

    def test_missing_webhook_secret_is_a_server_error(self, app, client) -> None:
        app.config["STRIPE_WEBHOOK_SECRET"] = ""
        job = make_job(make_client())

        assert _post(client, completed_event(job)).status_code == 500


class TestCompletedSession:
    """Verify reconciliation of completed checkouts."""

    def test_marks_job_paid_and_issues_receipt(self, app, client) -> None:
        job = make_job(make_client(), "100.00", title="Pool service")

        response = _post(client, completed_event(job))

        assert response.status_code == 200
        assert response.get_json() == {"received": True}

        stored = db.session.get(Job, job.id)
        assert stored.status == JobStatus.PAID
        assert stored.paid_at is not None

        payment = Payment.query.filter_by(checkout_session_id="cs_test_123").one()
        assert payment.amount == 10_420
        assert payment.status == PaymentStatus.PAID
        assert payment.payment_intent_id == "pi_test_123"
        assert payment.company_id == COMPANY_A

        receipt = Receipt.query.filter_by(session_id="cs_test_123").one()
        assert receipt.base_amount_cents == 10_000
        assert receipt.fee_cents == 420
        assert receipt.base_amount_cents + receipt.fee_cents == receipt.amount_paid
        assert stored.receipt_id == receipt.id

    def test_receipt_uses_fee_snapshot(self, app, client) -> None:
        job = make_job(make_client(), "100.00", payment_base_cents=10_000, payment_fee_cents=420)
        job.price = Decimal("150.00")
        db.session.commit()

        _post(client, completed_event(job, amount_total=10_420))

        receipt = Receipt.query.one()
        assert receipt.base_amount_cents == 10_000
        assert receipt.fee_cents == 420

    def test_duplicate_delivery_is_a_no_op(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)

        first = _post(client, event)
        second = _post(client, event)

        assert first.status_code == second.status_code == 200
        assert db.session.get(Job, job.id).status == JobStatus.PAID
        assert Payment.query.count() == 1
        assert Receipt.query.count() == 1

    def test_redelivery_retries_missing_receipt(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)

        with patch("smart_invoice.services.webhook_service.generate_receipt", return_value=None):
            assert _post(client, event).status_code == 200
        assert Receipt.query.count() == 0

        assert _post(client, event).status_code == 200

        assert Payment.query.count() == 1
        receipt = Receipt.query.one()
        assert receipt.amount_paid == 10_420
        assert db.session.get(Job, job.id).receipt_id == receipt.id

    def test_receipt_failure_does_not_fail_webhook(self, app, client) -> None:
        job = make_job(make_client())

        with patch("smart_invoice.services.webhook_service.generate_receipt", side_effect=RuntimeError("template")):
            response = _post(client, completed_event(job))

        assert response.status_code == 200
        assert db.session.get(Job, job.id).status == JobStatus.PAID

    def test_already_completed_job_keeps_status(self, app, client) -> None:
        job = make_job(make_client(), status=JobStatus.COMPLETED)

        assert _post(client, completed_event(job)).status_code == 200

        assert db.session.get(Job, job.id).status == JobStatus.COMPLETED
        assert Payment.query.count() == 1

    def test_persistence_failure_returns_500(self, app, client) -> None:
        job = make_job(make_client())

        with patch.object(db.session, "commit", side_effect=OperationalError("INSERT", {}, Exception("locked"))):
            response = _post(client, completed_event(job))

        assert response.status_code == 500
        assert Payment.query.count() == 0
        assert db.session.get(Job, job.id).status == JobStatus.PENDING


class TestRejectedPayloads:
    """Verify malformed or foreign sessions are refused."""

    def test_missing_job_id(self, app, client) -> None:
        job = make_job(make_client())

        response = _post(client, completed_event(job, job_id=None))

        assert response.status_code == 400
        assert "job_id" in response.get_json()["error"]

    def test_unknown_job(self, app, client) -> None:
        job = make_job(make_client())

        assert _post(client, completed_event(job, job_id="missing-job")).status_code == 400

    def test_company_mismatch(self, app, client) -> None:
        job = make_job(make_client())

        assert _post(client, completed_event(job, company_id=COMPANY_B)).status_code == 400
        assert db.session.get(Job, job.id).status == JobStatus.PENDING

    def test_other_event_types_are_acknowledged(self, app, client) -> None:
        job = make_job(make_client())
        event = completed_event(job)
        event["type"] = "payment_intent.created"

        response = _post(client, event)

        assert response.status_code == 200
        assert response.get_json() == {"received": True}
        assert db.session.get(Job, job.id).status == JobStatus.PENDING
