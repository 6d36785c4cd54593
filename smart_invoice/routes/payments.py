"""Payment link generation and Stripe webhook endpoints."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from ..services.checkout_service import create_payment_link
from ..services.stripe_gateway import PaymentConfigurationError
from ..services.webhook_service import WebhookPersistenceError, WebhookRejected, handle_stripe_webhook
from ..utils.auth import bearer_required

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/api/checkout", methods=["POST"])
@bearer_required
def checkout():
    data = request.get_json(silent=True) or {}
    job_id = data.get("jobId") or data.get("job_id")
    origin = request.headers.get("Origin") or current_app.config.get("APP_BASE_URL", "")

    outcome = create_payment_link(job_id, g.current_profile.company_id, origin)
    return jsonify(outcome.to_dict())


@payments_bp.route("/webhooks/stripe", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature")
    try:
        body = handle_stripe_webhook(payload, signature)
    except WebhookRejected as exc:
        current_app.logger.warning("Rejected Stripe webhook: %s", exc)
        return jsonify({"error": str(exc)}), 400
    except (WebhookPersistenceError, PaymentConfigurationError) as exc:
        current_app.logger.error("Stripe webhook failed: %s", exc)
        return jsonify({"error": "Webhook processing failed"}), 500
    return jsonify(body)
