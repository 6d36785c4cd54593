"""Stripe Connect onboarding and status endpoints."""
from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from ..services.connect_service import check_status, initiate_connection
from ..services.stripe_gateway import PaymentConfigurationError, describe_error
from ..utils.auth import bearer_required

connect_bp = Blueprint("connect", __name__, url_prefix="/api/connect")


def _processor_failure(exc: Exception):
    _, message = describe_error(exc)
    current_app.logger.error("Stripe Connect request failed: %s", message)
    return jsonify({"success": False, "error": message}), 502


@connect_bp.route("/onboarding", methods=["POST"])
@bearer_required
def onboarding():
    import stripe  # type: ignore

    try:
        return jsonify(initiate_connection(g.current_profile))
    except PaymentConfigurationError as exc:
        return jsonify({"success": False, "error": str(exc)}), 500
    except stripe.StripeError as exc:
        return _processor_failure(exc)


@connect_bp.route("/status", methods=["GET"])
@bearer_required
def status():
    import stripe  # type: ignore

    try:
        return jsonify(check_status(g.current_profile))
    except PaymentConfigurationError as exc:
        return jsonify({"success": False, "error": str(exc)}), 500
    except stripe.StripeError as exc:
        return _processor_failure(exc)
