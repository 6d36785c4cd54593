"""Thin Stripe access layer shared by checkout, webhook and Connect services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import current_app


class PaymentConfigurationError(RuntimeError):
    """Raised when Stripe credentials are missing from the configuration."""


def get_stripe():
    """Lazily import and configure the Stripe library."""
    import stripe  # type: ignore

    secret = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret:
        raise PaymentConfigurationError(
            "Stripe configuration missing. Provide STRIPE_SECRET_KEY."
        )

    stripe.api_key = secret
    stripe.api_version = current_app.config.get("STRIPE_API_VERSION")
    stripe.max_network_retries = current_app.config.get("STRIPE_MAX_NETWORK_RETRIES", 0)
    return stripe


@dataclass(frozen=True)
class ProcessorResult:
    """Outcome of a Stripe call: either a session or an error kind and message."""

    session: Any = None
    error_kind: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def success(cls, session: Any) -> "ProcessorResult":
        return cls(session=session)

    @classmethod
    def failure(cls, kind: str, message: str) -> "ProcessorResult":
        return cls(error_kind=kind, message=message)


def describe_error(exc: Exception) -> tuple[str, str]:
    kind = getattr(exc, "code", None) or type(exc).__name__
    message = getattr(exc, "user_message", None) or str(exc) or "Stripe request failed"
    return str(kind), str(message)


def create_checkout_session(params: Dict[str, Any], *, stripe_account: Optional[str] = None) -> ProcessorResult:
    """Create a Checkout session, on a connected account when ``stripe_account`` is set."""
    stripe = get_stripe()
    options: Dict[str, Any] = {"stripe_account": stripe_account} if stripe_account else {}
    try:
        session = stripe.checkout.Session.create(**params, **options)
    except stripe.StripeError as exc:
        kind, message = describe_error(exc)
        return ProcessorResult.failure(kind, message)
    return ProcessorResult.success(session)


def retrieve_account(account_id: str):
    """Fetch a connected account; Stripe errors propagate to the caller."""
    stripe = get_stripe()
    return stripe.Account.retrieve(account_id)


def charges_enabled(account: Any) -> bool:
    return bool(getattr(account, "charges_enabled", False))


def onboarding_complete(account: Any) -> bool:
    """An account is connected once details are submitted and charges are enabled."""
    return bool(getattr(account, "details_submitted", False)) and charges_enabled(account)
