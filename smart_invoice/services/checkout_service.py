"""Payment link generation: validate a job, route it, build and create a Checkout session."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Job
from . import stripe_gateway
from .fees import FeeBreakdown, price_to_cents
from .notification_service import format_payment_link_sms, send_sms
from .routing import METHOD_FALLBACK, RoutingDecision, resolve_routing

FALLBACK_WARNING = "Routed to platform account due to Stripe Connect issue"


class CheckoutValidationError(ValueError):
    """Raised when a job cannot be turned into a chargeable checkout."""


@dataclass(frozen=True)
class BillableJob:
    """Snapshot of the job fields a checkout needs, validated once."""

    job_id: str
    company_id: str
    title: str
    client_name: str
    base_cents: int
    notification_phone: Optional[str] = None

    @classmethod
    def from_job(cls, job: Job) -> "BillableJob":
        if not job.company_id:
            raise CheckoutValidationError("Job is not assigned to a company")
        try:
            base_cents = price_to_cents(job.price)
        except ValueError as exc:
            raise CheckoutValidationError(str(exc)) from None
        client_name = job.client.name if job.client is not None else None
        return cls(
            job_id=job.id,
            company_id=job.company_id,
            title=job.title or "Service",
            client_name=client_name or "Client",
            base_cents=base_cents,
            notification_phone=job.notification_phone,
        )

    def breakdown(self) -> FeeBreakdown:
        return FeeBreakdown.for_base(self.base_cents)


def ensure_chargeable(breakdown: FeeBreakdown) -> None:
    minimum = int(current_app.config.get("STRIPE_MIN_CHARGE_CENTS", 50))
    if breakdown.total_cents < minimum:
        raise CheckoutValidationError(
            f"Total amount must be at least ${minimum / 100:.2f} to process payment"
        )


@dataclass(frozen=True)
class CheckoutSpec:
    """Everything needed to create one Checkout session."""

    job_id: str
    breakdown: FeeBreakdown
    product_name: str
    product_description: str
    success_url: str
    cancel_url: str
    currency: str
    metadata: Dict[str, str]
    payment_intent_data: Optional[Dict[str, Any]] = None
    stripe_account: Optional[str] = None

    @property
    def routing_method(self) -> str:
        return self.metadata["routing_method"]

    def to_params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {
                            "name": self.product_name,
                            "description": self.product_description,
                        },
                        "unit_amount": self.breakdown.total_cents,
                    },
                    "quantity": 1,
                }
            ],
            "mode": "payment",
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "metadata": dict(self.metadata),
        }
        if self.payment_intent_data:
            params["payment_intent_data"] = self.payment_intent_data
        return params

    def platform_fallback(self) -> "CheckoutSpec":
        """Same charge created directly on the platform, without the fee split."""
        metadata = dict(self.metadata, routing_method=METHOD_FALLBACK)
        return replace(self, metadata=metadata, payment_intent_data=None, stripe_account=None)


def build_checkout_spec(job: BillableJob, routing: RoutingDecision, origin: str) -> CheckoutSpec:
    breakdown = job.breakdown()
    ensure_chargeable(breakdown)

    origin = (origin or current_app.config.get("APP_BASE_URL", "")).rstrip("/")
    metadata = {
        "job_id": job.job_id,
        "company_id": job.company_id,
        "client_name": job.client_name,
        "base_amount_cents": str(breakdown.base_cents),
        "platform_fee_cents": str(breakdown.fee_cents),
        "total_amount_cents": str(breakdown.total_cents),
        "routing_method": routing.method,
    }

    payment_intent_data = None
    stripe_account = None
    if routing.use_connected_account and routing.connected_account_id:
        payment_intent_data = {
            "application_fee_amount": breakdown.fee_cents,
            "transfer_data": {"destination": routing.connected_account_id},
        }
        stripe_account = routing.connected_account_id

    return CheckoutSpec(
        job_id=job.job_id,
        breakdown=breakdown,
        product_name=job.title,
        product_description=f"Service for {job.client_name}",
        success_url=f"{origin}/payment-success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{origin}/",
        currency=current_app.config.get("CHECKOUT_CURRENCY", "usd"),
        metadata=metadata,
        payment_intent_data=payment_intent_data,
        stripe_account=stripe_account,
    )


@dataclass
class CheckoutOutcome:
    """Response payload for a payment link request."""

    success: bool
    error: Optional[str] = None
    url: Optional[str] = None
    session_id: Optional[str] = None
    pricing_info: Optional[dict] = None
    routing_info: Optional[dict] = None
    warning: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    notification: Optional[dict] = None

    @classmethod
    def failed(cls, error: str) -> "CheckoutOutcome":
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        payload: dict = {
            "success": True,
            "url": self.url,
            "sessionId": self.session_id,
            "pricing_info": self.pricing_info,
            "routing_info": self.routing_info,
        }
        if self.warning:
            payload["warning"] = self.warning
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.notification is not None:
            payload["notification"] = self.notification
        return payload


def _routing_info(spec: CheckoutSpec, routing: RoutingDecision) -> dict:
    connect_used = spec.stripe_account is not None
    return {
        "method": spec.routing_method,
        "destination_account": spec.stripe_account if connect_used else "platform",
        "fee_amount_cents": spec.breakdown.fee_cents,
        "base_amount_cents": spec.breakdown.base_cents,
        "charges_enabled": routing.charges_enabled,
    }


def create_payment_link(job_id: Optional[str], company_id: str, origin: str) -> CheckoutOutcome:
    """Create (or regenerate) the payment link for a job in ``company_id``."""
    if not job_id:
        return CheckoutOutcome.failed("Job ID is required")

    job = Job.scoped_to_company(company_id).filter_by(id=job_id).first()
    if job is None:
        return CheckoutOutcome.failed("Job not found")

    try:
        billable = BillableJob.from_job(job)
        ensure_chargeable(billable.breakdown())
        stripe_gateway.get_stripe()
    except CheckoutValidationError as exc:
        return CheckoutOutcome.failed(str(exc))
    except stripe_gateway.PaymentConfigurationError as exc:
        current_app.logger.error("Checkout unavailable: %s", exc)
        return CheckoutOutcome.failed(str(exc))

    routing = resolve_routing(company_id)
    try:
        spec = build_checkout_spec(billable, routing, origin)
    except CheckoutValidationError as exc:
        return CheckoutOutcome.failed(str(exc))

    result = stripe_gateway.create_checkout_session(spec.to_params(), stripe_account=spec.stripe_account)
    warning = None
    if not result.ok and spec.stripe_account:
        current_app.logger.warning(
            "Connect checkout failed for job %s on %s (%s: %s); retrying on platform",
            billable.job_id,
            spec.stripe_account,
            result.error_kind,
            result.message,
        )
        spec = spec.platform_fallback()
        result = stripe_gateway.create_checkout_session(spec.to_params())
        warning = FALLBACK_WARNING

    if not result.ok:
        current_app.logger.error(
            "Checkout session creation failed for job %s (%s: %s)",
            billable.job_id,
            result.error_kind,
            result.message,
        )
        return CheckoutOutcome.failed(result.message or "Payment processor error")

    session = result.session
    outcome = CheckoutOutcome(
        success=True,
        url=session.url,
        session_id=session.id,
        pricing_info=spec.breakdown.as_pricing_info(connect_used=spec.stripe_account is not None),
        routing_info=_routing_info(spec, routing),
        warning=warning,
    )
    current_app.logger.info(
        "Payment link created for job %s via %s (session %s, base=%s fee=%s)",
        billable.job_id,
        spec.routing_method,
        session.id,
        spec.breakdown.base_cents,
        spec.breakdown.fee_cents,
    )

    try:
        job.record_payment_link(
            url=session.url,
            session_id=session.id,
            base_cents=spec.breakdown.base_cents,
            fee_cents=spec.breakdown.fee_cents,
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to store payment link for job %s", billable.job_id)
        outcome.warnings.append("Payment link was created but could not be saved to the job")

    if billable.notification_phone:
        message = format_payment_link_sms(
            client_name=billable.client_name,
            job_title=billable.title,
            amount=job.price,
            url=session.url,
        )
        ok, error = send_sms(billable.notification_phone, message, job_id=billable.job_id)
        outcome.notification = {"sent": ok}
        if not ok:
            outcome.notification["error"] = error
            outcome.warnings.append(f"SMS notification failed: {error}")

    return outcome
