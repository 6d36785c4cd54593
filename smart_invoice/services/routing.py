"""Decide whether a tenant's charges go to its connected account or the platform."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app

from ..models import Profile
from . import stripe_gateway

METHOD_CONNECT = "stripe_connect"
METHOD_PLATFORM = "platform_only"
METHOD_FALLBACK = "platform_fallback"


@dataclass(frozen=True)
class RoutingDecision:
    use_connected_account: bool
    connected_account_id: Optional[str] = None
    charges_enabled: bool = False

    @property
    def method(self) -> str:
        return METHOD_CONNECT if self.use_connected_account else METHOD_PLATFORM

    @property
    def destination(self) -> str:
        if self.use_connected_account and self.connected_account_id:
            return self.connected_account_id
        return "platform"

    @classmethod
    def platform(cls, account_id: Optional[str] = None) -> "RoutingDecision":
        return cls(use_connected_account=False, connected_account_id=account_id)


def _connected_profile(company_id: str) -> Optional[Profile]:
    return (
        Profile.query.filter(
            Profile.company_id == company_id,
            Profile.stripe_account_id.isnot(None),
        )
        .order_by(Profile.stripe_connected.desc(), Profile.created_at.asc())
        .first()
    )


def resolve_routing(company_id: str) -> RoutingDecision:
    """Resolve the routing for ``company_id``.

    The cached ``stripe_connected`` flag only orders candidate profiles; the
    decision always comes from a live account check. Any failure during that
    check routes the charge to the platform.
    """
    profile = _connected_profile(company_id)
    if profile is None:
        return RoutingDecision.platform()

    account_id = profile.stripe_account_id
    platform_account = current_app.config.get("STRIPE_PLATFORM_ACCOUNT_ID")
    if platform_account and account_id == platform_account:
        current_app.logger.warning(
            "Company %s is linked to the platform account; routing to platform", company_id
        )
        return RoutingDecision.platform(account_id)

    import stripe  # type: ignore

    try:
        account = stripe_gateway.retrieve_account(account_id)
    except stripe.StripeError as exc:
        current_app.logger.warning(
            "Account check failed for %s, routing to platform: %s", account_id, exc
        )
        return RoutingDecision.platform(account_id)

    if not stripe_gateway.charges_enabled(account):
        current_app.logger.info("Account %s cannot accept charges yet; routing to platform", account_id)
        return RoutingDecision.platform(account_id)

    return RoutingDecision(use_connected_account=True, connected_account_id=account_id, charges_enabled=True)
