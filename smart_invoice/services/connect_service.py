"""Stripe Connect onboarding and status reconciliation for profiles."""
from __future__ import annotations

from typing import Any, Dict

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Profile
from . import stripe_gateway

ACCOUNT_NOT_SAVED_WARNING = "Stripe account was created but could not be saved to your profile"


def _reconcile_flag(profile: Profile, connected: bool) -> None:
    if profile.stripe_connected == connected:
        return
    profile.stripe_connected = connected
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to update Stripe status for profile %s", profile.id)
        return
    current_app.logger.info("Profile %s stripe_connected set to %s", profile.id, connected)


def initiate_connection(profile: Profile) -> Dict[str, Any]:
    """Start (or resume) Express onboarding for ``profile``.

    Stripe errors while creating the account or link propagate to the caller.
    """
    stripe = stripe_gateway.get_stripe()
    account_id = profile.stripe_account_id

    if account_id:
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.StripeError as exc:
            current_app.logger.warning("Could not check account %s, issuing a new link: %s", account_id, exc)
        else:
            connected = stripe_gateway.onboarding_complete(account)
            _reconcile_flag(profile, connected)
            if connected:
                return {
                    "success": False,
                    "already_connected": True,
                    "url": current_app.config.get("CONNECT_DASHBOARD_URL"),
                }

    warning = None
    if not account_id:
        account = stripe.Account.create(
            type="express",
            email=profile.email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            metadata={"profile_id": profile.id, "company_id": profile.company_id or ""},
            idempotency_key=f"connect-account-{profile.id}",
        )
        account_id = account.id
        current_app.logger.info("Created Stripe account %s for profile %s", account_id, profile.id)

        profile.stripe_account_id = account_id
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to store Stripe account %s on profile %s", account_id, profile.id)
            warning = ACCOUNT_NOT_SAVED_WARNING

    link = stripe.AccountLink.create(
        account=account_id,
        refresh_url=current_app.config.get("CONNECT_REFRESH_URL"),
        return_url=current_app.config.get("CONNECT_RETURN_URL"),
        type="account_onboarding",
    )
    result = {"success": True, "url": link.url, "account_id": account_id}
    if warning:
        result["warning"] = warning
    return result


def check_status(profile: Profile) -> Dict[str, Any]:
    """Re-query Stripe for the profile's account and reconcile the cached flag."""
    if not profile.stripe_account_id:
        return {"success": True, "connected": False}

    account = stripe_gateway.retrieve_account(profile.stripe_account_id)
    connected = stripe_gateway.onboarding_complete(account)
    _reconcile_flag(profile, connected)
    return {"success": True, "connected": connected, "account_id": profile.stripe_account_id}
