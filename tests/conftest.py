"""Shared fixtures: app on TestingConfig, auth tokens, model factories, mocked Stripe."""

from __future__ import annotations

import time
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import stripe
from jose import jwt

from smart_invoice import create_app
from smart_invoice.config import TestingConfig
from smart_invoice.extensions import db
from smart_invoice.models import Client, Job, JobFrequency, JobStatus, Profile, ProfileRole

COMPANY_A = "11111111-1111-1111-1111-111111111111"
COMPANY_B = "22222222-2222-2222-2222-222222222222"


@pytest.fixture()
def app():
    """Fresh application with an in-memory database per test."""
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def fake_stripe():
    """Replace the configured Stripe module with a mock keeping the real error classes."""
    fake = MagicMock(name="stripe")
    fake.StripeError = stripe.StripeError
    fake.SignatureVerificationError = stripe.SignatureVerificationError
    with patch("smart_invoice.services.stripe_gateway.get_stripe", return_value=fake):
        yield fake


def make_token(sub: str, email: str | None = "owner@example.com", **claims: Any) -> str:
    payload = {
        "sub": sub,
        "aud": TestingConfig.AUTH_JWT_AUDIENCE,
        "exp": int(time.time()) + 3600,
        "role": "authenticated",
    }
    if email:
        payload["email"] = email
    payload.update(claims)
    return jwt.encode(payload, TestingConfig.AUTH_JWT_SECRET, algorithm=TestingConfig.AUTH_JWT_ALGORITHM)


def auth_headers(sub: str = "user-a", **kwargs: Any) -> dict:
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


def make_profile(
    profile_id: str = "user-a",
    company_id: str = COMPANY_A,
    *,
    email: str = "owner@example.com",
    role: ProfileRole = ProfileRole.INVOICE_OWNER,
    stripe_account_id: str | None = None,
    stripe_connected: bool = False,
) -> Profile:
    profile = Profile(
        id=profile_id,
        email=email,
        company_id=company_id,
        role=role,
        stripe_account_id=stripe_account_id,
        stripe_connected=stripe_connected,
    )
    db.session.add(profile)
    db.session.commit()
    return profile


def make_client(company_id: str = COMPANY_A, name: str = "Acme Co", **kwargs: Any) -> Client:
    client = Client(company_id=company_id, name=name, email=kwargs.pop("email", "billing@acme.test"), **kwargs)
    db.session.add(client)
    db.session.commit()
    return client


def make_job(
    client: Client,
    price: str | Decimal = "100.00",
    *,
    title: str = "Lawn care",
    status: JobStatus = JobStatus.PENDING,
    **kwargs: Any,
) -> Job:
    is_recurring = kwargs.pop("is_recurring", False)
    frequency = kwargs.pop("frequency", JobFrequency.WEEKLY if is_recurring else None)
    job = Job(
        company_id=client.company_id,
        client_id=client.id,
        title=title,
        price=Decimal(str(price)),
        status=status,
        is_recurring=is_recurring,
        frequency=frequency,
        **kwargs,
    )
    db.session.add(job)
    db.session.commit()
    return job


def checkout_session(session_id: str = "cs_test_123") -> SimpleNamespace:
    return SimpleNamespace(id=session_id, url=f"https://checkout.stripe.test/{session_id}")


def stripe_account(charges_enabled: bool = True, details_submitted: bool = True) -> SimpleNamespace:
    return SimpleNamespace(id="acct_connected", charges_enabled=charges_enabled, details_submitted=details_submitted)
