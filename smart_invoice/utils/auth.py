"""Bearer-token authentication and role checks for tenant-safe access control."""
from __future__ import annotations

import functools
from typing import Callable, Optional

from flask import abort, current_app, g, jsonify, request
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Profile, ProfileRole


class AuthenticationError(Exception):
    """Raised when a request does not carry a usable bearer credential."""


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def decode_access_token(token: str) -> dict:
    """Validate a JWT issued by the hosted auth provider and return its claims."""
    cfg = current_app.config
    secret = cfg.get("AUTH_JWT_SECRET")
    if not secret:
        raise AuthenticationError("Authentication is not configured")
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[cfg.get("AUTH_JWT_ALGORITHM", "HS256")],
            audience=cfg.get("AUTH_JWT_AUDIENCE") or None,
        )
    except JWTError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from None
    if not claims.get("sub"):
        raise AuthenticationError("Invalid token: missing subject")
    return claims


def _load_profile(claims: dict) -> Profile:
    """Fetch the caller's profile, provisioning it and its company on first use."""
    profile = db.session.get(Profile, claims["sub"])
    changed = False
    if profile is None:
        profile = Profile(id=claims["sub"], email=claims.get("email"), role=ProfileRole.INVOICE_OWNER)
        db.session.add(profile)
        changed = True
    elif claims.get("email") and profile.email != claims["email"]:
        profile.email = claims["email"]
        changed = True
    if not profile.company_id:
        profile.ensure_company()
        changed = True

    if changed:
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Failed to provision profile %s", claims["sub"])
            raise
        current_app.logger.info("Provisioned profile %s for company %s", profile.id, profile.company_id)
    return profile


def authenticate_request() -> Profile:
    token = _bearer_token()
    if not token:
        raise AuthenticationError("No authorization header provided")
    return _load_profile(decode_access_token(token))


def current_profile() -> Optional[Profile]:
    """Return the authenticated profile, loading once per request."""
    if hasattr(g, "current_profile"):
        return g.current_profile  # type: ignore[attr-defined]
    try:
        profile = authenticate_request()
    except AuthenticationError:
        profile = None
    g.current_profile = profile  # type: ignore[attr-defined]
    return profile


def _unauthorized(message: str):
    response = jsonify({"success": False, "error": message})
    response.status_code = 401
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


def bearer_required(view: Callable):
    """Decorator to guard API routes that require a valid bearer token."""

    @functools.wraps(view)
    def wrapped_view(*args, **kwargs):
        try:
            profile = authenticate_request()
        except AuthenticationError as exc:
            current_app.logger.info("Rejected %s %s: %s", request.method, request.path, exc)
            return _unauthorized(str(exc))
        g.current_profile = profile  # type: ignore[attr-defined]
        return view(*args, **kwargs)

    return wrapped_view


def role_required(*roles: ProfileRole):
    """Enforce role-based access; implies ``bearer_required``."""
    allowed_roles = {role.value if isinstance(role, ProfileRole) else str(role) for role in roles}

    def decorator(view: Callable):
        @functools.wraps(view)
        def wrapped_view(*args, **kwargs):
            profile = current_profile()
            if profile.role.value not in allowed_roles:
                abort(403, description="You do not have permission to perform this action")
            return view(*args, **kwargs)

        return bearer_required(wrapped_view)

    return decorator
