"""Admin authentication: bearer API keys from config."""

from __future__ import annotations

import hmac

from pydantic import BaseModel

from predsettle.errors import ResolutionError


class AdminAuthError(ResolutionError):
    """Missing or unknown admin credentials."""

    code = "unauthorized"


class AdminAuthResult(BaseModel):
    is_admin: bool
    user_id: str | None = None
    error: str | None = None


def verify_admin_auth(authorization: str | None, api_keys: dict[str, str]) -> AdminAuthResult:
    """Match an `Authorization: Bearer <key>` header against the configured keys."""
    if not authorization:
        return AdminAuthResult(is_admin=False, error="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return AdminAuthResult(is_admin=False, error="Authorization must be 'Bearer <key>'")
    for key, admin_id in api_keys.items():
        if hmac.compare_digest(key.encode(), token.encode()):
            return AdminAuthResult(is_admin=True, user_id=admin_id)
    return AdminAuthResult(is_admin=False, error="Unknown API key")
