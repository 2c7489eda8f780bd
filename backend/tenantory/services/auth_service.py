"""
Bearer token verification.

Tokens are issued by the external identity provider; this service only
verifies them (signature, expiry, and audience/issuer when configured) and
returns the claim mapping. No local sessions or passwords exist.
"""
from __future__ import annotations

import logging
from typing import Any

from flask import current_app
from jose import JWTError, jwt

logger = logging.getLogger(__name__)


def decode_bearer_token(token: str) -> dict[str, Any]:
    """
    Verify a JWT and return its claims.

    Raises:
        JWTError: bad signature, expired, wrong audience/issuer, malformed
    """
    cfg = current_app.config
    audience = cfg.get("AUTH_AUDIENCE")
    issuer = cfg.get("AUTH_ISSUER")

    claims = jwt.decode(
        token,
        cfg["AUTH_JWT_KEY"],
        algorithms=cfg["AUTH_JWT_ALGORITHMS"],
        audience=audience,
        issuer=issuer,
        options={"verify_aud": bool(audience), "verify_iss": bool(issuer)},
    )
    if not isinstance(claims, dict):
        raise JWTError("Token payload is not an object")
    return claims


def extract_bearer_token(auth_header: str | None) -> str | None:
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None
