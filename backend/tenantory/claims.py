# Overview: Derive caller identity and tenant identifiers from token claims.

"""
Tenant context resolution from identity claims.

The same logical organization id can arrive in several shapes depending on
how the identity provider's token template is configured:

    {"org_id": "org_2abc"}                      direct claim
    {"o": "{\"id\": \"org_2abc\", \"slg\": ...}"}  JSON-encoded nested claim
    {"o": {"id": "org_2abc"}}                   already-decoded nested claim
    {"organization_id": "org_2abc"}             alternate claim name

A template whose placeholder was never interpolated ships the literal text
(e.g. "{{org.id}}"); such values are treated as absent.

Everything here is a pure function of the claim mapping. Nothing raises:
malformed input is logged and resolves to "no tenant".
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

ClaimStrategy = Callable[[Mapping[str, Any]], Optional[str]]

TEMPLATE_MARKERS = ("{{", "}}")


def looks_like_unresolved_template(value: str) -> bool:
    """True when a claim value still carries token-template placeholder markers."""
    return any(marker in value for marker in TEMPLATE_MARKERS)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    if not value or looks_like_unresolved_template(value):
        return None
    return value


def _decode_nested(raw: Any, claim: str) -> Optional[Mapping[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        return raw
    if not isinstance(raw, str) or looks_like_unresolved_template(raw):
        return None
    try:
        decoded = json.loads(raw)
    except ValueError:
        logger.warning("Claim %r is not valid JSON; ignoring it", claim)
        return None
    if not isinstance(decoded, Mapping):
        logger.warning("Claim %r does not hold a JSON object; ignoring it", claim)
        return None
    return decoded


def direct_claim(name: str) -> ClaimStrategy:
    def strategy(claims: Mapping[str, Any]) -> Optional[str]:
        return _clean(claims.get(name))
    strategy.__name__ = f"direct_claim_{name}"
    return strategy


def nested_claim(name: str, field: str) -> ClaimStrategy:
    def strategy(claims: Mapping[str, Any]) -> Optional[str]:
        nested = _decode_nested(claims.get(name), name)
        if nested is None:
            return None
        return _clean(nested.get(field))
    strategy.__name__ = f"nested_claim_{name}_{field}"
    return strategy


# Order matters: first strategy that yields a value wins.
ORG_ID_STRATEGIES: tuple[ClaimStrategy, ...] = (
    direct_claim("org_id"),
    nested_claim("o", "id"),
    direct_claim("organization_id"),
)

ORG_SLUG_STRATEGIES: tuple[ClaimStrategy, ...] = (
    direct_claim("org_slug"),
    nested_claim("o", "slg"),
)

SUBJECT_STRATEGIES: tuple[ClaimStrategy, ...] = (
    direct_claim("sub"),
    direct_claim("user_id"),
)

EMAIL_STRATEGIES: tuple[ClaimStrategy, ...] = (
    direct_claim("email"),
    direct_claim("email_address"),
)


def first_match(claims: Mapping[str, Any] | None, strategies: tuple[ClaimStrategy, ...]) -> Optional[str]:
    if not claims or not isinstance(claims, Mapping):
        return None
    for strategy in strategies:
        value = strategy(claims)
        if value is not None:
            return value
    return None


def resolve_org_external_id(claims: Mapping[str, Any] | None) -> Optional[str]:
    """External (identity-provider) organization id, or None."""
    value = first_match(claims, ORG_ID_STRATEGIES)
    if value is None and claims and any(k in claims for k in ("org_id", "o", "organization_id")):
        logger.debug("Organization claims present but none usable")
    return value


def resolve_org_slug(claims: Mapping[str, Any] | None) -> Optional[str]:
    return first_match(claims, ORG_SLUG_STRATEGIES)


def resolve_subject(claims: Mapping[str, Any] | None) -> Optional[str]:
    return first_match(claims, SUBJECT_STRATEGIES)


def resolve_email(claims: Mapping[str, Any] | None) -> Optional[str]:
    return first_match(claims, EMAIL_STRATEGIES)


ORG_ROLE_STRATEGIES: tuple[ClaimStrategy, ...] = (
    direct_claim("org_role"),
    nested_claim("o", "rol"),
)

# Provider role keys -> membership role names
PROVIDER_ROLE_MAP = {
    "owner": "Owner",
    "admin": "Admin",
    "manager": "Manager",
    "member": "User",
    "basic_member": "User",
    "user": "User",
    "viewer": "Viewer",
}


def map_provider_role(raw: Optional[str]) -> Optional[str]:
    """Map a provider role key such as "org:admin" to a membership role name."""
    if not raw:
        return None
    key = raw.split(":", 1)[-1].strip().lower()
    return PROVIDER_ROLE_MAP.get(key)


def resolve_org_role(claims: Mapping[str, Any] | None) -> Optional[str]:
    """Organization role asserted by the provider, or None."""
    return map_provider_role(first_match(claims, ORG_ROLE_STRATEGIES))
