from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import Boolean, DateTime, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime


# Maximum money amount: 9,999,999,999.99 fits Numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)


class ValidationError(ValueError):
    """400-level input problem. Carries one message per offending field."""

    def __init__(self, errors: str | Iterable[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ConflictError(ValueError):
    """400-level uniqueness conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: fields restricted to the values of an Enum
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, type[Enum]] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower() or "." in stripped:
                raise ValidationError(f"{col.key} must be an integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        raise ValidationError(f"{col.key} must be an integer")

    # Money / decimals: accept JSON numbers and numeric strings
    if isinstance(coltype, Numeric):
        if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
            raise ValidationError(f"{col.key} must be a number")
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")
        if not amount.is_finite():
            raise ValidationError(f"{col.key} must be a number")
        if abs(amount) > MAX_MONEY:
            raise ValidationError(f"{col.key} cannot exceed {MAX_MONEY:,}")
        return amount

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Uuid):
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except ValueError:
            raise ValidationError(f"{col.key} must be a valid id")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields) and enum choices
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    All field problems are collected and raised together as one
    ValidationError, before anything touches the session.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[str] = []
    required = policy.required_on_create or set()
    if not partial:
        for field in sorted(required):
            if field not in payload:
                errors.append(f"{field} is required")

    cols = _columns_by_key(model)
    choices = policy.choices or {}
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields:
            errors.append(f"Field not allowed: {k}")
            continue
        col = cols.get(k)
        if col is None:
            errors.append(f"Unknown field: {k}")
            continue

        if raw is None:
            if not col.nullable:
                errors.append(f"{k} cannot be null")
            else:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as e:
            errors.extend(e.errors)
            continue

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            errors.append(f"{k} cannot be blank")
            continue

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append(f"{k} must be at most {col.type.length} characters")
                continue

        if k in choices:
            allowed = [member.value for member in choices[k]]
            if val not in allowed:
                errors.append(f"{k} must be one of: {', '.join(allowed)}")
                continue

        patch[k] = val

    if errors:
        raise ValidationError(errors)
    return patch


def _non_negative(patch: dict, field: str, errors: list[str]) -> None:
    value = patch.get(field)
    if value is not None and value < 0:
        errors.append(f"{field} must be >= 0")


def enforce_rules_product(patch: dict, current: Any = None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    `current` is the persisted product on update, so min/max can be checked
    against whichever side the patch leaves untouched.
    """
    errors: list[str] = []
    for field in ("price", "cost_price", "stock_quantity", "min_stock_level", "max_stock_level"):
        _non_negative(patch, field, errors)

    min_level = patch.get("min_stock_level", getattr(current, "min_stock_level", None))
    max_level = patch.get("max_stock_level", getattr(current, "max_stock_level", None))
    if min_level is not None and max_level is not None and min_level > max_level:
        errors.append("min_stock_level cannot exceed max_stock_level")

    if errors:
        raise ValidationError(errors)


def enforce_rules_organization(patch: dict) -> None:
    errors: list[str] = []
    email = patch.get("email")
    if email and not EMAIL_RE.match(email):
        errors.append("email must be a valid email address")
    website = patch.get("website")
    if website and not URL_RE.match(website):
        errors.append("website must be a valid http(s) URL")
    if errors:
        raise ValidationError(errors)


def enforce_rules_order(patch: dict) -> None:
    errors: list[str] = []
    for field in ("tax_amount", "discount_amount", "shipping_amount"):
        _non_negative(patch, field, errors)
    if errors:
        raise ValidationError(errors)


def parse_order_items(raw_items: Any) -> list[dict]:
    """
    Validate the `items` array of an order payload.
    Returns [{product_id: UUID, quantity: int, unit_price: Decimal|None}, ...].
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must contain at least one line")

    errors: list[str] = []
    items: list[dict] = []
    for idx, raw in enumerate(raw_items):
        prefix = f"items[{idx}]"
        if not isinstance(raw, dict):
            errors.append(f"{prefix} must be an object")
            continue
        try:
            product_id = uuid.UUID(str(raw.get("product_id")))
        except ValueError:
            errors.append(f"{prefix}.product_id must be a valid id")
            continue
        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"{prefix}.quantity must be a positive integer")
            continue
        unit_price = raw.get("unit_price")
        if unit_price is not None:
            try:
                unit_price = Decimal(str(unit_price))
            except InvalidOperation:
                errors.append(f"{prefix}.unit_price must be a number")
                continue
            if not unit_price.is_finite() or unit_price < 0:
                errors.append(f"{prefix}.unit_price must be >= 0")
                continue
        items.append({"product_id": product_id, "quantity": quantity, "unit_price": unit_price})

    if errors:
        raise ValidationError(errors)
    return items


def parse_paging(args, *, default_page_size: int = 10, max_page_size: int = 100) -> tuple[int, int]:
    """Read page/page_size from query args (1-indexed)."""
    errors: list[str] = []
    page = args.get("page", default=1, type=int)
    page_size = args.get("page_size", default=default_page_size, type=int)
    if page is None or page < 1:
        errors.append("page must be >= 1")
    if page_size is None or page_size < 1 or page_size > max_page_size:
        errors.append(f"page_size must be between 1 and {max_page_size}")
    if errors:
        raise ValidationError(errors)
    return page, page_size
