# Overview: Request payload checks shared by catalog and inventory endpoints.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flask import current_app
from sqlalchemy import Boolean, Integer, String, Text

from .errors import InvalidInput


class ValidationError(InvalidInput):
    """400-level input problem found while validating a JSON payload."""


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Which columns a client may send for a model.

    Anything outside ``allowed`` is rejected rather than ignored, so a client
    sending stock_quantity learns that stock moves only through the ledger.
    """
    allowed: frozenset[str]
    required: frozenset[str] = field(default_factory=frozenset)


# INTEGER columns are 32-bit on Postgres
DB_INT_MAX = 2**31 - 1
MAX_ROW_ID = DB_INT_MAX


PRODUCT_POLICY = PayloadPolicy(
    allowed=frozenset({
        "sku", "name", "description", "category",
        "price_cents", "low_stock_threshold", "is_active",
    }),
    required=frozenset({"name", "price_cents"}),
)


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for request values.

    Accepts ints and plain-digit strings; rejects bools, floats, decimals and
    scientific notation ("1e3" is not a quantity).
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{field} must be a whole number")
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text[:1] in "+-" else text
        if not digits.isdigit():
            raise ValidationError(f"{field} must be a whole number", details={field: value})
        return int(text)
    raise ValidationError(f"{field} must be an integer")


def _clean(column, value: Any):
    kind = column.type
    if isinstance(kind, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{column.key} must be true or false")
        return value
    if isinstance(kind, Integer):
        return coerce_int(value, column.key)
    if isinstance(kind, (String, Text)):
        value = str(value).strip()
        if not value and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        if isinstance(kind, String) and kind.length and len(value) > kind.length:
            raise ValidationError(f"{column.key} is longer than {kind.length} characters")
        return value
    return value


def validate_payload(*, model, payload, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Check a JSON body against the policy and the model's column types.

    partial=True is PATCH semantics (only the keys sent are checked);
    partial=False additionally requires policy.required.
    Returns the cleaned values keyed by column name.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")

    rejected = sorted(k for k in payload if k not in policy.allowed)
    if rejected:
        raise ValidationError("Fields not allowed", details={"fields": rejected})

    if not partial:
        missing = sorted(policy.required - payload.keys())
        if missing:
            raise ValidationError("Missing required fields", details={"fields": missing})

    columns = {c.key: c for c in model.__mapper__.columns}
    cleaned = {}
    for key, raw in payload.items():
        column = columns[key]
        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            cleaned[key] = None
        else:
            cleaned[key] = _clean(column, raw)
    return cleaned


def enforce_rules_product(patch: dict) -> None:
    """Range rules for product fields that column types cannot express."""
    price = patch.get("price_cents")
    if price is not None:
        max_price = current_app.config.get("MAX_PRICE_CENTS", 999_999_999)
        if not 0 <= price <= max_price:
            raise ValidationError(
                f"price_cents must be between 0 and {max_price}",
                details={"price_cents": price},
            )

    threshold = patch.get("low_stock_threshold")
    if threshold is not None and not 0 <= threshold <= quantity_limit():
        raise ValidationError(
            f"low_stock_threshold must be between 0 and {quantity_limit()}",
            details={"low_stock_threshold": threshold},
        )

    # Blank SKUs become NULL so they don't collide on uq_products_business_sku
    if patch.get("sku") == "":
        patch["sku"] = None


def is_row_id(value) -> bool:
    """True for an int that could be a primary key. Anything else matches no row."""
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_ROW_ID


def quantity_limit() -> int:
    return current_app.config.get("MAX_QUANTITY", 1_000_000)


def optional_text(value, field: str, max_length: int) -> str | None:
    """Strip a free-text field; None and blank become None, non-strings are rejected."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: value})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} is longer than {max_length} characters")
    return value or None


def required_text(value, field: str, max_length: int) -> str:
    value = optional_text(value, field, max_length)
    if value is None:
        raise ValidationError(f"{field} is required")
    return value
