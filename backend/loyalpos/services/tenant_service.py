"""
Multi-Tenant Service: Business validation and scoping helpers.

Every request is scoped to a business, and cross-business access must be
indistinguishable from "not found".

SECURITY INVARIANTS:
1. Every scoped request has g.business_id set (see decorators.require_business)
2. Every service call takes business_id explicitly and filters by it
3. Entities owned by another business raise NotFound, never reveal existence

USAGE:
    from loyalpos.services.tenant_service import require_business, scoped_query

    business = require_business(business_id)
    products = scoped_query(Product, business_id).all()
"""

from __future__ import annotations

import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import Conflict, InvalidInput, NotFound
from ..models import Business
from ..validation import DB_INT_MAX, coerce_int, is_row_id, required_text


SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{1,62}$")


def require_business(business_id: int, *, require_active: bool = True) -> Business:
    """
    Load a business or raise NotFound.

    Inactive businesses are treated as missing unless require_active=False.
    """
    business = db.session.get(Business, business_id) if is_row_id(business_id) else None
    if business is None or (require_active and not business.is_active):
        current_app.logger.warning("Business %s not found or inactive", business_id)
        raise NotFound("Business not found")
    return business


def scoped_query(model, business_id: int):
    """Query for model rows owned by business_id."""
    return db.session.query(model).filter(model.business_id == business_id)


def get_owned(model, business_id: int, entity_id: int, *, label: str | None = None):
    """Fetch one row owned by business_id or raise NotFound (same error for foreign rows)."""
    row = None
    if is_row_id(entity_id):
        row = scoped_query(model, business_id).filter(model.id == entity_id).first()
    if row is None:
        raise NotFound(f"{label or model.__name__} not found", details={"id": entity_id})
    return row


def _loyalty_setting(value, field: str, *, minimum: int):
    if value is None:
        return None
    value = coerce_int(value, field)
    if not minimum <= value <= DB_INT_MAX:
        raise InvalidInput(f"{field} must be between {minimum} and {DB_INT_MAX}", details={field: value})
    return value


def create_business(
    *,
    name: str,
    slug: str,
    cents_per_point: int | None = None,
    min_purchase_cents_for_points: int = 0,
    max_points_per_transaction: int | None = None,
) -> Business:
    """Create a tenant. Slugs are lowercase, unique, URL-safe."""
    name = required_text(name, "name", 255)
    slug = required_text(slug, "slug", 64).lower()
    if not SLUG_RE.match(slug):
        raise InvalidInput("slug must be 2-63 chars of lowercase letters, digits or '-'")
    cents_per_point = _loyalty_setting(cents_per_point, "cents_per_point", minimum=1)
    min_purchase_cents_for_points = _loyalty_setting(
        min_purchase_cents_for_points, "min_purchase_cents_for_points", minimum=0
    ) or 0
    max_points_per_transaction = _loyalty_setting(
        max_points_per_transaction, "max_points_per_transaction", minimum=0
    )

    business = Business(
        name=name,
        slug=slug,
        cents_per_point=cents_per_point,
        min_purchase_cents_for_points=min_purchase_cents_for_points,
        max_points_per_transaction=max_points_per_transaction,
    )
    db.session.add(business)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("Business slug already exists", details={"slug": slug})

    current_app.logger.info("Created business id=%s slug=%s", business.id, business.slug)
    return business


def list_businesses(include_inactive: bool = False) -> list[Business]:
    query = db.session.query(Business)
    if not include_inactive:
        query = query.filter(Business.is_active.is_(True))
    return query.order_by(Business.id.asc()).all()
