# backend/loyalpos/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are scoped by business_id.
- Products of another business are reported as NotFound
- SKUs are unique per business, not globally

Stock is never written here. Initial stock on create is routed through
inventory_service.receive_stock so the ledger explains it.
"""
from __future__ import annotations
from flask import current_app
from sqlalchemy.exc import IntegrityError
from ..extensions import db
from ..errors import Conflict
from ..models import Product
from ..validation import (
    PRODUCT_POLICY,
    ValidationError,
    coerce_int,
    enforce_rules_product,
    quantity_limit,
    validate_payload,
)
from . import inventory_service
from .tenant_service import get_owned, require_business, scoped_query

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "description", "category", "price_cents", "low_stock_threshold", "is_active"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    *,
    business_id: int,
    include_inactive: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Business-scoped product listing with optional pagination.

    Args:
        business_id: Tenant scope
        include_inactive: Include deactivated products
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    query = scoped_query(Product, business_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    query = query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        items = query.all()
        return {"items": [p.to_dict() for p in items], "count": len(items)}

    page = max(page, 1)
    per_page = min(max(per_page or 20, 1), 100)
    total = query.count()
    items = query.offset((page - 1) * per_page).limit(per_page).all()
    return {
        "items": [p.to_dict() for p in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "pages": (total + per_page - 1) // per_page,
        },
    }


def get_product(*, business_id: int, product_id: int) -> Product:
    return get_owned(Product, business_id, product_id, label="Product")


def create_product(
    *,
    business_id: int,
    payload: dict,
    initial_stock: int | None = None,
    performed_by: str | None = None,
) -> Product:
    """
    Create a product from a validated payload.

    initial_stock > 0 is recorded as a RECEIVE movement after the product is
    committed, so stock_quantity always matches the movement history.
    """
    require_business(business_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    if "low_stock_threshold" not in patch or patch["low_stock_threshold"] is None:
        patch["low_stock_threshold"] = current_app.config.get("DEFAULT_LOW_STOCK_THRESHOLD", 10)

    if initial_stock is not None:
        initial_stock = coerce_int(initial_stock, "initial_stock")
        if not 0 <= initial_stock <= quantity_limit():
            raise ValidationError(
                f"initial_stock must be between 0 and {quantity_limit()}",
                details={"initial_stock": initial_stock},
            )

    product = Product(business_id=business_id, stock_quantity=0)
    apply_product_patch(product, patch)
    if product.is_active is None:
        product.is_active = True

    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("SKU already exists for this business", details={"sku": patch.get("sku")})

    current_app.logger.info("Created product id=%s business=%s sku=%s", product.id, business_id, product.sku)

    if initial_stock:
        inventory_service.receive_stock(
            business_id=business_id,
            product_id=product.id,
            quantity=initial_stock,
            note="Initial stock",
            performed_by=performed_by,
        )
        db.session.refresh(product)

    return product


def update_product(*, business_id: int, product_id: int, payload: dict) -> Product:
    """Patch catalog fields. stock_quantity is not writable here."""
    product = get_product(business_id=business_id, product_id=product_id)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    apply_product_patch(product, patch)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("SKU already exists for this business", details={"sku": patch.get("sku")})

    current_app.logger.info("Updated product id=%s business=%s fields=%s", product_id, business_id, sorted(patch))
    return product


def deactivate_product(*, business_id: int, product_id: int) -> Product:
    """Soft delete; sale lines and movements keep referencing the row."""
    product = get_product(business_id=business_id, product_id=product_id)
    if product.is_active:
        product.is_active = False
        db.session.commit()
        current_app.logger.info("Deactivated product id=%s business=%s", product_id, business_id)
    return product
