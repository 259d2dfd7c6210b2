# Overview: Flask API routes for product catalog operations; parses input and returns JSON responses.

# backend/loyalpos/routes/products.py
"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's business.
The business_id is derived from g.business_id (set by @require_business).

Stock is read-only here: use /api/inventory to change quantities.
"""
from flask import Blueprint, request, g, current_app

from ..errors import PosError
from ..services import products_service
from ..decorators import require_business, performed_by


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_business
def list_products():
    """
    List products with optional pagination.

    Query params:
    - include_inactive: "1"/"true" to include deactivated products
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)

    return products_service.list_products(
        business_id=g.business_id,
        include_inactive=include_inactive,
        page=page,
        per_page=per_page,
    )


@products_bp.post("")
@require_business
def create_product():
    """
    Create a product.

    Body: catalog fields plus optional initial_stock (recorded as a RECEIVE movement).
    """
    payload = dict(request.get_json(silent=True) or {})
    initial_stock = payload.pop("initial_stock", None)

    try:
        product = products_service.create_product(
            business_id=g.business_id,
            payload=payload,
            initial_stock=initial_stock,
            performed_by=performed_by(),
        )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}, 201


@products_bp.get("/<int:product_id>")
@require_business
def get_product(product_id: int):
    try:
        product = products_service.get_product(business_id=g.business_id, product_id=product_id)
    except PosError as e:
        return e.to_dict(), e.status_code
    return {"product": product.to_dict()}


@products_bp.patch("/<int:product_id>")
@require_business
def update_product(product_id: int):
    """Patch catalog fields. stock_quantity is rejected as a non-writable field."""
    payload = request.get_json(silent=True) or {}

    try:
        product = products_service.update_product(
            business_id=g.business_id,
            product_id=product_id,
            payload=payload,
        )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict()}


@products_bp.post("/<int:product_id>/deactivate")
@require_business
def deactivate_product(product_id: int):
    try:
        product = products_service.deactivate_product(business_id=g.business_id, product_id=product_id)
    except PosError as e:
        return e.to_dict(), e.status_code
    return {"product": product.to_dict()}
