# backend/loyalpos/routes/inventory.py
"""
Inventory ledger routes.

MULTI-TENANT: All routes require X-Business-Id (see @require_business).

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start/end filters are inclusive.
"""
from flask import Blueprint, request, g, current_app

from loyalpos.time_utils import parse_iso_datetime
from ..errors import PosError
from ..validation import ValidationError, coerce_int
from ..services import inventory_service
from ..decorators import require_business, performed_by


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _required_int(payload: dict, field: str) -> int:
    if payload.get(field) is None:
        raise ValidationError(f"{field} is required")
    return coerce_int(payload[field], field)


def _optional_datetime(field: str):
    raw = request.args.get(field)
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime")


@inventory_bp.post("/receive")
@require_business
def receive_inventory_route():
    """
    Receive stock into a product.

    Body: {"product_id": int, "quantity": int > 0, "note": str?}
    """
    payload = request.get_json(silent=True) or {}

    try:
        product_id = _required_int(payload, "product_id")
        quantity = _required_int(payload, "quantity")
        movement = inventory_service.receive_stock(
            business_id=g.business_id,
            product_id=product_id,
            quantity=quantity,
            note=payload.get("note"),
            performed_by=performed_by(),
        )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return {"error": "Internal server error"}, 500

    return {"movement": movement.to_dict()}, 201


@inventory_bp.post("/adjust")
@require_business
def adjust_inventory_route():
    """
    Adjust stock by a signed delta, or set it to a counted quantity.

    Body: {"product_id": int, "reason": str, "note": str?,
           and exactly one of "quantity_delta": int != 0 | "new_quantity": int >= 0}
    """
    payload = request.get_json(silent=True) or {}

    has_delta = payload.get("quantity_delta") is not None
    has_level = payload.get("new_quantity") is not None
    if has_delta == has_level:
        return {"error": "Provide exactly one of quantity_delta or new_quantity", "details": {}}, 400

    try:
        product_id = _required_int(payload, "product_id")
        if has_delta:
            movement = inventory_service.adjust_stock(
                business_id=g.business_id,
                product_id=product_id,
                delta=coerce_int(payload["quantity_delta"], "quantity_delta"),
                reason=payload.get("reason"),
                note=payload.get("note"),
                performed_by=performed_by(),
            )
        else:
            movement = inventory_service.set_stock_level(
                business_id=g.business_id,
                product_id=product_id,
                new_quantity=coerce_int(payload["new_quantity"], "new_quantity"),
                reason=payload.get("reason"),
                note=payload.get("note"),
                performed_by=performed_by(),
            )
    except PosError as e:
        return e.to_dict(), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500

    return {"movement": movement.to_dict()}, 201


@inventory_bp.get("/movements")
@require_business
def list_movements_route():
    """
    Movement history, newest first.

    Query params: product_id, movement_type, start, end, limit (max 500), offset
    """
    try:
        movements = inventory_service.list_movements(
            business_id=g.business_id,
            product_id=request.args.get("product_id", type=int),
            movement_type=request.args.get("movement_type"),
            start=_optional_datetime("start"),
            end=_optional_datetime("end"),
            limit=request.args.get("limit", default=50, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"items": [m.to_dict() for m in movements], "count": len(movements)}


@inventory_bp.get("/low-stock")
@require_business
def low_stock_route():
    """Active products at or below their threshold (or ?threshold=N)."""
    threshold = request.args.get("threshold")
    try:
        if threshold is not None:
            threshold = coerce_int(threshold, "threshold")
        products = inventory_service.get_low_stock(business_id=g.business_id, threshold=threshold)
    except PosError as e:
        return e.to_dict(), e.status_code

    return {"items": [p.to_dict() for p in products], "count": len(products)}


@inventory_bp.get("/summary")
@require_business
def inventory_summary_route():
    return inventory_service.get_inventory_summary(business_id=g.business_id)
