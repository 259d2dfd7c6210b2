# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/loyalpos/routes/sales.py
"""Sales API routes (business-scoped)"""

from datetime import date

from flask import Blueprint, request, jsonify, g, current_app

from loyalpos.time_utils import parse_iso_datetime
from ..errors import PosError, VoidFailed
from ..validation import ValidationError
from ..services import sales_service
from ..decorators import require_business, performed_by


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _optional_date(field: str):
    raw = request.args.get(field)
    return date.fromisoformat(raw) if raw else None


@sales_bp.post("")
@require_business
def create_sale_route():
    """
    Create a completed sale.

    Body:
        items: [{"product_id": int, "quantity": int}
                | {"name": str, "unit_price_cents": int, "quantity": int}]
        payment_method: CASH | CARD | GCASH | MAYA
        discount: {"type": "PERCENTAGE"|"FIXED", "value": number, "reason": str?} (optional)
        customer_id, amount_tendered_cents, payment_reference, notes (optional)

    409 on insufficient stock; nothing is recorded in that case.
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.create_sale(
            business_id=g.business_id,
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            discount=data.get("discount"),
            customer_id=data.get("customer_id"),
            amount_tendered_cents=data.get("amount_tendered_cents"),
            payment_reference=data.get("payment_reference"),
            notes=data.get("notes"),
            performed_by=performed_by(),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_business
def list_sales_route():
    """
    Query params: status, payment_method, customer_id, start, end, limit (max 200), offset
    """
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start/end must be ISO-8601 datetimes")

        sales = sales_service.list_sales(
            business_id=g.business_id,
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            customer_id=request.args.get("customer_id", type=int),
            start=start,
            end=end,
            limit=request.args.get("limit", default=50, type=int),
            offset=request.args.get("offset", default=0, type=int),
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"items": [s.to_dict(include_lines=False) for s in sales], "count": len(sales)}), 200


@sales_bp.get("/<int:sale_id>")
@require_business
def get_sale_route(sale_id: int):
    """Get sale with lines."""
    try:
        sale = sales_service.get_sale(business_id=g.business_id, sale_id=sale_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/void")
@require_business
def void_sale_route(sale_id: int):
    """
    Void a completed sale and restore its stock.

    Body: {"reason": str}
    """
    data = request.get_json(silent=True) or {}

    try:
        sale = sales_service.void_sale(
            business_id=g.business_id,
            sale_id=sale_id,
            reason=data.get("reason"),
            performed_by=performed_by(),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except VoidFailed as e:
        current_app.logger.error("Void of sale %s failed: %s", sale_id, e)
        return jsonify(e.to_dict()), e.status_code
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/summary/daily")
@require_business
def daily_summary_route():
    """Query params: date (YYYY-MM-DD, default today UTC)."""
    raw = request.args.get("date")
    try:
        day = date.fromisoformat(raw) if raw else None
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD", "details": {"date": raw}}), 400

    return jsonify(sales_service.get_daily_summary(business_id=g.business_id, day=day)), 200


@sales_bp.get("/analytics")
@require_business
def sales_analytics_route():
    """
    Query params: start_date, end_date (YYYY-MM-DD, inclusive; default the
    last 7 days ending today UTC).
    """
    try:
        try:
            start = _optional_date("start_date")
            end = _optional_date("end_date")
        except ValueError:
            raise ValidationError("start_date/end_date must be YYYY-MM-DD")

        analytics = sales_service.get_sales_analytics(business_id=g.business_id, start=start, end=end)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"analytics": analytics}), 200
