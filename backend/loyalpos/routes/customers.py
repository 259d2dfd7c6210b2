# backend/loyalpos/routes/customers.py
"""Loyalty customer routes (business-scoped)."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..decorators import require_business
from ..services import loyalty_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
@require_business
def create_customer_route():
    data = request.get_json(silent=True) or {}
    try:
        customer = loyalty_service.create_customer(
            business_id=g.business_id,
            full_name=data.get("full_name"),
            phone=data.get("phone"),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_business
def get_customer_route(customer_id: int):
    """Customer with points history."""
    try:
        customer = loyalty_service.get_customer(business_id=g.business_id, customer_id=customer_id)
        history = loyalty_service.list_points_transactions(business_id=g.business_id, customer_id=customer_id)
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({
        "customer": customer.to_dict(),
        "points_transactions": [t.to_dict() for t in history],
    }), 200


@customers_bp.get("/lookup")
@require_business
def lookup_customer_route():
    """
    Find a customer at the till by phone number.

    Query params: phone (required; whitespace ignored)
    """
    try:
        customer = loyalty_service.find_customer_by_phone(
            business_id=g.business_id,
            phone=request.args.get("phone"),
        )
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code

    return jsonify({"customer": customer.to_dict()}), 200
