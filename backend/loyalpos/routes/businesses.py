# backend/loyalpos/routes/businesses.py
"""Business (tenant) registration and lookup."""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..decorators import require_business
from ..services import tenant_service


businesses_bp = Blueprint("businesses", __name__, url_prefix="/api/businesses")


@businesses_bp.post("")
def create_business_route():
    """
    Register a new business.

    Unscoped: this is how a tenant comes into existence.
    """
    data = request.get_json(silent=True) or {}
    try:
        business = tenant_service.create_business(
            name=data.get("name"),
            slug=data.get("slug"),
            cents_per_point=data.get("cents_per_point"),
            min_purchase_cents_for_points=data.get("min_purchase_cents_for_points") or 0,
            max_points_per_transaction=data.get("max_points_per_transaction"),
        )
        return jsonify({"business": business.to_dict()}), 201
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create business")
        return jsonify({"error": "Internal server error"}), 500


@businesses_bp.get("/current")
@require_business
def current_business_route():
    return jsonify({"business": g.business.to_dict()}), 200
