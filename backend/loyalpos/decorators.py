# Overview: Request decorators that establish tenant context for API routes.

from __future__ import annotations

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import NotFound
from .services import tenant_service


BUSINESS_HEADER = "X-Business-Id"


def require_business(f):
    """
    Establish tenant context from the X-Business-Id header.

    MULTI-TENANT: Sets g.business_id (int) and g.business for the request.

    Returns 401 if the header is missing or not an integer, and 404 if the
    business does not exist or is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(BUSINESS_HEADER)
        if not raw:
            return jsonify({"error": "Business context required", "details": {"header": BUSINESS_HEADER}}), 401

        try:
            business_id = int(raw.strip())
        except ValueError:
            current_app.logger.warning("Rejected malformed %s header: %r", BUSINESS_HEADER, raw)
            return jsonify({"error": "Invalid business id", "details": {"header": BUSINESS_HEADER}}), 401

        try:
            business = tenant_service.require_business(business_id)
        except NotFound as e:
            return jsonify(e.to_dict()), e.status_code

        g.business_id = business.id
        g.business = business

        return f(*args, **kwargs)

    return decorated_function


def performed_by() -> str | None:
    """Free-form operator label from X-Performed-By; recorded on audit fields."""
    value = (request.headers.get("X-Performed-By") or "").strip()
    return value[:128] or None
