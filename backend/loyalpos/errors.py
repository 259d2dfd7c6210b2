# Overview: Domain error hierarchy shared by services and routes.

"""
LoyalPOS domain errors.

Services raise these; routes translate them into JSON responses using
``status_code`` and ``details``. Validation and not-found errors are raised
before any mutation. Errors raised mid-transaction are raised only after the
transaction has been rolled back.
"""

from __future__ import annotations


class PosError(Exception):
    """Base class for business-rule failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class NotFound(PosError):
    """Entity missing, inactive where activity is required, or owned by another business."""
    status_code = 404


class InvalidInput(PosError):
    """Malformed request shape."""


class InvalidQuantity(PosError):
    """Non-positive (or zero) quantity where a positive / non-zero one is required."""


class Conflict(PosError):
    """409-level uniqueness conflict (e.g., duplicate SKU)."""
    status_code = 409


class InsufficientStock(PosError):
    status_code = 409

    def __init__(self, product_id: int, requested_quantity: int, available_quantity: int):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested_quantity}, available {available_quantity}",
            details={
                "product_id": product_id,
                "requested_quantity": requested_quantity,
                "available_quantity": available_quantity,
            },
        )
        self.product_id = product_id
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity


class AlreadyVoided(PosError):
    status_code = 409


class AlreadyRestored(PosError):
    """Stock for this sale was already restored; restoring again would double-credit."""
    status_code = 409


class VoidFailed(PosError):
    """Stock restoration failed; the sale was left COMPLETED."""
    status_code = 500


class CompensationFailed(PosError):
    """Rolling back a partially applied operation failed. Needs operator attention."""
    status_code = 500


class ImmutableRecordError(PosError):
    """An append-only record (stock movement, points transaction) was updated or deleted."""
    status_code = 409
