# Overview: Service-layer operations for loyalty customers and point balances.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import Conflict, InvalidInput, NotFound
from ..models import Business, Customer, PointsTransaction
from ..validation import optional_text, required_text
from .concurrency import lock_for_update
from .tenant_service import get_owned, scoped_query


def calculate_points(total_cents: int, business: Business) -> int:
    """
    Points earned for a sale total under the business's loyalty settings.

    - below min_purchase_cents_for_points: 0
    - otherwise floor(total / cents_per_point), capped at max_points_per_transaction
    """
    if total_cents <= 0:
        return 0
    if total_cents < (business.min_purchase_cents_for_points or 0):
        return 0

    cents_per_point = business.cents_per_point or current_app.config.get("DEFAULT_CENTS_PER_POINT", 10000)
    points = total_cents // cents_per_point

    if business.max_points_per_transaction is not None:
        points = min(points, business.max_points_per_transaction)
    return points


def _locked_customer(business_id: int, customer_id: int) -> Customer:
    customer = lock_for_update(
        scoped_query(Customer, business_id).filter(Customer.id == customer_id)
    ).populate_existing().first()
    if customer is None:
        raise NotFound("Customer not found", details={"customer_id": customer_id})
    return customer


def award_points(
    *,
    business_id: int,
    customer_id: int,
    points: int,
    sale_id: int | None = None,
    description: str | None = None,
) -> PointsTransaction | None:
    """
    Credit points inside the caller's transaction (no commit).

    Returns None when there is nothing to award.
    """
    if points <= 0:
        return None

    customer = _locked_customer(business_id, customer_id)
    customer.total_points = customer.total_points + points

    txn = PointsTransaction(
        business_id=business_id,
        customer_id=customer.id,
        transaction_type="EARN",
        points=points,
        sale_id=sale_id,
        description=description,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def reverse_points(
    *,
    business_id: int,
    customer_id: int,
    points: int,
    sale_id: int | None = None,
    description: str | None = None,
) -> PointsTransaction | None:
    """
    Take back previously awarded points inside the caller's transaction.

    The balance never goes below zero; the recorded reversal is the amount
    actually deducted.
    """
    if points <= 0:
        return None

    customer = _locked_customer(business_id, customer_id)
    deducted = min(points, customer.total_points)
    if deducted < points:
        current_app.logger.warning(
            "Partial points reversal customer=%s sale=%s wanted=%s balance=%s",
            customer_id, sale_id, points, customer.total_points,
        )
    if deducted == 0:
        return None

    customer.total_points = customer.total_points - deducted
    txn = PointsTransaction(
        business_id=business_id,
        customer_id=customer.id,
        transaction_type="REVERSAL",
        points=-deducted,
        sale_id=sale_id,
        description=description,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def normalize_phone(phone) -> str | None:
    """Phone numbers are stored and looked up with all whitespace removed."""
    phone = optional_text(phone, "phone", 64)
    if phone is None:
        return None
    phone = "".join(phone.split())
    if len(phone) > 32:
        raise InvalidInput("phone is longer than 32 characters")
    return phone


def create_customer(*, business_id: int, full_name: str, phone: str | None = None) -> Customer:
    full_name = required_text(full_name, "full_name", 255)
    phone = normalize_phone(phone)

    customer = Customer(business_id=business_id, full_name=full_name, phone=phone, total_points=0)
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("A customer with this phone already exists", details={"phone": phone})

    current_app.logger.info("Created customer id=%s business=%s", customer.id, business_id)
    return customer


def get_customer(*, business_id: int, customer_id: int) -> Customer:
    return get_owned(Customer, business_id, customer_id, label="Customer")


def find_customer_by_phone(*, business_id: int, phone: str) -> Customer:
    """
    POS lookup: the business's customer with this phone number.

    Whitespace in the input is ignored, matching how phones are stored.
    """
    normalized = normalize_phone(phone)
    if normalized is None:
        raise InvalidInput("phone is required")
    customer = scoped_query(Customer, business_id).filter(Customer.phone == normalized).first()
    if customer is None:
        raise NotFound("Customer not found", details={"phone": normalized})
    return customer


def list_points_transactions(*, business_id: int, customer_id: int) -> list[PointsTransaction]:
    get_customer(business_id=business_id, customer_id=customer_id)
    return (
        scoped_query(PointsTransaction, business_id)
        .filter(PointsTransaction.customer_id == customer_id)
        .order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        .all()
    )
