# Overview: Service-layer operations for sales; coordinates stock, totals and loyalty points.

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    AlreadyVoided,
    CompensationFailed,
    InvalidInput,
    InvalidQuantity,
    NotFound,
    PosError,
    VoidFailed,
)
from ..models import Customer, Product, Sale, SaleLine, SaleSequence
from ..models.sales import DISCOUNT_TYPES, PAYMENT_METHODS, SALE_STATUSES
from ..time_utils import day_bounds, utcnow
from ..validation import MAX_ROW_ID, is_row_id, optional_text, quantity_limit, required_text
from . import inventory_service, loyalty_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .tenant_service import get_owned, require_business, scoped_query


"""
Sale lifecycle (authoritative)

create_sale is all-or-nothing. Everything below happens in ONE database
transaction, and any failure rolls all of it back:

    begin write
    allocate sale number
    insert Sale (PENDING)
    decrement stock per product, ascending product id   <- InsufficientStock aborts here
    insert SaleLines with captured prices
    compute totals / change
    award loyalty points
    Sale -> COMPLETED
    commit

Ascending product-id order gives every concurrent sale the same lock order,
so two multi-product sales cannot deadlock on each other's rows.

void_sale runs the reverse in one transaction: lock the sale, restore stock
(idempotent, see inventory_service.restore_for_void), reverse points, mark
VOIDED, commit. If restoration fails the transaction is rolled back and the
sale stays COMPLETED.
"""


def _rollback_or_fail(action: str, **context) -> None:
    """Roll back the session; a failed rollback is escalated, never swallowed."""
    try:
        db.session.rollback()
    except SQLAlchemyError as exc:
        current_app.logger.critical(
            "Rollback failed during %s %s; manual reconciliation required",
            action, context, exc_info=True,
        )
        raise CompensationFailed(
            f"Rollback failed during {action}",
            details=context,
        ) from exc


# ---------------------------------------------------------------------------
# Input normalization (runs before any mutation)
# ---------------------------------------------------------------------------

def _to_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise InvalidInput(f"{field} must be a number", details={field: value})
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"{field} must be a number", details={field: value})
    if not result.is_finite():
        raise InvalidInput(f"{field} must be a finite number", details={field: str(value)})
    return result


def _normalize_discount(discount) -> dict | None:
    if discount is None:
        return None
    if not isinstance(discount, dict):
        raise InvalidInput("discount must be an object with type and value")

    discount_type = str(discount.get("type") or "").strip().upper()
    if discount_type not in DISCOUNT_TYPES:
        raise InvalidInput(
            f"discount.type must be one of: {', '.join(DISCOUNT_TYPES)}",
            details={"type": discount.get("type")},
        )

    value = _to_decimal(discount.get("value"), "discount.value")
    if discount_type == "PERCENTAGE":
        if value < 0 or value > 100:
            raise InvalidInput("Percentage discount must be between 0 and 100", details={"value": str(value)})
    else:
        if value < 0:
            raise InvalidInput("Fixed discount must be >= 0", details={"value": str(value)})
        if value != value.to_integral_value():
            raise InvalidInput("Fixed discount is in cents and must be a whole number", details={"value": str(value)})

    reason = discount.get("reason")
    return {
        "type": discount_type,
        "value": value,
        "reason": optional_text(reason, "discount.reason", 255),
    }


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, (list, tuple)) or not items:
        raise InvalidInput("items must be a non-empty list")

    max_price = current_app.config.get("MAX_PRICE_CENTS", 999_999_999)
    normalized = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidInput("Each item must be an object", details={"index": index})

        quantity = item.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantity(
                "quantity must be a positive integer",
                details={"index": index, "quantity": quantity},
            )
        if quantity > quantity_limit():
            raise InvalidQuantity(
                f"quantity cannot exceed {quantity_limit()}",
                details={"index": index, "quantity": quantity},
            )

        product_id = item.get("product_id")
        if product_id is not None:
            if not is_row_id(product_id):
                raise InvalidInput("product_id must be a positive integer", details={"index": index})
            normalized.append({"product_id": product_id, "quantity": quantity})
            continue

        # Custom (non-catalog) line: no stock, caller supplies name and price
        name = str(item.get("name") or "").strip()
        if not name:
            raise InvalidInput("Custom items require a name", details={"index": index})
        price = item.get("unit_price_cents")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0 or price > max_price:
            raise InvalidInput(
                "Custom items require unit_price_cents as a non-negative integer",
                details={"index": index, "unit_price_cents": price},
            )
        normalized.append({
            "product_id": None,
            "name": name[:255],
            "unit_price_cents": price,
            "quantity": quantity,
        })
    return normalized


def _normalize_payment_method(payment_method) -> str:
    method = str(payment_method or "").strip().upper()
    if method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )
    return method


def compute_totals(lines, discount=None) -> tuple[int, int, int]:
    """
    Return (subtotal_cents, discount_cents, total_cents).

    lines: iterable of objects or dicts with quantity and unit_price_cents.
    discount: None or {"type": "PERCENTAGE"|"FIXED", "value": ...}.

    PERCENTAGE rounds half-up to the cent. FIXED is clamped to the subtotal,
    so the total is never negative.
    """
    subtotal = 0
    for line in lines:
        if isinstance(line, dict):
            quantity, unit_price = line["quantity"], line["unit_price_cents"]
        else:
            quantity, unit_price = line.quantity, line.unit_price_cents
        subtotal += quantity * unit_price

    discount = _normalize_discount(discount)
    if discount is None:
        return subtotal, 0, subtotal

    if discount["type"] == "PERCENTAGE":
        amount = (Decimal(subtotal) * discount["value"] / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        discount_cents = int(amount)
    else:
        discount_cents = int(discount["value"])

    discount_cents = min(discount_cents, subtotal)
    return subtotal, discount_cents, subtotal - discount_cents


# ---------------------------------------------------------------------------
# Sale numbers
# ---------------------------------------------------------------------------

def _next_sale_number(business_id: int) -> str:
    """
    Allocate the next per-business sale number inside the current transaction.

    The number is only consumed if the surrounding sale commits.
    """
    stmt = (
        update(SaleSequence)
        .where(SaleSequence.business_id == business_id)
        .values(next_number=SaleSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(SaleSequence.next_number)
            .filter_by(business_id=business_id)
            .scalar()
        )
        number = current - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(SaleSequence(business_id=business_id, next_number=2))
            number = 1
        except IntegrityError:
            # Another writer created the sequence first
            db.session.execute(stmt)
            current = (
                db.session.query(SaleSequence.next_number)
                .filter_by(business_id=business_id)
                .scalar()
            )
            number = current - 1

    return f"S-{number:06d}"


# ---------------------------------------------------------------------------
# Create / void
# ---------------------------------------------------------------------------

def create_sale(
    *,
    business_id: int,
    items,
    payment_method: str,
    discount: dict | None = None,
    customer_id: int | None = None,
    amount_tendered_cents: int | None = None,
    payment_reference: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> Sale:
    """
    Record a completed sale and decrement stock for every catalog line.

    All-or-nothing: on InsufficientStock (or any other failure) no stock
    changes, no sale row and no sale number survive.
    """
    payment_method = _normalize_payment_method(payment_method)
    lines_in = _normalize_items(items)
    discount = _normalize_discount(discount)

    payment_reference = optional_text(payment_reference, "payment_reference", 100)
    notes = optional_text(notes, "notes", 500)

    if amount_tendered_cents is not None:
        max_tendered = current_app.config.get("MAX_TENDERED_CENTS", 2_000_000_000)
        if (
            isinstance(amount_tendered_cents, bool)
            or not isinstance(amount_tendered_cents, int)
            or not 0 <= amount_tendered_cents <= max_tendered
        ):
            raise InvalidInput(
                f"amount_tendered_cents must be an integer between 0 and {max_tendered}",
                details={"amount_tendered_cents": amount_tendered_cents},
            )

    business = require_business(business_id)
    if customer_id is not None:
        exists = None
        if is_row_id(customer_id):
            exists = scoped_query(Customer, business_id).filter(Customer.id == customer_id).first()
        if exists is None:
            raise InvalidInput("Customer does not belong to this business", details={"customer_id": customer_id})

    # Sum repeated products so each product is decremented (and locked) once
    quantities: dict[int, int] = defaultdict(int)
    for line in lines_in:
        if line["product_id"] is not None:
            quantities[line["product_id"]] += line["quantity"]
    for product_id, total_quantity in quantities.items():
        if total_quantity > quantity_limit():
            raise InvalidQuantity(
                f"Total quantity for one product cannot exceed {quantity_limit()}",
                details={"product_id": product_id, "quantity": total_quantity},
            )

    def _op() -> Sale:
        try:
            begin_write()
            sale_number = _next_sale_number(business_id)

            sale = Sale(
                business_id=business_id,
                sale_number=sale_number,
                status="PENDING",
                payment_method=payment_method,
                payment_reference=payment_reference,
                discount_type=discount["type"] if discount else None,
                discount_reason=discount["reason"] if discount else None,
                customer_id=customer_id,
                notes=notes,
                performed_by=performed_by,
            )
            db.session.add(sale)
            db.session.flush()

            products: dict[int, Product] = {}
            for product_id in sorted(quantities):
                inventory_service.decrement_for_sale(
                    business_id=business_id,
                    product_id=product_id,
                    quantity=quantities[product_id],
                    sale_id=sale.id,
                    performed_by=performed_by,
                    commit=False,
                )
                products[product_id] = db.session.get(Product, product_id)

            priced_lines = []
            for line in lines_in:
                if line["product_id"] is not None:
                    product = products[line["product_id"]]
                    name, unit_price = product.name, product.price_cents
                else:
                    name, unit_price = line["name"], line["unit_price_cents"]
                priced = SaleLine(
                    sale_id=sale.id,
                    product_id=line["product_id"],
                    name=name,
                    quantity=line["quantity"],
                    unit_price_cents=unit_price,
                    line_total_cents=unit_price * line["quantity"],
                )
                db.session.add(priced)
                priced_lines.append(priced)

            subtotal, discount_cents, total = compute_totals(priced_lines, discount)
            sale.subtotal_cents = subtotal
            sale.discount_cents = discount_cents
            sale.total_cents = total
            if discount:
                # FIXED keeps the amount actually applied, not the requested one
                sale.discount_value = discount_cents if discount["type"] == "FIXED" else discount["value"]

            if payment_method == "CASH" and amount_tendered_cents is not None:
                if amount_tendered_cents < total:
                    raise InvalidInput(
                        "Amount tendered is less than the total",
                        details={"amount_tendered_cents": amount_tendered_cents, "total_cents": total},
                    )
                sale.amount_tendered_cents = amount_tendered_cents
                sale.change_cents = amount_tendered_cents - total

            if customer_id is not None:
                points = loyalty_service.calculate_points(total, business)
                loyalty_service.award_points(
                    business_id=business_id,
                    customer_id=customer_id,
                    points=points,
                    sale_id=sale.id,
                    description=f"Sale {sale_number}",
                )
                sale.points_earned = points

            sale.status = "COMPLETED"
            sale.completed_at = utcnow()
            db.session.commit()
            return sale
        except BaseException:
            _rollback_or_fail("create_sale", business_id=business_id)
            raise

    sale = run_with_retry(_op)
    current_app.logger.info(
        "Sale completed business=%s sale=%s number=%s total=%s lines=%s",
        business_id, sale.id, sale.sale_number, sale.total_cents, len(lines_in),
    )
    return sale


def void_sale(
    *,
    business_id: int,
    sale_id: int,
    reason: str,
    performed_by: str | None = None,
) -> Sale:
    """
    Void a COMPLETED sale, restoring its stock exactly once.

    Raises NotFound, AlreadyVoided, or VoidFailed (stock could not be
    restored; the sale remains COMPLETED).
    """
    reason = required_text(reason, "reason", 255)
    if not is_row_id(sale_id):
        raise NotFound("Sale not found", details={"sale_id": sale_id})

    def _op() -> Sale:
        try:
            begin_write()
            sale = lock_for_update(
                scoped_query(Sale, business_id).filter(Sale.id == sale_id)
            ).populate_existing().first()
            if sale is None:
                raise NotFound("Sale not found", details={"sale_id": sale_id})
            if sale.status == "VOIDED":
                raise AlreadyVoided("Sale already voided", details={"sale_id": sale_id})
            if sale.status != "COMPLETED":
                raise InvalidInput("Only COMPLETED sales can be voided", details={"status": sale.status})

            try:
                restored = inventory_service.restore_for_void(
                    business_id=business_id,
                    sale_id=sale.id,
                    performed_by=performed_by,
                    commit=False,
                )
            except (PosError, IntegrityError) as exc:
                current_app.logger.critical(
                    "Void failed restoring stock business=%s sale=%s: %s",
                    business_id, sale_id, exc,
                )
                raise VoidFailed(
                    "Stock could not be restored; the sale was not voided",
                    details={"sale_id": sale_id, "cause": type(exc).__name__},
                ) from exc

            if sale.customer_id is not None and sale.points_earned:
                loyalty_service.reverse_points(
                    business_id=business_id,
                    customer_id=sale.customer_id,
                    points=sale.points_earned,
                    sale_id=sale.id,
                    description=f"Voided sale {sale.sale_number}",
                )

            sale.status = "VOIDED"
            sale.voided_at = utcnow()
            sale.voided_by = performed_by
            sale.void_reason = reason
            db.session.commit()

            current_app.logger.info(
                "Sale voided business=%s sale=%s restored_products=%s",
                business_id, sale_id, len(restored),
            )
            return sale
        except BaseException:
            _rollback_or_fail("void_sale", business_id=business_id, sale_id=sale_id)
            raise

    try:
        return run_with_retry(_op)
    except (OperationalError, StaleDataError) as exc:
        current_app.logger.critical(
            "Void failed after retries business=%s sale=%s", business_id, sale_id, exc_info=True,
        )
        raise VoidFailed(
            "Stock could not be restored; the sale was not voided",
            details={"sale_id": sale_id, "cause": type(exc).__name__},
        ) from exc


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_sale(*, business_id: int, sale_id: int) -> Sale:
    return get_owned(Sale, business_id, sale_id, label="Sale")


def list_sales(
    *,
    business_id: int,
    status: str | None = None,
    payment_method: str | None = None,
    customer_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    q = scoped_query(Sale, business_id)
    if status is not None:
        status = status.upper()
        if status not in SALE_STATUSES:
            raise InvalidInput(f"status must be one of: {', '.join(SALE_STATUSES)}")
        q = q.filter(Sale.status == status)
    if payment_method is not None:
        q = q.filter(Sale.payment_method == _normalize_payment_method(payment_method))
    if customer_id is not None:
        if not is_row_id(customer_id):
            return []
        q = q.filter(Sale.customer_id == customer_id)
    if start is not None:
        q = q.filter(Sale.created_at >= start)
    if end is not None:
        q = q.filter(Sale.created_at <= end)

    limit = max(1, min(limit, 200))
    return (
        q.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(min(max(offset, 0), MAX_ROW_ID))
        .limit(limit)
        .all()
    )


def get_daily_summary(*, business_id: int, day: date | None = None) -> dict:
    start, end = day_bounds(day)
    sales = (
        scoped_query(Sale, business_id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .all()
    )

    completed = [s for s in sales if s.status == "COMPLETED"]
    voided = [s for s in sales if s.status == "VOIDED"]

    items_sold = 0
    if completed:
        items_sold = (
            db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
            .filter(SaleLine.sale_id.in_([s.id for s in completed]))
            .scalar()
        )

    payment_breakdown: dict[str, int] = {}
    for sale in completed:
        payment_breakdown[sale.payment_method] = payment_breakdown.get(sale.payment_method, 0) + sale.total_cents

    return {
        "date": start.date().isoformat(),
        "total_sales": len(completed),
        "total_revenue_cents": sum(s.total_cents for s in completed),
        "total_items_sold": int(items_sold or 0),
        "total_discounts_cents": sum(s.discount_cents for s in completed),
        "total_points_earned": sum(s.points_earned for s in completed),
        "payment_breakdown": payment_breakdown,
        "voided_count": len(voided),
    }


def get_sales_analytics(
    *,
    business_id: int,
    start: date | None = None,
    end: date | None = None,
    top: int = 10,
) -> dict:
    """
    Revenue analytics over an inclusive range of UTC days (default: last 7 days).

    Only COMPLETED sales count. Returns period, totals (revenue, transactions,
    items sold, average order value), a per-day revenue series for days that
    had sales, and the best-selling items by quantity. Custom lines are grouped
    by name.
    """
    if end is None:
        end = utcnow().date()
    if start is None:
        start = end - timedelta(days=6)
    if start > end:
        raise InvalidInput("start must not be after end", details={"start": start.isoformat(), "end": end.isoformat()})
    max_days = current_app.config.get("MAX_ANALYTICS_DAYS", 366)
    if (end - start).days + 1 > max_days:
        raise InvalidInput(f"Date range cannot exceed {max_days} days")

    range_start, _ = day_bounds(start)
    _, range_end = day_bounds(end)
    sales = (
        scoped_query(Sale, business_id)
        .filter(
            Sale.status == "COMPLETED",
            Sale.created_at >= range_start,
            Sale.created_at < range_end,
        )
        .all()
    )

    revenue = sum(s.total_cents for s in sales)
    daily: dict[str, dict] = {}
    for sale in sales:
        day = sale.created_at.date().isoformat()
        bucket = daily.setdefault(day, {"date": day, "revenue_cents": 0, "transactions": 0})
        bucket["revenue_cents"] += sale.total_cents
        bucket["transactions"] += 1

    items_sold = 0
    products: dict[tuple, dict] = {}
    if sales:
        lines = (
            db.session.query(SaleLine)
            .filter(SaleLine.sale_id.in_([s.id for s in sales]))
            .order_by(SaleLine.id.asc())
            .all()
        )
        for line in lines:
            items_sold += line.quantity
            key = ("product", line.product_id) if line.product_id is not None else ("custom", line.name)
            entry = products.setdefault(key, {
                "product_id": line.product_id,
                "name": line.name,
                "quantity": 0,
                "revenue_cents": 0,
            })
            entry["quantity"] += line.quantity
            entry["revenue_cents"] += line.line_total_cents

    average = 0
    if sales:
        average = int((Decimal(revenue) / len(sales)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    top_products = sorted(
        products.values(),
        key=lambda p: (-p["quantity"], -p["revenue_cents"], p["name"]),
    )[:max(top, 0)]

    return {
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "totals": {
            "revenue_cents": revenue,
            "transactions": len(sales),
            "items_sold": items_sold,
            "avg_order_value_cents": average,
        },
        "daily_revenue": [daily[day] for day in sorted(daily)],
        "top_products": top_products,
    }
