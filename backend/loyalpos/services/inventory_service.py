# Overview: Service-layer operations for the inventory ledger; the only code that changes stock.

# backend/loyalpos/services/inventory_service.py

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AlreadyRestored, InsufficientStock, InvalidInput, InvalidQuantity, NotFound
from ..models import Product, StockMovement
from ..models.inventory import MOVEMENT_TYPES
from ..validation import is_row_id, optional_text, quantity_limit, required_text
from .concurrency import begin_write, lock_for_update, run_with_retry
from .tenant_service import get_owned, scoped_query
"""
LoyalPOS Inventory Invariants (authoritative)

Stock model:
- Product.stock_quantity is a running total; StockMovement rows are the
  append-only history that explains it.
- For every product: SUM(quantity_delta) == stock_quantity.
- stock_quantity is never negative.

Mutation rules:
- Every change is ONE conditional UPDATE on products ("add delta where the
  result stays >= 0") plus ONE StockMovement insert, in the same transaction.
- Zero affected rows means the guard failed: the product is missing, inactive
  (for sales), owned by another business, or short on stock. Nothing is
  written in that case.
- The conditional update is evaluated by the database, so two processes
  selling the last unit cannot both succeed.

Transactions:
- Public operations commit by default and retry on lock/version errors.
- commit=False folds the operation into the caller's transaction (used by
  sales_service). No retry or rollback happens here in that mode; the
  caller owns both.
"""


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantity(f"{field} must be an integer", details={field: value})
    if value <= 0:
        raise InvalidQuantity(f"{field} must be > 0", details={field: value})
    if value > quantity_limit():
        raise InvalidQuantity(f"{field} cannot exceed {quantity_limit()}", details={field: value})
    return value


def _nonzero_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantity(f"{field} must be an integer", details={field: value})
    if value == 0:
        raise InvalidQuantity(f"{field} must be non-zero", details={field: value})
    if abs(value) > quantity_limit():
        raise InvalidQuantity(f"{field} cannot exceed {quantity_limit()} in magnitude", details={field: value})
    return value


def _apply_delta(
    business_id: int,
    product_id: int,
    delta: int,
    *,
    require_active: bool = False,
) -> tuple[int, int]:
    """
    Atomically add delta to a product's stock, refusing to go below zero.

    Returns (stock_before, stock_after). Raises NotFound or InsufficientStock
    without writing anything when the guard rejects the update.
    """
    if not is_row_id(product_id):
        raise NotFound("Product not found", details={"product_id": product_id})

    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.business_id == business_id,
            Product.stock_quantity + delta >= 0,
        )
        .values(stock_quantity=Product.stock_quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if require_active:
        stmt = stmt.where(Product.is_active.is_(True))

    result = db.session.execute(stmt)
    if result.rowcount == 0:
        row = (
            db.session.query(Product.is_active, Product.stock_quantity)
            .filter(Product.id == product_id, Product.business_id == business_id)
            .first()
        )
        if row is None or (require_active and not row.is_active):
            raise NotFound("Product not found", details={"product_id": product_id})
        current_app.logger.warning(
            "Insufficient stock business=%s product=%s requested=%s available=%s",
            business_id, product_id, -delta, row.stock_quantity,
        )
        raise InsufficientStock(product_id, -delta, row.stock_quantity)

    # Reload so the identity map (and stock_after) reflect the database value
    product = db.session.get(Product, product_id, populate_existing=True)
    stock_after = product.stock_quantity
    return stock_after - delta, stock_after


def _record_movement(
    *,
    business_id: int,
    product_id: int,
    movement_type: str,
    delta: int,
    stock_before: int,
    stock_after: int,
    sale_id: int | None = None,
    reason: str | None = None,
    note: str | None = None,
    performed_by: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        business_id=business_id,
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        stock_before=stock_before,
        stock_after=stock_after,
        sale_id=sale_id,
        reason=reason,
        note=note,
        performed_by=performed_by,
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _finish(op, commit: bool):
    """Run op as its own retried transaction, or inline in the caller's."""
    if not commit:
        return op()

    def _committed():
        try:
            result = op()
            db.session.commit()
        except BaseException:
            # Release the write lock taken by begin_write before propagating
            db.session.rollback()
            raise
        return result

    return run_with_retry(_committed)


def receive_stock(
    *,
    business_id: int,
    product_id: int,
    quantity: int,
    note: str | None = None,
    performed_by: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Add received stock to a product (RECEIVE movement).

    Inactive products may still receive stock; only selling requires an
    active product.
    """
    note = optional_text(note, "note", 255)
    quantity = _positive_int(quantity, "quantity")

    def _op():
        begin_write()
        before, after = _apply_delta(business_id, product_id, quantity)
        return _record_movement(
            business_id=business_id,
            product_id=product_id,
            movement_type="RECEIVE",
            delta=quantity,
            stock_before=before,
            stock_after=after,
            note=note,
            performed_by=performed_by,
        )

    movement = _finish(_op, commit)
    current_app.logger.info(
        "Received stock business=%s product=%s qty=%s now=%s",
        business_id, product_id, quantity, movement.stock_after,
    )
    return movement


def _clean_reason(reason) -> str:
    if reason is None or (isinstance(reason, str) and not reason.strip()):
        raise InvalidInput("reason is required for stock adjustments")
    return required_text(reason, "reason", 255)


def adjust_stock(
    *,
    business_id: int,
    product_id: int,
    delta: int,
    reason: str,
    note: str | None = None,
    performed_by: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Apply a signed correction (ADJUST movement), e.g. shrinkage or a found box.

    Raises InsufficientStock when the result would be negative.
    """
    delta = _nonzero_int(delta, "delta")
    reason = _clean_reason(reason)
    note = optional_text(note, "note", 255)

    def _op():
        begin_write()
        before, after = _apply_delta(business_id, product_id, delta)
        return _record_movement(
            business_id=business_id,
            product_id=product_id,
            movement_type="ADJUST",
            delta=delta,
            stock_before=before,
            stock_after=after,
            reason=reason,
            note=note,
            performed_by=performed_by,
        )

    movement = _finish(_op, commit)
    current_app.logger.info(
        "Adjusted stock business=%s product=%s delta=%s reason=%r now=%s",
        business_id, product_id, delta, reason, movement.stock_after,
    )
    return movement


def set_stock_level(
    *,
    business_id: int,
    product_id: int,
    new_quantity: int,
    reason: str,
    note: str | None = None,
    performed_by: str | None = None,
) -> StockMovement:
    """
    Adjust a product to an absolute counted quantity.

    The difference is computed under a row lock and recorded as a normal
    ADJUST movement, so the ledger still explains the new level.
    """
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        raise InvalidQuantity("new_quantity must be an integer", details={"new_quantity": new_quantity})
    if not 0 <= new_quantity <= quantity_limit():
        raise InvalidQuantity(
            f"new_quantity must be between 0 and {quantity_limit()}",
            details={"new_quantity": new_quantity},
        )
    reason = _clean_reason(reason)
    note = optional_text(note, "note", 255)
    if not is_row_id(product_id):
        raise NotFound("Product not found", details={"product_id": product_id})

    def _op():
        begin_write()
        product = lock_for_update(
            scoped_query(Product, business_id).filter(Product.id == product_id)
        ).populate_existing().first()
        if product is None:
            raise NotFound("Product not found", details={"product_id": product_id})

        delta = new_quantity - product.stock_quantity
        if delta == 0:
            raise InvalidQuantity(
                "Stock is already at the requested quantity",
                details={"product_id": product_id, "new_quantity": new_quantity},
            )
        before, after = _apply_delta(business_id, product_id, delta)
        return _record_movement(
            business_id=business_id,
            product_id=product_id,
            movement_type="ADJUST",
            delta=delta,
            stock_before=before,
            stock_after=after,
            reason=reason,
            note=note,
            performed_by=performed_by,
        )

    movement = _finish(_op, True)
    current_app.logger.info(
        "Set stock level business=%s product=%s from=%s to=%s reason=%r",
        business_id, product_id, movement.stock_before, movement.stock_after, reason,
    )
    return movement


def decrement_for_sale(
    *,
    business_id: int,
    product_id: int,
    quantity: int,
    sale_id: int,
    performed_by: str | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Consume stock for a sale (SALE movement).

    Check and decrement are a single conditional UPDATE, so concurrent sales
    of the same product can never oversell. Raises InsufficientStock (the
    caller must abort the whole sale) or NotFound for missing / inactive
    products.
    """
    quantity = _positive_int(quantity, "quantity")

    def _op():
        begin_write()
        before, after = _apply_delta(business_id, product_id, -quantity, require_active=True)
        return _record_movement(
            business_id=business_id,
            product_id=product_id,
            movement_type="SALE",
            delta=-quantity,
            stock_before=before,
            stock_after=after,
            sale_id=sale_id,
            performed_by=performed_by,
        )

    return _finish(_op, commit)


def restore_for_void(
    *,
    business_id: int,
    sale_id: int,
    performed_by: str | None = None,
    commit: bool = True,
) -> list[StockMovement]:
    """
    Reverse every SALE movement of a sale with a VOID_RESTORE movement.

    Idempotency guard: if any VOID_RESTORE movement already exists for the
    sale, raise AlreadyRestored instead of crediting stock twice. Products
    are restored in ascending id order, the same order sales lock them in.
    """
    def _op():
        begin_write()
        existing = (
            scoped_query(StockMovement, business_id)
            .filter(
                StockMovement.sale_id == sale_id,
                StockMovement.movement_type == "VOID_RESTORE",
            )
            .first()
        )
        if existing is not None:
            raise AlreadyRestored(
                "Stock for this sale was already restored",
                details={"sale_id": sale_id},
            )

        sale_movements = (
            scoped_query(StockMovement, business_id)
            .filter(
                StockMovement.sale_id == sale_id,
                StockMovement.movement_type == "SALE",
            )
            .order_by(StockMovement.product_id.asc())
            .all()
        )

        restored = []
        for original in sale_movements:
            delta = -original.quantity_delta
            before, after = _apply_delta(business_id, original.product_id, delta)
            restored.append(
                _record_movement(
                    business_id=business_id,
                    product_id=original.product_id,
                    movement_type="VOID_RESTORE",
                    delta=delta,
                    stock_before=before,
                    stock_after=after,
                    sale_id=sale_id,
                    note=f"Restore for voided sale {sale_id}",
                    performed_by=performed_by,
                )
            )
        return restored

    try:
        return _finish(_op, commit)
    except IntegrityError as exc:
        # uq_movements_sale_product_type: a concurrent restore won the race
        raise AlreadyRestored(
            "Stock for this sale was already restored",
            details={"sale_id": sale_id},
        ) from exc


def get_low_stock(*, business_id: int, threshold: int | None = None) -> list[Product]:
    """
    Active products at or below their low-stock threshold (or the override),
    lowest quantity first.
    """
    if threshold is not None:
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise InvalidQuantity("threshold must be an integer", details={"threshold": threshold})
        if not 0 <= threshold <= quantity_limit():
            raise InvalidQuantity(
                f"threshold must be between 0 and {quantity_limit()}",
                details={"threshold": threshold},
            )
        limit = threshold
    else:
        limit = Product.low_stock_threshold

    return (
        scoped_query(Product, business_id)
        .filter(Product.is_active.is_(True), Product.stock_quantity <= limit)
        .order_by(Product.stock_quantity.asc(), Product.name.asc(), Product.id.asc())
        .all()
    )


def list_movements(
    *,
    business_id: int,
    product_id: int | None = None,
    movement_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[StockMovement]:
    """Newest-first movement history, optionally filtered."""
    q = scoped_query(StockMovement, business_id)
    if product_id is not None:
        get_owned(Product, business_id, product_id)
        q = q.filter(StockMovement.product_id == product_id)
    if movement_type is not None:
        if movement_type not in MOVEMENT_TYPES:
            raise InvalidInput(
                f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}",
                details={"movement_type": movement_type},
            )
        q = q.filter(StockMovement.movement_type == movement_type)
    if start is not None:
        q = q.filter(StockMovement.created_at >= start)
    if end is not None:
        q = q.filter(StockMovement.created_at <= end)

    limit = max(1, min(limit, 500))
    return (
        q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .offset(max(offset, 0))
        .limit(limit)
        .all()
    )


def get_inventory_summary(*, business_id: int) -> dict:
    products = scoped_query(Product, business_id).filter(Product.is_active.is_(True)).all()
    low_stock_count = sum(
        1 for p in products if 0 < p.stock_quantity <= p.low_stock_threshold
    )
    out_of_stock_count = sum(1 for p in products if p.stock_quantity <= 0)

    return {
        "business_id": business_id,
        "total_products": len(products),
        "low_stock_count": low_stock_count,
        "out_of_stock_count": out_of_stock_count,
        "recent_movements": [m.to_dict() for m in list_movements(business_id=business_id, limit=10)],
    }


def ledger_balance(*, business_id: int, product_id: int) -> int:
    """SUM(quantity_delta) over a product's movements."""
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity_delta), 0))
        .filter(
            StockMovement.business_id == business_id,
            StockMovement.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def find_ledger_discrepancies(*, business_id: int) -> list[dict]:
    """
    Products whose stock_quantity disagrees with their movement history.

    An empty list means the ledger invariant holds for the business.
    """
    sums = dict(
        db.session.query(
            StockMovement.product_id,
            func.coalesce(func.sum(StockMovement.quantity_delta), 0),
        )
        .filter(StockMovement.business_id == business_id)
        .group_by(StockMovement.product_id)
        .all()
    )

    discrepancies = []
    for product in scoped_query(Product, business_id).order_by(Product.id.asc()):
        ledger_qty = int(sums.get(product.id, 0))
        if ledger_qty != product.stock_quantity:
            discrepancies.append({
                "product_id": product.id,
                "name": product.name,
                "stock_quantity": product.stock_quantity,
                "ledger_quantity": ledger_qty,
            })

    if discrepancies:
        current_app.logger.critical(
            "Ledger discrepancies for business=%s: %s", business_id, discrepancies
        )
    return discrepancies
