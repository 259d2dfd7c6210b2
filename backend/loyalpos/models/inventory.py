from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..errors import ImmutableRecordError
from loyalpos.time_utils import to_utc_z


MOVEMENT_TYPES = ("RECEIVE", "ADJUST", "SALE", "VOID_RESTORE")


class Product(db.Model):
    """
    Product master data with a running stock quantity.

    MULTI-TENANT: Products are scoped to businesses via business_id.

    STOCK DESIGN DECISION:
    stock_quantity is a cached running total of the product's StockMovement
    deltas. It is never written directly by product create/update code; only
    inventory_service changes it, always through a conditional UPDATE paired
    with a movement row in the same transaction. The CHECK constraint is the
    storage-level backstop for "never negative".

    Products are soft-deactivated (is_active=False), never deleted, because
    historical sale lines and movements reference them.
    """
    __tablename__ = "products"
    __table_args__ = (
        # SKUs are optional, but unique within a business when present
        db.UniqueConstraint("business_id", "sku", name="uq_products_business_sku"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_products_threshold_nonnegative"),
        db.Index("ix_products_business_active", "business_id", "is_active"),
        db.Index("ix_products_business_stock", "business_id", "stock_quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    business = db.relationship("Business", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} business_id={self.business_id} qty={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of one stock-affecting event.

    MOVEMENT TYPES:
    - RECEIVE: Stock received from a supplier (delta > 0)
    - ADJUST: Manual correction, e.g. shrinkage or a recount (delta != 0)
    - SALE: Stock consumed by a sale (delta < 0, sale_id set)
    - VOID_RESTORE: Compensation for a voided sale's SALE movement (delta > 0, sale_id set)

    INVARIANT: for every product, SUM(quantity_delta) == Product.stock_quantity.

    The (sale_id, product_id, movement_type) unique constraint allows one SALE
    and one VOID_RESTORE per product per sale, so a retried restore cannot
    double-credit stock even if two requests race past the service check.

    IMMUTABLE: Records are never updated or deleted (enforced by ORM listeners below).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", "movement_type", name="uq_movements_sale_product_type"),
        db.CheckConstraint("quantity_delta <> 0", name="ck_movements_delta_nonzero"),
        db.Index("ix_movements_business_product_created", "business_id", "product_id", "created_at"),
        db.Index("ix_movements_business_type_created", "business_id", "movement_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    stock_before = db.Column(db.Integer, nullable=False)
    stock_after = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    reason = db.Column(db.String(255), nullable=True)
    note = db.Column(db.String(255), nullable=True)
    performed_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} product_id={self.product_id} "
            f"type={self.movement_type} delta={self.quantity_delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "movement_type": self.movement_type,
            "quantity_delta": self.quantity_delta,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "sale_id": self.sale_id,
            "reason": self.reason,
            "note": self.note,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableRecordError(
        "Stock movements are append-only",
        details={"movement_id": target.id},
    )


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableRecordError(
        "Stock movements are append-only",
        details={"movement_id": target.id},
    )
