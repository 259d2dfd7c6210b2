from __future__ import annotations

from ..extensions import db
from loyalpos.time_utils import to_utc_z


SALE_STATUSES = ("PENDING", "COMPLETED", "VOIDED")
PAYMENT_METHODS = ("CASH", "CARD", "GCASH", "MAYA")
DISCOUNT_TYPES = ("PERCENTAGE", "FIXED")


class Sale(db.Model):
    """
    Point-of-sale transaction.

    LIFECYCLE:
        PENDING -> COMPLETED -> VOIDED

    PENDING only exists inside the transaction that creates the sale; if any
    line fails its stock check the whole transaction is rolled back, so an
    aborted sale never becomes visible. COMPLETED -> VOIDED happens exactly
    once, guarded by the status check plus optimistic locking on version_id.

    TOTALS (all cents):
        subtotal_cents = SUM(line_total_cents)
        total_cents = subtotal_cents - discount_cents, 0 <= discount_cents <= subtotal_cents
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sale_number", name="uq_sales_business_number"),
        db.CheckConstraint("discount_cents >= 0 AND discount_cents <= subtotal_cents", name="ck_sales_discount_range"),
        db.CheckConstraint("total_cents = subtotal_cents - discount_cents", name="ck_sales_total"),
        db.Index("ix_sales_business_status_created", "business_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    # Human-readable number (e.g., "S-000123"), sequential per business
    sale_number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_reference = db.Column(db.String(100), nullable=True)

    # Discount as requested (percent or cents) and as applied (cents)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)
    discount_reason = db.Column(db.String(255), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Cash handling
    amount_tendered_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)

    # Loyalty
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.String(500), nullable=True)
    performed_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    # Void audit trail
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by = db.Column(db.String(128), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.sale_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "sale_number": self.sale_number,
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_reference": self.payment_reference,
            "discount_type": self.discount_type,
            "discount_value": float(self.discount_value) if self.discount_value is not None else None,
            "discount_reason": self.discount_reason,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "amount_tendered_cents": self.amount_tendered_cents,
            "change_cents": self.change_cents,
            "customer_id": self.customer_id,
            "points_earned": self.points_earned,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by": self.voided_by,
            "void_reason": self.void_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    Line item on a sale. Owned by the sale; no lifecycle of its own.

    unit_price_cents is captured from the product at sale time, so later price
    changes never touch historical sales or voids. product_id is NULL for
    custom (non-catalog) items, which carry no stock.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship(
        "Sale",
        backref=db.backref("lines", lazy=True, order_by="SaleLine.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class SaleSequence(db.Model):
    """
    Atomic per-business sale number sequence.

    Prevents two concurrent sales from getting the same sale_number.
    """
    __tablename__ = "sale_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
