from __future__ import annotations

from ..extensions import db
from loyalpos.time_utils import to_utc_z


class Business(db.Model):
    """
    Multi-tenant root: every tenant is a Business.

    All products, stock movements, sales and customers belong to exactly one
    business. No data may cross business boundaries; every service call
    takes a business_id and filters by it.

    Loyalty settings live here because points are earned per business:
    - cents_per_point: spend required to earn one point
    - min_purchase_cents_for_points: sales below this earn nothing
    - max_points_per_transaction: cap per sale (NULL = uncapped)
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    cents_per_point = db.Column(db.Integer, nullable=True)
    min_purchase_cents_for_points = db.Column(db.Integer, nullable=False, default=0)
    max_points_per_transaction = db.Column(db.Integer, nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "cents_per_point": self.cents_per_point,
            "min_purchase_cents_for_points": self.min_purchase_cents_for_points,
            "max_points_per_transaction": self.max_points_per_transaction,
            "created_at": to_utc_z(self.created_at),
        }
