from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data (read-only for the lifecycle engine).

    hsn_code and gst_rate are snapshotted onto invoice items at issue time.
    A NULL or zero gst_rate means the default rate (18%).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "sku", name="uq_products_merchant_sku"),
        db.Index("ix_products_merchant_name", "merchant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    unit_price = db.Column(db.Numeric(12, 2), nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    merchant = db.relationship("Merchant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} merchant_id={self.merchant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "sku": self.sku,
            "name": self.name,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "hsn_code": self.hsn_code,
            "gst_rate": str(self.gst_rate) if self.gst_rate is not None else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Inventory(db.Model):
    """
    On-hand stock, one row per (merchant, product).

    INVARIANTS:
    - Consumption never takes quantity_available below zero; the order is
      rejected first (guarded UPDATE in order_service).
    - Restock adds a return item's quantity at most once (restocked_at marker
      on the return item).

    Shared mutable state: rows are referenced, never owned, by orders and
    returns, and are only changed with single-statement relative UPDATEs.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "product_id", name="uq_inventory_merchant_product"),
        db.CheckConstraint("quantity_available >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_available = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "product_id": self.product_id,
            "quantity_available": self.quantity_available,
            "updated_at": to_utc_z(self.updated_at),
        }
