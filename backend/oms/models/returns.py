from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class OrderReturn(db.Model):
    """
    Customer return request (at most one per order).

    WORKFLOW AXES (independent):
    - approval_status: pending, approved, rejected
    - receipt_status: pending, received, inspected, rejected
    - status: pending, processed

    approval_status = rejected forces receipt_status = rejected.
    Moving receipt_status into received/inspected queues a restock of the
    return's items (see restock_service).
    """
    __tablename__ = "order_returns"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_order_returns_order"),
        db.Index("ix_order_returns_merchant_created", "merchant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    reason = db.Column(db.Text, nullable=True)
    total_refund_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    approval_status = db.Column(db.String(16), nullable=False, default="pending")
    receipt_status = db.Column(db.String(16), nullable=False, default="pending")
    status = db.Column(db.String(16), nullable=False, default="pending")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("order_return", uselist=False, lazy=True))

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "reason": self.reason,
            "total_refund_amount": money_str(self.total_refund_amount),
            "approval_status": self.approval_status,
            "receipt_status": self.receipt_status,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderReturnItem(db.Model):
    """
    Returned quantity of one order line.

    restocked_at is set exactly once, in the same transaction that adds
    quantity back to inventory.
    """
    __tablename__ = "order_return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("order_returns.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order_return = db.relationship(
        "OrderReturn",
        backref=db.backref("items", lazy=True, order_by="OrderReturnItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "inventory_id": self.inventory_id,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_amount": money_str(self.total_amount),
            "restocked_at": to_utc_z(self.restocked_at),
        }
