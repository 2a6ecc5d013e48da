from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    Order aggregate root.

    STATUS (lifecycle): pending, confirmed, assigned, shipped, delivered,
    returned, cancelled. delivered/returned/cancelled are terminal.

    PAYMENT STATUS: pending, paid, failed, refunded.

    INVARIANT: total_amount == sum(item.total_price) after every mutation.
    Orders are never deleted; returned/cancelled represent closure.

    Assignment (user_id) is an independent axis: assigning an employee never
    changes status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_merchant_status_created", "merchant_id", "status", "created_at"),
        db.Index("ix_orders_merchant_payment_status", "merchant_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Assigned employee (nullable until assignment)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(32), nullable=True)

    # Manual, Bulk, CSV, Website
    order_source = db.Column(db.String(32), nullable=False, default="Manual")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    assigned_user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "total_amount": money_str(self.total_amount),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "order_source": self.order_source,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Individual line on an order.

    quantity is immutable after creation; price_per_unit/total_price change
    only when an admin revises the unit price during settlement.
    sku is a snapshot taken at order time.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory.id"), nullable=True)

    sku = db.Column(db.String(64), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "Order",
        backref=db.backref("items", lazy=True, order_by="OrderItem.id"),
    )
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "inventory_id": self.inventory_id,
            "sku": self.sku,
            "quantity": self.quantity,
            "price_per_unit": money_str(self.price_per_unit),
            "total_price": money_str(self.total_price),
            "created_at": to_utc_z(self.created_at),
        }


class OrderPayment(db.Model):
    """
    Zero-or-one payment record per order.

    Created on the first settlement attempt and overwritten afterwards.
    No payment history is kept here; status transitions of the ORDER are in
    order_status_history.
    """
    __tablename__ = "order_payments"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_order_payments_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)

    order = db.relationship("Order", backref=db.backref("payment", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "payment_method": self.payment_method,
            "amount": money_str(self.amount),
            "payment_date": to_utc_z(self.payment_date),
        }


class OrderStatusHistory(db.Model):
    """
    Append-only audit trail for an order.

    EVENT TYPES:
    - STATUS_CHANGED: old_status -> new_status
    - ASSIGNED: order handed to assigned_user_id; old_status == new_status
      (the status at assignment time), so status-oriented views filter on
      event_type and never see assignments as transitions.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_status_history_order_changed", "order_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    event_type = db.Column(db.String(16), nullable=False, default="STATUS_CHANGED", index=True)

    old_status = db.Column(db.String(16), nullable=True)
    new_status = db.Column(db.String(16), nullable=False)
    assigned_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    changed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    order = db.relationship("Order", backref=db.backref("history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "event_type": self.event_type,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "assigned_user_id": self.assigned_user_id,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
        }
