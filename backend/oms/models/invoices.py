from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Invoice(db.Model):
    """
    Tax invoice for an order (zero or one per order).

    NUMBERING:
    - invoice_number comes from MerchantBillingProfile.next_invoice_number
    - Unique per merchant, strictly sequential in issue order
    - invoice_prefix is snapshotted at issue time; display = prefix + number

    TAX:
    - Either cgst_amount + sgst_amount (same state) or igst_amount
      (different state) per line; header amounts are the sums of the lines
    - total_amount = subtotal + tax_amount - discount_amount

    PAYMENT STATUS: unpaid, paid, partially_paid, cancelled.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_invoices_order"),
        db.UniqueConstraint("merchant_id", "invoice_number", name="uq_invoices_merchant_number"),
        db.Index("ix_invoices_merchant_status", "merchant_id", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    invoice_number = db.Column(db.Integer, nullable=False)
    invoice_prefix = db.Column(db.String(32), nullable=False, default="INV-")

    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    igst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    payment_status = db.Column(db.String(16), nullable=False, default="unpaid")
    payment_method = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("invoice", uselist=False, lazy=True))

    @property
    def display_number(self) -> str:
        return f"{self.invoice_prefix or ''}{self.invoice_number}"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "invoice_number": self.invoice_number,
            "invoice_prefix": self.invoice_prefix,
            "display_number": self.display_number,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "subtotal": money_str(self.subtotal),
            "tax_amount": money_str(self.tax_amount),
            "cgst_amount": money_str(self.cgst_amount),
            "sgst_amount": money_str(self.sgst_amount),
            "igst_amount": money_str(self.igst_amount),
            "discount_amount": money_str(self.discount_amount),
            "total_amount": money_str(self.total_amount),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class InvoiceItem(db.Model):
    """One invoice line per order line, with its GST split."""
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    hsn_code = db.Column(db.String(16), nullable=True)
    gst_rate = db.Column(db.Numeric(5, 2), nullable=False)
    cgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sgst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    igst_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    invoice = db.relationship(
        "Invoice",
        backref=db.backref("items", lazy=True, order_by="InvoiceItem.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "order_item_id": self.order_item_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "total_price": money_str(self.total_price),
            "hsn_code": self.hsn_code,
            "gst_rate": str(self.gst_rate) if self.gst_rate is not None else None,
            "cgst_amount": money_str(self.cgst_amount),
            "sgst_amount": money_str(self.sgst_amount),
            "igst_amount": money_str(self.igst_amount),
        }
