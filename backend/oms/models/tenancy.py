from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Merchant(db.Model):
    """
    Multi-tenant root: Every tenant is a Merchant.

    DESIGN:
    - Customers, products, inventory, orders, invoices and returns all carry merchant_id
    - Every lookup in the lifecycle services is scoped by merchant_id
    - A row that exists but belongs to another merchant is reported as "not found"
    """
    __tablename__ = "merchants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Merchant id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MerchantBillingProfile(db.Model):
    """
    Merchant billing configuration and invoice counter.

    next_invoice_number is the number the NEXT issued invoice receives.
    It is only ever advanced by a single atomic UPDATE (see invoice_service),
    so two concurrent issuances for the same merchant never share a number.

    state_code is the merchant's GST jurisdiction; comparing it with the
    customer's state_code decides CGST+SGST vs IGST.
    """
    __tablename__ = "merchant_billing_profiles"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", name="uq_billing_profiles_merchant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    legal_name = db.Column(db.String(255), nullable=True)
    gstin = db.Column(db.String(15), nullable=True)
    state_code = db.Column(db.String(8), nullable=True)

    invoice_prefix = db.Column(db.String(32), nullable=True)
    next_invoice_number = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("billing_profile", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "legal_name": self.legal_name,
            "gstin": self.gstin,
            "state_code": self.state_code,
            "invoice_prefix": self.invoice_prefix,
            "next_invoice_number": self.next_invoice_number,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    Merchant staff member: the acting user on every mutation and the target of
    order assignment.

    ROLES: admin, Employee, Delivery, Shipment (see transition_policy).
    Authentication lives in the gateway in front of this service; the row
    exists for attribution and for validating assignment targets.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("merchant_id", "username", name="uq_users_merchant_username"),
        db.Index("ix_users_merchant_role", "merchant_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    username = db.Column(db.String(64), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="Employee")

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    merchant = db.relationship("Merchant", backref=db.backref("users", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "merchant_id": self.merchant_id,
            "username": self.username,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
