# Overview: Service-layer operations for invoices; numbering, GST breakdown and status updates.

"""
Invoice Issuer

WHY: Every paid order needs exactly one tax invoice, numbered in an
unbroken per-merchant sequence.

DESIGN PRINCIPLES:
- issue_invoice() is a pure "create" primitive: it flushes inside the
  caller's transaction and never checks for an existing invoice
- Callers (settlement, manual creation) check existence first, under the
  order row lock, so an order never gets a second invoice
- Numbers come from one atomic UPDATE of the merchant counter; concurrent
  issuances for a merchant serialize on that row
- Tax is computed by tax_service from the order lines and the merchant and
  customer jurisdictions, and snapshotted onto invoice lines
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import update

from ..errors import (
    BillingProfileMissing,
    InvalidInput,
    InvoiceAlreadyExists,
    InvoiceNotFound,
    OrderNotFound,
)
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, MerchantBillingProfile, Order, OrderItem, Product
from ..money import money_str, quantize
from ..notifications import (
    EVENT_INVOICE_CREATED,
    EVENT_INVOICE_STATUS_UPDATED,
    NotificationBus,
    get_notification_bus,
    publish_all,
)
from ..time_utils import default_due_date, today
from .concurrency import apply_statement_timeout, lock_for_update, run_with_retry
from .constants import INVOICE_PAYMENT_STATUSES, INVOICE_STATUS_UNPAID, PAYMENT_METHODS
from .tax_service import compute_tax

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedInvoice:
    invoice: Invoice
    display_number: str

    @property
    def invoice_id(self) -> int:
        return self.invoice.id

    @property
    def invoice_number(self) -> int:
        return self.invoice.invoice_number

    def to_dict(self) -> dict:
        data = self.invoice.to_dict(include_items=True)
        data["display_number"] = self.display_number
        return data


# =============================================================================
# NUMBERING
# =============================================================================

def _default_prefix() -> str:
    return current_app.config.get("DEFAULT_INVOICE_PREFIX", "INV-")


def allocate_invoice_number(merchant_id: int) -> tuple[int, str]:
    """
    Atomically take the merchant's next invoice number.

    One UPDATE advances the counter; the issued number is the value before
    the increment. Dialects with UPDATE ... RETURNING read it back in the
    same statement, others re-read the (now locked) row.

    Returns:
        (invoice_number, invoice_prefix)

    Raises:
        BillingProfileMissing: Merchant has no billing profile
    """
    stmt = (
        update(MerchantBillingProfile)
        .where(MerchantBillingProfile.merchant_id == merchant_id)
        .values(next_invoice_number=MerchantBillingProfile.next_invoice_number + 1)
    )

    if db.engine.dialect.update_returning:
        row = db.session.execute(
            stmt.returning(
                MerchantBillingProfile.next_invoice_number,
                MerchantBillingProfile.invoice_prefix,
            )
        ).first()
        if row is None:
            raise BillingProfileMissing(merchant_id)
        current, prefix = row
    else:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise BillingProfileMissing(merchant_id)
        db.session.flush()
        current, prefix = lock_for_update(
            db.session.query(
                MerchantBillingProfile.next_invoice_number,
                MerchantBillingProfile.invoice_prefix,
            ).filter(MerchantBillingProfile.merchant_id == merchant_id)
        ).one()

    return current - 1, prefix or _default_prefix()


# =============================================================================
# ISSUANCE
# =============================================================================

def issue_invoice(
    order_id: int,
    merchant_id: int,
    *,
    due_date: date | None = None,
    notes: str | None = None,
    discount: Decimal | int | str = 0,
    payment_status: str = INVOICE_STATUS_UNPAID,
    payment_method: str | None = None,
) -> IssuedInvoice:
    """
    Create the invoice header and lines for an order.

    Runs inside the caller's transaction (flush only, never commit).

    Raises:
        OrderNotFound: Order absent or owned by another merchant
        BillingProfileMissing: Merchant has no billing profile
    """
    order = db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id).first()
    if not order:
        raise OrderNotFound(order_id)

    customer = db.session.get(Customer, order.customer_id)
    customer_state = customer.state_code if customer else None

    invoice_number, prefix = allocate_invoice_number(merchant_id)

    merchant_state = (
        db.session.query(MerchantBillingProfile.state_code)
        .filter(MerchantBillingProfile.merchant_id == merchant_id)
        .scalar()
    )

    rows = (
        db.session.query(OrderItem, Product)
        .join(Product, Product.id == OrderItem.product_id)
        .filter(OrderItem.order_id == order.id)
        .order_by(OrderItem.id.asc())
        .all()
    )

    default_rate = Decimal(str(current_app.config.get("DEFAULT_GST_RATE", "18")))
    breakdown = compute_tax(
        [(item.total_price, product.gst_rate) for item, product in rows],
        merchant_state,
        customer_state,
        discount,
        default_rate=default_rate,
    )

    invoice = Invoice(
        merchant_id=merchant_id,
        order_id=order.id,
        customer_id=order.customer_id,
        invoice_number=invoice_number,
        invoice_prefix=prefix,
        invoice_date=today(),
        due_date=due_date or default_due_date(current_app.config.get("INVOICE_DUE_DAYS", 30)),
        subtotal=breakdown.subtotal,
        tax_amount=breakdown.total_tax,
        cgst_amount=breakdown.cgst_amount,
        sgst_amount=breakdown.sgst_amount,
        igst_amount=breakdown.igst_amount,
        discount_amount=breakdown.discount,
        total_amount=breakdown.final_total,
        payment_status=payment_status,
        payment_method=payment_method,
        notes=notes,
    )
    db.session.add(invoice)
    db.session.flush()

    for (item, product), tax_line in zip(rows, breakdown.lines):
        db.session.add(InvoiceItem(
            invoice_id=invoice.id,
            order_item_id=item.id,
            product_id=item.product_id,
            quantity=item.quantity,
            unit_price=item.price_per_unit,
            total_price=tax_line.extended_price,
            hsn_code=product.hsn_code,
            gst_rate=tax_line.gst_rate,
            cgst_amount=tax_line.cgst_amount,
            sgst_amount=tax_line.sgst_amount,
            igst_amount=tax_line.igst_amount,
        ))
    db.session.flush()

    logger.info(
        "Issued invoice %s%s for order %s (merchant %s, %s, total %s)",
        prefix, invoice_number, order.id, merchant_id,
        "CGST+SGST" if breakdown.intra_state else "IGST",
        breakdown.final_total,
    )
    return IssuedInvoice(invoice=invoice, display_number=invoice.display_number)


def get_invoice_for_order(order_id: int, merchant_id: int | None = None) -> Invoice | None:
    query = db.session.query(Invoice).filter(Invoice.order_id == order_id)
    if merchant_id is not None:
        query = query.filter(Invoice.merchant_id == merchant_id)
    return query.first()


def invoice_event_payload(invoice: Invoice) -> dict:
    return {
        "invoiceId": invoice.id,
        "orderId": invoice.order_id,
        "invoiceNumber": invoice.invoice_number,
        "displayNumber": invoice.display_number,
        "totalAmount": money_str(invoice.total_amount),
        "paymentStatus": invoice.payment_status,
        "paymentMethod": invoice.payment_method,
    }


def create_invoice(
    order_id: int,
    merchant_id: int,
    *,
    due_date: date | None = None,
    notes: str | None = None,
    discount: Decimal | int | str = 0,
    bus: NotificationBus | None = None,
) -> IssuedInvoice:
    """
    Manually issue an (unpaid) invoice for an order and commit.

    Raises:
        OrderNotFound, BillingProfileMissing
        InvoiceAlreadyExists: The order already has an invoice
    """
    def _op() -> IssuedInvoice:
        apply_statement_timeout()
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id)
        ).first()
        if not order:
            raise OrderNotFound(order_id)

        if get_invoice_for_order(order.id) is not None:
            raise InvoiceAlreadyExists(order.id)

        issued = issue_invoice(
            order.id,
            merchant_id,
            due_date=due_date,
            notes=notes,
            discount=discount,
            payment_status=INVOICE_STATUS_UNPAID,
        )
        db.session.commit()
        return issued

    try:
        issued = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    publish_all(bus or get_notification_bus(), [
        (EVENT_INVOICE_CREATED, invoice_event_payload(issued.invoice)),
    ])
    return issued


# =============================================================================
# UPDATES
# =============================================================================

def _load_invoice_for_update(invoice_id: int, merchant_id: int) -> Invoice:
    invoice = lock_for_update(
        db.session.query(Invoice).filter_by(id=invoice_id, merchant_id=merchant_id)
    ).first()
    if not invoice:
        raise InvoiceNotFound(invoice_id)
    return invoice


def validate_invoice_payment(payment_status: str | None, payment_method: str | None) -> None:
    if payment_status is not None and payment_status not in INVOICE_PAYMENT_STATUSES:
        raise InvalidInput(
            f"Invalid payment status. Must be one of: {', '.join(sorted(INVOICE_PAYMENT_STATUSES))}"
        )
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"Invalid payment method. Must be one of: {', '.join(sorted(PAYMENT_METHODS))}"
        )


def update_invoice_status(
    invoice_id: int,
    merchant_id: int,
    payment_status: str | None = None,
    payment_method: str | None = None,
) -> Invoice:
    """
    Correct an invoice's payment status/method in place.

    Values left as None keep their current value. Flush only; the caller
    commits.
    """
    validate_invoice_payment(payment_status, payment_method)
    if payment_status is None and payment_method is None:
        raise InvalidInput("payment_status or payment_method is required")

    invoice = _load_invoice_for_update(invoice_id, merchant_id)
    if payment_status is not None:
        invoice.payment_status = payment_status
    if payment_method is not None:
        invoice.payment_method = payment_method
    db.session.flush()
    return invoice


def change_invoice_status(
    invoice_id: int,
    merchant_id: int,
    payment_status: str | None = None,
    payment_method: str | None = None,
    *,
    bus: NotificationBus | None = None,
) -> Invoice:
    """update_invoice_status() as its own committed unit of work."""
    def _op() -> Invoice:
        apply_statement_timeout()
        invoice = update_invoice_status(invoice_id, merchant_id, payment_status, payment_method)
        db.session.commit()
        return invoice

    try:
        invoice = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    publish_all(bus or get_notification_bus(), [
        (EVENT_INVOICE_STATUS_UPDATED, invoice_event_payload(invoice)),
    ])
    return invoice


def update_invoice_details(
    invoice_id: int,
    merchant_id: int,
    *,
    due_date: date | None = None,
    notes: str | None = None,
    discount: Decimal | int | str | None = None,
) -> Invoice:
    """
    Edit due date, notes and discount.

    A new discount recomputes total = subtotal + tax - discount; the GST
    amounts themselves never change after issuance.
    """
    if due_date is None and notes is None and discount is None:
        raise InvalidInput("No fields to update")

    new_discount = None
    if discount is not None:
        try:
            new_discount = quantize(discount)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidInput("discount must be a number")
        if new_discount < 0:
            raise InvalidInput("discount cannot be negative")

    def _op() -> Invoice:
        apply_statement_timeout()
        invoice = _load_invoice_for_update(invoice_id, merchant_id)
        if due_date is not None:
            invoice.due_date = due_date
        if notes is not None:
            invoice.notes = notes
        if new_discount is not None:
            invoice.discount_amount = new_discount
            invoice.total_amount = quantize(invoice.subtotal) + quantize(invoice.tax_amount) - new_discount
        db.session.commit()
        return invoice

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise
