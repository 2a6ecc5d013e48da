# Overview: Service-layer operations for payment settlement; encapsulates business logic and database work.

"""
Payment Settlement Service

WHY: Recording that an order was paid touches four things at once: the
payment record, the order's payment/lifecycle status, optionally its line
pricing, and its tax invoice. They must move together.

DESIGN PRINCIPLES:
- One transaction per settlement, serialized per order by a row lock
- A settled payment is never downgraded (paid -> pending is rejected)
- At most one invoice per order: existence is checked under the order lock
- Invoice problems are SOFT: the issuer runs in a SAVEPOINT; on failure only
  the savepoint rolls back and the outcome is reported as "failed"
- Notifications and cache invalidation happen only after commit

LIFECYCLE (target status "paid"):
    order.status -> confirmed (unless cancelled)
    invoice      -> created | already_existed | failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..cache import UserViewCache
from ..errors import InvalidInput, InvalidTransition, OrderNotFound
from ..extensions import db
from ..models import Order, OrderItem, OrderPayment
from ..money import ZERO, money_str, quantize
from ..notifications import (
    EVENT_INVOICE_CREATED,
    EVENT_INVOICE_STATUS_UPDATED,
    EVENT_ORDER_STATUS_UPDATED,
    NotificationBus,
    get_notification_bus,
    publish_all,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import SettlePaymentCommand
from . import invoice_service
from .concurrency import apply_statement_timeout, lock_for_update, run_with_retry
from .constants import (
    ORDER_PAYMENT_STATUSES,
    PAYMENT_METHOD_CASH,
    PAYMENT_METHODS,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
)
from .history_service import record_status_change
from .transition_policy import ORDER_STATUS_CANCELLED, ORDER_STATUS_CONFIRMED

logger = logging.getLogger(__name__)

INVOICE_OUTCOME_CREATED = "created"
INVOICE_OUTCOME_ALREADY_EXISTED = "already_existed"
INVOICE_OUTCOME_FAILED = "failed"
INVOICE_OUTCOME_NOT_APPLICABLE = "not_applicable"

AUTO_INVOICE_NOTES = "Auto-generated invoice for paid order"


@dataclass
class SettlementResult:
    order_id: int
    payment_status: str
    payment_method: str
    original_total_amount: Decimal
    new_total_amount: Decimal
    price_changed: bool
    old_order_status: str
    new_order_status: str
    new_unit_price: Decimal | None = None
    invoice_outcome: str = INVOICE_OUTCOME_NOT_APPLICABLE
    invoice_id: int | None = None
    invoice_number: int | None = None
    display_number: str | None = None
    invoice_total: Decimal | None = None
    invoice_error: str | None = None

    @property
    def invoice_created(self) -> bool:
        return self.invoice_outcome == INVOICE_OUTCOME_CREATED

    @property
    def invoice_failed(self) -> bool:
        return self.invoice_outcome == INVOICE_OUTCOME_FAILED

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "original_total_amount": money_str(self.original_total_amount),
            "new_total_amount": money_str(self.new_total_amount),
            "price_changed": self.price_changed,
            "new_unit_price": money_str(self.new_unit_price),
            "order_status": {"old": self.old_order_status, "new": self.new_order_status},
            "invoice": {
                "outcome": self.invoice_outcome,
                "invoice_id": self.invoice_id,
                "invoice_number": self.invoice_number,
                "display_number": self.display_number,
                "total_amount": money_str(self.invoice_total),
                "error": self.invoice_error,
            },
        }


def _validate(command: SettlePaymentCommand) -> str:
    if command.status not in ORDER_PAYMENT_STATUSES:
        raise InvalidInput(
            f"Invalid payment status. Must be one of: {', '.join(sorted(ORDER_PAYMENT_STATUSES))}"
        )
    method = command.payment_method or PAYMENT_METHOD_CASH
    if method not in PAYMENT_METHODS:
        raise InvalidInput(
            f"Invalid payment method. Must be one of: {', '.join(sorted(PAYMENT_METHODS))}"
        )
    if command.amount is not None and command.amount < 0:
        raise InvalidInput("amount must be non-negative")
    if command.new_unit_price is not None and command.new_unit_price <= 0:
        raise InvalidInput("new_unit_price must be positive")
    return method


def _reprice_lines(order: Order, unit_price: Decimal) -> Decimal:
    """Rewrite every line at `unit_price`; returns the new order total."""
    items = db.session.query(OrderItem).filter_by(order_id=order.id).order_by(OrderItem.id).all()
    total = ZERO
    for item in items:
        item.price_per_unit = unit_price
        item.total_price = quantize(unit_price * item.quantity)
        total += item.total_price
    order.total_amount = total
    db.session.flush()
    return total


def _upsert_payment(order: Order, status: str, method: str, amount: Decimal) -> OrderPayment:
    payment = lock_for_update(db.session.query(OrderPayment).filter_by(order_id=order.id)).first()
    if payment is None:
        payment = OrderPayment(order_id=order.id)
        db.session.add(payment)
    payment.status = status
    payment.payment_method = method
    payment.amount = amount
    payment.payment_date = utcnow()
    return payment


def _settle_invoice(order: Order, merchant_id: int, method: str, result: SettlementResult) -> None:
    """
    Issue or correct the order's invoice inside a SAVEPOINT.

    Never raises: failures roll back the savepoint only and are recorded on
    `result`.
    """
    savepoint = db.session.begin_nested()
    try:
        existing = invoice_service.get_invoice_for_order(order.id)
        if existing is None:
            issued = invoice_service.issue_invoice(
                order.id,
                merchant_id,
                notes=AUTO_INVOICE_NOTES,
                discount=0,
                payment_status=PAYMENT_STATUS_PAID,
                payment_method=method,
            )
            invoice = issued.invoice
            result.invoice_outcome = INVOICE_OUTCOME_CREATED
        else:
            invoice = invoice_service.update_invoice_status(
                existing.id, merchant_id, PAYMENT_STATUS_PAID, method
            )
            result.invoice_outcome = INVOICE_OUTCOME_ALREADY_EXISTED
        savepoint.commit()
    except Exception as exc:
        savepoint.rollback()
        logger.exception("Invoice settlement failed for order %s (merchant %s)", order.id, merchant_id)
        result.invoice_outcome = INVOICE_OUTCOME_FAILED
        result.invoice_error = str(exc)
        return

    result.invoice_id = invoice.id
    result.invoice_number = invoice.invoice_number
    result.display_number = invoice.display_number
    result.invoice_total = invoice.total_amount


def _post_commit_events(result: SettlementResult) -> list[tuple[str, dict]]:
    events = [(EVENT_ORDER_STATUS_UPDATED, {
        "orderId": result.order_id,
        "status": result.new_order_status,
        "paymentStatus": result.payment_status,
        "newTotalAmount": money_str(result.new_total_amount),
        "originalTotalAmount": money_str(result.original_total_amount),
        "pricePerUnitChanged": result.price_changed,
        "newPricePerUnit": money_str(result.new_unit_price),
        "timestamp": to_utc_z(utcnow()),
    })]

    if result.invoice_id is not None:
        invoice_payload = {
            "orderId": result.order_id,
            "invoiceId": result.invoice_id,
            "invoiceNumber": result.invoice_number,
            "displayNumber": result.display_number,
            "totalAmount": money_str(result.invoice_total),
            "paymentStatus": PAYMENT_STATUS_PAID,
            "timestamp": to_utc_z(utcnow()),
        }
        if result.invoice_created:
            events.append((EVENT_INVOICE_CREATED, invoice_payload))
        else:
            events.append((EVENT_INVOICE_STATUS_UPDATED, invoice_payload))
    return events


def settle_payment(
    order_id: int,
    merchant_id: int,
    actor_id: int | None,
    command: SettlePaymentCommand,
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
) -> SettlementResult:
    """
    Record a payment outcome for an order and reconcile status and invoice.

    Args:
        order_id: Order being settled
        merchant_id: Tenant scope
        actor_id: User performing the settlement (audit + cache)
        command: Target payment status, method, amount, optional new unit price

    Returns:
        SettlementResult (committed)

    Raises:
        InvalidInput: Unknown status/method
        OrderNotFound: Order absent or owned by another merchant
        InvalidTransition: paid -> pending
    """
    method = _validate(command)

    def _op() -> SettlementResult:
        apply_statement_timeout()
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id)
        ).first()
        if not order:
            raise OrderNotFound(order_id)

        if order.payment_status == PAYMENT_STATUS_PAID and command.status == PAYMENT_STATUS_PENDING:
            raise InvalidTransition("Cannot change payment status from paid back to pending")

        original_total = quantize(order.total_amount or 0)
        old_status = order.status
        result = SettlementResult(
            order_id=order.id,
            payment_status=command.status,
            payment_method=method,
            original_total_amount=original_total,
            new_total_amount=original_total,
            price_changed=False,
            old_order_status=old_status,
            new_order_status=old_status,
        )

        if command.new_unit_price is not None and command.status == PAYMENT_STATUS_PAID:
            result.new_total_amount = _reprice_lines(order, command.new_unit_price)
            result.price_changed = True
            result.new_unit_price = command.new_unit_price

        amount = command.amount if command.amount is not None else result.new_total_amount
        _upsert_payment(order, command.status, method, amount)

        order.payment_status = command.status
        order.payment_method = method

        if command.status == PAYMENT_STATUS_PAID:
            if order.status != ORDER_STATUS_CANCELLED and order.status != ORDER_STATUS_CONFIRMED:
                order.status = ORDER_STATUS_CONFIRMED
                record_status_change(order.id, old_status, ORDER_STATUS_CONFIRMED, actor_id)
            result.new_order_status = order.status
            db.session.flush()
            _settle_invoice(order, merchant_id, method, result)

        db.session.commit()
        return result

    try:
        result = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Settled order %s as %s (order status %s -> %s, invoice %s)",
        result.order_id, result.payment_status,
        result.old_order_status, result.new_order_status, result.invoice_outcome,
    )

    publish_all(bus or get_notification_bus(), _post_commit_events(result))
    if cache is not None:
        cache.invalidate_user(actor_id)
    return result
