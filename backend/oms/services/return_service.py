# Overview: Service-layer operations for order returns; filing and approval/receipt status updates.

"""
Return Processing Service

WHY: A customer return closes the order and, once the goods are physically
back, puts them back on the shelf.

DESIGN PRINCIPLES:
- At most one return per order (unique order_id + explicit check)
- Filing a return marks the order "returned" and writes a history row
- Status updates validate every field before any write
- Rejecting approval also rejects receipt, even if the same request sets a
  different receipt_status
- Restock never runs inside the status-update transaction: moving
  receipt_status into received/inspected writes an OutboxEvent next to the
  status change, and the event is dispatched only after COMMIT

LIFECYCLE:
1. file_return()                     -> approval/receipt/status = pending
2. update_return_status()            -> approval/receipt/status move independently
3. outbox_service.dispatch_events()  -> restock_service.restock_returns()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from ..cache import UserViewCache
from ..errors import (
    IneligibleForReturn,
    InvalidInput,
    OrderNotFound,
    ReturnAlreadyExists,
    ReturnNotFound,
)
from ..extensions import db
from ..models import Inventory, Order, OrderItem, OrderReturn, OrderReturnItem
from ..money import ZERO, money_str, quantize
from ..notifications import NotificationBus
from ..validation import FileReturnCommand, ReturnStatusCommand
from . import outbox_service
from .concurrency import apply_statement_timeout, lock_for_update, run_with_retry
from .constants import (
    APPROVAL_STATUSES,
    OUTBOX_EVENT_RETURN_RESTOCK,
    RECEIPT_STATUSES,
    RESTOCKABLE_RECEIPT_STATUSES,
    RETURN_STATUSES,
)
from .history_service import record_status_change
from .transition_policy import (
    ORDER_STATUS_ASSIGNED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_RETURNED,
    ORDER_STATUS_SHIPPED,
)

logger = logging.getLogger(__name__)

RETURN_ELIGIBLE_STATUSES = frozenset({
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_ASSIGNED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_CANCELLED,
})


@dataclass
class ReturnStatusUpdate:
    """Committed status change plus the outcome of any post-commit restock."""
    returns: list[OrderReturn]
    restock_event_ids: list[int] = field(default_factory=list)
    inventory_restocked: bool = False
    restock_error: str | None = None

    @property
    def restock_triggered(self) -> bool:
        return bool(self.restock_event_ids)

    def to_dict(self) -> dict:
        return {
            "returns": [r.to_dict() for r in self.returns],
            "restock_triggered": self.restock_triggered,
            "inventory_restocked": self.inventory_restocked,
            "restock_error": self.restock_error,
        }


# =============================================================================
# FILING
# =============================================================================

def _resolve_inventory_id(merchant_id: int, line: OrderItem) -> int | None:
    inventory_id = (
        db.session.query(Inventory.id)
        .filter_by(merchant_id=merchant_id, product_id=line.product_id)
        .scalar()
    )
    return inventory_id if inventory_id is not None else line.inventory_id


def file_return(merchant_id: int, command: FileReturnCommand, *, actor_id: int | None = None) -> OrderReturn:
    """
    File a return against an order and close the order as "returned".

    Raises:
        OrderNotFound: Order absent or owned by another merchant
        IneligibleForReturn: Order status not in RETURN_ELIGIBLE_STATUSES
        ReturnAlreadyExists: The order already has a return
        InvalidInput: Items that do not match the order's lines
    """
    if not command.items:
        raise InvalidInput("At least one return item is required")

    seen_products = set()
    for item in command.items:
        if item.product_id in seen_products:
            raise InvalidInput(f"Product {item.product_id} listed more than once")
        seen_products.add(item.product_id)

    def _op() -> OrderReturn:
        apply_statement_timeout()
        order = lock_for_update(
            db.session.query(Order).filter_by(id=command.order_id, merchant_id=merchant_id)
        ).first()
        if not order:
            raise OrderNotFound(command.order_id)

        if command.customer_id is not None and command.customer_id != order.customer_id:
            raise InvalidInput(f"Customer {command.customer_id} does not match order {order.id}")

        if order.status not in RETURN_ELIGIBLE_STATUSES:
            raise IneligibleForReturn(
                f"Order cannot be returned. Current status: {order.status}. "
                f"Valid statuses: {', '.join(sorted(RETURN_ELIGIBLE_STATUSES))}"
            )

        if db.session.query(OrderReturn.id).filter_by(order_id=order.id).first():
            raise ReturnAlreadyExists(order.id)

        lines = db.session.query(OrderItem).filter_by(order_id=order.id).order_by(OrderItem.id).all()
        if not lines:
            raise InvalidInput(f"No order items found for order {order.id}")

        lines_by_product: dict[int, OrderItem] = {}
        for line in lines:
            lines_by_product.setdefault(line.product_id, line)

        order_return = OrderReturn(
            merchant_id=merchant_id,
            order_id=order.id,
            customer_id=order.customer_id,
            reason=command.reason,
            total_refund_amount=ZERO,
        )
        db.session.add(order_return)
        db.session.flush()

        refund = ZERO
        for requested in command.items:
            line = lines_by_product.get(requested.product_id)
            if line is None:
                raise InvalidInput(f"Product {requested.product_id} is not part of order {order.id}")
            if requested.quantity <= 0 or requested.quantity > line.quantity:
                raise InvalidInput(
                    f"Cannot return {requested.quantity} units of product {line.product_id}; "
                    f"ordered quantity is {line.quantity}"
                )

            unit_price = quantize(requested.unit_price if requested.unit_price is not None else line.price_per_unit)
            total_amount = (
                requested.total_amount
                if requested.total_amount is not None
                else quantize(unit_price * requested.quantity)
            )
            refund += total_amount

            db.session.add(OrderReturnItem(
                return_id=order_return.id,
                order_item_id=line.id,
                product_id=line.product_id,
                inventory_id=_resolve_inventory_id(merchant_id, line),
                quantity=requested.quantity,
                unit_price=unit_price,
                total_amount=total_amount,
            ))

        order_return.total_refund_amount = refund

        old_status = order.status
        order.status = ORDER_STATUS_RETURNED
        record_status_change(order.id, old_status, ORDER_STATUS_RETURNED, actor_id)

        try:
            db.session.commit()
        except IntegrityError:
            # concurrent filing for the same order lost the unique race
            db.session.rollback()
            raise ReturnAlreadyExists(order.id)
        return order_return

    try:
        order_return = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Return %s filed for order %s (refund %s)",
        order_return.id, order_return.order_id, money_str(order_return.total_refund_amount),
    )
    return order_return


# =============================================================================
# STATUS UPDATES
# =============================================================================

def _validate_status_command(command: ReturnStatusCommand) -> None:
    if command.is_empty():
        raise InvalidInput("At least one of approval_status, receipt_status, status is required")
    if command.approval_status is not None and command.approval_status not in APPROVAL_STATUSES:
        raise InvalidInput(
            f"Invalid approval_status. Must be one of: {', '.join(sorted(APPROVAL_STATUSES))}"
        )
    if command.receipt_status is not None and command.receipt_status not in RECEIPT_STATUSES:
        raise InvalidInput(
            f"Invalid receipt_status. Must be one of: {', '.join(sorted(RECEIPT_STATUSES))}"
        )
    if command.status is not None and command.status not in RETURN_STATUSES:
        raise InvalidInput(
            f"Invalid status. Must be one of: {', '.join(sorted(RETURN_STATUSES))}"
        )


def _apply_status(order_return: OrderReturn, command: ReturnStatusCommand) -> bool:
    """
    Apply the provided fields; returns True when receipt_status just moved
    into a restockable value.
    """
    old_receipt = order_return.receipt_status

    if command.approval_status is not None:
        order_return.approval_status = command.approval_status
    if command.receipt_status is not None:
        order_return.receipt_status = command.receipt_status
    if command.approval_status == "rejected":
        order_return.receipt_status = "rejected"
    if command.status is not None:
        order_return.status = command.status

    return (
        old_receipt not in RESTOCKABLE_RECEIPT_STATUSES
        and order_return.receipt_status in RESTOCKABLE_RECEIPT_STATUSES
    )


def _update(
    return_ids: list[int],
    merchant_id: int,
    actor_id: int | None,
    command: ReturnStatusCommand,
) -> ReturnStatusUpdate:
    _validate_status_command(command)
    if not return_ids:
        raise InvalidInput("return_ids must be a non-empty array")

    def _op() -> ReturnStatusUpdate:
        apply_statement_timeout()
        rows = lock_for_update(
            db.session.query(OrderReturn)
            .filter(OrderReturn.id.in_(return_ids), OrderReturn.merchant_id == merchant_id)
            .order_by(OrderReturn.id)
        ).all()
        found = {r.id for r in rows}
        missing = [rid for rid in return_ids if rid not in found]
        if missing:
            raise ReturnNotFound(missing[0])

        to_restock = [r.id for r in rows if _apply_status(r, command)]

        event_ids = []
        if to_restock:
            event = outbox_service.enqueue(OUTBOX_EVENT_RETURN_RESTOCK, {
                "return_ids": to_restock,
                "merchant_id": merchant_id,
                "actor_id": actor_id,
            })
            event_ids.append(event.id)

        db.session.commit()
        return ReturnStatusUpdate(returns=rows, restock_event_ids=event_ids)

    try:
        update = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Return status updated for %s (merchant %s): %s",
        [r.id for r in update.returns], merchant_id,
        {k: v for k, v in vars(command).items() if v is not None},
    )
    return update


def _dispatch(update: ReturnStatusUpdate, bus, cache) -> None:
    if not update.restock_event_ids:
        return
    outcome = outbox_service.dispatch_events(update.restock_event_ids, bus=bus, cache=cache)
    update.inventory_restocked = outcome.restocked_count > 0
    update.restock_error = outcome.error_message()


def update_return_status(
    return_id: int,
    merchant_id: int,
    actor_id: int | None,
    command: ReturnStatusCommand,
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
    dispatch: bool = True,
) -> ReturnStatusUpdate:
    """
    Update one return's approval/receipt/status fields.

    The status change is committed first; restock (if triggered) runs
    afterwards and its failure only shows up as `restock_error`.

    Raises:
        InvalidInput: No fields, or a value outside its enum
        ReturnNotFound: Return absent or owned by another merchant
    """
    update = _update([return_id], merchant_id, actor_id, command)
    if dispatch:
        _dispatch(update, bus, cache)
    if cache is not None:
        cache.invalidate_user(actor_id)
    return update


def bulk_update_return_status(
    return_ids: list[int],
    merchant_id: int,
    actor_id: int | None,
    command: ReturnStatusCommand,
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
    dispatch: bool = True,
) -> ReturnStatusUpdate:
    """All-or-nothing version of update_return_status()."""
    update = _update(list(dict.fromkeys(return_ids)), merchant_id, actor_id, command)
    if dispatch:
        _dispatch(update, bus, cache)
    if cache is not None:
        cache.invalidate_user(actor_id)
    return update


def get_return(return_id: int, merchant_id: int) -> OrderReturn:
    order_return = db.session.query(OrderReturn).filter_by(id=return_id, merchant_id=merchant_id).first()
    if not order_return:
        raise ReturnNotFound(return_id)
    return order_return
