# Overview: Service-layer operations for order status changes (admin and operational roles).

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..cache import UserViewCache
from ..errors import InvalidInput, InvalidTransition, OrderNotFound, PaymentRequired
from ..extensions import db
from ..models import Order
from ..notifications import EVENT_ORDER_STATUS_UPDATED, NotificationBus, get_notification_bus, publish_all
from ..time_utils import to_utc_z, utcnow
from .concurrency import apply_statement_timeout, lock_for_update, run_with_retry
from .constants import PAYMENT_STATUS_PAID
from .history_service import record_status_change
from .transition_policy import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUSES,
    ROLE_ADMIN,
    allowed,
    allowed_targets,
)

logger = logging.getLogger(__name__)

# Target statuses that require a settled payment
PAYMENT_GATED_STATUSES = frozenset({
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
})


@dataclass(frozen=True)
class StatusChange:
    order_id: int
    old_status: str
    new_status: str

    def to_dict(self) -> dict:
        return {"order_id": self.order_id, "old_status": self.old_status, "new_status": self.new_status}


def _validate_status(new_status: str) -> None:
    if new_status not in ORDER_STATUSES:
        raise InvalidInput(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(sorted(ORDER_STATUSES))}"
        )


def _apply(
    order_id: int,
    merchant_id: int,
    actor_id: int | None,
    role: str,
    new_status: str,
    *,
    require_assigned_to_actor: bool,
) -> StatusChange:
    def _op() -> StatusChange:
        apply_statement_timeout()
        query = db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id)
        if require_assigned_to_actor:
            query = query.filter(Order.user_id == actor_id)
        order = lock_for_update(query).first()
        if not order:
            raise OrderNotFound(order_id)

        old_status = order.status
        if not allowed(role, old_status, new_status):
            raise InvalidTransition(
                f"Cannot change order status from '{old_status}' to '{new_status}'",
                allowed_targets(old_status),
            )

        if new_status in PAYMENT_GATED_STATUSES and order.payment_status != PAYMENT_STATUS_PAID:
            raise PaymentRequired(
                f"Order must be paid before it can be marked {new_status} "
                f"(payment status: {order.payment_status})"
            )

        order.status = new_status
        record_status_change(order.id, old_status, new_status, actor_id)
        db.session.commit()
        return StatusChange(order_id=order.id, old_status=old_status, new_status=new_status)

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def _after_commit(change: StatusChange, actor_id, bus, cache) -> None:
    logger.info("Order %s status %s -> %s by user %s", change.order_id, change.old_status, change.new_status, actor_id)
    publish_all(bus or get_notification_bus(), [(EVENT_ORDER_STATUS_UPDATED, {
        "orderId": change.order_id,
        "oldStatus": change.old_status,
        "status": change.new_status,
        "changedBy": actor_id,
        "timestamp": to_utc_z(utcnow()),
    })])
    if cache is not None:
        cache.invalidate_user(actor_id)


def change_status(
    order_id: int,
    merchant_id: int,
    actor_id: int | None,
    new_status: str,
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
) -> StatusChange:
    """
    Administrative status change.

    Raises:
        InvalidInput: Unknown status value
        OrderNotFound: Order absent or owned by another merchant
        InvalidTransition: Rejected by the admin policy (carries allowed targets)
        PaymentRequired: Payment gate for confirmed/shipped/delivered/cancelled
    """
    _validate_status(new_status)
    change = _apply(order_id, merchant_id, actor_id, ROLE_ADMIN, new_status, require_assigned_to_actor=False)
    _after_commit(change, actor_id, bus, cache)
    return change


def change_status_as_operator(
    order_id: int,
    merchant_id: int,
    actor_id: int,
    role: str,
    new_status: str,
    *,
    bus: NotificationBus | None = None,
    cache: UserViewCache | None = None,
) -> StatusChange:
    """
    Status change by an operational role on an order assigned to the actor.

    Orders assigned to someone else are reported as not found.
    """
    _validate_status(new_status)
    change = _apply(order_id, merchant_id, actor_id, role, new_status, require_assigned_to_actor=True)
    _after_commit(change, actor_id, bus, cache)
    return change
