# Overview: Service-layer operations for assigning orders to employees.

from __future__ import annotations

import logging

from ..cache import UserViewCache
from ..errors import EmployeeNotFound, OrderNotFound
from ..extensions import db
from ..models import Order, User
from .concurrency import apply_statement_timeout, lock_for_update, run_with_retry
from .history_service import record_assignment

logger = logging.getLogger(__name__)


def assign_order(
    order_id: int,
    merchant_id: int,
    actor_id: int | None,
    employee_id: int,
    *,
    cache: UserViewCache | None = None,
) -> Order:
    """
    Hand an order to an employee.

    Ownership and status are independent: status is left untouched and the
    audit row is an ASSIGNED event, not a transition.

    Raises:
        OrderNotFound: Order absent or owned by another merchant
        EmployeeNotFound: Employee absent, inactive, or in another merchant
    """
    def _op() -> Order:
        apply_statement_timeout()
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id)
        ).first()
        if not order:
            raise OrderNotFound(order_id)

        employee = (
            db.session.query(User)
            .filter_by(id=employee_id, merchant_id=merchant_id, is_active=True)
            .first()
        )
        if not employee:
            raise EmployeeNotFound(employee_id)

        order.user_id = employee.id
        record_assignment(order.id, order.status, employee.id, actor_id)
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Order %s assigned to user %s by user %s", order.id, employee_id, actor_id)
    if cache is not None:
        cache.invalidate_user(actor_id)
        cache.invalidate_user(employee_id)
    return order
