# Overview: Service-layer operations for the order audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import OrderStatusHistory
from ..time_utils import utcnow

EVENT_STATUS_CHANGED = "STATUS_CHANGED"
EVENT_ASSIGNED = "ASSIGNED"


def record_status_change(
    order_id: int,
    old_status: str | None,
    new_status: str,
    changed_by: int | None,
    session=None,
) -> OrderStatusHistory:
    """Append a STATUS_CHANGED row. Caller owns the transaction."""
    session = session or db.session
    entry = OrderStatusHistory(
        order_id=order_id,
        event_type=EVENT_STATUS_CHANGED,
        old_status=old_status,
        new_status=new_status,
        changed_by=changed_by,
        changed_at=utcnow(),
    )
    session.add(entry)
    return entry


def record_assignment(
    order_id: int,
    current_status: str,
    assigned_user_id: int,
    changed_by: int | None,
    session=None,
) -> OrderStatusHistory:
    """
    Append an ASSIGNED row.

    old_status == new_status == the order's current status, so the row never
    reads as a status transition.
    """
    session = session or db.session
    entry = OrderStatusHistory(
        order_id=order_id,
        event_type=EVENT_ASSIGNED,
        old_status=current_status,
        new_status=current_status,
        assigned_user_id=assigned_user_id,
        changed_by=changed_by,
        changed_at=utcnow(),
    )
    session.add(entry)
    return entry


def get_order_history(order_id: int, *, include_assignments: bool = False) -> list[OrderStatusHistory]:
    """
    Audit rows for an order, oldest first.

    Status-oriented views (the default) only see STATUS_CHANGED rows.
    """
    query = db.session.query(OrderStatusHistory).filter_by(order_id=order_id)
    if not include_assignments:
        query = query.filter(OrderStatusHistory.event_type == EVENT_STATUS_CHANGED)
    return query.order_by(OrderStatusHistory.changed_at.asc(), OrderStatusHistory.id.asc()).all()
