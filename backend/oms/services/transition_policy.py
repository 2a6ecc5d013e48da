# Overview: Order status transition policy; pure functions, no database work.

"""
Order Status Transition Policy

STATE MACHINE (canonical forward graph):
    pending -> confirmed -> (assigned) -> shipped -> delivered

    delivered, returned, cancelled are TERMINAL.

RULES (evaluated in this order):
1. Nothing transitions back to pending
2. Terminal orders never move, for any role
3. Same-status "transitions" are not transitions
4. admin may move any non-terminal order to any other status
5. Delivery: shipped|assigned -> delivered
6. Shipment: confirmed|assigned -> shipped
7. Employee: forward only along the graph; never returned/cancelled
8. Unknown roles are denied

Role names are matched exactly ("admin" is lower-case, the operational
roles are capitalized).
"""

from __future__ import annotations

ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_ASSIGNED = "assigned"
ORDER_STATUS_SHIPPED = "shipped"
ORDER_STATUS_DELIVERED = "delivered"
ORDER_STATUS_RETURNED = "returned"
ORDER_STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = frozenset({
    ORDER_STATUS_PENDING,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_ASSIGNED,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_RETURNED,
    ORDER_STATUS_CANCELLED,
})

TERMINAL_STATUSES = frozenset({
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_RETURNED,
    ORDER_STATUS_CANCELLED,
})

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "Employee"
ROLE_DELIVERY = "Delivery"
ROLE_SHIPMENT = "Shipment"

ROLES = frozenset({ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_DELIVERY, ROLE_SHIPMENT})

_DELIVERY_TRANSITIONS = frozenset({
    (ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED),
    (ORDER_STATUS_ASSIGNED, ORDER_STATUS_DELIVERED),
})

_SHIPMENT_TRANSITIONS = frozenset({
    (ORDER_STATUS_CONFIRMED, ORDER_STATUS_SHIPPED),
    (ORDER_STATUS_ASSIGNED, ORDER_STATUS_SHIPPED),
})

# Position along the forward path; returned/cancelled are off-path
_FORWARD_RANK = {
    ORDER_STATUS_PENDING: 0,
    ORDER_STATUS_CONFIRMED: 1,
    ORDER_STATUS_ASSIGNED: 2,
    ORDER_STATUS_SHIPPED: 3,
    ORDER_STATUS_DELIVERED: 4,
}

_FORWARD_GRAPH = {
    ORDER_STATUS_PENDING: frozenset({ORDER_STATUS_CONFIRMED}),
    ORDER_STATUS_CONFIRMED: frozenset({ORDER_STATUS_SHIPPED}),
    ORDER_STATUS_ASSIGNED: frozenset({ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED}),
    ORDER_STATUS_SHIPPED: frozenset({ORDER_STATUS_DELIVERED}),
}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def allowed(role: str, from_status: str, to_status: str) -> bool:
    """Return True when `role` may move an order from `from_status` to `to_status`."""
    if to_status == ORDER_STATUS_PENDING:
        return False
    if from_status in TERMINAL_STATUSES:
        return False
    if from_status == to_status:
        return False

    if role == ROLE_ADMIN:
        return to_status in ORDER_STATUSES
    if role == ROLE_DELIVERY:
        return (from_status, to_status) in _DELIVERY_TRANSITIONS
    if role == ROLE_SHIPMENT:
        return (from_status, to_status) in _SHIPMENT_TRANSITIONS
    if role == ROLE_EMPLOYEE:
        if to_status not in _FORWARD_RANK or from_status not in _FORWARD_RANK:
            return False
        return _FORWARD_RANK[to_status] > _FORWARD_RANK[from_status]
    return False


def allowed_targets(from_status: str) -> frozenset[str]:
    """
    Canonical next statuses from `from_status`, independent of role.

    Used for diagnostics in rejected-transition errors; terminal and unknown
    statuses have no targets.
    """
    return _FORWARD_GRAPH.get(from_status, frozenset())
