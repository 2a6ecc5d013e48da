# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/oms/routes/orders.py
"""
Order API Routes

DESIGN:
- Placement consumes stock (pending / unpaid order)
- Status changes go through the admin transition policy + payment gate
- Settlement records payment, may reprice lines, issues/corrects the invoice
- Assignment hands the order to an employee without touching status

SECURITY:
- Tenant and actor come from @require_actor (gateway headers)
- Mutations require the admin role (placement also allows Employee)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..cache import get_view_cache
from ..decorators import require_actor, require_role
from ..errors import OrderDomainError
from ..notifications import get_notification_bus
from ..services import assignment_service, order_service, order_status_service, payment_service
from ..validation import AssignCommand, ChangeStatusCommand, PlaceOrderCommand, SettlePaymentCommand


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/")
@require_actor
@require_role("admin", "Employee")
def place_order_route():
    """
    Place an order (status: pending, payment: pending).

    Request body:
    {
        "customer_id": 7,
        "items": [{"product_id": 3, "quantity": 2, "unit_price": "40.00"}],
        "order_source": "Manual"  (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        409: Insufficient stock
    """
    try:
        command = PlaceOrderCommand.from_payload(request.get_json(silent=True))
        order = order_service.place_order(g.merchant_id, command)
        get_view_cache().invalidate_user(g.actor_id)
        return jsonify({
            "order": order.to_dict(),
            "items": [item.to_dict() for item in order.items],
        }), 201
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to place order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_actor
@require_role("admin")
def change_status_route(order_id: int):
    """
    Administrative status change.

    Request body: {"status": "shipped"}

    Returns:
        200: {old_status, new_status}
        400: Unknown status
        402: Order not paid
        404: Order not found
        409: Transition not allowed (includes allowed_transitions)
    """
    try:
        command = ChangeStatusCommand.from_payload(request.get_json(silent=True))
        change = order_status_service.change_status(
            order_id,
            g.merchant_id,
            g.actor_id,
            command.status,
            bus=get_notification_bus(),
            cache=get_view_cache(),
        )
        return jsonify({"message": "Order status updated successfully", **change.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/payment")
@require_actor
@require_role("admin")
def settle_payment_route(order_id: int):
    """
    Record a payment outcome.

    Request body:
    {
        "payment_status": "paid",
        "payment_method": "upi",      (optional, default: cash)
        "amount": "100.00",           (optional, default: order total)
        "new_unit_price": "50.00"     (optional, applied only when paid)
    }

    Returns:
        200: Settlement result (invoice outcome is a soft field)
    """
    try:
        command = SettlePaymentCommand.from_payload(request.get_json(silent=True))
        result = payment_service.settle_payment(
            order_id,
            g.merchant_id,
            g.actor_id,
            command,
            bus=get_notification_bus(),
            cache=get_view_cache(),
        )
        return jsonify({"message": "Payment status updated successfully", **result.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update payment status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/assign")
@require_actor
@require_role("admin")
def assign_order_route(order_id: int):
    """
    Assign an order to an employee.

    Request body: {"employee_id": 12}
    """
    try:
        command = AssignCommand.from_payload(request.get_json(silent=True))
        order = assignment_service.assign_order(
            order_id,
            g.merchant_id,
            g.actor_id,
            command.employee_id,
            cache=get_view_cache(),
        )
        return jsonify({"message": "Order assigned successfully", "order": order.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to assign order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/history")
@require_actor
def order_history_route(order_id: int):
    """
    Order audit trail (status changes; ?include_assignments=true adds
    ASSIGNED events). Cached per acting user until their next mutation.
    """
    include_assignments = request.args.get("include_assignments", "").lower() in {"1", "true", "yes"}
    cache_key = f"order-history:{g.merchant_id}:{order_id}:{int(include_assignments)}"
    try:
        history = get_view_cache().get_or_set(
            g.actor_id,
            cache_key,
            lambda: order_service.get_order_history_view(
                order_id, g.merchant_id, include_assignments=include_assignments
            ),
        )
        return jsonify({"order_id": order_id, "history": history}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load order history")
        return jsonify({"error": "Internal server error"}), 500
