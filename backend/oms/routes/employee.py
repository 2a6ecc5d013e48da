# Overview: Flask API routes for operational staff working their assigned orders.

from flask import Blueprint, request, jsonify, g, current_app

from ..cache import get_view_cache
from ..decorators import require_actor, require_role
from ..errors import OrderDomainError
from ..notifications import get_notification_bus
from ..services import order_status_service
from ..services.transition_policy import ROLES
from ..validation import ChangeStatusCommand


employee_bp = Blueprint("employee", __name__, url_prefix="/api/employee")


@employee_bp.patch("/orders/<int:order_id>/status")
@require_actor
@require_role(*ROLES)
def change_assigned_order_status_route(order_id: int):
    """
    Status change on an order assigned to the acting user, evaluated for the
    actor's own role (Delivery, Shipment, Employee, admin).

    Request body: {"status": "delivered"}

    Returns:
        200: {old_status, new_status}
        404: Order not found or not assigned to the actor
        409: Transition not allowed for the role
    """
    try:
        command = ChangeStatusCommand.from_payload(request.get_json(silent=True))
        change = order_status_service.change_status_as_operator(
            order_id,
            g.merchant_id,
            g.actor_id,
            g.actor_role,
            command.status,
            bus=get_notification_bus(),
            cache=get_view_cache(),
        )
        return jsonify({"message": "Order status updated successfully", **change.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update assigned order status")
        return jsonify({"error": "Internal server error"}), 500
