# Overview: Flask API routes for returns operations; parses input and returns JSON responses.

# backend/oms/routes/returns.py
"""
Return API Routes

DESIGN:
- Filing a return closes the order as "returned"
- Approval / receipt / processing status move independently
- Receiving goods (receipt_status received|inspected) restocks inventory
  AFTER the status change is committed; a restock failure is reported in
  the response (restock_error) but never undoes the status change
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..cache import get_view_cache
from ..decorators import require_actor, require_role
from ..errors import OrderDomainError
from ..notifications import get_notification_bus
from ..services import return_service
from ..validation import FileReturnCommand, ReturnStatusCommand, coerce_id_list


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("/")
@require_actor
@require_role("admin", "Employee")
def file_return_route():
    """
    File a return for an order.

    Request body:
    {
        "order_id": 42,
        "reason": "Damaged in transit",
        "items": [{"product_id": 3, "quantity": 1, "unit_price": "40.00", "total_amount": "40.00"}]
    }

    Returns:
        201: Return with items
        404: Order not found
        409: Order not eligible, or return already exists
    """
    try:
        command = FileReturnCommand.from_payload(request.get_json(silent=True))
        order_return = return_service.file_return(g.merchant_id, command, actor_id=g.actor_id)
        get_view_cache().invalidate_user(g.actor_id)
        return jsonify({
            "message": "Return request created successfully",
            "return": order_return.to_dict(include_items=True),
        }), 201
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
@require_actor
@require_role("admin", "Employee")
def get_return_route(return_id: int):
    """
    Returns:
        200: Return with items
        404: Return not found (or owned by another merchant)
    """
    try:
        order_return = return_service.get_return(return_id, g.merchant_id)
        return jsonify({"return": order_return.to_dict(include_items=True)}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to load return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.patch("/<int:return_id>/status")
@require_actor
@require_role("admin")
def update_return_status_route(return_id: int):
    """
    Request body (any subset, at least one):
    {
        "approval_status": "approved",
        "receipt_status": "received",
        "status": "processed"
    }
    """
    try:
        command = ReturnStatusCommand.from_payload(request.get_json(silent=True))
        update = return_service.update_return_status(
            return_id,
            g.merchant_id,
            g.actor_id,
            command,
            bus=get_notification_bus(),
            cache=get_view_cache(),
        )
        return jsonify({
            "message": "Return status updated successfully",
            "return": update.returns[0].to_dict(),
            "inventory_restocked": update.inventory_restocked,
            "restock_error": update.restock_error,
        }), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update return status")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.patch("/bulk-status")
@require_actor
@require_role("admin")
def bulk_update_return_status_route():
    """
    Request body:
    {
        "return_ids": [1, 2, 3],
        "receipt_status": "received"
    }

    All-or-nothing: any unknown return id fails the whole request.
    """
    try:
        data = request.get_json(silent=True) or {}
        return_ids = coerce_id_list("return_ids", data.get("return_ids") if isinstance(data, dict) else None)
        command = ReturnStatusCommand.from_payload(data)
        update = return_service.bulk_update_return_status(
            return_ids,
            g.merchant_id,
            g.actor_id,
            command,
            bus=get_notification_bus(),
            cache=get_view_cache(),
        )
        return jsonify({
            "message": f"Updated {len(update.returns)} return(s)",
            "updated_ids": [r.id for r in update.returns],
            "inventory_restocked": update.inventory_restocked,
            "restock_error": update.restock_error,
        }), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to bulk update return status")
        return jsonify({"error": "Internal server error"}), 500
