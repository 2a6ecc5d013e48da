# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..cache import get_view_cache
from ..decorators import require_actor, require_role
from ..errors import OrderDomainError
from ..notifications import get_notification_bus
from ..services import invoice_service
from ..validation import CreateInvoiceCommand, InvoiceStatusCommand, UpdateInvoiceCommand


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("/")
@require_actor
@require_role("admin")
def create_invoice_route():
    """
    Manually issue an unpaid invoice for an order.

    Request body:
    {
        "order_id": 42,
        "due_date": "2026-11-30",     (optional, default: today + INVOICE_DUE_DAYS)
        "notes": "...",               (optional)
        "discount_amount": "10.00"    (optional)
    }

    Returns:
        201: Invoice with items
        404: Order or billing profile not found
        409: Invoice already exists for the order
    """
    try:
        command = CreateInvoiceCommand.from_payload(request.get_json(silent=True))
        issued = invoice_service.create_invoice(
            command.order_id,
            g.merchant_id,
            due_date=command.due_date,
            notes=command.notes,
            discount=command.discount,
            bus=get_notification_bus(),
        )
        get_view_cache().invalidate_user(g.actor_id)
        return jsonify({"message": "Invoice created successfully", "invoice": issued.to_dict()}), 201
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>/status")
@require_actor
@require_role("admin")
def update_invoice_status_route(invoice_id: int):
    """
    Request body: {"payment_status": "paid", "payment_method": "card"}
    """
    try:
        command = InvoiceStatusCommand.from_payload(request.get_json(silent=True))
        invoice = invoice_service.change_invoice_status(
            invoice_id,
            g.merchant_id,
            command.payment_status,
            command.payment_method,
            bus=get_notification_bus(),
        )
        get_view_cache().invalidate_user(g.actor_id)
        return jsonify({"message": "Invoice status updated successfully", "invoice": invoice.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update invoice status")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>")
@require_actor
@require_role("admin")
def update_invoice_route(invoice_id: int):
    """
    Edit due date, notes or discount. A new discount recomputes the total
    (subtotal + tax - discount).
    """
    try:
        command = UpdateInvoiceCommand.from_payload(request.get_json(silent=True))
        invoice = invoice_service.update_invoice_details(
            invoice_id,
            g.merchant_id,
            due_date=command.due_date,
            notes=command.notes,
            discount=command.discount,
        )
        get_view_cache().invalidate_user(g.actor_id)
        return jsonify({"message": "Invoice updated successfully", "invoice": invoice.to_dict()}), 200
    except OrderDomainError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500
