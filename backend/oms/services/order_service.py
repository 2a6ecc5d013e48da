# Overview: Service-layer operations for order placement and order reads.

"""
Order placement.

Stock is consumed with one guarded UPDATE per line:

    UPDATE inventory SET quantity_available = quantity_available - :qty
    WHERE merchant_id = :m AND product_id = :p AND quantity_available >= :qty

Zero rows updated means not enough stock; the whole order rolls back, so
on-hand quantity never goes below zero.
"""

from __future__ import annotations

import logging

from sqlalchemy import update

from ..errors import InsufficientStock, InvalidInput, OrderNotFound
from ..extensions import db
from ..models import Customer, Inventory, Order, OrderItem, Product
from ..money import ZERO, quantize
from ..validation import PlaceOrderCommand
from .concurrency import apply_statement_timeout, run_with_retry
from .constants import PAYMENT_STATUS_PENDING
from .history_service import get_order_history
from .transition_policy import ORDER_STATUS_PENDING

logger = logging.getLogger(__name__)


def _consume_stock(merchant_id: int, product: Product, quantity: int) -> int:
    """Decrement on-hand stock; returns the inventory row id."""
    result = db.session.execute(
        update(Inventory)
        .where(
            Inventory.merchant_id == merchant_id,
            Inventory.product_id == product.id,
            Inventory.quantity_available >= quantity,
        )
        .values(quantity_available=Inventory.quantity_available - quantity)
    )
    if not result.rowcount:
        raise InsufficientStock(f"Insufficient stock for {product.sku}: requested {quantity}")

    return (
        db.session.query(Inventory.id)
        .filter_by(merchant_id=merchant_id, product_id=product.id)
        .scalar()
    )


def place_order(merchant_id: int, command: PlaceOrderCommand) -> Order:
    """
    Create a pending order and consume its stock.

    Raises:
        InvalidInput: Unknown customer/product, missing price, empty order
        InsufficientStock: Any line exceeds on-hand quantity
    """
    if not command.items:
        raise InvalidInput("Order must contain at least one item")

    def _op() -> Order:
        apply_statement_timeout()
        customer = db.session.query(Customer).filter_by(id=command.customer_id, merchant_id=merchant_id).first()
        if not customer:
            raise InvalidInput(f"Customer {command.customer_id} not found")

        order = Order(
            merchant_id=merchant_id,
            customer_id=customer.id,
            status=ORDER_STATUS_PENDING,
            payment_status=PAYMENT_STATUS_PENDING,
            order_source=command.order_source,
            total_amount=ZERO,
        )
        db.session.add(order)
        db.session.flush()

        total = ZERO
        for line in command.items:
            product = (
                db.session.query(Product)
                .filter_by(id=line.product_id, merchant_id=merchant_id, is_active=True)
                .first()
            )
            if not product:
                raise InvalidInput(f"Product {line.product_id} not found")

            unit_price = line.unit_price if line.unit_price is not None else product.unit_price
            if unit_price is None:
                raise InvalidInput(f"Product {product.sku} has no price; unit_price is required")
            unit_price = quantize(unit_price)

            inventory_id = _consume_stock(merchant_id, product, line.quantity)
            line_total = quantize(unit_price * line.quantity)
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                inventory_id=inventory_id,
                sku=product.sku,
                quantity=line.quantity,
                price_per_unit=unit_price,
                total_price=line_total,
            ))
            total += line_total

        order.total_amount = total
        db.session.commit()
        return order

    try:
        order = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info("Placed order %s for merchant %s (total %s)", order.id, merchant_id, order.total_amount)
    return order


def get_order(order_id: int, merchant_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, merchant_id=merchant_id).first()
    if not order:
        raise OrderNotFound(order_id)
    return order


def get_order_history_view(order_id: int, merchant_id: int, *, include_assignments: bool = False) -> list[dict]:
    order = get_order(order_id, merchant_id)
    return [entry.to_dict() for entry in get_order_history(order.id, include_assignments=include_assignments)]
