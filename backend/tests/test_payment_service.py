# Overview: Pytest coverage for payment settlement (repricing, status, invoice).

"""
Payment Settlement Tests

Covers:
- Repricing on "paid" with a new unit price
- Auto-confirmation and the at-most-one-invoice rule
- Soft invoice failure (settlement still commits)
- Terminal/cancelled orders and the paid -> pending guard
"""

from decimal import Decimal

import pytest

from oms.errors import InvalidInput, InvalidTransition, OrderNotFound
from oms.models import Invoice, Order, OrderItem, OrderPayment, OrderStatusHistory
from oms.notifications import EVENT_INVOICE_CREATED, EVENT_INVOICE_STATUS_UPDATED, EVENT_ORDER_STATUS_UPDATED
from oms.services import payment_service
from oms.validation import SettlePaymentCommand


def _settle(order, merchant, actor, bus, **kwargs):
    kwargs.setdefault("status", "paid")
    return payment_service.settle_payment(
        order.id, merchant.id, actor.id, SettlePaymentCommand(**kwargs), bus=bus
    )


class TestSettlePaid:
    def test_reprice_confirm_and_invoice(self, db_session, merchant, billing_profile, admin_user, make_order, bus):
        order = make_order()  # 2 x 40.00

        result = _settle(order, merchant, admin_user, bus, payment_method="upi", new_unit_price=Decimal("50"))

        assert result.original_total_amount == Decimal("80.00")
        assert result.new_total_amount == Decimal("100.00")
        assert result.price_changed is True
        assert result.old_order_status == "pending"
        assert result.new_order_status == "confirmed"
        assert result.invoice_outcome == "created"
        assert result.invoice_number == 1
        assert result.invoice_total == Decimal("118.00")

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.total_amount == Decimal("100.00")
        assert order.status == "confirmed"
        assert order.payment_status == "paid"
        assert order.payment_method == "upi"

        item = db_session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.price_per_unit == Decimal("50.00")
        assert item.total_price == Decimal("100.00")

        payment = db_session.query(OrderPayment).filter_by(order_id=order.id).one()
        assert payment.amount == Decimal("100.00")

        invoices = db_session.query(Invoice).filter_by(order_id=order.id).all()
        assert len(invoices) == 1
        assert invoices[0].payment_status == "paid"
        assert invoices[0].notes == payment_service.AUTO_INVOICE_NOTES

        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert [(h.old_status, h.new_status) for h in history] == [("pending", "confirmed")]

        assert bus.names() == [EVENT_ORDER_STATUS_UPDATED, EVENT_INVOICE_CREATED]
        assert bus.payloads(EVENT_ORDER_STATUS_UPDATED)[0]["newTotalAmount"] == "100.00"

    def test_second_settlement_updates_existing_invoice(
        self, db_session, merchant, billing_profile, admin_user, make_order, bus
    ):
        order = make_order()
        _settle(order, merchant, admin_user, bus)

        result = _settle(order, merchant, admin_user, bus, payment_method="card")

        assert result.invoice_outcome == "already_existed"
        assert result.invoice_number == 1
        assert db_session.query(Invoice).filter_by(order_id=order.id).count() == 1
        db_session.expire_all()
        assert db_session.query(Invoice).one().payment_method == "card"
        assert db_session.query(OrderPayment).filter_by(order_id=order.id).count() == 1
        # already confirmed: no second history row
        assert db_session.query(OrderStatusHistory).filter_by(order_id=order.id).count() == 1
        assert bus.names()[-1] == EVENT_INVOICE_STATUS_UPDATED

    def test_invoice_failure_is_soft(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order()  # no billing profile

        result = _settle(order, merchant, admin_user, bus)

        assert result.invoice_outcome == "failed"
        assert "billing" in result.invoice_error.lower()
        assert result.invoice_id is None

        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.payment_status == "paid"
        assert order.status == "confirmed"
        assert db_session.query(Invoice).count() == 0
        assert bus.names() == [EVENT_ORDER_STATUS_UPDATED]

    def test_cancelled_order_stays_cancelled(self, db_session, merchant, billing_profile, admin_user, make_order, bus):
        order = make_order(status="cancelled")

        result = _settle(order, merchant, admin_user, bus)

        assert result.new_order_status == "cancelled"
        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "cancelled"
        assert db_session.query(OrderStatusHistory).filter_by(order_id=order.id).count() == 0

    def test_new_unit_price_ignored_unless_paid(self, db_session, merchant, billing_profile, admin_user, make_order, bus):
        order = make_order()

        result = _settle(order, merchant, admin_user, bus, status="failed", new_unit_price=Decimal("10"))

        assert result.price_changed is False
        assert result.invoice_outcome == "not_applicable"
        db_session.expire_all()
        order = db_session.get(Order, order.id)
        assert order.total_amount == Decimal("80.00")
        assert order.status == "pending"
        assert order.payment_status == "failed"


class TestSettleRejections:
    def test_paid_to_pending_rejected(self, db_session, merchant, billing_profile, admin_user, make_order, bus):
        order = make_order()
        _settle(order, merchant, admin_user, bus)

        with pytest.raises(InvalidTransition):
            _settle(order, merchant, admin_user, bus, status="pending")

        db_session.expire_all()
        assert db_session.get(Order, order.id).payment_status == "paid"

    def test_unknown_status_and_method(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order()

        with pytest.raises(InvalidInput):
            _settle(order, merchant, admin_user, bus, status="settled")
        with pytest.raises(InvalidInput):
            _settle(order, merchant, admin_user, bus, payment_method="cheque")

        assert db_session.query(OrderPayment).count() == 0

    def test_other_merchant(self, db_session, merchant, other_merchant, admin_user, make_order, bus):
        order = make_order()

        with pytest.raises(OrderNotFound):
            payment_service.settle_payment(
                order.id, other_merchant.id, admin_user.id, SettlePaymentCommand(status="paid"), bus=bus
            )


def test_settle_command_from_payload():
    command = SettlePaymentCommand.from_payload({
        "payment_status": "paid",
        "payment_method": "wallet",
        "amount": "99.999",
        "new_unit_price": 50,
    })
    assert command.status == "paid"
    assert command.amount == Decimal("100.00")
    assert command.new_unit_price == Decimal("50.00")

    with pytest.raises(InvalidInput):
        SettlePaymentCommand.from_payload({"payment_method": "cash"})
    with pytest.raises(InvalidInput):
        SettlePaymentCommand.from_payload({"payment_status": "paid", "new_unit_price": 0})
