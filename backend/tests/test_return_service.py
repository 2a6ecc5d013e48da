# Overview: Pytest coverage for filing returns and return status updates.

"""
Return Service Tests

Status updates are validated in full before anything is written, and a
rejected approval always rejects receipt.
"""

from decimal import Decimal

import pytest

from oms.errors import IneligibleForReturn, InvalidInput, OrderNotFound, ReturnAlreadyExists, ReturnNotFound
from oms.models import Order, OrderReturn, OrderReturnItem, OrderStatusHistory, OutboxEvent
from oms.services import return_service
from oms.validation import FileReturnCommand, ReturnItemInput, ReturnStatusCommand


def _file(merchant, order, product, quantity=1, **kwargs):
    command = FileReturnCommand(
        order_id=order.id,
        items=(ReturnItemInput(product_id=product.id, quantity=quantity),),
        **kwargs,
    )
    return return_service.file_return(merchant.id, command)


class TestFileReturn:
    def test_file_return_closes_order(self, db_session, merchant, product, make_order):
        order = make_order(status="delivered", payment_status="paid")

        order_return = _file(merchant, order, product, quantity=2, reason="Damaged")

        assert order_return.approval_status == "pending"
        assert order_return.receipt_status == "pending"
        assert order_return.status == "pending"
        assert order_return.total_refund_amount == Decimal("80.00")

        items = db_session.query(OrderReturnItem).filter_by(return_id=order_return.id).all()
        assert len(items) == 1
        assert items[0].unit_price == Decimal("40.00")
        assert items[0].restocked_at is None

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "returned"
        history = db_session.query(OrderStatusHistory).filter_by(order_id=order.id).all()
        assert [(h.old_status, h.new_status) for h in history] == [("delivered", "returned")]

    def test_explicit_prices_are_kept(self, db_session, merchant, product, make_order):
        order = make_order(status="confirmed", payment_status="paid")
        command = FileReturnCommand(
            order_id=order.id,
            items=(ReturnItemInput(
                product_id=product.id, quantity=1,
                unit_price=Decimal("35.00"), total_amount=Decimal("30.00"),
            ),),
        )

        order_return = return_service.file_return(merchant.id, command)

        assert order_return.total_refund_amount == Decimal("30.00")

    def test_pending_order_is_ineligible(self, db_session, merchant, product, make_order):
        order = make_order()

        with pytest.raises(IneligibleForReturn):
            _file(merchant, order, product)

        assert db_session.query(OrderReturn).count() == 0

    def test_one_return_per_order(self, db_session, merchant, product, make_order):
        order = make_order(status="delivered", payment_status="paid")
        _file(merchant, order, product)

        # force the order back into an eligible status to reach the duplicate check
        db_session.expire_all()
        db_session.get(Order, order.id).status = "delivered"
        db_session.commit()

        with pytest.raises(ReturnAlreadyExists):
            _file(merchant, order, product)

        assert db_session.query(OrderReturn).filter_by(order_id=order.id).count() == 1

    def test_item_not_on_order(self, db_session, merchant, product, second_product, make_order):
        order = make_order(status="delivered", payment_status="paid")

        with pytest.raises(InvalidInput):
            _file(merchant, order, second_product)

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "delivered"
        assert db_session.query(OrderReturn).count() == 0

    def test_quantity_over_ordered(self, db_session, merchant, product, make_order):
        order = make_order(status="delivered", payment_status="paid")

        with pytest.raises(InvalidInput):
            _file(merchant, order, product, quantity=3)

        assert db_session.query(OrderReturnItem).count() == 0

    def test_customer_mismatch(self, db_session, merchant, product, out_of_state_customer, make_order):
        order = make_order(status="delivered", payment_status="paid")

        with pytest.raises(InvalidInput):
            _file(merchant, order, product, customer_id=out_of_state_customer.id)

    def test_other_merchant(self, db_session, merchant, other_merchant, product, make_order):
        order = make_order(status="delivered", payment_status="paid")

        with pytest.raises(OrderNotFound):
            _file(other_merchant, order, product)


class TestReturnStatus:
    @pytest.fixture
    def filed_return(self, db_session, merchant, product, make_order):
        order = make_order(status="delivered", payment_status="paid")
        return _file(merchant, order, product, quantity=2)

    def test_approve_without_restock(self, db_session, merchant, admin_user, filed_return, bus):
        update = return_service.update_return_status(
            filed_return.id, merchant.id, admin_user.id,
            ReturnStatusCommand(approval_status="approved"), bus=bus,
        )

        assert update.returns[0].approval_status == "approved"
        assert update.restock_triggered is False
        assert update.inventory_restocked is False
        assert db_session.query(OutboxEvent).count() == 0

    def test_rejection_forces_receipt_rejected(
        self, db_session, merchant, admin_user, product, filed_return, bus, stock_of
    ):
        before = stock_of(product)

        update = return_service.update_return_status(
            filed_return.id, merchant.id, admin_user.id,
            ReturnStatusCommand(approval_status="rejected", receipt_status="received"), bus=bus,
        )

        order_return = update.returns[0]
        assert order_return.approval_status == "rejected"
        assert order_return.receipt_status == "rejected"
        assert update.restock_triggered is False
        assert stock_of(product) == before

    def test_validation_failure_writes_nothing(
        self, db_session, merchant, admin_user, product, filed_return, bus, stock_of
    ):
        before = stock_of(product)

        with pytest.raises(InvalidInput):
            return_service.update_return_status(
                filed_return.id, merchant.id, admin_user.id,
                ReturnStatusCommand(approval_status="approved", receipt_status="lost"), bus=bus,
            )

        db_session.expire_all()
        order_return = db_session.get(OrderReturn, filed_return.id)
        assert order_return.approval_status == "pending"
        assert order_return.receipt_status == "pending"
        assert stock_of(product) == before
        assert bus.events == []

    def test_empty_command_rejected(self, db_session, merchant, admin_user, filed_return):
        with pytest.raises(InvalidInput):
            return_service.update_return_status(filed_return.id, merchant.id, admin_user.id, ReturnStatusCommand())

    def test_unknown_return(self, db_session, merchant, admin_user):
        with pytest.raises(ReturnNotFound):
            return_service.update_return_status(
                999, merchant.id, admin_user.id, ReturnStatusCommand(status="processed")
            )

    def test_bulk_update_is_all_or_nothing(self, db_session, merchant, admin_user, filed_return, bus):
        with pytest.raises(ReturnNotFound):
            return_service.bulk_update_return_status(
                [filed_return.id, 999], merchant.id, admin_user.id,
                ReturnStatusCommand(status="processed"), bus=bus,
            )

        db_session.expire_all()
        assert db_session.get(OrderReturn, filed_return.id).status == "pending"

    def test_bulk_update(self, db_session, merchant, admin_user, product, make_order, bus):
        first = _file(merchant, make_order(status="delivered", payment_status="paid"), product)
        second = _file(merchant, make_order(status="shipped", payment_status="paid"), product)

        update = return_service.bulk_update_return_status(
            [second.id, first.id, second.id], merchant.id, admin_user.id,
            ReturnStatusCommand(status="processed"), bus=bus,
        )

        assert sorted(r.id for r in update.returns) == sorted([first.id, second.id])
        assert all(r.status == "processed" for r in update.returns)
