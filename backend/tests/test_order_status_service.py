# Overview: Pytest coverage for order status changes, the payment gate and assignment.

import pytest

from oms.errors import EmployeeNotFound, InvalidInput, InvalidTransition, OrderNotFound, PaymentRequired
from oms.models import Order, OrderStatusHistory, User
from oms.notifications import EVENT_ORDER_STATUS_UPDATED
from oms.services import assignment_service, order_status_service
from oms.services.history_service import EVENT_ASSIGNED, get_order_history


class TestAdminStatusChange:
    def test_payment_gate(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order()

        with pytest.raises(PaymentRequired):
            order_status_service.change_status(order.id, merchant.id, admin_user.id, "confirmed", bus=bus)

        db_session.expire_all()
        assert db_session.get(Order, order.id).status == "pending"
        assert db_session.query(OrderStatusHistory).count() == 0
        assert bus.events == []

    def test_ungated_target_needs_no_payment(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order()

        change = order_status_service.change_status(order.id, merchant.id, admin_user.id, "assigned", bus=bus)

        assert (change.old_status, change.new_status) == ("pending", "assigned")

    def test_paid_order_moves_and_is_audited(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order(status="confirmed", payment_status="paid")

        change = order_status_service.change_status(order.id, merchant.id, admin_user.id, "shipped", bus=bus)

        assert change.to_dict() == {"order_id": order.id, "old_status": "confirmed", "new_status": "shipped"}
        history = get_order_history(order.id)
        assert [(h.old_status, h.new_status, h.changed_by) for h in history] == [
            ("confirmed", "shipped", admin_user.id)
        ]
        payload = bus.payloads(EVENT_ORDER_STATUS_UPDATED)[0]
        assert payload["orderId"] == order.id
        assert payload["status"] == "shipped"

    def test_terminal_order_rejected_with_no_targets(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order(status="delivered", payment_status="paid")

        with pytest.raises(InvalidTransition) as excinfo:
            order_status_service.change_status(order.id, merchant.id, admin_user.id, "cancelled", bus=bus)

        assert excinfo.value.allowed == []
        assert excinfo.value.http_status == 409

    def test_unknown_status(self, db_session, merchant, admin_user, make_order, bus):
        order = make_order()

        with pytest.raises(InvalidInput):
            order_status_service.change_status(order.id, merchant.id, admin_user.id, "lost", bus=bus)

    def test_other_merchant_sees_not_found(self, db_session, merchant, other_merchant, admin_user, make_order, bus):
        order = make_order(status="confirmed", payment_status="paid")

        with pytest.raises(OrderNotFound):
            order_status_service.change_status(order.id, other_merchant.id, admin_user.id, "shipped", bus=bus)


class TestOperatorStatusChange:
    def test_employee_cannot_move_backwards(self, db_session, merchant, employee, make_order, bus):
        order = make_order(status="shipped", payment_status="paid", user_id=employee.id)

        with pytest.raises(InvalidTransition) as excinfo:
            order_status_service.change_status_as_operator(
                order.id, merchant.id, employee.id, "Employee", "confirmed", bus=bus
            )

        assert excinfo.value.allowed == ["delivered"]
        assert excinfo.value.to_dict()["allowed_transitions"] == ["delivered"]

    def test_delivery_delivers_assigned_order(self, db_session, merchant, delivery_user, make_order, bus):
        order = make_order(status="shipped", payment_status="paid", user_id=delivery_user.id)

        change = order_status_service.change_status_as_operator(
            order.id, merchant.id, delivery_user.id, "Delivery", "delivered", bus=bus
        )

        assert change.new_status == "delivered"

    def test_order_assigned_to_someone_else(self, db_session, merchant, employee, delivery_user, make_order, bus):
        order = make_order(status="shipped", payment_status="paid", user_id=employee.id)

        with pytest.raises(OrderNotFound):
            order_status_service.change_status_as_operator(
                order.id, merchant.id, delivery_user.id, "Delivery", "delivered", bus=bus
            )

    def test_operator_still_hits_payment_gate(self, db_session, merchant, delivery_user, make_order, bus):
        order = make_order(status="shipped", user_id=delivery_user.id)

        with pytest.raises(PaymentRequired):
            order_status_service.change_status_as_operator(
                order.id, merchant.id, delivery_user.id, "Delivery", "delivered", bus=bus
            )


class TestAssignment:
    def test_assign_keeps_status_and_records_event(self, db_session, merchant, admin_user, employee, make_order, cache):
        order = make_order(status="confirmed", payment_status="paid")
        cache.get_or_set(employee.id, "orders", lambda: ["stale"])

        assigned = assignment_service.assign_order(order.id, merchant.id, admin_user.id, employee.id, cache=cache)

        assert assigned.user_id == employee.id
        assert assigned.status == "confirmed"
        assert cache.cached_keys(employee.id) == set()

        # status-oriented views skip assignment rows
        assert get_order_history(order.id) == []
        rows = get_order_history(order.id, include_assignments=True)
        assert len(rows) == 1
        assert rows[0].event_type == EVENT_ASSIGNED
        assert rows[0].old_status == rows[0].new_status == "confirmed"
        assert rows[0].assigned_user_id == employee.id

    def test_inactive_employee(self, db_session, merchant, admin_user, make_order):
        order = make_order()
        inactive = User(merchant_id=merchant.id, username="gone", role="Employee", is_active=False)
        db_session.add(inactive)
        db_session.commit()

        with pytest.raises(EmployeeNotFound):
            assignment_service.assign_order(order.id, merchant.id, admin_user.id, inactive.id)

    def test_employee_of_other_merchant(self, db_session, merchant, other_merchant, admin_user, make_order):
        order = make_order()
        outsider = User(merchant_id=other_merchant.id, username="outsider", role="Employee")
        db_session.add(outsider)
        db_session.commit()

        with pytest.raises(EmployeeNotFound):
            assignment_service.assign_order(order.id, merchant.id, admin_user.id, outsider.id)

        db_session.expire_all()
        assert db_session.get(Order, order.id).user_id is None

    def test_unknown_order(self, db_session, merchant, admin_user, employee):
        with pytest.raises(OrderNotFound):
            assignment_service.assign_order(999, merchant.id, admin_user.id, employee.id)
