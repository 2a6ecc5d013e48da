# Overview: Pytest coverage for invoice numbering, issuance and updates.

"""
Invoice Service Tests

Numbers come from the merchant's billing profile counter: the first invoice
is number 1 and every issuance advances the counter by exactly one.
"""

import threading
from datetime import date
from decimal import Decimal

import pytest

from oms.errors import BillingProfileMissing, InvalidInput, InvoiceAlreadyExists, InvoiceNotFound, OrderNotFound
from oms.extensions import db
from oms.models import Invoice, InvoiceItem, MerchantBillingProfile
from oms.notifications import EVENT_INVOICE_CREATED, EVENT_INVOICE_STATUS_UPDATED
from oms.services import invoice_service


class TestNumbering:
    def test_sequential_numbers_per_merchant(self, db_session, merchant, billing_profile, make_order, bus):
        first = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)
        second = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        assert first.invoice_number == 1
        assert second.invoice_number == 2
        assert first.display_number == "INV-1"
        assert second.display_number == "INV-2"

        db_session.expire_all()
        profile = db_session.query(MerchantBillingProfile).filter_by(merchant_id=merchant.id).one()
        assert profile.next_invoice_number == 3

    def test_counter_respects_configured_start(self, db_session, merchant, billing_profile, make_order, bus):
        billing_profile.next_invoice_number = 500
        billing_profile.invoice_prefix = "ACME/"
        db_session.commit()

        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        assert issued.invoice_number == 500
        assert issued.display_number == "ACME/500"

    def test_concurrent_issuance_yields_distinct_gapless_numbers(
        self, app, db_session, merchant, billing_profile, make_order, bus
    ):
        merchant_id = merchant.id
        order_ids = [make_order().id for _ in range(5)]
        numbers = []
        errors = []
        lock = threading.Lock()

        def worker(order_id):
            with app.app_context():
                try:
                    issued = invoice_service.create_invoice(order_id, merchant_id, bus=bus)
                    with lock:
                        numbers.append(issued.invoice_number)
                except Exception as exc:
                    with lock:
                        errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=worker, args=(order_id,)) for order_id in order_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(numbers) == [1, 2, 3, 4, 5]

        db_session.expire_all()
        profile = db_session.query(MerchantBillingProfile).filter_by(merchant_id=merchant_id).one()
        assert profile.next_invoice_number == 6
        assert sorted(i.invoice_number for i in db_session.query(Invoice).all()) == [1, 2, 3, 4, 5]

    def test_missing_billing_profile(self, db_session, merchant, make_order, bus):
        order = make_order()

        with pytest.raises(BillingProfileMissing):
            invoice_service.create_invoice(order.id, merchant.id, bus=bus)

        assert db_session.query(Invoice).count() == 0
        assert bus.events == []


class TestCreateInvoice:
    def test_intra_state_invoice(self, db_session, merchant, billing_profile, make_order, bus):
        order = make_order()  # 2 x 40.00, default 18%

        issued = invoice_service.create_invoice(order.id, merchant.id, notes="Thanks", bus=bus)
        invoice = issued.invoice

        assert invoice.subtotal == Decimal("80.00")
        assert invoice.cgst_amount == Decimal("7.20")
        assert invoice.sgst_amount == Decimal("7.20")
        assert invoice.igst_amount == Decimal("0.00")
        assert invoice.tax_amount == Decimal("14.40")
        assert invoice.total_amount == Decimal("94.40")
        assert invoice.payment_status == "unpaid"
        assert invoice.notes == "Thanks"
        assert invoice.due_date > invoice.invoice_date

        items = db_session.query(InvoiceItem).filter_by(invoice_id=invoice.id).all()
        assert len(items) == 1
        assert items[0].gst_rate == Decimal("18")
        assert items[0].hsn_code == "8471"

        assert bus.names() == [EVENT_INVOICE_CREATED]
        assert bus.payloads(EVENT_INVOICE_CREATED)[0]["displayNumber"] == "INV-1"

    def test_inter_state_invoice_uses_igst(
        self, db_session, merchant, billing_profile, out_of_state_customer, make_order, bus
    ):
        order = make_order(customer_id=out_of_state_customer.id)

        invoice = invoice_service.create_invoice(order.id, merchant.id, bus=bus).invoice

        assert invoice.cgst_amount == Decimal("0.00")
        assert invoice.sgst_amount == Decimal("0.00")
        assert invoice.igst_amount == Decimal("14.40")

    def test_product_rates_are_snapshotted_per_line(
        self, db_session, merchant, billing_profile, product, second_product, make_order, bus
    ):
        order = make_order([(product, 1, "100.00"), (second_product, 2, "50.00")])

        invoice = invoice_service.create_invoice(order.id, merchant.id, bus=bus).invoice

        # 100 @ 18% + 100 @ 12%
        assert invoice.subtotal == Decimal("200.00")
        assert invoice.tax_amount == Decimal("30.00")
        rates = sorted(item.gst_rate for item in invoice.items)
        assert rates == [Decimal("12"), Decimal("18")]

    def test_duplicate_invoice_rejected(self, db_session, merchant, billing_profile, make_order, bus):
        order = make_order()
        invoice_service.create_invoice(order.id, merchant.id, bus=bus)

        with pytest.raises(InvoiceAlreadyExists):
            invoice_service.create_invoice(order.id, merchant.id, bus=bus)

        assert db_session.query(Invoice).filter_by(order_id=order.id).count() == 1
        db_session.expire_all()
        assert db_session.query(MerchantBillingProfile).one().next_invoice_number == 2

    def test_other_merchant_order_not_found(
        self, db_session, merchant, other_merchant, billing_profile, make_order, bus
    ):
        order = make_order()

        with pytest.raises(OrderNotFound):
            invoice_service.create_invoice(order.id, other_merchant.id, bus=bus)


class TestUpdates:
    def test_discount_recomputes_total(self, db_session, merchant, billing_profile, make_order, bus):
        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        invoice = invoice_service.update_invoice_details(
            issued.invoice_id,
            merchant.id,
            discount=Decimal("4.40"),
            due_date=date(2030, 1, 31),
        )

        assert invoice.discount_amount == Decimal("4.40")
        assert invoice.total_amount == Decimal("90.00")
        assert invoice.tax_amount == Decimal("14.40")
        assert invoice.due_date == date(2030, 1, 31)

    def test_update_requires_a_field(self, db_session, merchant, billing_profile, make_order, bus):
        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        with pytest.raises(InvalidInput):
            invoice_service.update_invoice_details(issued.invoice_id, merchant.id)

    def test_negative_discount_rejected(self, db_session, merchant, billing_profile, make_order, bus):
        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        with pytest.raises(InvalidInput):
            invoice_service.update_invoice_details(issued.invoice_id, merchant.id, discount="-1")

    def test_change_status(self, db_session, merchant, billing_profile, make_order, bus):
        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        invoice = invoice_service.change_invoice_status(
            issued.invoice_id, merchant.id, "paid", "card", bus=bus
        )

        assert invoice.payment_status == "paid"
        assert invoice.payment_method == "card"
        assert bus.names() == [EVENT_INVOICE_CREATED, EVENT_INVOICE_STATUS_UPDATED]

    def test_change_status_validates_enums(self, db_session, merchant, billing_profile, make_order, bus):
        issued = invoice_service.create_invoice(make_order().id, merchant.id, bus=bus)

        with pytest.raises(InvalidInput):
            invoice_service.change_invoice_status(issued.invoice_id, merchant.id, "settled", bus=bus)
        with pytest.raises(InvalidInput):
            invoice_service.change_invoice_status(issued.invoice_id, merchant.id, None, "cheque", bus=bus)

    def test_unknown_invoice(self, db_session, merchant):
        with pytest.raises(InvoiceNotFound):
            invoice_service.change_invoice_status(999, merchant.id, "paid")
