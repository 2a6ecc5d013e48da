"""
Pytest fixtures for the order lifecycle backend tests.

Provides a file-backed SQLite database (post-commit work runs on its own
connection, so an in-memory database is not enough), table wiping between
tests, a recording notification bus and merchant/catalog/order factories.
"""

from decimal import Decimal

import pytest

from oms import create_app
from oms.cache import get_view_cache
from oms.extensions import db
from oms.models import Customer, Inventory, Merchant, MerchantBillingProfile, Product, User
from oms.services import order_service
from oms.validation import OrderLineInput, PlaceOrderCommand


class RecordingNotificationBus:
    """NotificationBus that keeps every published (event, payload) pair."""

    def __init__(self):
        self.events = []

    def publish(self, event, payload):
        self.events.append((event, payload))

    def names(self):
        return [event for event, _ in self.events]

    def payloads(self, event):
        return [payload for name, payload in self.events if name == event]


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    db_path = tmp_path_factory.mktemp("db") / "oms-test.sqlite3"
    app = create_app(
        TESTING=True,
        SQLALCHEMY_DATABASE_URI=f"sqlite:///{db_path}",
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Empty every table before each test."""
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    get_view_cache().clear()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def bus():
    return RecordingNotificationBus()


@pytest.fixture(scope='function')
def cache(app):
    return get_view_cache()


# =============================================================================
# TENANCY
# =============================================================================

@pytest.fixture(scope='function')
def merchant(db_session):
    merchant = Merchant(name="Acme Traders")
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def other_merchant(db_session):
    merchant = Merchant(name="Beta Supplies")
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def billing_profile(db_session, merchant):
    profile = MerchantBillingProfile(
        merchant_id=merchant.id,
        legal_name="Acme Traders Pvt Ltd",
        gstin="27ABCDE1234F1Z5",
        state_code="27",
        invoice_prefix="INV-",
        next_invoice_number=1,
    )
    db_session.add(profile)
    db_session.commit()
    return profile


def _user(db_session, merchant, username, role, is_active=True):
    user = User(merchant_id=merchant.id, username=username, role=role, is_active=is_active)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session, merchant):
    return _user(db_session, merchant, "admin", "admin")


@pytest.fixture(scope='function')
def employee(db_session, merchant):
    return _user(db_session, merchant, "emp", "Employee")


@pytest.fixture(scope='function')
def delivery_user(db_session, merchant):
    return _user(db_session, merchant, "courier", "Delivery")


# =============================================================================
# CATALOG
# =============================================================================

@pytest.fixture(scope='function')
def customer(db_session, merchant):
    customer = Customer(merchant_id=merchant.id, name="Asha Rao", email="asha@example.com", state_code="27")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def out_of_state_customer(db_session, merchant):
    customer = Customer(merchant_id=merchant.id, name="Vikram Das", email="vikram@example.com", state_code="29")
    db_session.add(customer)
    db_session.commit()
    return customer


def _product(db_session, merchant, sku, name, price, quantity, gst_rate=None):
    product = Product(
        merchant_id=merchant.id,
        sku=sku,
        name=name,
        unit_price=Decimal(price),
        hsn_code="8471",
        gst_rate=gst_rate,
    )
    db_session.add(product)
    db_session.flush()
    db_session.add(Inventory(merchant_id=merchant.id, product_id=product.id, quantity_available=quantity))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product(db_session, merchant):
    """Product with 100 units on hand and no explicit GST rate (default 18%)."""
    return _product(db_session, merchant, "SKU-001", "Widget", "40.00", 100)


@pytest.fixture(scope='function')
def second_product(db_session, merchant):
    return _product(db_session, merchant, "SKU-002", "Gadget", "25.00", 50, gst_rate=Decimal("12"))


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read a product's on-hand quantity straight from the database."""
    def _stock(product):
        db_session.expire_all()
        return (
            db_session.query(Inventory.quantity_available)
            .filter_by(merchant_id=product.merchant_id, product_id=product.id)
            .scalar()
        )

    return _stock


# =============================================================================
# ORDERS
# =============================================================================

@pytest.fixture(scope='function')
def make_order(db_session, merchant, customer, product):
    """
    Factory: place an order through order_service, then optionally force
    its status/payment_status/assignee directly.
    """
    def _make(
        lines=None,
        *,
        status=None,
        payment_status=None,
        user_id=None,
        customer_id=None,
    ):
        lines = lines or [(product, 2, "40.00")]
        command = PlaceOrderCommand(
            customer_id=customer_id or customer.id,
            items=tuple(
                OrderLineInput(product_id=p.id, quantity=qty, unit_price=Decimal(price))
                for p, qty, price in lines
            ),
        )
        order = order_service.place_order(merchant.id, command)
        if status is not None:
            order.status = status
        if payment_status is not None:
            order.payment_status = payment_status
        if user_id is not None:
            order.user_id = user_id
        db_session.commit()
        return order

    return _make
