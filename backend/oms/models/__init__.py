from .tenancy import Merchant, MerchantBillingProfile, User
from .customers import Customer
from .inventory import Product, Inventory
from .orders import Order, OrderItem, OrderPayment, OrderStatusHistory
from .invoices import Invoice, InvoiceItem
from .returns import OrderReturn, OrderReturnItem
from .outbox import OutboxEvent

__all__ = [
    'Merchant', 'MerchantBillingProfile', 'User',
    'Customer',
    'Product', 'Inventory',
    'Order', 'OrderItem', 'OrderPayment', 'OrderStatusHistory',
    'Invoice', 'InvoiceItem',
    'OrderReturn', 'OrderReturnItem',
    'OutboxEvent',
]
