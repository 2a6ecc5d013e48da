# Overview: Enumerations shared by the order, payment, invoice and return services.

# =============================================================================
# ORDER PAYMENT
# =============================================================================

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_FAILED = "failed"
PAYMENT_STATUS_REFUNDED = "refunded"

ORDER_PAYMENT_STATUSES = frozenset({
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_REFUNDED,
})

PAYMENT_METHOD_CASH = "cash"

PAYMENT_METHODS = frozenset({
    PAYMENT_METHOD_CASH,
    "card",
    "upi",
    "net_banking",
    "wallet",
})

# =============================================================================
# INVOICE PAYMENT
# =============================================================================

INVOICE_STATUS_UNPAID = "unpaid"
INVOICE_STATUS_PAID = "paid"
INVOICE_STATUS_PARTIALLY_PAID = "partially_paid"
INVOICE_STATUS_CANCELLED = "cancelled"

INVOICE_PAYMENT_STATUSES = frozenset({
    INVOICE_STATUS_UNPAID,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PARTIALLY_PAID,
    INVOICE_STATUS_CANCELLED,
})

# =============================================================================
# RETURNS
# =============================================================================

APPROVAL_STATUSES = frozenset({"pending", "approved", "rejected"})
RECEIPT_STATUSES = frozenset({"pending", "received", "inspected", "rejected"})
RETURN_STATUSES = frozenset({"pending", "processed"})

# receipt_status values that put returned goods back on the shelf
RESTOCKABLE_RECEIPT_STATUSES = frozenset({"received", "inspected"})

# =============================================================================
# OUTBOX
# =============================================================================

OUTBOX_PENDING = "PENDING"
OUTBOX_PROCESSING = "PROCESSING"
OUTBOX_DONE = "DONE"
OUTBOX_FAILED = "FAILED"

OUTBOX_EVENT_RETURN_RESTOCK = "return.restock"
