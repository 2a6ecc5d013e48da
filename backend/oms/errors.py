# Overview: Domain error taxonomy shared by services and routes.

"""
Order domain errors.

Every error the lifecycle engine raises on purpose derives from
OrderDomainError and carries the HTTP status the route layer maps it to.
Anything that is NOT an OrderDomainError is treated as an internal failure
(logged, generic 500, no internals leaked).
"""

from __future__ import annotations


class OrderDomainError(ValueError):
    """Base class for expected, user-facing business errors."""

    http_status = 400

    def to_dict(self) -> dict:
        return {"error": str(self)}


# =============================================================================
# NOT FOUND (absent or not owned by the merchant)
# =============================================================================

class NotFound(OrderDomainError):
    http_status = 404


class OrderNotFound(NotFound):
    def __init__(self, order_id: int | None = None):
        super().__init__("Order not found" if order_id is None else f"Order {order_id} not found")


class ReturnNotFound(NotFound):
    def __init__(self, return_id: int | None = None):
        super().__init__("Return not found" if return_id is None else f"Return {return_id} not found")


class InvoiceNotFound(NotFound):
    def __init__(self, invoice_id: int | None = None):
        super().__init__("Invoice not found" if invoice_id is None else f"Invoice {invoice_id} not found")


class EmployeeNotFound(NotFound):
    def __init__(self, employee_id: int):
        super().__init__(f"Employee {employee_id} not found or inactive")


class BillingProfileMissing(NotFound):
    def __init__(self, merchant_id: int):
        super().__init__(
            f"Merchant {merchant_id} billing details not found. Please set up billing details first."
        )


# =============================================================================
# INPUT / POLICY
# =============================================================================

class InvalidInput(OrderDomainError):
    """Unrecognized enum value or malformed payload."""

    http_status = 400


class InvalidTransition(OrderDomainError):
    """A status change rejected by the transition policy."""

    http_status = 409

    def __init__(self, message: str, allowed: set[str] | frozenset[str] | None = None):
        super().__init__(message)
        self.allowed = sorted(allowed or ())

    def to_dict(self) -> dict:
        return {"error": str(self), "allowed_transitions": self.allowed}


class PaymentRequired(OrderDomainError):
    http_status = 402


class IneligibleForReturn(OrderDomainError):
    http_status = 409


class InsufficientStock(OrderDomainError):
    http_status = 409


# =============================================================================
# DUPLICATES
# =============================================================================

class AlreadyExists(OrderDomainError):
    http_status = 409


class ReturnAlreadyExists(AlreadyExists):
    def __init__(self, order_id: int):
        super().__init__(f"Return request already exists for order {order_id}")


class InvoiceAlreadyExists(AlreadyExists):
    def __init__(self, order_id: int):
        super().__init__(f"Invoice already exists for order {order_id}")
