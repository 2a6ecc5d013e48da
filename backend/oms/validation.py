"""
Request payload coercion.

Routes turn JSON bodies into frozen command dataclasses here, so services
only ever see typed values. Coercion problems raise InvalidInput (400).
Enum membership is checked by the services themselves, because commands can
also be built directly in code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import InvalidInput
from .money import MAX_AMOUNT, quantize
from .time_utils import parse_iso_date


def _require_object(payload: Any) -> dict:
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InvalidInput("Request body must be a JSON object")
    return payload


def coerce_int(name: str, value: Any, *, required: bool = True, positive: bool = True) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidInput(f"{name} is required")
        return None

    # bool is a subclass of int
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15") and decimals (e.g., "12.5")
        if "e" in stripped.lower() or "." in stripped:
            raise InvalidInput(f"{name} must be a plain integer")
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidInput(f"{name} must be an integer")
    elif isinstance(value, float):
        raise InvalidInput(f"{name} must be an integer, not a decimal")
    else:
        raise InvalidInput(f"{name} must be an integer")

    if positive and result <= 0:
        raise InvalidInput(f"{name} must be positive")
    return result


def coerce_amount(name: str, value: Any, *, required: bool = False, allow_zero: bool = True) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidInput(f"{name} is required")
        return None
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        amount = quantize(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number")
    if not amount.is_finite():
        raise InvalidInput(f"{name} must be a number")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidInput(f"{name} must be {'non-negative' if allow_zero else 'positive'}")
    if amount > MAX_AMOUNT:
        raise InvalidInput(f"{name} exceeds maximum allowed ({MAX_AMOUNT})")
    return amount


def coerce_str(name: str, value: Any, *, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise InvalidInput(f"{name} is required")
        return None
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be a string")
    stripped = value.strip()
    if not stripped:
        if required:
            raise InvalidInput(f"{name} is required")
        return None
    return stripped


def coerce_date(name: str, value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidInput(f"{name} must be an ISO-8601 date")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise InvalidInput(f"{name} must be an ISO-8601 date")


def coerce_id_list(name: str, value: Any) -> list[int]:
    if not isinstance(value, list) or not value:
        raise InvalidInput(f"{name} must be a non-empty array")
    ids = [coerce_int(name, v) for v in value]
    # de-dupe, keep order
    return list(dict.fromkeys(ids))


# =============================================================================
# COMMANDS
# =============================================================================

@dataclass(frozen=True)
class SettlePaymentCommand:
    status: str
    payment_method: str | None = None
    amount: Decimal | None = None
    new_unit_price: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SettlePaymentCommand":
        data = _require_object(payload)
        return cls(
            status=coerce_str("payment_status", data.get("payment_status"), required=True),
            payment_method=coerce_str("payment_method", data.get("payment_method")),
            amount=coerce_amount("amount", data.get("amount")),
            new_unit_price=coerce_amount("new_unit_price", data.get("new_unit_price"), allow_zero=False),
        )


@dataclass(frozen=True)
class ChangeStatusCommand:
    status: str

    @classmethod
    def from_payload(cls, payload: Any) -> "ChangeStatusCommand":
        data = _require_object(payload)
        return cls(status=coerce_str("status", data.get("status"), required=True))


@dataclass(frozen=True)
class AssignCommand:
    employee_id: int

    @classmethod
    def from_payload(cls, payload: Any) -> "AssignCommand":
        data = _require_object(payload)
        return cls(employee_id=coerce_int("employee_id", data.get("employee_id")))


@dataclass(frozen=True)
class ReturnItemInput:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None
    total_amount: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReturnItemInput":
        if not isinstance(payload, dict):
            raise InvalidInput("Each return item must be an object")
        return cls(
            product_id=coerce_int("product_id", payload.get("product_id")),
            quantity=coerce_int("quantity", payload.get("quantity")),
            unit_price=coerce_amount("unit_price", payload.get("unit_price")),
            total_amount=coerce_amount("total_amount", payload.get("total_amount")),
        )


@dataclass(frozen=True)
class FileReturnCommand:
    order_id: int
    items: tuple[ReturnItemInput, ...]
    reason: str | None = None
    customer_id: int | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "FileReturnCommand":
        data = _require_object(payload)
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise InvalidInput("items must be a non-empty array")
        return cls(
            order_id=coerce_int("order_id", data.get("order_id")),
            customer_id=coerce_int("customer_id", data.get("customer_id"), required=False),
            reason=coerce_str("reason", data.get("reason")),
            items=tuple(ReturnItemInput.from_payload(item) for item in raw_items),
        )


@dataclass(frozen=True)
class ReturnStatusCommand:
    approval_status: str | None = None
    receipt_status: str | None = None
    status: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ReturnStatusCommand":
        data = _require_object(payload)
        return cls(
            approval_status=coerce_str("approval_status", data.get("approval_status")),
            receipt_status=coerce_str("receipt_status", data.get("receipt_status")),
            status=coerce_str("status", data.get("status")),
        )

    def is_empty(self) -> bool:
        return self.approval_status is None and self.receipt_status is None and self.status is None


@dataclass(frozen=True)
class CreateInvoiceCommand:
    order_id: int
    due_date: date | None = None
    notes: str | None = None
    discount: Decimal = Decimal("0.00")

    @classmethod
    def from_payload(cls, payload: Any) -> "CreateInvoiceCommand":
        data = _require_object(payload)
        return cls(
            order_id=coerce_int("order_id", data.get("order_id")),
            due_date=coerce_date("due_date", data.get("due_date")),
            notes=coerce_str("notes", data.get("notes")),
            discount=coerce_amount("discount_amount", data.get("discount_amount")) or Decimal("0.00"),
        )


@dataclass(frozen=True)
class UpdateInvoiceCommand:
    due_date: date | None = None
    notes: str | None = None
    discount: Decimal | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "UpdateInvoiceCommand":
        data = _require_object(payload)
        return cls(
            due_date=coerce_date("due_date", data.get("due_date")),
            notes=coerce_str("notes", data.get("notes")),
            discount=coerce_amount("discount_amount", data.get("discount_amount")),
        )


@dataclass(frozen=True)
class InvoiceStatusCommand:
    payment_status: str | None = None
    payment_method: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "InvoiceStatusCommand":
        data = _require_object(payload)
        return cls(
            payment_status=coerce_str("payment_status", data.get("payment_status")),
            payment_method=coerce_str("payment_method", data.get("payment_method")),
        )


@dataclass(frozen=True)
class OrderLineInput:
    product_id: int
    quantity: int
    unit_price: Decimal | None = None


@dataclass(frozen=True)
class PlaceOrderCommand:
    customer_id: int
    items: tuple[OrderLineInput, ...] = field(default_factory=tuple)
    order_source: str = "Manual"

    @classmethod
    def from_payload(cls, payload: Any) -> "PlaceOrderCommand":
        data = _require_object(payload)
        raw_items = data.get("items")
        if not isinstance(raw_items, list) or not raw_items:
            raise InvalidInput("items must be a non-empty array")

        items = []
        for raw in raw_items:
            if not isinstance(raw, dict):
                raise InvalidInput("Each order item must be an object")
            items.append(OrderLineInput(
                product_id=coerce_int("product_id", raw.get("product_id")),
                quantity=coerce_int("quantity", raw.get("quantity")),
                unit_price=coerce_amount("unit_price", raw.get("unit_price")),
            ))

        return cls(
            customer_id=coerce_int("customer_id", data.get("customer_id")),
            items=tuple(items),
            order_source=coerce_str("order_source", data.get("order_source")) or "Manual",
        )
