# Overview: GST calculation for invoices; pure functions, no database work.

"""
Tax Calculator

For every line: gst = extended_price * rate / 100 (missing or zero rate ->
18%).

- SAME jurisdiction (merchant and customer state codes both present and
  equal after trimming, case-insensitive): CGST = SGST = gst / 2
- OTHERWISE: IGST = gst

Each component is rounded to 0.01 (ROUND_HALF_UP) per line; CGST and SGST
always carry the same rounded value. Header totals are sums of the rounded
line components, so they always reconcile with the invoice lines.

    final_total = subtotal + total_tax - discount
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Sequence

from ..money import ZERO, quantize, to_decimal

DEFAULT_GST_RATE = Decimal("18")


@dataclass(frozen=True)
class TaxableLine:
    extended_price: Decimal
    gst_rate: Decimal | None = None


@dataclass(frozen=True)
class TaxLine:
    extended_price: Decimal
    gst_rate: Decimal
    gst_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    igst_amount: Decimal


@dataclass(frozen=True)
class TaxBreakdown:
    intra_state: bool
    lines: tuple[TaxLine, ...] = field(default_factory=tuple)
    subtotal: Decimal = ZERO
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO
    total_tax: Decimal = ZERO
    discount: Decimal = ZERO
    final_total: Decimal = ZERO


def _normalize_code(code: Any) -> str:
    if code is None:
        return ""
    return str(code).strip().casefold()


def is_intra_state(merchant_state_code: Any, customer_state_code: Any) -> bool:
    merchant_code = _normalize_code(merchant_state_code)
    customer_code = _normalize_code(customer_state_code)
    return bool(merchant_code) and bool(customer_code) and merchant_code == customer_code


def effective_rate(rate: Any, default_rate: Decimal = DEFAULT_GST_RATE) -> Decimal:
    if rate is None:
        return default_rate
    value = to_decimal(rate)
    if value == 0:
        return default_rate
    return value


def compute_line_tax(
    extended_price: Any,
    rate: Any,
    intra_state: bool,
    *,
    default_rate: Decimal = DEFAULT_GST_RATE,
) -> TaxLine:
    extended = quantize(extended_price)
    gst_rate = effective_rate(rate, default_rate)
    gst = extended * gst_rate / Decimal(100)

    if intra_state:
        half = quantize(gst / 2)
        cgst, sgst, igst = half, half, ZERO
    else:
        cgst, sgst, igst = ZERO, ZERO, quantize(gst)

    return TaxLine(
        extended_price=extended,
        gst_rate=gst_rate,
        gst_amount=cgst + sgst + igst,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
    )


def compute_tax(
    lines: Iterable[TaxableLine] | Sequence[tuple[Any, Any]],
    merchant_state_code: Any,
    customer_state_code: Any,
    discount: Any = 0,
    *,
    default_rate: Decimal = DEFAULT_GST_RATE,
) -> TaxBreakdown:
    """
    Compute the GST breakdown for ordered line items.

    Args:
        lines: TaxableLine items, or (extended_price, gst_rate) pairs
        merchant_state_code: Merchant jurisdiction
        customer_state_code: Customer jurisdiction (place of supply)
        discount: Flat discount subtracted from the final total

    Returns:
        TaxBreakdown with per-line results in input order
    """
    intra = is_intra_state(merchant_state_code, customer_state_code)

    tax_lines: list[TaxLine] = []
    for line in lines:
        if isinstance(line, TaxableLine):
            price, rate = line.extended_price, line.gst_rate
        else:
            price, rate = line
        tax_lines.append(compute_line_tax(price, rate, intra, default_rate=default_rate))

    subtotal = sum((l.extended_price for l in tax_lines), ZERO)
    cgst = sum((l.cgst_amount for l in tax_lines), ZERO)
    sgst = sum((l.sgst_amount for l in tax_lines), ZERO)
    igst = sum((l.igst_amount for l in tax_lines), ZERO)
    total_tax = cgst + sgst + igst
    discount_amount = quantize(discount or 0)

    return TaxBreakdown(
        intra_state=intra,
        lines=tuple(tax_lines),
        subtotal=subtotal,
        cgst_amount=cgst,
        sgst_amount=sgst,
        igst_amount=igst,
        total_tax=total_tax,
        discount=discount_amount,
        final_total=subtotal + total_tax - discount_amount,
    )
