# Overview: Pytest coverage for GST computation.

from decimal import Decimal

from oms.services.tax_service import (
    TaxableLine,
    compute_line_tax,
    compute_tax,
    effective_rate,
    is_intra_state,
)


def test_same_state_splits_cgst_and_sgst():
    breakdown = compute_tax([(Decimal("1000.00"), Decimal("18"))], "27", "27")

    assert breakdown.intra_state is True
    assert breakdown.subtotal == Decimal("1000.00")
    assert breakdown.cgst_amount == Decimal("90.00")
    assert breakdown.sgst_amount == Decimal("90.00")
    assert breakdown.igst_amount == Decimal("0.00")
    assert breakdown.total_tax == Decimal("180.00")
    assert breakdown.final_total == Decimal("1180.00")


def test_different_state_charges_igst():
    breakdown = compute_tax([TaxableLine(Decimal("1000.00"), Decimal("18"))], "27", "29")

    assert breakdown.intra_state is False
    assert breakdown.cgst_amount == Decimal("0.00")
    assert breakdown.sgst_amount == Decimal("0.00")
    assert breakdown.igst_amount == Decimal("180.00")
    assert breakdown.final_total == Decimal("1180.00")


def test_state_codes_compare_trimmed_and_case_insensitive():
    assert is_intra_state(" ka ", "KA")
    assert is_intra_state("27", "27 ")
    assert not is_intra_state("27", None)
    assert not is_intra_state("", "")
    assert not is_intra_state(None, None)


def test_missing_or_zero_rate_uses_default():
    assert effective_rate(None) == Decimal("18")
    assert effective_rate(0) == Decimal("18")
    assert effective_rate("5") == Decimal("5")
    assert effective_rate(None, Decimal("12")) == Decimal("12")


def test_halves_are_rounded_once_and_equal():
    # 0.33 * 18% = 0.0594 -> half 0.0297 -> 0.03 each
    line = compute_line_tax(Decimal("0.33"), Decimal("18"), True)
    assert line.cgst_amount == line.sgst_amount == Decimal("0.03")
    assert line.igst_amount == Decimal("0.00")
    assert line.gst_amount == Decimal("0.06")


def test_header_totals_are_sums_of_rounded_lines():
    lines = [(Decimal("10.05"), Decimal("5")), (Decimal("99.99"), Decimal("12")), (Decimal("40.00"), None)]
    breakdown = compute_tax(lines, "27", "27")

    assert breakdown.cgst_amount == sum(l.cgst_amount for l in breakdown.lines)
    assert breakdown.sgst_amount == sum(l.sgst_amount for l in breakdown.lines)
    assert breakdown.subtotal == Decimal("150.04")
    assert breakdown.final_total == breakdown.subtotal + breakdown.total_tax


def test_discount_reduces_final_total_only():
    breakdown = compute_tax([(Decimal("100.00"), Decimal("18"))], "27", "27", discount="10")

    assert breakdown.total_tax == Decimal("18.00")
    assert breakdown.discount == Decimal("10.00")
    assert breakdown.final_total == Decimal("108.00")


def test_empty_order_has_zero_totals():
    breakdown = compute_tax([], "27", "27")
    assert breakdown.lines == ()
    assert breakdown.final_total == Decimal("0.00")
