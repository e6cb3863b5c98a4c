"""
Invoice-discount allocation and refund eligibility.

Allocation is pure arithmetic, so most tests here call the functions
directly; the eligibility tests build sales through the repositories so the
stored shape (camelCase JSON) is exercised on the way.
"""

from __future__ import annotations

import pytest

from retail_pos.database.repositories import RefundItem, RefundRecord, Sale, SaleItem
from retail_pos.modules.refunds import (
    allocate_invoice_discount,
    allocate_sale_item,
    build_refund_items,
    refundable_items,
    refunded_quantities,
)


def _sale(items, subtotal, invoice_discount=0.0):
    return Sale(
        timestamp="2026-01-05T10:00:00.000+00:00",
        items=items,
        subtotal=subtotal,
        invoice_discount_amount=invoice_discount,
        total=subtotal - invoice_discount,
        id="S-1",
        invoice_number="20260105-0001",
    )


def _refund(*lines):
    return RefundRecord(
        sale_id="S-1",
        invoice_number="20260105-0001",
        refund_type="partial_return",
        refunded_items=[RefundItem(id=pid, name="x", quantity=q, unit_price=0.0, line_total=0.0) for pid, q in lines],
        total_refund=0.0,
        refund_method="Original - CASH",
        payment_method="cash",
        cashier="Asha",
    )


# ---------------------------------------------------------------------------
# Suite A – Discount allocator
# ---------------------------------------------------------------------------


def test_a1_invoice_discount_is_spread_per_unit() -> None:
    """A1: subtotal 1000, invoice discount 100, 5 @ 200 -> 180 paid per unit."""
    a = allocate_invoice_discount(1000.0, 100.0, 5, 200.0, 1000.0)
    assert a.unit_paid == pytest.approx(180.0)
    assert a.line_total_after_invoice_discount == pytest.approx(900.0)
    assert a.invoice_discount_share == pytest.approx(100.0)


def test_a2_without_discount_unit_paid_is_list_price() -> None:
    """A2: no invoice discount leaves the unit price untouched."""
    a = allocate_invoice_discount(300.0, 0.0, 3, 100.0)
    assert a.unit_paid == pytest.approx(100.0)
    assert a.line_total_after_invoice_discount == pytest.approx(300.0)


def test_a3_zero_subtotal_skips_allocation() -> None:
    """A3: subtotal 0 must not divide by zero; the raw price comes back."""
    a = allocate_invoice_discount(0.0, 50.0, 2, 40.0)
    assert a.invoice_discount_share == 0.0
    assert a.unit_paid == pytest.approx(40.0)


def test_a4_zero_quantity_pays_nothing() -> None:
    """A4: a zero-quantity line has no paid unit price."""
    a = allocate_invoice_discount(100.0, 10.0, 0, 25.0)
    assert a.unit_paid == 0.0


def test_a5_line_total_with_product_discount_is_used() -> None:
    """A5: the stored line total (after product discount) wins over unit * qty."""
    a = allocate_invoice_discount(1000.0, 0.0, 4, 250.0, 900.0)
    assert a.unit_paid == pytest.approx(225.0)


def test_a6_full_return_balances_to_subtotal_minus_invoice_discount() -> None:
    """A6: summed unit_paid * qty over all lines equals subtotal - invoice discount."""
    items = [
        SaleItem(id=1, name="Shirt", quantity=3, unit_price=99.99),
        SaleItem(id=2, name="Jeans", quantity=7, unit_price=123.45),
        SaleItem(id=3, name="Cap", quantity=1, unit_price=17.0),
    ]
    subtotal = sum(it.unit_price * it.quantity for it in items)
    sale = _sale(items, subtotal, invoice_discount=87.65)
    paid = sum(allocate_sale_item(sale, it).unit_paid * it.quantity for it in items)
    assert paid == pytest.approx(subtotal - 87.65, abs=1e-6)


# ---------------------------------------------------------------------------
# Suite B – Refund eligibility
# ---------------------------------------------------------------------------


def test_b1_remaining_quantity_after_prior_refunds() -> None:
    """B1: refunded quantities across records are summed per product."""
    sale = _sale([SaleItem(1, "Shirt", 10, 100.0), SaleItem(2, "Jeans", 2, 200.0)], 1400.0)
    lines = refundable_items(sale, [_refund((1, 3)), _refund((1, 2), (2, 2))])
    by_id = {ln.product_id: ln for ln in lines}
    assert by_id[1].refunded_qty == 5 and by_id[1].remaining_qty == 5
    assert by_id[2].remaining_qty == 0
    assert by_id[2].fully_refunded


def test_b2_fully_refunded_lines_are_still_listed() -> None:
    """B2: zero-remaining lines stay in the result."""
    sale = _sale([SaleItem(1, "Shirt", 1, 100.0)], 100.0)
    lines = refundable_items(sale, [_refund((1, 1))])
    assert len(lines) == 1
    assert lines[0].remaining_qty == 0


def test_b3_over_refunded_history_never_goes_negative() -> None:
    """B3: remaining is floored at zero even with inconsistent history."""
    sale = _sale([SaleItem(1, "Shirt", 2, 100.0)], 200.0)
    lines = refundable_items(sale, [_refund((1, 5))])
    assert lines[0].remaining_qty == 0


def test_b4_eligibility_is_idempotent() -> None:
    """B4: two calls without an intervening refund give the same answer."""
    sale = _sale([SaleItem(1, "Shirt", 4, 100.0), SaleItem(2, "Jeans", 1, 200.0)], 600.0, 60.0)
    prior = [_refund((1, 1))]
    assert refundable_items(sale, prior) == refundable_items(sale, prior)


def test_b5_duplicate_product_lines_are_merged() -> None:
    """B5: a product sold on two lines is reported once with summed quantities."""
    sale = _sale([SaleItem(1, "Shirt", 2, 100.0), SaleItem(1, "Shirt", 3, 100.0)], 500.0, 50.0)
    lines = refundable_items(sale, [])
    assert len(lines) == 1
    assert lines[0].purchased_qty == 5
    assert lines[0].unit_price == pytest.approx(90.0)
    assert lines[0].line_total == pytest.approx(450.0)


def test_b6_refund_items_use_allocated_price() -> None:
    """B6: refund lines are priced at the unit price actually paid."""
    sale = _sale([SaleItem(1, "Jeans", 5, 200.0, line_total=1000.0)], 1000.0, 100.0)
    items = build_refund_items(refundable_items(sale, []), {1: 2, 99: 4, 2: 0})
    assert len(items) == 1
    assert items[0].unit_price == pytest.approx(180.0)
    assert items[0].line_total == pytest.approx(360.0)


def test_b7_refunded_quantities_counts_every_record() -> None:
    """B7: helper sums quantities across records and products."""
    assert refunded_quantities([_refund((1, 1), (2, 2)), _refund((1, 4))]) == {1: 5, 2: 2}
