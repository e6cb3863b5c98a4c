"""
Exchanges: difference arithmetic, validation and the three settlement
branches (customer pays, customer receives, even).
"""

from __future__ import annotations

import pytest

from retail_pos.database.repositories import RefundItem
from retail_pos.modules.refunds import (
    ExchangeBranch,
    RefundPhase,
    RefundValidationError,
    build_refund_items,
    calculate_exchange_difference,
    validate_exchange,
)


def _item(pid, qty, price):
    return RefundItem(id=pid, name=f"P{pid}", quantity=qty, unit_price=price, line_total=price * qty)


def _returned(service, sale, quantities):
    return build_refund_items(service.refundable_items(sale.id), quantities)


# ---------------------------------------------------------------------------
# Suite L – Difference and validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "ret, new, branch",
    [
        (500.0, 650.0, ExchangeBranch.CUSTOMER_PAYS),
        (500.0, 300.0, ExchangeBranch.CUSTOMER_RECEIVES),
        (500.0, 500.0, ExchangeBranch.EVEN),
        (0.1 + 0.2, 0.3, ExchangeBranch.EVEN),
    ],
)
def test_l1_exactly_one_branch_by_sign(ret, new, branch) -> None:
    """L1: the branch is picked only by the sign of return - exchange value."""
    calc = calculate_exchange_difference([_item(1, 1, ret)], [_item(2, 1, new)])
    assert calc.branch is branch
    assert calc.customer_pays == pytest.approx(max(0.0, new - ret), abs=0.005)
    assert calc.customer_receives == pytest.approx(max(0.0, ret - new), abs=0.005)
    assert calc.is_even_exchange is (branch is ExchangeBranch.EVEN)


def test_l2_validation_collects_every_problem(session, ids, record_sale) -> None:
    sale = record_sale([(ids["shirt"], 2, 100.0)])
    check = validate_exchange(
        sale,
        [_item(ids["shirt"], 3, 100.0)],
        [_item(ids["belt"], 9, 300.0), _item(999, 1, 5.0)],
        session.products,
    )
    assert not check.valid
    text = " ".join(check.errors)
    assert 'Cannot return 3 of "P1". Only 2 were purchased.' in text
    assert "Insufficient stock" in text
    assert "not found in inventory" in text


def test_l3_low_stock_is_only_a_warning(session, ids, record_sale) -> None:
    sale = record_sale([(ids["shirt"], 2, 100.0)])
    check = validate_exchange(sale, [_item(ids["shirt"], 1, 100.0)], [_item(ids["belt"], 2, 300.0)], session.products)
    assert check.valid
    assert check.warnings == ['Low stock warning: "Belt" will have 2 units remaining.']


def test_l4_missing_sale_and_empty_sets(session) -> None:
    assert validate_exchange(None, [], [], session.products).errors == [
        "Original invoice must be selected before processing exchange."
    ]


def test_l5_unknown_method_and_payment(session, ids, record_sale) -> None:
    sale = record_sale([(ids["shirt"], 1, 100.0)])
    check = validate_exchange(
        sale, [_item(ids["shirt"], 1, 100.0)], [_item(ids["cap"], 1, 50.0)], session.products,
        refund_method="voucher", payment_type="cheque",
    )
    assert len(check.errors) == 2


# ---------------------------------------------------------------------------
# Suite M – Settlement branches
# ---------------------------------------------------------------------------


def test_m1_customer_pays_difference(session, ids, service, record_sale) -> None:
    """M1: return 500, take 650 -> new sale, refund 0, customer pays 150."""
    sale = record_sale([(ids["shirt"], 5, 100.0)])
    res = service.process_exchange(
        sale,
        _returned(service, sale, {ids["shirt"]: 5}),
        service.exchange_items({ids["jacket"]: 1}),
        payment_type="card",
    )
    assert res.success, res.message
    assert res.difference == pytest.approx(-150.0)
    assert res.payment_collected == pytest.approx(150.0)
    assert res.refund_issued is None and res.return_invoice_id is None
    assert res.message.endswith("Customer pays ₹150.00.")
    assert res.phase is RefundPhase.COMMITTED

    rec = session.refunds.get(res.refund_record_id)
    assert rec.refund_type == "exchange"
    assert rec.total_refund == 0.0
    assert rec.exchange_difference == pytest.approx(-150.0)
    assert rec.refund_method == "Exchange - New Sale"
    assert rec.payment_method == "card"
    assert rec.refund_reason == "Exchange - Customer pays difference"
    assert rec.exchange_sale_id == res.new_sale_invoice_id

    new_sale = session.sales.get_sale(res.new_sale_invoice_id)
    assert new_sale.total == pytest.approx(650.0)
    assert new_sale.payment_type == "card"
    assert new_sale.invoice_number == res.new_sale_invoice_number
    assert session.products.get(ids["shirt"]).stock == 25
    assert session.products.get(ids["jacket"]).stock == 4


def test_m2_customer_receives_difference(session, ids, service, record_sale) -> None:
    """M2: return 500, take 300 -> new sale plus a negative credit note, 200 back."""
    sale = record_sale([(ids["shirt"], 5, 100.0)])
    res = service.process_exchange(
        sale,
        _returned(service, sale, {ids["shirt"]: 5}),
        service.exchange_items({ids["belt"]: 1}),
        reason="colour",
        refund_method="store_credit",
    )
    assert res.success, res.message
    assert res.refund_issued == pytest.approx(200.0)
    assert res.refund_method == "store_credit"
    assert "via Store Credit" in res.message

    credit = session.sales.get_sale(res.return_invoice_id)
    assert credit.total == pytest.approx(-500.0)
    assert credit.invoice_number == res.return_invoice_number
    assert session.sales.get_sale(res.new_sale_invoice_id).total == pytest.approx(300.0)
    assert len(session.sales.list_sales()) == 3

    rec = session.refunds.get(res.refund_record_id)
    assert rec.total_refund == pytest.approx(200.0)
    assert rec.refund_method == "Store Credit"
    assert rec.refund_reason == "colour"
    assert rec.extra["returnSaleId"] == credit.id


def test_m3_even_exchange(session, ids, service, record_sale) -> None:
    """M3: equal values -> one new sale, refund 0, 'Even Exchange'."""
    sale = record_sale([(ids["jeans"], 1, 200.0)])
    res = service.process_exchange(
        sale,
        _returned(service, sale, {ids["jeans"]: 1}),
        service.exchange_items({ids["cap"]: 4}),
    )
    assert res.success, res.message
    assert res.difference == 0.0
    assert res.message.startswith("Even exchange complete.")
    rec = session.refunds.get(res.refund_record_id)
    assert (rec.total_refund, rec.exchange_difference, rec.refund_method) == (0.0, 0.0, "Even Exchange")
    assert len(session.sales.list_sales()) == 2


def test_m4_units_cannot_be_returned_twice(session, ids, service, record_sale) -> None:
    """M4: a second exchange cannot return units an earlier exchange already took back."""
    sale = record_sale([(ids["shirt"], 2, 100.0)])
    first = service.process_exchange(
        sale, _returned(service, sale, {ids["shirt"]: 2}), service.exchange_items({ids["jeans"]: 1})
    )
    assert first.success
    second = service.process_exchange(
        sale, [_item(ids["shirt"], 1, 100.0)], service.exchange_items({ids["cap"]: 2})
    )
    assert not second.success
    assert "Only 0 remain after previous refunds" in second.message
    assert len(session.refunds.list_refunds()) == 1


def test_m5_failure_during_settlement_rolls_back(session, ids, service, record_sale, monkeypatch) -> None:
    """M5: an error while recording the new sale undoes the stock moves."""
    sale = record_sale([(ids["shirt"], 5, 100.0)])
    returned = _returned(service, sale, {ids["shirt"]: 5})
    exchanged = service.exchange_items({ids["jacket"]: 1})

    def boom(_sale):
        raise RuntimeError("write failed")

    monkeypatch.setattr(service.sales, "record_sale", boom)
    res = service.process_exchange(sale, returned, exchanged)
    assert not res.success
    assert res.difference == 0.0
    assert res.message == "write failed"
    assert res.phase is RefundPhase.REJECTED
    assert session.products.get(ids["shirt"]).stock == 20
    assert session.products.get(ids["jacket"]).stock == 5
    assert session.refunds.list_refunds() == []


def test_m6_invalid_exchange_writes_nothing(session, ids, service, record_sale) -> None:
    sale = record_sale([(ids["shirt"], 1, 100.0)])
    res = service.process_exchange(sale, _returned(service, sale, {ids["shirt"]: 1}), [_item(ids["jacket"], 9, 650.0)])
    assert not res.success
    assert res.message.startswith("Validation failed:")
    assert res.difference == pytest.approx(100.0 - 9 * 650.0)
    assert session.products.get(ids["shirt"]).stock == 20
    assert session.sales.list_sales() == [sale]


def test_m7_exchange_through_process_refund(session, ids, service, record_sale) -> None:
    """M7: process_refund('exchange') prices the return and settles it."""
    sale = record_sale([(ids["jeans"], 2, 200.0)], invoice_discount=40.0)
    out = service.process_refund(
        sale.id, "exchange", {ids["jeans"]: 1},
        exchange_quantities={ids["cap"]: 2}, refund_method="wallet",
    )
    # one jeans paid 180 after the invoice discount; two caps cost 100
    assert out.refund_record.total_refund == pytest.approx(80.0)
    assert out.refund_record.refund_method == "Wallet Credit"
    assert out.exchange_sale.total == pytest.approx(100.0)
    assert out.return_sale.total == pytest.approx(-180.0)
    assert out.warnings == []


def test_m8_process_refund_exchange_surfaces_validation(ids, service, record_sale) -> None:
    sale = record_sale([(ids["jeans"], 1, 200.0)])
    with pytest.raises(RefundValidationError, match="Insufficient stock"):
        service.process_refund(sale.id, "exchange", {ids["jeans"]: 1}, exchange_quantities={ids["jacket"]: 6})


def test_m9_credit_notes_cannot_be_refunded(session, ids, service, record_sale) -> None:
    sale = record_sale([(ids["shirt"], 5, 100.0)])
    res = service.process_exchange(
        sale, _returned(service, sale, {ids["shirt"]: 5}), service.exchange_items({ids["belt"]: 1})
    )
    with pytest.raises(RefundValidationError, match="Return notes cannot be refunded"):
        service.process_refund(res.return_invoice_id, "full_return")


def test_m10_stock_never_negative(session, ids, service, sell) -> None:
    """M10: after a mix of sales, refunds and exchanges no product is below zero."""
    s1 = sell({ids["belt"]: 3, ids["jacket"]: 2})
    service.process_refund(s1.id, "partial_return", {ids["belt"]: 1})
    service.process_exchange(
        s1, _returned(service, s1, {ids["jacket"]: 1}), service.exchange_items({ids["belt"]: 2})
    )
    res = service.process_exchange(
        s1, _returned(service, s1, {ids["belt"]: 1}), service.exchange_items({ids["belt"]: 5})
    )
    assert not res.success
    assert all(p.stock >= 0 for p in session.products.list_products())


def test_m11_returns_are_settled_at_the_price_paid(session, ids, service, record_sale) -> None:
    """M11: list-priced return lines are re-priced through the invoice discount."""
    sale = record_sale([(ids["jeans"], 1, 200.0)], invoice_discount=100.0)
    res = service.process_exchange(
        sale, [_item(ids["jeans"], 1, 200.0)], service.exchange_items({ids["cap"]: 1})
    )
    assert res.success, res.message
    # the jeans cost the customer 100, the cap is 50
    assert res.difference == pytest.approx(50.0)
    assert res.refund_issued == pytest.approx(50.0)
    assert res.refund_issued <= sale.total

    rec = session.refunds.get(res.refund_record_id)
    assert rec.refunded_items[0].unit_price == pytest.approx(100.0)
    assert rec.total_refund == pytest.approx(50.0)
    assert session.sales.get_sale(res.return_invoice_id).total == pytest.approx(-100.0)


def test_m12_like_for_like_swap_at_zero_stock(session, ids, service, record_sale) -> None:
    """M12: the unit coming back covers a same-product replacement."""
    session.products.update(ids["belt"], stock=0)
    sale = record_sale([(ids["belt"], 1, 300.0)])
    res = service.process_exchange(
        sale, _returned(service, sale, {ids["belt"]: 1}), service.exchange_items({ids["belt"]: 1})
    )
    assert res.success, res.message
    assert res.difference == 0.0
    assert res.warnings == ['Low stock warning: "Belt" will have 0 units remaining.']
    assert session.products.get(ids["belt"]).stock == 0

    check = validate_exchange(
        sale, [_item(ids["belt"], 1, 300.0)], [_item(ids["belt"], 2, 300.0)], session.products,
        session.refunds.refunds_for_sale(sale.id),
    )
    assert "Available: 0, Required: 2" in " ".join(check.errors)
