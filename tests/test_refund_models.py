"""Qt table models for the refund screen (skipped when PySide6 is absent)."""

from __future__ import annotations

import pytest

QtCore = pytest.importorskip("PySide6.QtCore")
Qt = QtCore.Qt

from retail_pos.modules.refunds.model import RefundHistoryModel, RefundableItemsModel  # noqa: E402


def test_q1_refundable_items_model(ids, service, record_sale, qtmodeltester) -> None:
    sale = record_sale([(ids["shirt"], 4, 100.0)], invoice_discount=40.0)
    service.process_refund(sale.id, "partial_return", {ids["shirt"]: 1})
    model = RefundableItemsModel(service.refundable_items(sale.id))
    qtmodeltester.check(model)

    assert model.rowCount() == 1 and model.columnCount() == 6
    assert model.headerData(3, Qt.Horizontal) == "Remaining"
    assert model.data(model.index(0, 0)) == "Shirt"
    assert model.data(model.index(0, 3)) == 3
    assert model.data(model.index(0, 4)) == "90.00"
    assert model.flags(model.index(0, 5)) & Qt.ItemIsEditable

    assert model.setData(model.index(0, 5), 9)
    assert model.quantities() == {ids["shirt"]: 3}
    assert model.setData(model.index(0, 5), 0)
    assert model.quantities() == {}
    assert not model.setData(model.index(0, 5), "abc")
    assert not model.setData(model.index(0, 1), 2)


def test_q2_refund_history_model(ids, service, record_sale, qtmodeltester) -> None:
    sale = record_sale([(ids["cap"], 2, 50.0)])
    out = service.process_refund(sale.id, "cash_refund", {ids["cap"]: 2})
    model = RefundHistoryModel([out.refund_record])
    qtmodeltester.check(model)
    assert model.rowCount() == 1
    assert model.data(model.index(0, 0)) == "REF-0001"
    assert model.data(model.index(0, 3)) == "Cash Refund"
    assert model.data(model.index(0, 5)) == "100.00"
    model.replace([])
    assert model.rowCount() == 0
