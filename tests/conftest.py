# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - every test gets its own in-memory SQLite database (no shared state)
# - one store ("Main Street") is created and selected up front
# - product / sale helpers go through the real repositories and services
# ---------------------------------------------------------------------

from __future__ import annotations

import os

import pytest

from retail_pos import StoreSession
from retail_pos.database.repositories import Sale, SaleItem
from retail_pos.modules.sales import CartLine

# Qt model tests run headless
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture
def session():
    s = StoreSession.open(":memory:", cashier="Asha")
    sid = s.stores.add_store("Main Street", owner="Ravi")
    s.switch_store(sid)
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def ids(session):
    """Seed a small catalogue and return the product ids by short name."""
    p = session.products
    return {
        "shirt": p.add("Shirt", 100.0, stock=20, barcode="890001").id,
        "jeans": p.add("Jeans", 200.0, stock=10, barcode="890002").id,
        "cap": p.add("Cap", 50.0, stock=30).id,
        "jacket": p.add("Jacket", 650.0, stock=5).id,
        "belt": p.add("Belt", 300.0, stock=4).id,
    }


@pytest.fixture
def service(session):
    return session.refund_service()


@pytest.fixture
def checkout(session):
    return session.checkout_service()


@pytest.fixture
def record_sale(session):
    """
    Record a sale directly (stock untouched) from (product_id, qty, unit_price)
    tuples, e.g. to reproduce exact invoice shapes.
    """

    def _record(lines, *, invoice_discount=0.0, payment_type="cash", line_totals=None):
        items = []
        for idx, (pid, qty, price) in enumerate(lines):
            product = session.products.get(pid)
            lt = None if line_totals is None else line_totals[idx]
            items.append(SaleItem(id=pid, name=product.name, quantity=qty, unit_price=price, line_total=lt))
        subtotal = sum(q * pr for _, q, pr in lines)
        product_discount = subtotal - sum(
            (it.line_total if it.line_total is not None else it.unit_price * it.quantity) for it in items
        )
        sale = Sale(
            timestamp="",
            items=items,
            subtotal=subtotal,
            product_discount_total=product_discount,
            invoice_discount_amount=invoice_discount,
            total_discount=product_discount + invoice_discount,
            total=subtotal - product_discount - invoice_discount,
            payment_type=payment_type,
            cashier="Asha",
        )
        return session.sales.record_sale(sale)

    return _record


@pytest.fixture
def sell(checkout):
    """Checkout helper: sell({pid: qty}, **kwargs) -> Sale (consumes stock)."""

    def _sell(quantities, **kwargs):
        return checkout.checkout([CartLine(pid, qty) for pid, qty in quantities.items()], **kwargs)

    return _sell
