# modules/refunds/eligibility.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ...database.repositories.refunds_repo import RefundItem, RefundRecord
from ...database.repositories.sales_repo import Sale
from .allocation import allocate_sale_item


@dataclass(frozen=True)
class RefundableLine:
    product_id: int
    name: str
    purchased_qty: int
    refunded_qty: int
    remaining_qty: int
    original_unit_price: float   # list price before any discount
    unit_price: float            # paid per unit after product + allocated invoice discount
    line_total: float            # paid for the full purchased quantity

    @property
    def fully_refunded(self) -> bool:
        return self.remaining_qty <= 0


def refunded_quantities(refunds: Iterable[RefundRecord]) -> dict[int, int]:
    """Units already returned per product across the given refund records."""
    out: dict[int, int] = {}
    for record in refunds:
        for item in record.refunded_items:
            out[item.id] = out.get(item.id, 0) + item.quantity
    return out


def refundable_items(sale: Sale, refunds: Iterable[RefundRecord]) -> list[RefundableLine]:
    """
    Per-product refund eligibility for `sale` given every prior refund
    against it. Pure; recompute after each refund. Fully refunded products
    stay in the list with remaining_qty == 0.

    A product appearing on several lines is reported once with quantities
    and paid totals summed.
    """
    refunded = refunded_quantities(refunds)

    order: list[int] = []
    acc: dict[int, dict] = {}
    for item in sale.items:
        alloc = allocate_sale_item(sale, item)
        row = acc.get(item.id)
        if row is None:
            order.append(item.id)
            acc[item.id] = {
                "name": item.name,
                "qty": item.quantity,
                "gross": item.unit_price * item.quantity,
                "paid": alloc.line_total_after_invoice_discount,
            }
        else:
            row["qty"] += item.quantity
            row["gross"] += item.unit_price * item.quantity
            row["paid"] += alloc.line_total_after_invoice_discount

    lines: list[RefundableLine] = []
    for product_id in order:
        row = acc[product_id]
        qty = row["qty"]
        refunded_qty = refunded.get(product_id, 0)
        lines.append(
            RefundableLine(
                product_id=product_id,
                name=row["name"],
                purchased_qty=qty,
                refunded_qty=refunded_qty,
                remaining_qty=max(0, qty - refunded_qty),
                original_unit_price=row["gross"] / qty if qty > 0 else 0.0,
                unit_price=row["paid"] / qty if qty > 0 else 0.0,
                line_total=row["paid"],
            )
        )
    return lines


def build_refund_items(lines: Iterable[RefundableLine], quantities: Mapping[int, int]) -> list[RefundItem]:
    """
    Refund lines for the chosen quantities, priced at the allocated unit
    price. Products missing from `lines` or with a non-positive quantity are
    skipped.
    """
    by_product = {ln.product_id: ln for ln in lines}
    items: list[RefundItem] = []
    for product_id, qty in quantities.items():
        ln = by_product.get(product_id)
        if ln is None or qty <= 0:
            continue
        items.append(
            RefundItem(
                id=product_id,
                name=ln.name,
                quantity=qty,
                unit_price=ln.unit_price,
                line_total=ln.unit_price * qty,
            )
        )
    return items
