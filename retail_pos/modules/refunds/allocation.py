# modules/refunds/allocation.py
from __future__ import annotations

"""
Invoice-level discount allocation.

A sale line's `line_total` carries its product-level discount only. The
invoice-level discount is spread over the lines in proportion to their line
totals, which gives the unit price the customer actually paid. Every refund
value in the package is derived from `allocate_invoice_discount`.
"""

from dataclasses import dataclass
from typing import Optional

from ...database.repositories.sales_repo import Sale, SaleItem


@dataclass(frozen=True)
class AllocatedLine:
    unit_paid: float
    line_total_after_invoice_discount: float
    invoice_discount_share: float


def allocate_invoice_discount(
    subtotal: float,
    invoice_discount_amount: float,
    quantity: float,
    unit_price: float,
    line_total: Optional[float] = None,
) -> AllocatedLine:
    """
    Price actually paid for one line.

        item_line_total = line_total, or unit_price * quantity when absent
        share           = item_line_total / subtotal * invoice_discount_amount   (0 if subtotal <= 0)
        unit_paid       = item_line_total / quantity - share / quantity          (0 if quantity <= 0)
    """
    subtotal = float(subtotal or 0.0)
    invoice_discount_amount = float(invoice_discount_amount or 0.0)
    item_line_total = float(line_total) if line_total is not None else float(unit_price) * quantity

    share = (item_line_total / subtotal) * invoice_discount_amount if subtotal > 0 else 0.0
    per_unit_discount = share / quantity if quantity > 0 else 0.0
    unit_paid = item_line_total / quantity - per_unit_discount if quantity > 0 else 0.0

    return AllocatedLine(
        unit_paid=unit_paid,
        line_total_after_invoice_discount=item_line_total - share,
        invoice_discount_share=share,
    )


def allocate_sale_item(sale: Sale, item: SaleItem) -> AllocatedLine:
    return allocate_invoice_discount(
        sale.subtotal,
        sale.invoice_discount_amount,
        item.quantity,
        item.unit_price,
        item.line_total,
    )
