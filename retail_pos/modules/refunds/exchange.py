# modules/refunds/exchange.py
from __future__ import annotations

"""
Exchange arithmetic, validation and the uniform exchange result.

An exchange returns goods from a recorded sale and hands out replacement
goods in the same transaction. The sign of

    difference = return_value - exchange_value

picks exactly one settlement branch:

    difference < 0  customer pays the balance; one new sale is recorded
    difference > 0  customer receives the balance; a new sale plus a credit
                    note (a sale with a negative total) are recorded
    difference == 0 even exchange; one new sale is recorded

Amounts are compared after rounding to cents.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional

from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.refunds_repo import RefundItem, RefundRecord
from ...database.repositories.sales_repo import PAYMENT_TYPES, Sale
from ...utils.helpers import round_money
from .eligibility import refundable_items

REFUND_METHODS = {
    "cash": "Cash Refund",
    "store_credit": "Store Credit",
    "wallet": "Wallet Credit",
}


class ExchangeBranch(str, Enum):
    CUSTOMER_PAYS = "customer_pays"
    CUSTOMER_RECEIVES = "customer_receives"
    EVEN = "even"


class RefundPhase(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    MUTATING = "mutating"
    COMMITTED = "committed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ExchangeCalculation:
    return_value: float
    exchange_value: float
    difference: float
    customer_pays: float
    customer_receives: float

    @property
    def is_even_exchange(self) -> bool:
        return self.difference == 0

    @property
    def branch(self) -> ExchangeBranch:
        if self.difference < 0:
            return ExchangeBranch.CUSTOMER_PAYS
        if self.difference > 0:
            return ExchangeBranch.CUSTOMER_RECEIVES
        return ExchangeBranch.EVEN


@dataclass
class ExchangeValidation:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class ExchangeResult:
    success: bool
    difference: float
    message: str
    refund_record_id: Optional[str] = None
    new_sale_invoice_id: Optional[str] = None
    new_sale_invoice_number: Optional[str] = None
    return_invoice_id: Optional[str] = None
    return_invoice_number: Optional[str] = None
    payment_collected: Optional[float] = None
    refund_issued: Optional[float] = None
    refund_method: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    phase: RefundPhase = RefundPhase.IDLE
    refund_record: Optional[RefundRecord] = field(default=None, repr=False)


def calculate_exchange_difference(
    returned_items: Iterable[RefundItem],
    exchanged_items: Iterable[RefundItem],
) -> ExchangeCalculation:
    return_value = round_money(sum(it.line_total for it in returned_items))
    exchange_value = round_money(sum(it.line_total for it in exchanged_items))
    difference = round_money(return_value - exchange_value)
    return ExchangeCalculation(
        return_value=return_value,
        exchange_value=exchange_value,
        difference=difference,
        customer_pays=-difference if difference < 0 else 0.0,
        customer_receives=difference if difference > 0 else 0.0,
    )


def validate_exchange(
    original_sale: Optional[Sale],
    returned_items: list[RefundItem],
    exchanged_items: list[RefundItem],
    products: ProductsRepo,
    prior_refunds: Iterable[RefundRecord] = (),
    *,
    refund_method: str = "cash",
    payment_type: str = "cash",
) -> ExchangeValidation:
    """
    Check an exchange before anything is written.

    Returned units are limited both by what the sale sold and by what prior
    refunds (including earlier exchanges) left unreturned. Replacement goods
    must be in stock, counting units of the same product that come back in
    this exchange; dipping under the low-stock threshold only warns.
    """
    v = ExchangeValidation()

    if original_sale is None:
        v.errors.append("Original invoice must be selected before processing exchange.")
        return v

    if not returned_items:
        v.errors.append("Please select items to return.")
    if not exchanged_items:
        v.errors.append("Please select items for exchange.")
    if refund_method not in REFUND_METHODS:
        v.errors.append(f"Unknown refund method: {refund_method}.")
    if payment_type not in PAYMENT_TYPES:
        v.errors.append(f"Unknown payment type: {payment_type}.")
    if original_sale.total < 0:
        v.errors.append("Return notes cannot be exchanged.")

    sold: dict[int, int] = {}
    for item in original_sale.items:
        sold[item.id] = sold.get(item.id, 0) + item.quantity
    remaining = {ln.product_id: ln.remaining_qty for ln in refundable_items(original_sale, prior_refunds)}

    requested: dict[int, int] = {}
    names: dict[int, str] = {}
    for it in returned_items:
        if it.quantity <= 0:
            v.errors.append(f'Return quantity for "{it.name}" must be positive.')
            continue
        requested[it.id] = requested.get(it.id, 0) + it.quantity
        names[it.id] = it.name

    for product_id, qty in requested.items():
        sold_qty = sold.get(product_id, 0)
        left = remaining.get(product_id, 0)
        if qty > sold_qty:
            v.errors.append(
                f'Cannot return {qty} of "{names[product_id]}". Only {sold_qty} were purchased.'
            )
        elif qty > left:
            v.errors.append(
                f'Cannot return {qty} of "{names[product_id]}". '
                f"Only {left} remain after previous refunds."
            )

    threshold = products.low_stock_threshold
    wanted: dict[int, int] = {}
    for it in exchanged_items:
        if it.quantity <= 0:
            v.errors.append(f'Exchange quantity for "{it.name}" must be positive.')
            continue
        wanted[it.id] = wanted.get(it.id, 0) + it.quantity
        names.setdefault(it.id, it.name)

    for product_id, qty in wanted.items():
        product = products.get(product_id)
        if product is None:
            v.errors.append(f'Product "{names[product_id]}" not found in inventory.')
            continue
        # returnable units of the same product are back on the shelf first
        incoming = min(requested.get(product_id, 0), remaining.get(product_id, 0))
        available = product.stock + incoming
        if qty > available:
            v.errors.append(
                f'Insufficient stock for "{product.name}". Available: {available}, Required: {qty}'
            )
            continue
        left_after = available - qty
        if left_after < threshold:
            v.warnings.append(
                f'Low stock warning: "{product.name}" will have {left_after} units remaining.'
            )

    return v
