# modules/sales/checkout.py
from __future__ import annotations

"""
Checkout: turn a cart into a recorded Sale and consume stock in one
transaction.

Totals follow the receipt layout:
    subtotal                = sum(unit_price * qty)
    product_discount_total  = sum(line discounts)
    invoice_discount_amount = flat amount or percent of (subtotal - product discounts)
    total                   = subtotal - product_discount_total - invoice_discount_amount
Each line_total carries its product discount only.
"""

import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from ...database.repositories.errors import DomainError
from ...database.repositories.kv_store import KeyValueStore
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.sales_repo import DISCOUNT_MODES, PAYMENT_TYPES, Sale, SaleItem, SalesRepo
from ...utils.helpers import now_iso, round_money
from ...utils.loggers import get_logger

_log = get_logger(__name__)


@dataclass
class CartLine:
    product_id: int
    quantity: int
    discount_mode: str = "flat"
    discount_value: float = 0.0


def compute_discount(base: float, mode: str, value: float) -> float:
    """Discount on `base`: flat amount or percent, never more than base."""
    if mode not in DISCOUNT_MODES:
        raise DomainError(f"Unknown discount mode: {mode}")
    if value < 0:
        raise DomainError("Discount cannot be negative.")
    if base <= 0:
        return 0.0
    amount = base * min(value, 100.0) / 100.0 if mode == "percent" else min(value, base)
    return round_money(amount)


def build_sale(
    items: list[SaleItem],
    *,
    invoice_discount_mode: str = "flat",
    invoice_discount_value: float = 0.0,
    payment_type: str = "cash",
    cashier: str = "",
    customer_id: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> Sale:
    if payment_type not in PAYMENT_TYPES:
        raise DomainError(f"Unknown payment type: {payment_type}")
    subtotal = round_money(sum(it.unit_price * it.quantity for it in items))
    product_discount_total = round_money(sum(it.line_discount for it in items))
    net = round_money(subtotal - product_discount_total)
    invoice_discount_amount = compute_discount(net, invoice_discount_mode, invoice_discount_value)
    return Sale(
        timestamp=now_iso(),
        items=items,
        subtotal=subtotal,
        product_discount_total=product_discount_total,
        invoice_discount_mode=invoice_discount_mode,
        invoice_discount_value=invoice_discount_value,
        invoice_discount_amount=invoice_discount_amount,
        total_discount=round_money(product_discount_total + invoice_discount_amount),
        total=round_money(net - invoice_discount_amount),
        payment_type=payment_type,
        cashier=cashier,
        customer_id=customer_id,
        customer_name=customer_name,
    )


class CheckoutService:
    def __init__(
        self,
        kv: KeyValueStore,
        products: ProductsRepo,
        sales: SalesRepo,
        *,
        cashier: str = "Cashier",
        lock: Optional[threading.RLock] = None,
    ):
        self.kv = kv
        self.products = products
        self.sales = sales
        self.cashier = cashier
        self._lock = lock or threading.RLock()

    def sale_items(self, cart: Iterable[CartLine]) -> list[SaleItem]:
        """Price cart lines from the catalogue. Repeated products are merged."""
        merged: dict[int, CartLine] = {}
        for line in cart:
            if line.quantity <= 0:
                raise DomainError("Quantity must be at least 1.")
            if line.product_id in merged:
                merged[line.product_id].quantity += line.quantity
            else:
                merged[line.product_id] = CartLine(
                    line.product_id, line.quantity, line.discount_mode, line.discount_value
                )

        items: list[SaleItem] = []
        for line in merged.values():
            product = self.products.get(line.product_id)
            if product is None:
                raise DomainError(f"Product {line.product_id} not found in inventory.")
            gross = product.price * line.quantity
            line_discount = compute_discount(gross, line.discount_mode, line.discount_value)
            items.append(
                SaleItem(
                    id=product.id,
                    name=product.name,
                    quantity=line.quantity,
                    unit_price=product.price,
                    discount_mode=line.discount_mode,
                    discount_value=line.discount_value,
                    line_discount=line_discount,
                    line_total=round_money(gross - line_discount),
                )
            )
        return items

    def checkout(
        self,
        cart: Iterable[CartLine],
        *,
        invoice_discount_mode: str = "flat",
        invoice_discount_value: float = 0.0,
        payment_type: str = "cash",
        customer_id: Optional[str] = None,
        customer_name: Optional[str] = None,
    ) -> Sale:
        """
        Record a sale for `cart` and take its units out of stock. Raises
        DomainError (InsufficientStockError when a line cannot be covered,
        StoreContextError without a store); nothing is written then.
        """
        with self._lock:
            items = self.sale_items(cart)
            if not items:
                raise DomainError("Cart is empty.")
            sale = build_sale(
                items,
                invoice_discount_mode=invoice_discount_mode,
                invoice_discount_value=invoice_discount_value,
                payment_type=payment_type,
                cashier=self.cashier,
                customer_id=customer_id,
                customer_name=customer_name,
            )
            with self.kv.immediate_tx():
                self.products.decrement_stock((it.id, it.quantity) for it in items)
                saved = self.sales.record_sale(sale)
            _log.info("sale %s recorded: %d line(s), total %.2f", saved.invoice_number, len(items), saved.total)
            return saved
