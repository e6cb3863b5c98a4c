# modules/refunds/service.py
from __future__ import annotations

"""
Refund / exchange orchestrator.

Every attempt walks IDLE -> VALIDATING -> MUTATING -> COMMITTED | REJECTED.
All validation finishes before the first write. The writes of one attempt
(stock restore, stock consume, new sales, refund record) run inside one
BEGIN IMMEDIATE transaction, so a failure half-way leaves nothing behind.
The whole attempt holds the store lock; two refunds against the same sale
cannot both pass the remaining-quantity check.
"""

import threading
from dataclasses import dataclass, field
from typing import Mapping, Optional

from ...database.repositories.errors import DomainError, StoreContextError
from ...database.repositories.kv_store import KeyValueStore
from ...database.repositories.products_repo import ProductsRepo
from ...database.repositories.refunds_repo import (
    REFUND_TYPES,
    RefundItem,
    RefundRecord,
    RefundsRepo,
)
from ...database.repositories.sales_repo import Sale, SaleItem, SalesRepo
from ...utils.helpers import fmt_amount, now_iso, round_money
from ...utils.loggers import get_event_logger, get_logger, log_event
from ...utils.validators import parse_quantity
from .eligibility import RefundableLine, build_refund_items, refundable_items
from .exchange import (
    REFUND_METHODS,
    ExchangeBranch,
    ExchangeCalculation,
    ExchangeResult,
    RefundPhase,
    calculate_exchange_difference,
    validate_exchange,
)

_log = get_logger(__name__)
_events = get_event_logger()


class RefundValidationError(DomainError):
    """User-correctable refund request; nothing was written."""


class RefundProcessingError(DomainError):
    """Unexpected failure while writing; the transaction was rolled back."""


@dataclass
class RefundOutcome:
    refund_record: RefundRecord
    message: str
    exchange_sale: Optional[Sale] = None
    return_sale: Optional[Sale] = None
    warnings: list[str] = field(default_factory=list)


def refund_method_label(refund_type: str, payment_type: str) -> str:
    if refund_type == "cash_refund":
        return "Cash Refund"
    return f"Original - {(payment_type or 'cash').upper()}"


class RefundService:
    def __init__(
        self,
        kv: KeyValueStore,
        products: ProductsRepo,
        sales: SalesRepo,
        refunds: RefundsRepo,
        *,
        cashier: str = "Cashier",
        lock: Optional[threading.RLock] = None,
    ):
        self.kv = kv
        self.products = products
        self.sales = sales
        self.refunds = refunds
        self.cashier = cashier
        self._lock = lock or threading.RLock()
        self.phase = RefundPhase.IDLE

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def refundable_items(self, sale_id: str) -> list[RefundableLine]:
        sale = self.sales.get_sale(sale_id)
        if sale is None:
            return []
        return refundable_items(sale, self.refunds.refunds_for_sale(sale.id))

    def exchange_items(self, quantities: Mapping[int, int]) -> list[RefundItem]:
        """Replacement lines priced at the current catalogue price."""
        items: list[RefundItem] = []
        for product_id, qty in quantities.items():
            product = self.products.get(int(product_id))
            if product is None or qty <= 0:
                continue
            items.append(
                RefundItem(
                    id=product.id,
                    name=product.name,
                    quantity=qty,
                    unit_price=product.price,
                    line_total=product.price * qty,
                )
            )
        return items

    # ---------------------------------------------------------------------
    # helpers
    # ---------------------------------------------------------------------
    def _reject(self, op: str, message: str, **extra) -> None:
        self.phase = RefundPhase.REJECTED
        log_event(_events, op, "reject", message, extra)

    def _select_quantities(
        self,
        sale: Sale,
        lines: list[RefundableLine],
        refund_type: str,
        quantities: Optional[Mapping[int, int]],
        clamp: bool,
    ) -> dict[int, int]:
        if refund_type == "full_return":
            if all(ln.remaining_qty <= 0 for ln in lines):
                raise RefundValidationError("All items in the invoice have already been refunded.")
            if any(ln.remaining_qty <= 0 for ln in lines):
                raise RefundValidationError(
                    "Some items on this invoice have already been refunded. "
                    "Use partial_return for the remaining items."
                )
            return {ln.product_id: ln.remaining_qty for ln in lines}

        by_product = {ln.product_id: ln for ln in lines}
        selected: dict[int, int] = {}
        for raw_id, raw_qty in (quantities or {}).items():
            product_id = int(raw_id)
            ln = by_product.get(product_id)
            if ln is None:
                raise RefundValidationError(
                    f"Product {product_id} is not on invoice {sale.invoice_number}."
                )
            try:
                qty = parse_quantity(raw_qty)
            except ValueError as e:
                raise RefundValidationError(str(e)) from e
            if qty > ln.remaining_qty:
                if not clamp:
                    raise RefundValidationError(
                        f'Cannot refund {qty} of "{ln.name}". '
                        f"Only {ln.remaining_qty} remain on this invoice."
                    )
                qty = ln.remaining_qty
            if qty > 0:
                selected[product_id] = qty
        return selected

    # ---------------------------------------------------------------------
    # REFUND
    # ---------------------------------------------------------------------
    def process_refund(
        self,
        sale_id: Optional[str],
        refund_type: str,
        quantities: Optional[Mapping[int, int]] = None,
        *,
        reason: Optional[str] = None,
        exchange_quantities: Optional[Mapping[int, int]] = None,
        refund_method: str = "cash",
        payment_type: Optional[str] = None,
        clamp: bool = False,
    ) -> RefundOutcome:
        """
        Validate and apply one refund.

        full_return takes every line's remaining quantity and is
        all-or-nothing. partial_return and cash_refund use `quantities`
        ({product_id: qty}); a quantity above what remains is rejected, or
        cut down to it when `clamp` is set. exchange uses `quantities` for
        the returned goods and `exchange_quantities` for the replacements
        and settles through `process_exchange`.

        Raises RefundValidationError, StoreContextError or
        RefundProcessingError; nothing is written in any of these cases.
        """
        reason = (reason or "").strip() or None
        with self._lock:
            self.phase = RefundPhase.VALIDATING
            log_event(_events, "refund", "validate", "refund requested",
                      {"sale_id": sale_id, "refund_type": refund_type})
            try:
                if refund_type not in REFUND_TYPES:
                    raise RefundValidationError(f"Unknown refund type: {refund_type}.")
                if not self.refunds.store_id:
                    raise StoreContextError("Select a store before processing a refund.")
                sale = self.sales.get_sale(sale_id) if sale_id else None
                if sale is None:
                    raise RefundValidationError("Select an invoice before processing a refund.")
                if sale.total < 0:
                    raise RefundValidationError("Return notes cannot be refunded.")

                lines = refundable_items(sale, self.refunds.refunds_for_sale(sale.id))
                selected = self._select_quantities(sale, lines, refund_type, quantities, clamp)
                if not selected:
                    if refund_type == "exchange":
                        raise RefundValidationError("Select the items being returned.")
                    raise RefundValidationError("Select at least one item to refund.")
                items = build_refund_items(lines, selected)

                if refund_type == "exchange":
                    exchanged = self.exchange_items(exchange_quantities or {})
                    if not exchanged:
                        raise RefundValidationError("Select the replacement items for the exchange.")
            except DomainError as e:
                self._reject("refund", str(e), sale_id=sale_id, refund_type=refund_type)
                raise

            if refund_type == "exchange":
                return self._exchange_outcome(
                    self.process_exchange(
                        sale, items, exchanged, reason,
                        refund_method=refund_method,
                        payment_type=payment_type or sale.payment_type,
                    )
                )

            total_refund = round_money(sum(it.line_total for it in items))
            record = RefundRecord(
                sale_id=sale.id,
                invoice_number=sale.invoice_number,
                refund_type=refund_type,
                refund_reason=reason,
                refunded_items=items,
                total_refund=total_refund,
                refund_method=refund_method_label(refund_type, sale.payment_type),
                payment_method=sale.payment_type,
                cashier=self.cashier,
            )

            self.phase = RefundPhase.MUTATING
            log_event(_events, "refund", "mutate", "applying refund",
                      {"sale_id": sale.id, "items": len(items), "total": total_refund})
            try:
                with self.kv.immediate_tx():
                    for it in items:
                        self.products.increment_stock(it.id, it.quantity)
                    saved = self.refunds.record_refund(record)
                    if saved is None:
                        raise StoreContextError("Unable to record refund. Please ensure a store is selected.")
            except DomainError as e:
                self._reject("refund", str(e), sale_id=sale.id)
                raise
            except Exception as e:
                self._reject("refund", str(e), sale_id=sale.id)
                _log.exception("refund for sale %s rolled back", sale.id)
                raise RefundProcessingError(f"Unexpected error while processing the refund: {e}") from e

            if refund_type == "cash_refund":
                message = f"Cash refund of {fmt_amount(total_refund)} recorded."
            elif refund_type == "full_return":
                message = f"Full refund of {fmt_amount(total_refund)} recorded."
            else:
                message = f"Partial refund of {fmt_amount(total_refund)} recorded."

            self.phase = RefundPhase.COMMITTED
            log_event(_events, "refund", "commit", message,
                      {"sale_id": sale.id, "refund_id": saved.refund_id, "total": total_refund})
            return RefundOutcome(refund_record=saved, message=message)

    def _exchange_outcome(self, result: ExchangeResult) -> RefundOutcome:
        if not result.success:
            if result.errors:
                raise RefundValidationError(result.message)
            raise RefundProcessingError(result.message)
        exchange_sale = self.sales.get_sale(result.new_sale_invoice_id) if result.new_sale_invoice_id else None
        return_sale = self.sales.get_sale(result.return_invoice_id) if result.return_invoice_id else None
        return RefundOutcome(
            refund_record=result.refund_record,
            message=result.message,
            exchange_sale=exchange_sale,
            return_sale=return_sale,
            warnings=list(result.warnings),
        )

    # ---------------------------------------------------------------------
    # EXCHANGE
    # ---------------------------------------------------------------------
    def _settlement_sale(self, items: list[RefundItem], original: Sale, payment_type: str, credit: bool) -> Sale:
        subtotal = round_money(sum(it.line_total for it in items))
        return Sale(
            timestamp=now_iso(),
            items=[
                SaleItem(
                    id=it.id,
                    name=it.name,
                    quantity=it.quantity,
                    unit_price=it.unit_price,
                    line_total=it.line_total,
                )
                for it in items
            ],
            subtotal=subtotal,
            # a credit note carries a negative total
            total=-subtotal if credit else subtotal,
            payment_type=payment_type,
            cashier=self.cashier,
            customer_id=original.customer_id,
            customer_name=original.customer_name,
        )

    @staticmethod
    def _repriced_returns(sale: Sale, prior: list[RefundRecord], returned_items: list[RefundItem]) -> list[RefundItem]:
        quantities: dict[int, int] = {}
        for it in returned_items:
            quantities[it.id] = quantities.get(it.id, 0) + it.quantity
        return build_refund_items(refundable_items(sale, prior), quantities)

    def process_exchange(
        self,
        sale: Optional[Sale],
        returned_items: list[RefundItem],
        exchanged_items: list[RefundItem],
        reason: Optional[str] = None,
        refund_method: str = "cash",
        payment_type: str = "cash",
    ) -> ExchangeResult:
        """
        Settle an exchange. Never raises for user or write errors; the
        returned result carries success=False and the message instead.
        Returned lines are re-priced at the allocated paid price, whatever
        prices the caller put on them.
        """
        reason = (reason or "").strip() or None
        with self._lock:
            self.phase = RefundPhase.VALIDATING
            calc = calculate_exchange_difference(returned_items, exchanged_items)
            sale_id = sale.id if sale is not None else None
            log_event(_events, "exchange", "validate", "exchange requested",
                      {"sale_id": sale_id, "difference": calc.difference})

            if not self.refunds.store_id:
                message = "Select a store before processing an exchange."
                self._reject("exchange", message, sale_id=sale_id)
                return ExchangeResult(success=False, difference=calc.difference, message=message,
                                      errors=[message], phase=self.phase)

            prior = self.refunds.refunds_for_sale(sale.id) if sale is not None else []
            check = validate_exchange(
                sale, returned_items, exchanged_items, self.products, prior,
                refund_method=refund_method, payment_type=payment_type,
            )
            if not check.valid:
                message = f"Validation failed: {' '.join(check.errors)}"
                self._reject("exchange", message, sale_id=sale_id)
                return ExchangeResult(success=False, difference=calc.difference, message=message,
                                      errors=check.errors, warnings=check.warnings, phase=self.phase)

            # returned goods are always settled at the price actually paid
            returned_items = self._repriced_returns(sale, prior, returned_items)
            calc = calculate_exchange_difference(returned_items, exchanged_items)

            self.phase = RefundPhase.MUTATING
            log_event(_events, "exchange", "mutate", "applying exchange",
                      {"sale_id": sale.id, "branch": calc.branch.value})
            try:
                with self.kv.immediate_tx():
                    for it in returned_items:
                        self.products.increment_stock(it.id, it.quantity)
                    self.products.decrement_stock((it.id, it.quantity) for it in exchanged_items)
                    result = self._settle(sale, returned_items, exchanged_items, calc, reason,
                                          refund_method, payment_type)
            except Exception as e:
                message = str(e) or "Unknown error occurred during exchange processing."
                self._reject("exchange", message, sale_id=sale.id)
                _log.exception("exchange for sale %s rolled back", sale.id)
                return ExchangeResult(success=False, difference=0.0, message=message,
                                      warnings=check.warnings, phase=self.phase)

            result.warnings = check.warnings
            self.phase = result.phase = RefundPhase.COMMITTED
            log_event(_events, "exchange", "commit", result.message,
                      {"sale_id": sale.id, "refund_id": result.refund_record_id,
                       "difference": calc.difference})
            return result

    def _settle(
        self,
        sale: Sale,
        returned_items: list[RefundItem],
        exchanged_items: list[RefundItem],
        calc: ExchangeCalculation,
        reason: Optional[str],
        refund_method: str,
        payment_type: str,
    ) -> ExchangeResult:
        new_sale = self.sales.record_sale(self._settlement_sale(exchanged_items, sale, payment_type, credit=False))
        record = RefundRecord(
            sale_id=sale.id,
            invoice_number=sale.invoice_number,
            refund_type="exchange",
            refunded_items=returned_items,
            exchanged_items=exchanged_items,
            total_refund=0.0,
            refund_method="Even Exchange",
            payment_method=sale.payment_type,
            cashier=self.cashier,
            exchange_difference=calc.difference,
            exchange_sale_id=new_sale.id,
        )
        result = ExchangeResult(
            success=True,
            difference=calc.difference,
            message="",
            new_sale_invoice_id=new_sale.id,
            new_sale_invoice_number=new_sale.invoice_number,
        )

        if calc.branch is ExchangeBranch.CUSTOMER_PAYS:
            record.refund_reason = reason or "Exchange - Customer pays difference"
            record.refund_method = "Exchange - New Sale"
            record.payment_method = payment_type
            result.payment_collected = calc.customer_pays
            result.message = (
                f"Exchange complete. New invoice #{new_sale.invoice_number} created. "
                f"Customer pays {fmt_amount(calc.customer_pays)}."
            )
        elif calc.branch is ExchangeBranch.CUSTOMER_RECEIVES:
            label = REFUND_METHODS[refund_method]
            return_sale = self.sales.record_sale(
                self._settlement_sale(returned_items, sale, "cash", credit=True)
            )
            record.refund_reason = reason or f"Exchange - Refund via {label}"
            record.refund_method = label
            record.total_refund = calc.customer_receives
            record.extra = {"returnSaleId": return_sale.id}
            result.return_invoice_id = return_sale.id
            result.return_invoice_number = return_sale.invoice_number
            result.refund_issued = calc.customer_receives
            result.refund_method = refund_method
            result.message = (
                f"Exchange complete. New invoice #{new_sale.invoice_number} created. "
                f"Return note #{return_sale.invoice_number} issued. "
                f"Refund {fmt_amount(calc.customer_receives)} via {label}."
            )
        else:
            record.refund_reason = reason or "Even exchange - No balance due"
            result.message = (
                f"Even exchange complete. New invoice #{new_sale.invoice_number} created. No balance due."
            )

        saved = self.refunds.record_refund(record)
        if saved is None:
            raise StoreContextError("Unable to record refund. Please ensure a store is selected.")
        result.refund_record_id = saved.refund_id
        result.refund_record = saved
        return result
