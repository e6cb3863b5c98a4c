# modules/refunds/controller.py
from __future__ import annotations

"""
RefundController: the refund screen's session state without any widgets.

It keeps the invoice being refunded, the refund type, the reason and three
quantity maps (plain returns, exchange returns, exchange replacements), and
turns operator edits into calls on RefundService. Failures never escape;
they land in `error`, successes in `success`, the way the screen shows them.
"""

from dataclasses import dataclass
from typing import Optional

from ...database.repositories.errors import DomainError
from ...database.repositories.refunds_repo import REFUND_TYPES, RefundItem, RefundRecord
from ...database.repositories.sales_repo import Sale
from ...utils.helpers import round_money
from ...utils.loggers import get_logger
from .eligibility import RefundableLine, build_refund_items, refundable_items
from .exchange import ExchangeResult
from .service import RefundOutcome, RefundService, refund_method_label

_log = get_logger(__name__)


@dataclass(frozen=True)
class RefundSummary:
    refund_type: str
    reason: str
    total_return_quantity: int
    total_return_value: float
    total_exchange_value: float
    balance_to_customer: float
    balance_from_customer: float
    refund_method: str


class RefundController:
    def __init__(self, service: RefundService):
        self.service = service
        self.sale_id: Optional[str] = None
        self.refund_type = "full_return"
        self.reason = ""
        self.return_quantities: dict[int, int] = {}
        self.exchange_return_quantities: dict[int, int] = {}
        self.exchange_new_quantities: dict[int, int] = {}
        self.is_processing = False
        self.error: Optional[str] = None
        self.success: Optional[str] = None

    # ---------------------------------------------------------------------
    # derived state (recomputed on every access)
    # ---------------------------------------------------------------------
    @property
    def sale(self) -> Optional[Sale]:
        if not self.sale_id:
            return None
        return self.service.sales.get_sale(self.sale_id)

    @property
    def existing_refunds(self) -> list[RefundRecord]:
        sale = self.sale
        if sale is None:
            return []
        return self.service.refunds.refunds_for_sale(sale.id)

    @property
    def refundable_items(self) -> list[RefundableLine]:
        sale = self.sale
        if sale is None:
            return []
        return refundable_items(sale, self.service.refunds.refunds_for_sale(sale.id))

    def _active_returns(self) -> dict[int, int]:
        if self.refund_type == "exchange":
            return self.exchange_return_quantities
        return self.return_quantities

    def summary(self) -> RefundSummary:
        active = self._active_returns()
        lines = {ln.product_id: ln for ln in self.refundable_items}
        return_value = sum(lines[pid].unit_price * qty for pid, qty in active.items() if pid in lines)

        exchange_value = 0.0
        for pid, qty in self.exchange_new_quantities.items():
            product = self.service.products.get(pid)
            if product is not None:
                exchange_value += product.price * qty

        return_value = round_money(return_value)
        exchange_value = round_money(exchange_value)
        # same cent rounding the service applies before choosing a branch
        difference = round_money(return_value - exchange_value) if self.refund_type == "exchange" else 0.0
        sale = self.sale
        return RefundSummary(
            refund_type=self.refund_type,
            reason=self.reason.strip(),
            total_return_quantity=sum(active.values()),
            total_return_value=return_value,
            total_exchange_value=exchange_value,
            balance_to_customer=max(0.0, difference),
            balance_from_customer=max(0.0, -difference),
            refund_method=(
                refund_method_label(self.refund_type, sale.payment_type) if sale else "Original Payment"
            ),
        )

    # ---------------------------------------------------------------------
    # state transitions
    # ---------------------------------------------------------------------
    def _reset_quantities(self) -> None:
        self.return_quantities.clear()
        self.exchange_return_quantities.clear()
        self.exchange_new_quantities.clear()

    def reset_state(self) -> None:
        self.sale_id = None
        self.refund_type = "full_return"
        self.reason = ""
        self._reset_quantities()
        self.is_processing = False
        self.error = None
        self.success = None

    def _prefill_remaining(self) -> None:
        for ln in self.refundable_items:
            if ln.remaining_qty > 0:
                self.return_quantities[ln.product_id] = ln.remaining_qty

    def select_sale(self, sale_id: Optional[str]) -> None:
        self.sale_id = sale_id
        self._reset_quantities()
        self.error = None
        self.success = None
        if not sale_id:
            return
        if self.refund_type == "full_return":
            self.auto_select_full_return()
        elif self.refund_type in ("partial_return", "cash_refund"):
            self._prefill_remaining()

    def set_refund_type(self, refund_type: str) -> None:
        if refund_type not in REFUND_TYPES:
            raise ValueError(f"Unknown refund type: {refund_type}")
        self.refund_type = refund_type
        self._reset_quantities()
        if refund_type == "full_return":
            self.auto_select_full_return()
        elif refund_type in ("partial_return", "cash_refund") and self.sale is not None:
            self._prefill_remaining()

    def auto_select_full_return(self) -> None:
        """
        Select every line's remaining quantity. If any line is already fully
        refunded, fall back to partial_return and report it.
        """
        if self.sale is None:
            return
        self._reset_quantities()
        for ln in self.refundable_items:
            if ln.remaining_qty <= 0:
                self.error = "This invoice has already been refunded fully."
                self.refund_type = "partial_return"
                self.return_quantities.clear()
                return
            self.return_quantities[ln.product_id] = ln.remaining_qty

    def set_return_quantity(self, product_id: int, quantity: int) -> None:
        if self.sale is None:
            return
        target = self._active_returns()
        line = next((ln for ln in self.refundable_items if ln.product_id == product_id), None)
        if line is None:
            return
        qty = min(max(int(quantity), 0), line.remaining_qty)
        if qty <= 0:
            target.pop(product_id, None)
        else:
            target[product_id] = qty

    def set_exchange_new_quantity(self, product_id: int, quantity: int) -> None:
        product = self.service.products.get(product_id)
        if product is None:
            return
        qty = min(max(int(quantity), 0), product.stock)
        if qty <= 0:
            self.exchange_new_quantities.pop(product_id, None)
        else:
            self.exchange_new_quantities[product_id] = qty

    def validate(self) -> bool:
        self.error = None
        if self.sale is None:
            self.error = "Select an invoice before processing a refund."
            return False
        if self.refund_type == "full_return" and not self.return_quantities:
            self.error = "All items in the invoice have already been refunded."
            return False
        if self.refund_type in ("partial_return", "cash_refund") and not self.return_quantities:
            self.error = "Select at least one item to refund."
            return False
        if self.refund_type == "exchange":
            if not self.exchange_return_quantities:
                self.error = "Select the items being returned."
                return False
            if not self.exchange_new_quantities:
                self.error = "Select the replacement items for the exchange."
                return False
        return True

    # ---------------------------------------------------------------------
    # commands
    # ---------------------------------------------------------------------
    def process_refund(self, *, refund_method: str = "cash", payment_type: Optional[str] = None) -> Optional[RefundOutcome]:
        if self.is_processing:
            return None
        if not self.validate():
            return None
        self.is_processing = True
        try:
            outcome = self.service.process_refund(
                self.sale_id,
                self.refund_type,
                dict(self._active_returns()),
                reason=self.reason,
                exchange_quantities=dict(self.exchange_new_quantities),
                refund_method=refund_method,
                payment_type=payment_type,
            )
        except DomainError as e:
            _log.info("refund for sale %s not processed: %s", self.sale_id, e)
            self.error = str(e)
            return None
        finally:
            self.is_processing = False

        self.success = outcome.message
        self._reset_quantities()
        self.reason = ""
        return outcome

    def returned_items(self) -> list[RefundItem]:
        """Exchange return lines at the allocated paid price."""
        return build_refund_items(self.refundable_items, self.exchange_return_quantities)

    def process_exchange_refund(
        self,
        returned_items: list[RefundItem],
        exchanged_items: list[RefundItem],
        refund_reason: Optional[str] = None,
        refund_method: str = "cash",
        payment_type: str = "cash",
    ) -> Optional[ExchangeResult]:
        sale = self.sale
        if sale is None:
            self.error = "No sale selected for exchange."
            return None

        self.is_processing = True
        try:
            result = self.service.process_exchange(
                sale, returned_items, exchanged_items, refund_reason,
                refund_method=refund_method, payment_type=payment_type,
            )
        finally:
            self.is_processing = False

        if result.success:
            self.success = result.message
            self._reset_quantities()
            self.reason = ""
        else:
            self.error = result.message
        return result
