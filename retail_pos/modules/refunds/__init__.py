"""
Refunds and exchanges.

Always available:
- allocate_invoice_discount / allocate_sale_item
- refundable_items / build_refund_items
- calculate_exchange_difference / validate_exchange
- RefundService, RefundController

Optional Qt table models (imported defensively so environments without Qt
can still import this package):
- RefundableItemsModel
- RefundHistoryModel
"""

from .allocation import AllocatedLine, allocate_invoice_discount, allocate_sale_item
from .eligibility import RefundableLine, build_refund_items, refundable_items, refunded_quantities
from .exchange import (
    REFUND_METHODS,
    ExchangeBranch,
    ExchangeCalculation,
    ExchangeResult,
    ExchangeValidation,
    RefundPhase,
    calculate_exchange_difference,
    validate_exchange,
)
from .service import (
    RefundOutcome,
    RefundProcessingError,
    RefundService,
    RefundValidationError,
    refund_method_label,
)
from .controller import RefundController, RefundSummary

# Qt models are optional to avoid a hard Qt dependency during headless tests
try:
    from .model import RefundableItemsModel, RefundHistoryModel  # type: ignore
except Exception:  # pragma: no cover
    RefundableItemsModel = None  # type: ignore
    RefundHistoryModel = None  # type: ignore

__all__ = [
    "AllocatedLine",
    "allocate_invoice_discount",
    "allocate_sale_item",
    "RefundableLine",
    "build_refund_items",
    "refundable_items",
    "refunded_quantities",
    "REFUND_METHODS",
    "ExchangeBranch",
    "ExchangeCalculation",
    "ExchangeResult",
    "ExchangeValidation",
    "RefundPhase",
    "calculate_exchange_difference",
    "validate_exchange",
    "RefundOutcome",
    "RefundProcessingError",
    "RefundService",
    "RefundValidationError",
    "refund_method_label",
    "RefundController",
    "RefundSummary",
    "RefundableItemsModel",
    "RefundHistoryModel",
]
