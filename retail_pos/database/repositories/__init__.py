# database/repositories/__init__.py
"""
Repository layer public API.

Usage:
    from retail_pos.database.repositories import (
        KeyValueStore,
        StoresRepo, StoreInfo,
        ProductsRepo, Product,
        SalesRepo, Sale, SaleItem,
        RefundsRepo, RefundRecord, RefundItem, RefundNumberSequencer,
        DomainError, StoreContextError, InsufficientStockError,
    )
"""

# ---------------- Errors -------------------
from .errors import DomainError, StoreContextError, InsufficientStockError

# ---------------- Storage ------------------
from .kv_store import KeyValueStore

# ---------------- Stores -------------------
from .stores_repo import StoresRepo, StoreInfo

# ---------------- Products -----------------
from .products_repo import ProductsRepo, Product

# ------------------ Sales ------------------
from .sales_repo import SalesRepo, Sale, SaleItem, DISCOUNT_MODES, PAYMENT_TYPES

# ----------------- Refunds -----------------
from .refunds_repo import (
    RefundsRepo,
    RefundRecord,
    RefundItem,
    RefundNumberSequencer,
    REFUND_TYPES,
    refund_number,
)

__all__ = [
    "DomainError",
    "StoreContextError",
    "InsufficientStockError",
    "KeyValueStore",
    "StoresRepo",
    "StoreInfo",
    "ProductsRepo",
    "Product",
    "SalesRepo",
    "Sale",
    "SaleItem",
    "DISCOUNT_MODES",
    "PAYMENT_TYPES",
    "RefundsRepo",
    "RefundRecord",
    "RefundItem",
    "RefundNumberSequencer",
    "REFUND_TYPES",
    "refund_number",
]
