"""
Retail point-of-sale back end: sales, products, refunds and exchanges kept
in a store-scoped sqlite key-value store.

Typical use:

    from retail_pos import StoreSession

    session = StoreSession.open(":memory:")
    store_id = session.stores.add_store("Main Street")
    session.switch_store(store_id)
    service = session.refund_service()
"""

from .session import StoreSession

__all__ = ["StoreSession"]
__version__ = "0.1.0"
