# session.py
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

from .constants import DEFAULT_CASHIER
from .database import get_connection
from .database.repositories import (
    KeyValueStore,
    ProductsRepo,
    RefundsRepo,
    SalesRepo,
    StoreInfo,
    StoresRepo,
)
from .modules.refunds import RefundController, RefundService
from .modules.sales import CheckoutService
from .utils.loggers import get_logger

_log = get_logger(__name__)


class StoreSession:
    """
    Explicit context for one terminal: the open database, the selected
    store, the signed-in cashier and the repositories bound to that store.

    Switching store rebinds every repository; services handed out earlier
    keep the store they were created for. Each store has one re-entrant
    lock shared by every service of that store.
    """

    def __init__(self, conn: sqlite3.Connection, *, cashier: str = DEFAULT_CASHIER):
        self.conn = conn
        self.kv = KeyValueStore(conn)
        self.stores = StoresRepo(self.kv)
        self.cashier = cashier or DEFAULT_CASHIER
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._bind(self.stores.current_store_id)

    @classmethod
    def open(cls, db_path: Path | str | None = None, *, cashier: str = DEFAULT_CASHIER) -> "StoreSession":
        return cls(get_connection(db_path), cashier=cashier)

    def close(self) -> None:
        self.conn.close()

    # ---------------------------------------------------------------------
    # store context
    # ---------------------------------------------------------------------
    def _bind(self, store_id: str) -> None:
        self.store_id = store_id or ""
        self.products = ProductsRepo(self.kv, self.store_id)
        self.sales = SalesRepo(self.kv, self.store_id)
        self.refunds = RefundsRepo(self.kv, self.store_id)

    def lock_for(self, store_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(store_id)
            if lock is None:
                lock = self._locks[store_id] = threading.RLock()
            return lock

    @property
    def lock(self) -> threading.RLock:
        return self.lock_for(self.store_id)

    @property
    def current_store(self) -> StoreInfo | None:
        return self.stores.get(self.store_id) if self.store_id else None

    def switch_store(self, store_id: str) -> None:
        self.stores.set_current_store(store_id)
        self._bind(store_id)
        _log.info("switched to store %s", store_id or "<none>")

    def remove_store(self, store_id: str) -> StoreInfo | None:
        removed = self.stores.delete_store(store_id)
        if removed is not None:
            self._bind(self.stores.current_store_id)
        return removed

    def set_cashier(self, name: str | None) -> None:
        self.cashier = (name or "").strip() or DEFAULT_CASHIER

    # ---------------------------------------------------------------------
    # services
    # ---------------------------------------------------------------------
    def refund_service(self) -> RefundService:
        return RefundService(
            self.kv, self.products, self.sales, self.refunds,
            cashier=self.cashier, lock=self.lock,
        )

    def checkout_service(self) -> CheckoutService:
        return CheckoutService(self.kv, self.products, self.sales, cashier=self.cashier, lock=self.lock)

    def refund_controller(self) -> RefundController:
        return RefundController(self.refund_service())
