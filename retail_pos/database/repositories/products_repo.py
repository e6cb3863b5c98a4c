# database/repositories/products_repo.py
from __future__ import annotations

from dataclasses import dataclass, asdict, fields
from typing import Iterable, Optional
import logging

from ...constants import KEY_PREFIX_PRODUCTS, LOW_STOCK_THRESHOLD
from ...utils.validators import is_non_negative_number, non_empty
from .errors import DomainError, InsufficientStockError, StoreContextError
from .kv_store import KeyValueStore

_log = logging.getLogger(__name__)


@dataclass
class Product:
    id: int
    name: str
    price: float
    stock: int = 0
    barcode: str = ""
    image: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "Product":
        return cls(
            id=int(d["id"]),
            name=str(d.get("name") or ""),
            price=float(d.get("price") or 0.0),
            stock=int(d.get("stock") or 0),
            barcode=str(d.get("barcode") or ""),
            image=str(d.get("image") or ""),
        )


_EDITABLE = {f.name for f in fields(Product)} - {"id"}


def _as_stock_qty(qty) -> int:
    """Stock moves in whole units; reject fractional or negative quantities."""
    value = float(qty)
    if value < 0 or value != int(value):
        raise DomainError(f"Stock quantity must be a non-negative whole number, got {qty!r}.")
    return int(value)


class ProductsRepo:
    """
    Store-scoped product catalogue with stock counts.

    Persisted document (key `products_<store_id>`):
        {"products": [...], "currentStoreId": sid, "lowStockThreshold": n, "nextId": n}
    Stock is a non-negative integer; `decrement_stock` is all-or-nothing.
    """

    def __init__(self, kv: KeyValueStore, store_id: str | None):
        self.kv = kv
        self.store_id = store_id or ""

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX_PRODUCTS}{self.store_id}"

    # ---------------------------- persistence ----------------------------

    def _load(self) -> dict:
        if not self.store_id:
            return {"products": [], "lowStockThreshold": LOW_STOCK_THRESHOLD, "nextId": 1}
        raw = self.kv.get_json(self.key) or {}
        products = []
        for p in raw.get("products") or []:
            # older documents kept per-store stock in `stockByStore`
            if isinstance(p, dict) and "stockByStore" in p:
                p = dict(p)
                by_store = p.pop("stockByStore") or {}
                p["stock"] = int(by_store.get(self.store_id, 0) or 0)
            products.append(Product.from_dict(p))
        next_id = raw.get("nextId") or (max((p.id for p in products), default=0) + 1)
        return {
            "products": products,
            "lowStockThreshold": int(raw.get("lowStockThreshold", LOW_STOCK_THRESHOLD)),
            "nextId": int(next_id),
        }

    def _persist(self, data: dict) -> None:
        if not self.store_id:
            raise StoreContextError("Select a store before changing products.")
        self.kv.set_json(
            self.key,
            {
                "products": [asdict(p) for p in data["products"]],
                "currentStoreId": self.store_id,
                "lowStockThreshold": data["lowStockThreshold"],
                "nextId": data["nextId"],
            },
        )

    # ---------------------------- READ ----------------------------

    def list_products(self) -> list[Product]:
        return self._load()["products"]

    def get(self, product_id: int) -> Optional[Product]:
        for p in self.list_products():
            if p.id == product_id:
                return p
        return None

    def in_stock(self) -> list[Product]:
        return [p for p in self.list_products() if p.stock > 0]

    def by_barcode(self, barcode: str) -> Optional[Product]:
        for p in self.list_products():
            if p.barcode and p.barcode == barcode:
                return p
        return None

    @property
    def low_stock_threshold(self) -> int:
        return self._load()["lowStockThreshold"]

    def low_stock(self) -> list[Product]:
        data = self._load()
        return [p for p in data["products"] if p.stock < data["lowStockThreshold"]]

    # ---------------------------- WRITE ----------------------------

    def add(self, name: str, price: float, stock: int = 0, barcode: str = "", image: str = "") -> Product:
        if not non_empty(name):
            raise DomainError("Product name is required.")
        if not is_non_negative_number(price):
            raise DomainError("Product price must be a non-negative number.")
        name = name.strip()
        with self.kv.immediate_tx():
            data = self._load()
            p = Product(
                id=data["nextId"],
                name=name,
                price=float(price),
                stock=_as_stock_qty(stock),
                barcode=barcode or "",
                image=image or "",
            )
            data["products"].append(p)
            data["nextId"] += 1
            self._persist(data)
        return p

    def update(self, product_id: int, **patch) -> Optional[Product]:
        unknown = set(patch) - _EDITABLE
        if unknown:
            raise DomainError(f"Cannot update product field(s): {', '.join(sorted(unknown))}")
        if "stock" in patch:
            patch["stock"] = _as_stock_qty(patch["stock"])
        with self.kv.immediate_tx():
            data = self._load()
            for idx, p in enumerate(data["products"]):
                if p.id == product_id:
                    updated = Product(**{**asdict(p), **patch})
                    data["products"][idx] = updated
                    self._persist(data)
                    return updated
        return None

    def remove(self, product_id: int) -> None:
        with self.kv.immediate_tx():
            data = self._load()
            data["products"] = [p for p in data["products"] if p.id != product_id]
            self._persist(data)

    def set_threshold(self, n: int) -> None:
        with self.kv.immediate_tx():
            data = self._load()
            data["lowStockThreshold"] = int(n)
            self._persist(data)

    # ---------------------------- STOCK ----------------------------

    def increment_stock(self, product_id: int, qty: int) -> bool:
        """
        Put `qty` units back on the shelf. Returns False when the product no
        longer exists in the catalogue (nothing to restore).
        """
        qty = _as_stock_qty(qty)
        with self.kv.immediate_tx():
            data = self._load()
            for p in data["products"]:
                if p.id == product_id:
                    p.stock += qty
                    self._persist(data)
                    return True
        _log.warning("increment_stock: product %s not found in store %s", product_id, self.store_id)
        return False

    def decrement_stock(self, items: Iterable[tuple[int, int]]) -> None:
        """
        Batch stock consumption: [(product_id, qty), ...].
        Validates every line first; nothing is written if any line would go
        below zero or names an unknown product.
        """
        wanted: dict[int, int] = {}
        for product_id, qty in items:
            wanted[int(product_id)] = wanted.get(int(product_id), 0) + _as_stock_qty(qty)
        if not wanted:
            return

        with self.kv.immediate_tx():
            data = self._load()
            by_id = {p.id: p for p in data["products"]}
            for product_id, qty in wanted.items():
                p = by_id.get(product_id)
                if p is None:
                    raise DomainError(f"Product {product_id} not found in inventory.")
                if qty > p.stock:
                    raise InsufficientStockError(
                        f'Insufficient stock for "{p.name}". Available: {p.stock}, Required: {qty}'
                    )
            for product_id, qty in wanted.items():
                by_id[product_id].stock -= qty
            self._persist(data)
