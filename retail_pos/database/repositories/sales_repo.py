# database/repositories/sales_repo.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Iterable, Optional
import uuid

from ...constants import KEY_PREFIX_SALES
from ...utils.helpers import now_iso, parse_iso
from .errors import StoreContextError
from .kv_store import KeyValueStore

DISCOUNT_MODES = ("flat", "percent")
PAYMENT_TYPES = ("cash", "card", "mobile")


@dataclass
class SaleItem:
    id: int                      # product id
    name: str
    quantity: int
    unit_price: float
    discount_mode: str = "flat"
    discount_value: float = 0.0
    line_discount: float = 0.0
    line_total: Optional[float] = None   # after product-level discount only

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "discountMode": self.discount_mode,
            "discountValue": self.discount_value,
            "lineDiscount": self.line_discount,
            "lineTotal": self.line_total,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "SaleItem":
        return cls(
            id=int(d["id"]),
            name=str(d.get("name") or ""),
            quantity=d.get("quantity") or 0,
            unit_price=float(d.get("unitPrice") or 0.0),
            discount_mode=d.get("discountMode") or "flat",
            discount_value=float(d.get("discountValue") or 0.0),
            line_discount=float(d.get("lineDiscount") or 0.0),
            line_total=None if d.get("lineTotal") is None else float(d["lineTotal"]),
        )


@dataclass
class Sale:
    """
    A completed checkout. Never mutated after it is recorded.

    total = subtotal - product_discount_total - invoice_discount_amount
    """
    timestamp: str
    items: list[SaleItem]
    subtotal: float
    total: float
    payment_type: str = "cash"
    cashier: str = ""
    product_discount_total: float = 0.0
    invoice_discount_mode: str = "flat"
    invoice_discount_value: float = 0.0
    invoice_discount_amount: float = 0.0
    total_discount: float = 0.0
    customer_id: Optional[str] = None
    customer_name: Optional[str] = None
    due_amount: Optional[float] = None
    id: str = ""
    invoice_number: str = ""
    extra: dict = field(default_factory=dict, repr=False, compare=False)

    def item_for(self, product_id: int) -> Optional[SaleItem]:
        for it in self.items:
            if it.id == product_id:
                return it
        return None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "datetime": self.timestamp,
            "items": [it.to_dict() for it in self.items],
            "subtotal": self.subtotal,
            "productDiscountTotal": self.product_discount_total,
            "invoiceDiscountMode": self.invoice_discount_mode,
            "invoiceDiscountValue": self.invoice_discount_value,
            "invoiceDiscountAmount": self.invoice_discount_amount,
            "totalDiscount": self.total_discount,
            "total": self.total,
            "paymentType": self.payment_type,
            "cashier": self.cashier,
        }
        if self.customer_id is not None:
            d["customerId"] = self.customer_id
        if self.customer_name is not None:
            d["customerName"] = self.customer_name
        if self.due_amount is not None:
            d["dueAmount"] = self.due_amount
        d.update(self.extra)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Sale":
        known = {
            "id", "invoiceNumber", "datetime", "items", "subtotal", "productDiscountTotal",
            "invoiceDiscountMode", "invoiceDiscountValue", "invoiceDiscountAmount",
            "totalDiscount", "total", "paymentType", "cashier", "customerId",
            "customerName", "dueAmount",
        }
        return cls(
            id=str(d.get("id") or ""),
            invoice_number=str(d.get("invoiceNumber") or ""),
            timestamp=str(d.get("datetime") or ""),
            items=[SaleItem.from_dict(it) for it in d.get("items") or []],
            subtotal=float(d.get("subtotal") or 0.0),
            product_discount_total=float(d.get("productDiscountTotal") or 0.0),
            invoice_discount_mode=d.get("invoiceDiscountMode") or "flat",
            invoice_discount_value=float(d.get("invoiceDiscountValue") or 0.0),
            invoice_discount_amount=float(d.get("invoiceDiscountAmount") or 0.0),
            total_discount=float(d.get("totalDiscount") or 0.0),
            total=float(d.get("total") or 0.0),
            payment_type=d.get("paymentType") or "cash",
            cashier=d.get("cashier") or "",
            customer_id=d.get("customerId"),
            customer_name=d.get("customerName"),
            due_amount=d.get("dueAmount"),
            # keep fields written by other tools so a rewrite does not drop them
            extra={k: v for k, v in d.items() if k not in known},
        )


class SalesRepo:
    """
    Store-scoped sales journal.

    Persisted document (key `sales_<store_id>`):
        {"sales": [...], "nextInvoiceSeq": n}
    Invoice numbers are `YYYYMMDD-NNNN`, the sequence being per store.
    """

    def __init__(self, kv: KeyValueStore, store_id: str | None):
        self.kv = kv
        self.store_id = store_id or ""

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX_SALES}{self.store_id}"

    def _load(self) -> dict:
        if not self.store_id:
            return {"sales": [], "nextInvoiceSeq": 1}
        raw = self.kv.get_json(self.key) or {}
        return {
            "sales": [Sale.from_dict(s) for s in raw.get("sales") or []],
            "nextInvoiceSeq": int(raw.get("nextInvoiceSeq") or 1),
        }

    def _persist(self, data: dict) -> None:
        self.kv.set_json(
            self.key,
            {
                "sales": [s.to_dict() for s in data["sales"]],
                "nextInvoiceSeq": data["nextInvoiceSeq"],
            },
        )

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_sales(self) -> list[Sale]:
        return self._load()["sales"]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        for s in self.list_sales():
            if s.id == sale_id:
                return s
        return None

    def find_by_invoice(self, invoice_number: str) -> Optional[Sale]:
        for s in self.list_sales():
            if s.invoice_number == invoice_number:
                return s
        return None

    def _total_since(self, start: datetime) -> float:
        total = 0.0
        for s in self.list_sales():
            ts = parse_iso(s.timestamp)
            if ts is not None and ts >= start:
                total += s.total
        return total

    def today_total(self) -> float:
        now = datetime.now().astimezone()
        return self._total_since(now.replace(hour=0, minute=0, second=0, microsecond=0))

    def week_total(self) -> float:
        """Last seven days including today."""
        now = datetime.now().astimezone()
        first = (now - timedelta(days=6)).replace(hour=0, minute=0, second=0, microsecond=0)
        return self._total_since(first)

    def month_total(self) -> float:
        now = datetime.now().astimezone()
        return self._total_since(now.replace(day=1, hour=0, minute=0, second=0, microsecond=0))

    def best_selling(self) -> list[dict]:
        agg: dict[int, dict] = {}
        for s in self.list_sales():
            for it in s.items:
                row = agg.setdefault(it.id, {"id": it.id, "name": it.name, "quantity": 0})
                row["quantity"] += it.quantity
        return sorted(agg.values(), key=lambda r: r["quantity"], reverse=True)

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    @staticmethod
    def _invoice_number(seq: int, when: Optional[datetime] = None) -> str:
        when = when or datetime.now()
        return f"{when:%Y%m%d}-{seq:04d}"

    def record_sale(self, sale: Sale) -> Sale:
        """
        Persist a sale and return it stamped with a fresh id and invoice
        number. Stock is NOT touched here; checkout and the exchange flow
        consume stock explicitly in the same transaction.
        """
        if not self.store_id:
            raise StoreContextError("Select a store before recording a sale.")
        with self.kv.immediate_tx():
            data = self._load()
            stamped = replace(
                sale,
                id=str(uuid.uuid4()),
                invoice_number=self._invoice_number(data["nextInvoiceSeq"]),
                timestamp=sale.timestamp or now_iso(),
            )
            data["nextInvoiceSeq"] += 1
            data["sales"].append(stamped)
            self._persist(data)
        return stamped

    def delete_sale(self, sale_id: str) -> bool:
        with self.kv.immediate_tx():
            data = self._load()
            kept = [s for s in data["sales"] if s.id != sale_id]
            if len(kept) == len(data["sales"]):
                return False
            data["sales"] = kept
            self._persist(data)
        return True
