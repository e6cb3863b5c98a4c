# database/repositories/refunds_repo.py
from __future__ import annotations

"""
Append-only refund journal and the store-scoped refund numbering sequence.

Persisted document (key `refunds_<store_id>`):
    {"refunds": [...], "nextRefundSeq": n}

Older installs stored a bare list of refund dicts with a different shape
(`returnedItems`, `amount`, `type`, `description`, ...). Such documents are
mapped to the current shape on first load and rewritten.
"""

from dataclasses import dataclass, field
import logging
import re
from typing import Iterable, Optional

from ...constants import KEY_PREFIX_REFUNDS, REFUND_ID_PREFIX, REFUND_ID_WIDTH
from ...utils.helpers import now_iso
from .kv_store import KeyValueStore

_log = logging.getLogger(__name__)

REFUND_TYPES = ("full_return", "partial_return", "exchange", "cash_refund")


@dataclass
class RefundItem:
    id: int              # product id
    name: str
    quantity: int
    unit_price: float    # as paid, after allocated invoice discount
    line_total: float

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "lineTotal": self.line_total,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "RefundItem":
        return cls(
            id=int(d["id"]),
            name=str(d.get("name") or "Item"),
            quantity=d.get("quantity") or 0,
            unit_price=float(d.get("unitPrice") or 0.0),
            line_total=float(d.get("lineTotal") or 0.0),
        )

    @classmethod
    def from_legacy(cls, d: dict) -> Optional["RefundItem"]:
        """None when the row names no product at all."""
        product_id = d.get("productId")
        if product_id is None:
            product_id = d.get("id")
        if product_id is None:
            return None
        unit_price = d.get("unitPrice", d.get("price"))
        unit_price = float(unit_price or 0.0)
        qty = d.get("quantity") or 0
        return cls(
            id=int(product_id),
            name=str(d.get("productName") or d.get("name") or "Item"),
            quantity=qty,
            unit_price=unit_price,
            line_total=unit_price * qty,
        )


@dataclass
class RefundRecord:
    sale_id: str
    invoice_number: str
    refund_type: str
    refunded_items: list[RefundItem]
    total_refund: float
    refund_method: str
    payment_method: str
    cashier: str
    refund_reason: Optional[str] = None
    exchanged_items: Optional[list[RefundItem]] = None
    exchange_difference: Optional[float] = None
    exchange_sale_id: Optional[str] = None
    refund_id: str = ""
    store_id: str = ""
    created_at: str = ""
    extra: dict = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self) -> dict:
        d = {
            "refundId": self.refund_id,
            "storeId": self.store_id,
            "saleId": self.sale_id,
            "invoiceNumber": self.invoice_number,
            "refundType": self.refund_type,
            "refundedItems": [it.to_dict() for it in self.refunded_items],
            "totalRefund": self.total_refund,
            "refundMethod": self.refund_method,
            "paymentMethod": self.payment_method,
            "cashier": self.cashier,
            "createdAt": self.created_at,
        }
        if self.refund_reason is not None:
            d["refundReason"] = self.refund_reason
        if self.exchanged_items is not None:
            d["exchangedItems"] = [it.to_dict() for it in self.exchanged_items]
        if self.exchange_difference is not None:
            d["exchangeDifference"] = self.exchange_difference
        if self.exchange_sale_id is not None:
            d["exchangeSaleId"] = self.exchange_sale_id
        d.update(self.extra)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "RefundRecord":
        known = {
            "refundId", "storeId", "saleId", "invoiceNumber", "refundType", "refundedItems",
            "totalRefund", "refundMethod", "paymentMethod", "cashier", "createdAt",
            "refundReason", "exchangedItems", "exchangeDifference", "exchangeSaleId",
        }
        exchanged = d.get("exchangedItems")
        return cls(
            refund_id=str(d.get("refundId") or ""),
            store_id=str(d.get("storeId") or ""),
            sale_id=str(d.get("saleId") or ""),
            invoice_number=str(d.get("invoiceNumber") or ""),
            refund_type=d.get("refundType") or "partial_return",
            refunded_items=[RefundItem.from_dict(it) for it in d.get("refundedItems") or []],
            exchanged_items=None if exchanged is None else [RefundItem.from_dict(it) for it in exchanged],
            total_refund=float(d.get("totalRefund") or 0.0),
            refund_method=d.get("refundMethod") or "Original Payment",
            payment_method=d.get("paymentMethod") or "cash",
            cashier=d.get("cashier") or "",
            created_at=d.get("createdAt") or "",
            refund_reason=d.get("refundReason"),
            exchange_difference=d.get("exchangeDifference"),
            exchange_sale_id=d.get("exchangeSaleId"),
            extra={k: v for k, v in d.items() if k not in known},
        )

    @classmethod
    def from_legacy(cls, d: dict, store_id: str) -> "RefundRecord":
        """Map a pre-journal refund dict; the id may be missing and is assigned later."""
        returned = d.get("returnedItems") or []
        exchanged = d.get("exchangedItems")
        return cls(
            refund_id=str(d.get("refundId") or d.get("id") or ""),
            store_id=str(d.get("storeId") or store_id),
            sale_id=str(d.get("saleId") or ""),
            invoice_number=str(d.get("invoiceNumber") or ""),
            refund_type=d.get("type") or "partial_return",
            refunded_items=_legacy_items(returned),
            exchanged_items=None if exchanged is None else _legacy_items(exchanged),
            total_refund=float(d.get("amount") or 0.0),
            refund_method=d.get("refundMethod") or "Original Payment",
            payment_method=d.get("paymentMethod") or "cash",
            cashier=d.get("cashier") or "",
            created_at=d.get("createdAt") or "",
            refund_reason=d.get("description"),
            exchange_difference=d.get("exchangeDifference"),
            exchange_sale_id=d.get("exchangeSaleId"),
        )


def _legacy_items(rows: list) -> list[RefundItem]:
    items = []
    for row in rows:
        item = RefundItem.from_legacy(row) if isinstance(row, dict) else None
        if item is None:
            _log.warning("skipping legacy refund line without a product id: %r", row)
            continue
        items.append(item)
    return items


def refund_number(seq: int) -> str:
    """`REF-` + sequence zero-padded to four digits (wider once past 9999)."""
    return f"{REFUND_ID_PREFIX}{seq:0{REFUND_ID_WIDTH}d}"


def refund_id_suffix(refund_id: str) -> Optional[int]:
    digits = re.sub(r"\D", "", str(refund_id or ""))
    return int(digits) if digits else None


class RefundNumberSequencer:
    """
    Monotonic store-scoped counter behind refund ids.

    The counter is persisted with the refund list; `reconcile` moves it past
    every id already present so imported data can never collide.
    """

    def __init__(self, next_seq: int = 1):
        self.next_seq = max(1, int(next_seq or 1))

    def peek(self) -> str:
        return refund_number(self.next_seq)

    def next(self) -> str:
        rid = refund_number(self.next_seq)
        self.next_seq += 1
        return rid

    def reconcile(self, refund_ids: Iterable[str]) -> bool:
        """Advance to max(existing suffix) + 1 when needed. Returns True if moved."""
        suffixes = [n for n in (refund_id_suffix(r) for r in refund_ids) if n is not None]
        highest = max(suffixes, default=0)
        if highest >= self.next_seq:
            self.next_seq = highest + 1
            return True
        return False


class RefundsRepo:
    def __init__(self, kv: KeyValueStore, store_id: str | None):
        self.kv = kv
        self.store_id = store_id or ""

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX_REFUNDS}{self.store_id}"

    # ---------------------------------------------------------------------
    # persistence
    # ---------------------------------------------------------------------
    def _load(self) -> tuple[list[RefundRecord], RefundNumberSequencer]:
        if not self.store_id:
            return [], RefundNumberSequencer()
        raw = self.kv.get_json(self.key)
        if raw is None:
            return [], RefundNumberSequencer()

        if isinstance(raw, list):
            refunds, seq = self._migrate_legacy(raw)
            self._persist(refunds, seq)
            return refunds, seq

        refunds = [RefundRecord.from_dict(r) for r in raw.get("refunds") or []]
        seq = RefundNumberSequencer(raw.get("nextRefundSeq") or 1)
        if seq.reconcile(r.refund_id for r in refunds):
            _log.warning(
                "refund sequence for store %s advanced to %s to clear existing ids",
                self.store_id, seq.next_seq,
            )
        return refunds, seq

    def _migrate_legacy(self, rows: list) -> tuple[list[RefundRecord], RefundNumberSequencer]:
        refunds = [RefundRecord.from_legacy(r, self.store_id) for r in rows if isinstance(r, dict)]
        seq = RefundNumberSequencer()
        # number the id-less rows only after clearing the ids already in use
        seq.reconcile(r.refund_id for r in refunds if r.refund_id)
        for r in refunds:
            if not r.refund_id:
                r.refund_id = seq.next()
        _log.info("migrated %d legacy refund(s) for store %s", len(refunds), self.store_id)
        return refunds, seq

    def _persist(self, refunds: list[RefundRecord], seq: RefundNumberSequencer) -> None:
        self.kv.set_json(
            self.key,
            {"refunds": [r.to_dict() for r in refunds], "nextRefundSeq": seq.next_seq},
        )

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_refunds(self) -> list[RefundRecord]:
        return self._load()[0]

    def refunds_for_current_store(self) -> list[RefundRecord]:
        if not self.store_id:
            return []
        return [r for r in self.list_refunds() if r.store_id == self.store_id]

    def refunds_for_sale(self, sale_id: str) -> list[RefundRecord]:
        return [r for r in self.list_refunds() if r.sale_id == sale_id]

    def total_refunded_for_sale(self, sale_id: str) -> float:
        return sum(r.total_refund for r in self.refunds_for_sale(sale_id))

    def get(self, refund_id: str) -> Optional[RefundRecord]:
        for r in self.list_refunds():
            if r.refund_id == refund_id:
                return r
        return None

    def next_refund_number(self) -> str:
        """The id the next recorded refund will receive."""
        return self._load()[1].peek()

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def record_refund(self, refund: RefundRecord) -> Optional[RefundRecord]:
        """
        Append a refund stamped with the next sequence id, the store id and
        the creation time. Returns None when no store is selected.
        """
        if not self.store_id:
            return None
        with self.kv.immediate_tx():
            refunds, seq = self._load()
            refund.refund_id = seq.next()
            refund.store_id = self.store_id
            refund.created_at = now_iso()
            refunds.append(refund)
            self._persist(refunds, seq)
        return refund

    def delete_refund(self, refund_id: str) -> bool:
        """Administrative removal. The sequence is not rewound."""
        with self.kv.immediate_tx():
            refunds, seq = self._load()
            kept = [r for r in refunds if r.refund_id != refund_id]
            if len(kept) == len(refunds):
                return False
            self._persist(kept, seq)
        return True
