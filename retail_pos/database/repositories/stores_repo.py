# database/repositories/stores_repo.py
from __future__ import annotations

import secrets
from dataclasses import dataclass, asdict

from ...constants import KEY_STORES, STORE_SCOPED_PREFIXES
from .kv_store import KeyValueStore


@dataclass
class StoreInfo:
    id: str
    name: str
    owner: str | None = None


class StoresRepo:
    """
    Registry of stores plus the currently selected store id, persisted as a
    single global document (`storesData`).
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def _load(self) -> dict:
        data = self.kv.get_json(KEY_STORES) or {}
        return {
            "stores": list(data.get("stores") or []),
            "currentStoreId": data.get("currentStoreId") or "",
        }

    def _persist(self, data: dict) -> None:
        self.kv.set_json(KEY_STORES, data)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def list_stores(self) -> list[StoreInfo]:
        return [
            StoreInfo(id=s["id"], name=s["name"], owner=s.get("owner"))
            for s in self._load()["stores"]
        ]

    def get(self, store_id: str) -> StoreInfo | None:
        for s in self.list_stores():
            if s.id == store_id:
                return s
        return None

    @property
    def current_store_id(self) -> str:
        data = self._load()
        sid = data["currentStoreId"]
        if sid:
            return sid
        return data["stores"][0]["id"] if data["stores"] else ""

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def add_store(self, name: str, owner: str | None = None) -> str:
        """
        Register a store and return its id. The current store only changes
        when none was selected yet.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Store name is required.")
        with self.kv.immediate_tx():
            data = self._load()
            existing = {s["id"] for s in data["stores"]}
            sid = f"store-{secrets.token_hex(3)}"
            while sid in existing:
                sid = f"store-{secrets.token_hex(3)}"
            data["stores"].append(asdict(StoreInfo(id=sid, name=name, owner=owner)))
            if not data["currentStoreId"]:
                data["currentStoreId"] = sid
            self._persist(data)
        return sid

    def set_current_store(self, store_id: str) -> None:
        with self.kv.immediate_tx():
            data = self._load()
            if store_id and store_id not in {s["id"] for s in data["stores"]}:
                raise ValueError(f"Unknown store: {store_id}")
            data["currentStoreId"] = store_id
            self._persist(data)

    def delete_store(self, store_id: str) -> StoreInfo | None:
        """
        Remove a store together with its products, sales and refunds.
        If it was current, the first remaining store becomes current.
        """
        with self.kv.immediate_tx():
            data = self._load()
            idx = next((i for i, s in enumerate(data["stores"]) if s["id"] == store_id), None)
            if idx is None:
                return None
            removed = data["stores"].pop(idx)
            for prefix in STORE_SCOPED_PREFIXES:
                self.kv.delete(f"{prefix}{store_id}")
            if data["currentStoreId"] == store_id:
                data["currentStoreId"] = data["stores"][0]["id"] if data["stores"] else ""
            self._persist(data)
        return StoreInfo(id=removed["id"], name=removed["name"], owner=removed.get("owner"))
