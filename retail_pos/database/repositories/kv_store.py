# database/repositories/kv_store.py
from __future__ import annotations

"""
Key-value persistence for store-scoped entity documents.

Every entity collection lives in one row of `kv_store`, keyed by
`<entity>_<store_id>` (e.g. `sales_store-ab12cd`) with a JSON document as
value. Repositories read the document, change it and write it back; wrapping
several such writes in `immediate_tx()` commits or discards them together.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from ...constants import TABLE_KV_STORE


class KeyValueStore:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._depth = 0
        self._tx_lock = threading.RLock()

    # ---------------------------- TX helper ----------------------------

    @contextmanager
    def immediate_tx(self) -> Iterator[None]:
        """
        Start an IMMEDIATE transaction, commit on success, rollback on error.

        Nested calls join the outermost transaction, so an orchestrator can
        wrap several repository writes into one atomic unit.
        """
        with self._tx_lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            self.conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield
            except BaseException:
                self._depth = 0
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
            self._depth = 0
            self.conn.execute("COMMIT")

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # ---------------------------- Documents ----------------------------

    def get_json(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute(
            f"SELECT value FROM {TABLE_KV_STORE} WHERE key=?", (key,)
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set_json(self, key: str, value: Any) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        with self.immediate_tx():
            self.conn.execute(
                f"""
                INSERT INTO {TABLE_KV_STORE}(key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE
                   SET value=excluded.value,
                       updated_at=excluded.updated_at
                """,
                (key, payload),
            )

    def delete(self, key: str) -> None:
        with self.immediate_tx():
            self.conn.execute(f"DELETE FROM {TABLE_KV_STORE} WHERE key=?", (key,))

    def keys_with_prefix(self, prefix: str) -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        rows = self.conn.execute(
            f"SELECT key FROM {TABLE_KV_STORE} WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
            (escaped + "%",),
        ).fetchall()
        return [r["key"] for r in rows]
