# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from ..config import DB_PATH
from ..constants import SCHEMA_VERSION
from . import schema as schema_module
from .versioning import get_current_version, set_current_version


def get_connection(db_path: Path | str | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - autocommit mode (transactions are opened explicitly by KeyValueStore)
      - WAL mode for file databases
      - foreign_keys ON
      - row_factory = sqlite3.Row
    Ensures the schema and version row exist (idempotent).

    Pass ":memory:" for a throwaway database.
    """
    target = DB_PATH if db_path is None else db_path
    in_memory = str(target) == ":memory:"
    if not in_memory:
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    # the store-scoped lock serialises writers, so one connection may be
    # shared across threads
    conn = sqlite3.connect(str(target), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL;")

    schema_module.init_schema(conn)
    if get_current_version(conn) is None:
        set_current_version(conn, SCHEMA_VERSION)
    return conn


__all__ = [
    "get_connection",
]
