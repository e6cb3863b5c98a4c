from pathlib import Path
import sqlite3
import sys

from ..constants import TABLE_KV_STORE, TABLE_SCHEMA_VERSION

SQL = f"""
PRAGMA foreign_keys = ON;

/* -------- store-scoped entity blobs --------
   key   = '<entity>_<store_id>' (or a global name such as 'storesData')
   value = JSON document
*/
CREATE TABLE IF NOT EXISTS {TABLE_KV_STORE} (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL CHECK (json_valid(value)),
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_VERSION} (
    id      INTEGER PRIMARY KEY CHECK (id=1),
    version TEXT NOT NULL
);
"""


def init_schema(conn: sqlite3.Connection) -> None:
    """Apply the (idempotent) schema to an open connection."""
    conn.executescript(SQL)


def init_schema_file(db_path: Path | str) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        init_schema(conn)
        conn.commit()
    finally:
        conn.close()
    print(f"✓ DB applied to {db_path}")


if __name__ == "__main__":
    from ..config import DB_PATH

    target = sys.argv[1] if len(sys.argv) > 1 else DB_PATH
    init_schema_file(target)
