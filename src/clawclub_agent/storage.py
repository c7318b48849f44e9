from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
import json
import sqlite3
from typing import Any, Protocol


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...


class SqliteStore:
    """JSON values keyed by (namespace, key); every set commits on its own."""

    def __init__(self, database_path: str, namespace: str = "clawclub") -> None:
        self.path = Path(database_path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace
        self.conn = sqlite3.connect(self.path)
        self.conn.row_factory = sqlite3.Row
        self._create_schema()

    def _create_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_state (
              namespace TEXT NOT NULL,
              key TEXT NOT NULL,
              value TEXT NOT NULL,
              updated_at TEXT NOT NULL,
              PRIMARY KEY (namespace, key)
            );
            """
        )
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    def get(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute(
            "SELECT value FROM kv_state WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        ).fetchone()
        if row is None:
            return default
        return json.loads(row["value"])

    def set(self, key: str, value: Any) -> None:
        self.conn.execute(
            """
            INSERT INTO kv_state (namespace, key, value, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(namespace, key) DO UPDATE SET
              value=excluded.value,
              updated_at=excluded.updated_at
            """,
            (
                self.namespace,
                key,
                json.dumps(value, separators=(",", ":"), default=str),
                datetime.now(tz=timezone.utc).isoformat(),
            ),
        )
        self.conn.commit()

    def keys(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT key FROM kv_state WHERE namespace = ? ORDER BY key",
            (self.namespace,),
        ).fetchall()
        return [str(row["key"]) for row in rows]
