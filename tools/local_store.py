"""On-device key-value persistence used when no remote service is configured."""
from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LocalKeyValueStore:
    """Interface for synchronous string storage with no expiry."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def load_list(self, key: str) -> List[Dict[str, Any]]:
        """Decode a JSON list stored under ``key``; unreadable values count as empty."""

        raw = self.get(key)
        if not raw:
            return []
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable local value", extra={"key": key})
            return []
        if not isinstance(decoded, list):
            return []
        return [entry for entry in decoded if isinstance(entry, dict)]

    def save_list(self, key: str, values: List[Dict[str, Any]]) -> None:
        self.set(key, json.dumps(values))


class InMemoryKeyValueStore(LocalKeyValueStore):
    def __init__(self) -> None:
        self._values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value


class JSONFileKeyValueStore(LocalKeyValueStore):
    """Single JSON-file-backed store suitable for local runs."""

    def __init__(self, path: str | Path = "data/local_store.json") -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text())
        except json.JSONDecodeError:
            logger.warning("Local store file is unreadable, starting empty", extra={"path": str(self.path)})
            return {}
        return payload if isinstance(payload, dict) else {}

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        payload = self._load()
        payload[key] = value
        self.path.write_text(json.dumps(payload, indent=2))


class SQLiteKeyValueStore(LocalKeyValueStore):
    """SQLite-backed store for lightweight durability."""

    def __init__(self, db_path: str | Path = "data/local_store.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS local_values (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at REAL
                );
                """
            )

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute("SELECT value FROM local_values WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO local_values(key, value, updated_at) VALUES (?, ?, ?)\n"
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                (key, value, time.time()),
            )


__all__ = ["InMemoryKeyValueStore", "JSONFileKeyValueStore", "LocalKeyValueStore", "SQLiteKeyValueStore"]
