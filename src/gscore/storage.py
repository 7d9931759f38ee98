"""
gscore.storage — Pluggable persistence backends for off-chain records.

Backends: MemoryBackend, SQLiteBackend, FileBackend

Records are dicts addressed by string keys. Keys are returned by
``list_keys`` in sorted order so callers can encode insertion order in
zero-padded keys.
"""

import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional


# ─── Abstract Backend ──────────────────────────────────────────────

class StorageBackend(ABC):
    """Abstract persistence interface."""

    durable: bool = True

    @abstractmethod
    def save(self, key: str, data: dict) -> None: ...

    @abstractmethod
    def load(self, key: str) -> Optional[dict]: ...

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]: ...

    def load_many(self, keys: list[str]) -> dict[str, Optional[dict]]:
        return {k: self.load(k) for k in keys}

    def close(self) -> None:
        pass


# ─── Memory Backend ────────────────────────────────────────────────

class MemoryBackend(StorageBackend):
    """In-memory dict storage. Lost on restart."""

    durable = False

    def __init__(self):
        self._store: dict[str, dict] = {}

    def save(self, key: str, data: dict) -> None:
        self._store[key] = data

    def load(self, key: str) -> Optional[dict]:
        return self._store.get(key)

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._store if k.startswith(prefix))


# ─── SQLite Backend ────────────────────────────────────────────────

class SQLiteBackend(StorageBackend):
    """File-based SQLite with WAL mode, thread-safe."""

    def __init__(self, db_path: str = "gscore.db"):
        self._db_path = db_path
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                created_at TEXT DEFAULT (datetime('now'))
            )
        """)
        self._conn.commit()

    def save(self, key: str, data: dict) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, data, created_at) VALUES (?, ?, ?)",
                (key, json.dumps(data), datetime.now(timezone.utc).isoformat()),
            )
            self._conn.commit()

    def load(self, key: str) -> Optional[dict]:
        with self._lock:
            row = self._conn.execute("SELECT data FROM kv WHERE key = ?", (key,)).fetchone()
        return json.loads(row[0]) if row else None

    def list_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT key FROM kv WHERE key LIKE ? ORDER BY key", (prefix + "%",)
            ).fetchall()
        return [r[0] for r in rows]

    def close(self):
        self._conn.close()


# ─── File Backend ──────────────────────────────────────────────────

class FileBackend(StorageBackend):
    """JSONL-based file storage. One file per namespace, append-only writes."""

    def __init__(self, base_dir: str = "gscore_data", namespace: str = "default"):
        self._base_dir = Path(base_dir)
        self._namespace = namespace
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def _filepath(self) -> Path:
        return self._base_dir / f"{self._namespace}.jsonl"

    def _read_all(self) -> dict[str, dict]:
        records: dict[str, dict] = {}
        if not self._filepath.exists():
            return records
        with open(self._filepath, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                entry = json.loads(line)
                key = entry.get("__key__")
                records[key] = {k: v for k, v in entry.items() if k != "__key__"}
        return records

    def save(self, key: str, data: dict) -> None:
        with self._lock:
            entry = {"__key__": key, **data}
            with open(self._filepath, "a") as f:
                f.write(json.dumps(entry) + "\n")

    def load(self, key: str) -> Optional[dict]:
        with self._lock:
            records = self._read_all()
        return records.get(key)

    def load_many(self, keys: list[str]) -> dict[str, Optional[dict]]:
        with self._lock:
            records = self._read_all()
        return {k: records.get(k) for k in keys}

    def list_keys(self, prefix: str = "") -> list[str]:
        with self._lock:
            records = self._read_all()
        return sorted(k for k in records if k.startswith(prefix))


def backend_from_uri(uri: str) -> StorageBackend:
    """``memory`` → MemoryBackend, ``*.db``/``*.sqlite`` → SQLiteBackend, else a JSONL directory."""
    if not uri or uri == "memory":
        return MemoryBackend()
    if uri.endswith((".db", ".sqlite", ".sqlite3")):
        return SQLiteBackend(uri)
    return FileBackend(uri, namespace="flags")


__all__ = [
    "StorageBackend",
    "MemoryBackend",
    "SQLiteBackend",
    "FileBackend",
    "backend_from_uri",
]
