"""
gscore.flags — Append-only record of failed or suspicious verification attempts.

Lookup semantics are "last write wins": the most recently appended entry
for an identity is returned, never a merge of several entries.

Durability depends on the injected backend. With ``MemoryBackend`` the
ledger resets on restart; multi-instance deployments must share a durable
backend or accept lost/duplicated flags.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import asdict, dataclass
from typing import Optional

from gscore.storage import MemoryBackend, StorageBackend

logger = logging.getLogger(__name__)

KEY_PREFIX = "flag:"


@dataclass
class FlagEntry:
    identity: str
    reason: str
    wallet: Optional[str] = None
    created_at: int = 0  # epoch milliseconds

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "FlagEntry":
        return cls(
            identity=d["identity"],
            reason=d.get("reason", ""),
            wallet=d.get("wallet"),
            created_at=d.get("created_at", 0),
        )


class FlagLedger:
    """Identity-keyed append log over a StorageBackend."""

    def __init__(self, backend: Optional[StorageBackend] = None):
        self._backend = backend if backend is not None else MemoryBackend()
        self._lock = threading.Lock()
        self._next_seq = len(self._backend.list_keys(KEY_PREFIX))
        if not self._backend.durable:
            logger.warning("Flag ledger is in-memory; flags are lost on restart")

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def flag(self, identity: str, reason: str, wallet: Optional[str] = None) -> Optional[FlagEntry]:
        """Append a flag. Empty identities are ignored."""
        if not identity:
            return None
        entry = FlagEntry(
            identity=identity.lower(),
            reason=reason,
            wallet=wallet or None,
            created_at=int(time.time() * 1000),
        )
        with self._lock:
            key = f"{KEY_PREFIX}{self._next_seq:012d}"
            self._backend.save(key, entry.to_dict())
            self._next_seq += 1
        logger.warning("Flagged profile %s: %s", entry.identity, reason,
                       extra={"event": "flag", "identity": entry.identity, "wallet": entry.wallet})
        return entry

    def lookup(self, identity: str) -> Optional[FlagEntry]:
        target = identity.lower()
        keys = self._backend.list_keys(KEY_PREFIX)
        records = self._backend.load_many(keys)
        for key in reversed(keys):
            data = records.get(key)
            if data and data.get("identity", "").lower() == target:
                return FlagEntry.from_dict(data)
        return None

    def entries(self) -> list[FlagEntry]:
        keys = self._backend.list_keys(KEY_PREFIX)
        records = self._backend.load_many(keys)
        return [FlagEntry.from_dict(records[k]) for k in keys if records.get(k)]

    def __len__(self) -> int:
        return len(self._backend.list_keys(KEY_PREFIX))
