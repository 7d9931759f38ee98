"""
gscore.guard — One identity per wallet, checked before every ledger write.

The ledger itself does not enforce the lock, so the check and the write
are two separate calls. ``WalletLocks`` serializes check+write pairs per
wallet inside one process; concurrent writers in other processes can
still race.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from gscore.errors import LockViolation, NoRecordError
from gscore.ledger import LedgerAdapter

logger = logging.getLogger(__name__)


class IdentityLockGuard:
    """Rejects a write that would bind a wallet to a second identity."""

    def __init__(self, ledger: LedgerAdapter):
        self._ledger = ledger

    async def existing_identity(self, wallet: str) -> Optional[str]:
        try:
            identity, _score, _ts = await self._ledger.get_latest_score(wallet)
        except NoRecordError:
            return None
        return identity or None

    async def check(self, wallet: str, candidate_identity: str) -> None:
        """Raise LockViolation if ``wallet`` is bound to a different identity.

        Other ledger failures propagate as LedgerError.
        """
        existing = await self.existing_identity(wallet)
        if existing and existing.lower() != candidate_identity.lower():
            logger.warning("Lock violation: %s is bound to %s, attempted %s",
                           wallet, existing, candidate_identity)
            raise LockViolation(wallet, existing, candidate_identity)


class WalletLocks:
    """One asyncio.Lock per (lowercased) wallet address."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def _get(self, wallet: str) -> asyncio.Lock:
        key = wallet.lower()
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, wallet: str):
        lock = self._get(wallet)
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
