"""gscore.leaderboard — Rebuild the public ranking from the ledger's wallet index."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from gscore.errors import LedgerError
from gscore.ledger import LedgerAdapter

logger = logging.getLogger(__name__)


@dataclass
class LeaderboardEntry:
    rank: int
    wallet: str
    identity: str
    score: int
    timestamp: int

    def to_dict(self) -> dict:
        return asdict(self)


async def build_leaderboard(ledger: LedgerAdapter) -> list[LeaderboardEntry]:
    """Full O(n) scan: every indexed wallet's latest score, best first.

    Wallets whose latest record cannot be read are skipped.
    """
    count = await ledger.count_entries()
    rows = []
    for index in range(count):
        try:
            wallet = await ledger.entry_at_index(index)
            identity, score, timestamp = await ledger.get_latest_score(wallet)
        except LedgerError as e:
            logger.warning("Skipping leaderboard index %d: %s", index, e)
            continue
        rows.append((wallet, identity, score, timestamp))

    rows.sort(key=lambda row: row[2], reverse=True)
    return [
        LeaderboardEntry(rank=i + 1, wallet=w, identity=ident, score=s, timestamp=ts)
        for i, (w, ident, s, ts) in enumerate(rows)
    ]


def find_rank(entries: list[LeaderboardEntry], wallet: str) -> Optional[LeaderboardEntry]:
    target = wallet.lower()
    return next((e for e in entries if e.wallet.lower() == target), None)
