"""
gscore.service — The scoring pipeline as used by the API and the CLI.

    identity → collect → score → [attest] → lock check → ledger write

Every failure on a store path is appended to the flag ledger before it is
raised, so failed attempts leave an audit trail.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from gscore.attestation import Attestor, KeccakAttestor
from gscore.batch import BatchReport, BatchRunner
from gscore.collector import GitHubCollector, MetricTuple
from gscore.config import Settings
from gscore.errors import LedgerError, LockViolation, UpstreamError
from gscore.flags import FlagEntry, FlagLedger
from gscore.guard import IdentityLockGuard, WalletLocks
from gscore.leaderboard import LeaderboardEntry, build_leaderboard
from gscore.ledger import LedgerAdapter, ledger_from_settings
from gscore.scorer import ScoreResult, score as score_metrics

logger = logging.getLogger(__name__)


@dataclass
class ScoreReport:
    metrics: MetricTuple
    result: ScoreResult

    @property
    def score(self) -> int:
        return self.result.final_score

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "normalized_factors": self.result.normalized_factors,
            "raw_data": self.metrics.to_dict(),
        }


@dataclass
class StoreReceipt:
    wallet: str
    identity: str
    transaction_hash: str
    score: int
    timestamp: int
    attestation_id: Optional[str] = None
    metrics: Optional[MetricTuple] = None

    def to_dict(self) -> dict:
        return {
            "success": True,
            "wallet_address": self.wallet,
            "github_username": self.identity,
            "transaction_hash": self.transaction_hash,
            "score": self.score,
            "timestamp": self.timestamp,
            "attestation_id": self.attestation_id,
            "raw_data": self.metrics.to_dict() if self.metrics else None,
        }


@dataclass
class VerificationStatus:
    verified: bool
    attestation_id: Optional[str] = None


@dataclass
class FlagStatus:
    flagged: bool
    entry: Optional[FlagEntry] = None

    def to_dict(self) -> dict:
        return {"flagged": self.flagged, "entry": self.entry.to_dict() if self.entry else None}


class ScoreService:
    """Wires collector, scorer, attestor, guard, ledger and flag ledger together.

    The ledger is built on first use from ``settings`` unless one is
    injected, so a missing contract address fails the request that needs
    it and nothing else.
    """

    def __init__(
        self,
        collector: GitHubCollector,
        flags: FlagLedger,
        settings: Optional[Settings] = None,
        ledger: Optional[LedgerAdapter] = None,
        attestor: Optional[Attestor] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.collector = collector
        self.flags = flags
        self.settings = settings or Settings()
        self.attestor = attestor or KeccakAttestor()
        self._ledger = ledger
        self._ledger_injected = ledger is not None
        self._clock = clock
        self._wallet_locks = WalletLocks()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoreService":
        from gscore.storage import backend_from_uri

        collector = GitHubCollector(timeout=settings.http_timeout, default_token=settings.github_token)
        flags = FlagLedger(backend_from_uri(settings.flag_store))
        return cls(collector, flags, settings=settings)

    # ── Ledger ──

    def ledger(self, signer: bool = False) -> LedgerAdapter:
        if not self._ledger_injected:
            self.settings.require_ledger(signer=signer)
        if self._ledger is None:
            self._ledger = ledger_from_settings(self.settings)
        return self._ledger

    # ── Scoring ──

    async def compute(self, identity: str, token: Optional[str] = None) -> ScoreReport:
        metrics = await self.collector.collect(identity, token)
        return ScoreReport(metrics=metrics, result=score_metrics(metrics))

    async def run_batch(self, identities: list[str], token: Optional[str] = None,
                        attest: bool = False) -> BatchReport:
        runner = BatchRunner(
            self.collector,
            attestor=self.attestor if attest else None,
            flags=self.flags,
            clock=self._clock,
        )
        return await runner.run_batch(identities, token)

    # ── Store paths ──

    async def verify_and_store(self, wallet: str, identity: str,
                               token: Optional[str] = None) -> StoreReceipt:
        """Score ``identity`` and store it for ``wallet`` through the privileged signer."""
        ledger = self.ledger(signer=True)

        logger.info("Fetching GitHub data for %s", identity)
        try:
            report = await self.compute(identity, token)
        except UpstreamError as e:
            self._flag(identity, wallet, str(e))
            raise

        timestamp = int(self._clock())
        attestation_id = self.attestor.attest(identity, report.score, timestamp)

        async with self._wallet_locks.hold(wallet):
            await self._check_lock(ledger, wallet, identity)
            try:
                tx_hash = await ledger.store_verified_score(
                    wallet, identity, report.score, timestamp, attestation_id,
                )
            except LedgerError as e:
                self._flag(identity, wallet, str(e))
                raise

        logger.info("Stored verified score %d for %s", report.score, identity,
                    extra={"wallet": wallet, "tx_hash": tx_hash})
        return StoreReceipt(
            wallet=wallet,
            identity=identity,
            transaction_hash=tx_hash,
            score=report.score,
            timestamp=timestamp,
            attestation_id=attestation_id,
            metrics=report.metrics,
        )

    async def store_user_score(self, wallet: str, identity: str, score: int,
                               timestamp: Optional[int] = None) -> StoreReceipt:
        """The self-reported path: no attestation, same lock check."""
        ledger = self.ledger(signer=True)
        timestamp = int(self._clock()) if timestamp is None else int(timestamp)

        async with self._wallet_locks.hold(wallet):
            await self._check_lock(ledger, wallet, identity)
            try:
                tx_hash = await ledger.store_score(wallet, identity, score, timestamp)
            except LedgerError as e:
                self._flag(identity, wallet, str(e))
                raise

        return StoreReceipt(wallet=wallet, identity=identity, transaction_hash=tx_hash,
                            score=score, timestamp=timestamp)

    async def _check_lock(self, ledger: LedgerAdapter, wallet: str, identity: str) -> None:
        try:
            await IdentityLockGuard(ledger).check(wallet, identity)
        except LockViolation as e:
            self._flag(identity, wallet, f"Wallet locked to {e.existing_identity}")
            raise
        except LedgerError as e:
            self._flag(identity, wallet, str(e))
            raise

    # ── Reads ──

    async def check_verification(self, wallet: str, identity: str) -> VerificationStatus:
        verified, attestation_id = await self.ledger().is_verified(wallet, identity)
        return VerificationStatus(verified=verified, attestation_id=attestation_id)

    def flag_status(self, identity: str) -> FlagStatus:
        try:
            entry = self.flags.lookup(identity)
        except Exception as e:
            logger.warning("Flag lookup for %s failed, treating as not flagged: %s", identity, e)
            entry = None
        return FlagStatus(flagged=entry is not None, entry=entry)

    async def leaderboard(self) -> list[LeaderboardEntry]:
        return await build_leaderboard(self.ledger())

    # ── Helpers ──

    def _flag(self, identity: str, wallet: Optional[str], reason: str) -> None:
        try:
            self.flags.flag(identity, reason, wallet=wallet)
        except Exception:
            logger.exception("Could not record flag for %s", identity)
