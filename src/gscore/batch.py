#!/usr/bin/env python3
"""
gscore.batch — Rank a cohort of GitHub profiles in one run.

Identities are processed strictly one after another so a large cohort
never bursts the GitHub API. One identity's failure is recorded and the
run moves on.
"""

import logging
import re
import time
from dataclasses import asdict, dataclass, field
from typing import Callable, Optional

from gscore.attestation import Attestor
from gscore.collector import GitHubCollector, MetricTuple, normalize_identity
from gscore.flags import FlagEntry, FlagLedger
from gscore.scorer import score as score_metrics

logger = logging.getLogger(__name__)

TOP_PERFORMERS = 3
STANDOUT_REPOS = 5

_SEPARATORS = re.compile(r"[\s,]+")


def parse_identities(text: str) -> list[str]:
    """Pull GitHub handles out of free text (one per line, comma lists, profile URLs)."""
    seen: dict[str, None] = {}
    for token in _SEPARATORS.split(text):
        token = token.strip()
        if not token:
            continue
        handle = normalize_identity(token)
        if handle and handle not in seen:
            seen[handle] = None
    return list(seen)


@dataclass
class BatchOutcome:
    """Result for one identity in a batch."""
    identity: str
    status: str  # "scored" | "error"
    score: Optional[int] = None
    metrics: Optional[MetricTuple] = None
    normalized_factors: dict = field(default_factory=dict)
    attestation_id: Optional[str] = None
    flag: Optional[FlagEntry] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "scored"

    def to_dict(self) -> dict:
        return {
            "identity": self.identity,
            "status": self.status,
            "score": self.score,
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "normalized_factors": self.normalized_factors,
            "attestation_id": self.attestation_id,
            "flagged": self.flag is not None,
            "flag": self.flag.to_dict() if self.flag else None,
            "error": self.error,
        }


@dataclass
class BatchReport:
    """All outcomes of a run, in input order."""
    results: list[BatchOutcome] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def scored(self) -> list[BatchOutcome]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[BatchOutcome]:
        return [r for r in self.results if not r.ok]

    def top_performers(self, limit: int = TOP_PERFORMERS) -> list[dict]:
        ranked = sorted(self.scored, key=lambda r: r.score, reverse=True)
        return [
            {
                "rank": i + 1,
                "identity": r.identity,
                "score": r.score,
                "followers": r.metrics.followers,
                "stars": r.metrics.total_stars,
                "verification": "Verified" if r.attestation_id else "Unverified",
            }
            for i, r in enumerate(ranked[:limit])
        ]

    def standout_repos(self, limit: int = STANDOUT_REPOS) -> list[dict]:
        pool = [
            {"owner": r.identity, **asdict(repo)}
            for r in self.scored
            for repo in r.metrics.top_repos
        ]
        pool.sort(key=lambda repo: repo["stars"] or 0, reverse=True)
        return pool[:limit]

    def summary(self) -> dict:
        return {
            "total": len(self.results),
            "scored": len(self.scored),
            "failed": len(self.failed),
            "elapsed_ms": round(self.elapsed_ms, 2),
            "top_performers": self.top_performers(),
            "standout_repos": self.standout_repos(),
        }

    def to_dict(self) -> dict:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary(),
        }


class BatchRunner:
    """Sequential collect → score (→ attest) over a list of identities."""

    def __init__(
        self,
        collector: GitHubCollector,
        attestor: Optional[Attestor] = None,
        flags: Optional[FlagLedger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._collector = collector
        self._attestor = attestor
        self._flags = flags
        self._clock = clock

    async def run_batch(self, identities: list[str], token: Optional[str] = None) -> BatchReport:
        report = BatchReport()
        start = time.monotonic()

        for identity in identities:
            report.results.append(await self._run_one(identity, token))

        report.elapsed_ms = (time.monotonic() - start) * 1000
        logger.info("Batch done: %d scored, %d failed",
                    len(report.scored), len(report.failed))
        return report

    async def _run_one(self, identity: str, token: Optional[str]) -> BatchOutcome:
        try:
            metrics = await self._collector.collect(identity, token)
        except Exception as e:
            logger.warning("Batch: %s failed: %s", identity, e)
            return BatchOutcome(identity=identity, status="error", error=str(e))

        result = score_metrics(metrics)
        outcome = BatchOutcome(
            identity=identity,
            status="scored",
            score=result.final_score,
            metrics=metrics,
            normalized_factors=result.normalized_factors,
        )
        if self._attestor is not None:
            outcome.attestation_id = self._attestor.attest(
                identity, result.final_score, int(self._clock()),
            )
        if self._flags is not None:
            outcome.flag = _safe_lookup(self._flags, identity)
        return outcome


def _safe_lookup(flags: FlagLedger, identity: str) -> Optional[FlagEntry]:
    try:
        return flags.lookup(identity)
    except Exception as e:  # flag status is informational on read paths
        logger.warning("Flag lookup for %s failed: %s", identity, e)
        return None
