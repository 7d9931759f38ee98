"""
Scorer — 5-factor weighted reputation score.

Factors:
  followers                30%
  total_stars              25%
  recent_activity          20%
  public_repos             15%
  collaboration_diversity  10%

Score = round(1000 × Σ(weight × min(1, value / benchmark)))
Range: 0-1000
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field

from gscore.collector import MetricTuple

SCALING_CONSTANT = 1000

WEIGHTS = {
    "followers": 0.30,
    "total_stars": 0.25,
    "recent_activity": 0.20,
    "public_repos": 0.15,
    "collaboration_diversity": 0.10,
}

BENCHMARKS = {
    "followers": 5000,
    "total_stars": 50000,
    "public_repos": 100,
    "recent_activity": 1.0,
    "collaboration_diversity": 1.0,
}


def normalize(value: float, maximum: float) -> float:
    return min(1.0, value / maximum) if maximum > 0 else 0.0


def round_half_up(value: float) -> int:
    # Half-up, like JavaScript's Math.round.
    return int(math.floor(value + 0.5))


@dataclass
class ScoreResult:
    normalized_factors: dict[str, float] = field(default_factory=dict)
    final_score: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def factor_values(metrics: MetricTuple) -> dict[str, float]:
    return {
        "followers": metrics.followers,
        "total_stars": metrics.total_stars,
        "recent_activity": metrics.avg_recent_activity,
        "public_repos": metrics.public_repos,
        "collaboration_diversity": metrics.collaboration_diversity,
    }


def score(metrics: MetricTuple) -> ScoreResult:
    """Pure and total: the same metrics always give the same result."""
    values = factor_values(metrics)
    factors = {name: normalize(values[name], BENCHMARKS[name]) for name in WEIGHTS}
    weighted = sum(factors[name] * weight for name, weight in WEIGHTS.items())
    return ScoreResult(
        normalized_factors=factors,
        final_score=round_half_up(weighted * SCALING_CONSTANT),
    )
