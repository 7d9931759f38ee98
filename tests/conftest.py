"""Global test configuration — runs before any test module imports."""
import os

# Must be set BEFORE any gscore imports — slowapi reads this at init
os.environ["RATELIMIT_ENABLED"] = "False"
os.environ.setdefault("GSCORE_LEDGER", "memory")
os.environ.setdefault("GSCORE_FLAG_STORE", "memory")

import pytest  # noqa: E402

from gscore.collector import MetricTuple, RepoSummary  # noqa: E402
from gscore.config import Settings  # noqa: E402
from gscore.errors import UpstreamError  # noqa: E402
from gscore.flags import FlagLedger  # noqa: E402
from gscore.ledger import InMemoryLedger  # noqa: E402
from gscore.service import ScoreService  # noqa: E402

def pytest_configure(config):
    """Disable rate limiter after all imports."""
    from gscore.security import limiter
    limiter.enabled = False


# ─── Shared fixtures ──────────────────────────────────────────────

FIXED_NOW = 1_700_000_000


class StubCollector:
    """Stands in for GitHubCollector: canned metrics per identity, or an error."""

    def __init__(self, profiles=None, errors=None):
        self.profiles = dict(profiles or {})
        self.errors = dict(errors or {})
        self.calls = []

    async def collect(self, identity, token=None):
        self.calls.append((identity, token))
        if identity in self.errors:
            raise self.errors[identity]
        if identity not in self.profiles:
            raise UpstreamError(404, "GitHub API Error: Not Found (404)")
        return self.profiles[identity]


def make_metrics(identity, followers=0, stars=0, repos=0, activity=0.0, collab=0, top_repos=None):
    return MetricTuple(
        identity=identity,
        followers=followers,
        total_stars=stars,
        public_repos=repos,
        avg_recent_activity=activity,
        collaboration_diversity=collab,
        language_diversity=1,
        top_repos=top_repos or [],
    )


@pytest.fixture
def profiles():
    return {
        "alice": make_metrics("alice", followers=2500, stars=25000, repos=50, activity=0.5, collab=1,
                              top_repos=[RepoSummary("wand", 900, "https://github.com/alice/wand")]),
        "bob": make_metrics("bob", followers=500, stars=1000, repos=30, activity=0.5, collab=1,
                            top_repos=[RepoSummary("tool", 40, "https://github.com/bob/tool")]),
        "carol": make_metrics("carol", followers=5000, stars=50000, repos=100, activity=1.0, collab=1),
    }


@pytest.fixture
def collector(profiles):
    return StubCollector(profiles)


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def flags():
    return FlagLedger()


@pytest.fixture
def service(collector, flags, ledger):
    return ScoreService(
        collector, flags,
        settings=Settings(ledger_backend="memory", flag_store="memory"),
        ledger=ledger,
        clock=lambda: FIXED_NOW,
    )
