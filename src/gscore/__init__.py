"""gscore — GitHub reputation scores bound to wallet addresses."""

__version__ = "1.0.0"

from gscore.errors import (
    GScoreError, UpstreamError, LockViolation,
    ConfigurationError, LedgerError, NoRecordError,
)
from gscore.collector import GitHubCollector, MetricTuple, RepoSummary, normalize_identity
from gscore.scorer import ScoreResult, score, WEIGHTS, SCALING_CONSTANT
from gscore.attestation import Attestor, KeccakAttestor
from gscore.storage import StorageBackend, MemoryBackend, SQLiteBackend, FileBackend, backend_from_uri
from gscore.flags import FlagEntry, FlagLedger
from gscore.ledger import LedgerAdapter, InMemoryLedger, Web3Ledger, ScoreRecord
from gscore.guard import IdentityLockGuard, WalletLocks
from gscore.batch import BatchRunner, BatchReport, BatchOutcome, parse_identities
from gscore.leaderboard import LeaderboardEntry, build_leaderboard
from gscore.config import Settings
from gscore.service import ScoreService
from gscore.client import GScoreClient, GScoreAPIError
