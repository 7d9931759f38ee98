"""gscore.errors — Error taxonomy shared by the pipeline, the API and the CLI."""

from __future__ import annotations

from typing import Optional


class GScoreError(Exception):
    """Base class for all gscore errors."""


class UpstreamError(GScoreError):
    """The external data source (GitHub) answered with a failure.

    ``status`` is the upstream HTTP status, or None for transport failures
    (timeouts, DNS, connection resets).
    """

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(message)


class LockViolation(GScoreError):
    """A wallet already bound to one identity tried to store another."""

    def __init__(self, wallet: str, existing_identity: str, attempted_identity: str):
        self.wallet = wallet
        self.existing_identity = existing_identity
        self.attempted_identity = attempted_identity
        super().__init__(
            f'Wallet {wallet} is already locked to GitHub username "{existing_identity}".'
        )


class ConfigurationError(GScoreError):
    """Required external configuration is missing."""


class LedgerError(GScoreError):
    """A read or write against the ledger failed."""


class NoRecordError(LedgerError):
    """The wallet has never stored a score."""

    def __init__(self, wallet: str):
        self.wallet = wallet
        super().__init__(f"No score found for {wallet}")


__all__ = [
    "GScoreError",
    "UpstreamError",
    "LockViolation",
    "ConfigurationError",
    "LedgerError",
    "NoRecordError",
]
