"""
gscore.ledger — Ledger adapters for the score contract.

The contract owns the ScoreRecords; this module only describes its
external surface and provides two implementations:

  InMemoryLedger — mirrors the contract's observable behaviour (tests, local runs)
  Web3Ledger     — talks to the deployed contract over JSON-RPC with web3.py

Neither adapter enforces the one-identity-per-wallet lock; that check is
done by ``gscore.guard`` before a write is submitted.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from web3 import AsyncWeb3
from web3.exceptions import ContractLogicError, Web3Exception

from gscore.attestation import is_zero_attestation
from gscore.errors import ConfigurationError, LedgerError, NoRecordError

logger = logging.getLogger(__name__)

NO_RECORD_MARKER = "No score found"


@dataclass
class ScoreRecord:
    wallet: str
    identity: str
    score: int
    timestamp: int
    verified: bool = False
    attestation_id: Optional[str] = None


class LedgerAdapter(ABC):
    """External interface of the score contract."""

    @abstractmethod
    async def store_score(self, wallet: str, identity: str, score: int, timestamp: int) -> str:
        """User-signed path. Returns the transaction hash."""
        ...

    @abstractmethod
    async def store_verified_score(
        self, wallet: str, identity: str, score: int, timestamp: int, attestation_id: str
    ) -> str:
        """Privileged-signer path. Returns the transaction hash."""
        ...

    @abstractmethod
    async def get_score(self, wallet: str, identity: str) -> tuple[int, int]:
        """(score, timestamp) for a wallet/identity pair."""
        ...

    @abstractmethod
    async def get_latest_score(self, wallet: str) -> tuple[str, int, int]:
        """(identity, score, timestamp); raises NoRecordError if the wallet never stored."""
        ...

    @abstractmethod
    async def is_verified(self, wallet: str, identity: str) -> tuple[bool, Optional[str]]:
        ...

    @abstractmethod
    async def count_entries(self) -> int:
        ...

    @abstractmethod
    async def entry_at_index(self, index: int) -> str:
        ...


# ─── In-memory ledger ─────────────────────────────────────────────

class InMemoryLedger(LedgerAdapter):
    """Process-local ledger with the same read/write semantics as the contract.

    Wallet addresses compare case-insensitively (EVM addresses are hex);
    identities are stored with their original casing.
    """

    def __init__(self):
        self._records: dict[tuple[str, str], ScoreRecord] = {}
        self._latest: dict[str, ScoreRecord] = {}
        self._wallets: list[str] = []
        self._tx_counter = 0
        self.writes = 0

    def _write(self, record: ScoreRecord) -> str:
        key = record.wallet.lower()
        if key not in self._latest:
            self._wallets.append(record.wallet)
        self._records[(key, record.identity)] = record
        self._latest[key] = record
        self._tx_counter += 1
        self.writes += 1
        return "0x" + f"{self._tx_counter:064x}"

    async def store_score(self, wallet, identity, score, timestamp):
        return self._write(ScoreRecord(wallet, identity, int(score), int(timestamp)))

    async def store_verified_score(self, wallet, identity, score, timestamp, attestation_id):
        return self._write(ScoreRecord(
            wallet, identity, int(score), int(timestamp),
            verified=True, attestation_id=attestation_id,
        ))

    async def get_score(self, wallet, identity):
        record = self._records.get((wallet.lower(), identity))
        if record is None:
            raise NoRecordError(wallet)
        return record.score, record.timestamp

    async def get_latest_score(self, wallet):
        record = self._latest.get(wallet.lower())
        if record is None:
            raise NoRecordError(wallet)
        return record.identity, record.score, record.timestamp

    async def is_verified(self, wallet, identity):
        record = self._records.get((wallet.lower(), identity))
        if record is None or not record.verified:
            return False, None
        return True, record.attestation_id

    async def count_entries(self):
        return len(self._wallets)

    async def entry_at_index(self, index):
        try:
            return self._wallets[index]
        except IndexError:
            raise LedgerError(f"No entry at index {index}")


# ─── web3 contract ledger ─────────────────────────────────────────

def _fn(name, inputs, outputs=(), mutability="view"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
    }


CONTRACT_ABI = [
    _fn("storeScore",
        [("walletAddress", "address"), ("githubUsername", "string"),
         ("score", "uint256"), ("timestamp", "uint256")],
        mutability="nonpayable"),
    _fn("storeFdcVerifiedScore",
        [("walletAddress", "address"), ("githubUsername", "string"),
         ("score", "uint256"), ("timestamp", "uint256"), ("fdcAttestationId", "bytes32")],
        mutability="nonpayable"),
    _fn("getScore",
        [("walletAddress", "address"), ("githubUsername", "string")],
        [("score", "uint256"), ("timestamp", "uint256")]),
    _fn("getUserLatestScore",
        [("walletAddress", "address")],
        [("githubUsername", "string"), ("score", "uint256"), ("timestamp", "uint256")]),
    _fn("isFdcVerified",
        [("walletAddress", "address"), ("githubUsername", "string")],
        [("verified", "bool"), ("attestationId", "bytes32")]),
    _fn("getScoreAddressesCount", [], [("count", "uint256")]),
    _fn("getScoreAddress", [("index", "uint256")], [("walletAddress", "address")]),
]


class Web3Ledger(LedgerAdapter):
    """Score contract reached through ``web3.AsyncWeb3``.

    Reads need only the contract address and RPC URL; writes additionally
    need the signer's private key. The key is loaded lazily so read-only
    deployments never see a ConfigurationError for it.
    """

    def __init__(
        self,
        contract_address: str,
        rpc_url: str,
        private_key: Optional[str] = None,
        receipt_timeout: float = 120.0,
    ):
        if not contract_address:
            raise ConfigurationError("Contract address not configured")
        try:
            address = AsyncWeb3.to_checksum_address(contract_address)
        except ValueError as e:
            raise ConfigurationError(f"Invalid contract address {contract_address!r}") from e
        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))
        self._contract = self._w3.eth.contract(address=address, abi=CONTRACT_ABI)
        self._private_key = private_key
        self._receipt_timeout = receipt_timeout

    @staticmethod
    def _address(wallet: str) -> str:
        try:
            return AsyncWeb3.to_checksum_address(wallet)
        except ValueError as e:
            raise LedgerError(f"Invalid wallet address {wallet!r}") from e

    async def _call(self, fn, wallet: Optional[str] = None):
        try:
            return await fn.call()
        except ContractLogicError as e:
            if wallet is not None and NO_RECORD_MARKER in str(e):
                raise NoRecordError(wallet) from e
            raise LedgerError(f"Contract call reverted: {e}") from e
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerError(f"Contract call failed: {e}") from e

    async def _transact(self, fn) -> str:
        if not self._private_key:
            raise ConfigurationError("Private key not configured")
        try:
            account = self._w3.eth.account.from_key(self._private_key)
            nonce = await self._w3.eth.get_transaction_count(account.address)
            tx = await fn.build_transaction({"from": account.address, "nonce": nonce})
            signed = account.sign_transaction(tx)
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout,
            )
        except (Web3Exception, OSError, ValueError) as e:
            raise LedgerError(f"Transaction failed: {e}") from e
        if receipt.get("status") != 1:
            raise LedgerError(f"Transaction {_hex(tx_hash)} reverted")
        return _hex(tx_hash)

    async def store_score(self, wallet, identity, score, timestamp):
        fn = self._contract.functions.storeScore(
            self._address(wallet), identity, int(score), int(timestamp),
        )
        return await self._transact(fn)

    async def store_verified_score(self, wallet, identity, score, timestamp, attestation_id):
        fn = self._contract.functions.storeFdcVerifiedScore(
            self._address(wallet), identity, int(score), int(timestamp),
            bytes.fromhex(attestation_id.removeprefix("0x")),
        )
        tx_hash = await self._transact(fn)
        logger.info("Stored verified score for %s on-chain", identity, extra={"tx_hash": tx_hash})
        return tx_hash

    async def get_score(self, wallet, identity):
        score, timestamp = await self._call(
            self._contract.functions.getScore(self._address(wallet), identity), wallet,
        )
        return int(score), int(timestamp)

    async def get_latest_score(self, wallet):
        identity, score, timestamp = await self._call(
            self._contract.functions.getUserLatestScore(self._address(wallet)), wallet,
        )
        if not identity:
            raise NoRecordError(wallet)
        return identity, int(score), int(timestamp)

    async def is_verified(self, wallet, identity):
        verified, attestation_id = await self._call(
            self._contract.functions.isFdcVerified(self._address(wallet), identity),
        )
        if is_zero_attestation(attestation_id):
            return bool(verified), None
        return bool(verified), _hex(attestation_id)

    async def count_entries(self):
        return int(await self._call(self._contract.functions.getScoreAddressesCount()))

    async def entry_at_index(self, index):
        return await self._call(self._contract.functions.getScoreAddress(int(index)))


def _hex(value) -> str:
    raw = bytes(value).hex()
    return "0x" + raw


def ledger_from_settings(settings) -> LedgerAdapter:
    """Build the configured ledger. Raises ConfigurationError when the contract is unset."""
    if settings.ledger_backend == "memory":
        return InMemoryLedger()
    return Web3Ledger(
        contract_address=settings.contract_address,
        rpc_url=settings.rpc_url,
        private_key=settings.private_key,
    )
