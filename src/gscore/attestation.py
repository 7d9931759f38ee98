"""gscore.attestation — Attestation ids for the verified store path.

The id is keccak256 over ``"{identity}-{score}-{timestamp}"`` (UTF-8), the
same derivation the on-chain verifier uses. It stands in for a real
external-data attestation: it proves that this exact tuple was hashed and
nothing about whether the metrics behind the score are true.

A real attestation scheme plugs in by implementing ``Attestor``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from eth_utils import keccak

ZERO_ATTESTATION = "0x" + "00" * 32


class Attestor(ABC):
    """Produces the attestation id stored next to a verified score."""

    @abstractmethod
    def attest(self, identity: str, score: int, timestamp: int) -> str:
        """Return a 0x-prefixed bytes32 hex string."""
        ...


class KeccakAttestor(Attestor):
    """Deterministic placeholder attestation."""

    def attest(self, identity: str, score: int, timestamp: int) -> str:
        digest = keccak(text=attestation_payload(identity, score, timestamp))
        return "0x" + bytes(digest).hex()


def attestation_payload(identity: str, score: int, timestamp: int) -> str:
    return f"{identity}-{score}-{timestamp}"


def is_zero_attestation(attestation_id) -> bool:
    if attestation_id is None:
        return True
    if isinstance(attestation_id, (bytes, bytearray)):
        return not any(attestation_id)
    return str(attestation_id).lower() in ("", "0x", ZERO_ATTESTATION)
