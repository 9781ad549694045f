"""Cryptographic commitments and ledger anchoring."""

from augur.crypto.anchor import (
    AnchorReadFailed,
    AnchorWriteFailed,
    InMemoryLedger,
    LedgerAnchorClient,
    LedgerEntry,
    RetryPolicy,
)
from augur.crypto.commitment import build_commitment, compute_hash, generate_salt

__all__ = [
    "AnchorReadFailed",
    "AnchorWriteFailed",
    "InMemoryLedger",
    "LedgerAnchorClient",
    "LedgerEntry",
    "RetryPolicy",
    "build_commitment",
    "compute_hash",
    "generate_salt",
]
