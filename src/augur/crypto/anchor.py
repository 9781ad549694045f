"""Ledger anchoring — the capability interface to a public append-only ledger.

Anchoring is the act of writing a commitment hash into a ledger
transaction, creating public, timestamped proof that the hash existed
at that moment. The ledger is a witness only: nothing executes on-chain.

Two capabilities are required of a ledger backend:
1. write(payload) — publish a small payload, return a record identifier.
2. read(record_id) — fetch the payload and commit time back.

Writes cost a real transaction fee and are attempted exactly once.
Reads are retried on rate limiting, up to a bounded number of attempts.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol


logger = logging.getLogger(__name__)

DEFAULT_READ_ATTEMPTS = 3
DEFAULT_RETRY_WAIT_SECONDS = 2.0


class AnchorError(Exception):
    """Base class for ledger anchoring failures."""


class AnchorWriteFailed(AnchorError):
    """The ledger write did not succeed. Terminal for that attempt."""


class AnchorReadFailed(AnchorError):
    """The ledger read failed or exhausted its retries."""


class RateLimited(AnchorError):
    """A single read attempt was refused by the server's rate limiter."""

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


@dataclass(frozen=True)
class LedgerEntry:
    """A record read back from the ledger."""
    payload: bytes
    timestamp: Optional[int] = None  # Unix seconds of the commit block

    @property
    def committed_utc(self) -> Optional[str]:
        if self.timestamp is None:
            return None
        return time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime(self.timestamp))


class LedgerAnchorClient(Protocol):
    """What the verification and service layers need from a ledger."""

    def write(self, payload: bytes) -> str:
        """Publish payload; return its record id or raise AnchorWriteFailed."""
        ...

    def read(self, record_id: str) -> LedgerEntry:
        """Fetch a record, retrying on rate limits; raise AnchorReadFailed."""
        ...


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for rate-limited reads.

    The server-suggested wait is honoured when present; otherwise
    default_wait seconds. max_attempts counts the first attempt.
    """
    max_attempts: int = DEFAULT_READ_ATTEMPTS
    default_wait: float = DEFAULT_RETRY_WAIT_SECONDS
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.default_wait < 0:
            raise ValueError(f"default_wait must be >= 0, got {self.default_wait}")


def read_with_retry(
    read_once: Callable[[str], LedgerEntry],
    record_id: str,
    policy: RetryPolicy,
) -> LedgerEntry:
    """Call read_once until it succeeds or the attempt budget is spent.

    Only RateLimited is retried. Any other AnchorError propagates at once.
    Exhausting the budget raises AnchorReadFailed.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return read_once(record_id)
        except RateLimited as exc:
            if attempt == policy.max_attempts:
                raise AnchorReadFailed(
                    f"Read of {record_id} rate limited on all "
                    f"{policy.max_attempts} attempts"
                ) from exc
            wait = exc.retry_after if exc.retry_after is not None else policy.default_wait
            logger.warning(
                "Rate limited reading %s (attempt %d/%d), retrying in %.1fs",
                record_id, attempt, policy.max_attempts, wait,
            )
            policy.sleep(wait)
    # Unreachable: max_attempts >= 1 is enforced by RetryPolicy.
    raise AnchorReadFailed(f"Read of {record_id} was never attempted")


class InMemoryLedger:
    """Deterministic in-process ledger for tests and dry runs.

    Record ids are derived from a sequence number and the payload, so a
    fresh ledger given the same writes produces the same ids.

    Usage:
        ledger = InMemoryLedger()
        record_id = ledger.write(b"abc...")
        entry = ledger.read(record_id)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._records: dict[str, LedgerEntry] = {}
        self._policy = policy or RetryPolicy(sleep=lambda _seconds: None)
        self._clock = clock
        self.fail_writes = False
        self.rate_limit_reads = 0  # next N read attempts are refused; -1 = always
        self.retry_after: Optional[float] = None
        self.write_calls = 0
        self.read_calls = 0

    def write(self, payload: bytes) -> str:
        self.write_calls += 1
        if self.fail_writes:
            raise AnchorWriteFailed("in-memory ledger configured to fail writes")
        seed = f"{len(self._records)}:".encode("utf-8") + payload
        record_id = hashlib.sha256(seed).hexdigest()
        self._records[record_id] = LedgerEntry(
            payload=bytes(payload),
            timestamp=int(self._clock()),
        )
        return record_id

    def read(self, record_id: str) -> LedgerEntry:
        return read_with_retry(self._read_once, record_id, self._policy)

    def tamper(self, record_id: str, payload: bytes) -> None:
        """Overwrite a stored payload (simulates a forged anchor)."""
        entry = self._records[record_id]
        self._records[record_id] = LedgerEntry(payload=payload, timestamp=entry.timestamp)

    def _read_once(self, record_id: str) -> LedgerEntry:
        self.read_calls += 1
        if self.rate_limit_reads != 0:
            if self.rate_limit_reads > 0:
                self.rate_limit_reads -= 1
            raise RateLimited("429 Too Many Requests", retry_after=self.retry_after)
        try:
            return self._records[record_id]
        except KeyError:
            raise AnchorReadFailed(f"No ledger record {record_id}") from None
