"""Verification engine — re-derives a commitment and checks it against the ledger.

Judgment order for a single record:
0. Row that could not be parsed             -> HASH_MISMATCH, no ledger call.
1. Unanchored record (FAILED / PENDING)     -> SKIPPED, no ledger call.
2. Local recomputed hash != stored hash     -> HASH_MISMATCH.
3. Ledger payload missing or digest differs -> LEDGER_MISMATCH.
4. Otherwise                                -> OK.

A failed ledger read means "could not confirm", never "forged", so it
is reported as LEDGER_MISMATCH and never raised to the caller.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, Iterable, Optional

from augur.crypto.anchor import AnchorError, LedgerAnchorClient, LedgerEntry
from augur.crypto.commitment import recompute_hash
from augur.models.prediction import (
    CommitmentRecord,
    VerificationReport,
    VerificationResult,
)


logger = logging.getLogger(__name__)

DEFAULT_BATCH_DELAY_SECONDS = 2.0

_QUOTED_DIGEST = re.compile(r'"([0-9a-fA-F]{64})"')
_BARE_DIGEST = re.compile(r"(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])")


def extract_digest(payload: Optional[bytes]) -> str:
    """Locate the committed SHA-256 hex digest inside a ledger payload.

    Payloads are ledger-specific free text (a raw memo, or log lines such
    as ``Memo (len 64): "<hex>"``). A quoted digest wins over a bare one.
    Returns "" when none is present.
    """
    if not payload:
        return ""
    text = payload.decode("utf-8", errors="replace")
    match = _QUOTED_DIGEST.search(text) or _BARE_DIGEST.search(text)
    return match.group(1).lower() if match else ""


class Verifier:
    """Checks commitment records against a ledger.

    Usage:
        verifier = Verifier(client)
        report = verifier.verify(record)
        reports = verifier.verify_all(records)
    """

    def __init__(
        self,
        client: LedgerAnchorClient,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_delay < 0:
            raise ValueError(f"batch_delay must be >= 0, got {batch_delay}")
        self._client = client
        self._batch_delay = batch_delay
        self._sleep = sleep

    def verify(self, record: CommitmentRecord) -> VerificationReport:
        if record.defect:
            logger.warning("Malformed commitment row: %s", record.defect)
            return VerificationReport(
                result=VerificationResult.HASH_MISMATCH,
                record=record,
                detail=f"malformed record: {record.defect}",
            )

        if not record.is_anchored:
            return VerificationReport(
                result=VerificationResult.SKIPPED,
                record=record,
                detail="no tx on chain",
            )

        local_hash = recompute_hash(record)

        entry: Optional[LedgerEntry] = None
        try:
            entry = self._client.read(record.record_id)
        except AnchorError as exc:
            logger.warning("Could not read ledger record %s: %s", record.record_id, exc)

        if local_hash != record.hash:
            logger.warning(
                "Local hash mismatch for record %s: stored %s, computed %s",
                record.record_id, record.hash, local_hash,
            )
            return VerificationReport(
                result=VerificationResult.HASH_MISMATCH,
                record=record,
                detail="local hash mismatch",
            )

        if entry is None:
            return VerificationReport(
                result=VerificationResult.LEDGER_MISMATCH,
                record=record,
                detail="could not fetch payload from ledger",
            )

        anchored = extract_digest(entry.payload)
        if not anchored:
            return VerificationReport(
                result=VerificationResult.LEDGER_MISMATCH,
                record=record,
                detail="no commitment hash in ledger payload",
            )
        if anchored != record.hash:
            logger.warning(
                "Ledger hash mismatch for record %s: stored %s, anchored %s",
                record.record_id, record.hash, anchored,
            )
            return VerificationReport(
                result=VerificationResult.LEDGER_MISMATCH,
                record=record,
                detail="chain hash mismatch",
            )

        return VerificationReport(
            result=VerificationResult.OK,
            record=record,
            committed_utc=entry.committed_utc,
        )

    def verify_all(
        self,
        records: Iterable[CommitmentRecord],
        on_report: Optional[Callable[[VerificationReport], None]] = None,
    ) -> list[VerificationReport]:
        """Verify records strictly in sequence.

        Consecutive ledger reads are separated by at least batch_delay
        seconds. Skipped records make no ledger call and add no delay.
        """
        reports: list[VerificationReport] = []
        read_before = False
        for record in records:
            if record.is_anchored:
                if read_before:
                    self._sleep(self._batch_delay)
                read_before = True
            report = self.verify(record)
            reports.append(report)
            if on_report is not None:
                on_report(report)
        return reports
