"""Augur service — unified facade over the commitment lifecycle.

Orchestrates the components in their control-flow order:
- predict: commitment engine -> ledger write -> record store
- resolve: record store -> resolution transition -> record store
- verify / verify_all: record store -> verification engine -> ledger read
- tally: record store -> resolution tally

Every operation returns a ServiceResult. External-service failures are
converted at this boundary and never propagate to the caller: a failed
ledger write is recorded as the FAILED sentinel, a failed read becomes
a LEDGER_MISMATCH report.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Union

from augur.config import AugurConfig
from augur.crypto.anchor import AnchorError, LedgerAnchorClient
from augur.crypto.commitment import InvalidFieldError, build_commitment
from augur.engine.resolution import InvalidJudgment, Judgment, is_matured, resolve
from augur.engine.tally import format_tally, tally
from augur.engine.verification import Verifier
from augur.models.prediction import (
    FAILED_RECORD_ID,
    CommitmentRecord,
    Prediction,
    VerificationReport,
)
from augur.persistence.record_store import RecordStore, RecordStoreError


logger = logging.getLogger(__name__)


class InvalidSelection(LookupError):
    """Raised when a selected record index does not exist."""


@dataclass
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)


class AugurService:
    """Prediction commitment facade.

    Usage:
        config = AugurConfig.from_env()
        service = AugurService(config, client=EthereumAnchorClient(...))
        result = service.predict("It will rain", 70, "2030/01/01")
        result = service.verify_all(on_report=lambda r: print(r.line()))
    """

    def __init__(
        self,
        config: AugurConfig,
        client: Optional[LedgerAnchorClient] = None,
        store: Optional[RecordStore] = None,
        clock: Callable[[], date] = date.today,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._config = config
        self._client = client
        self._store = store or RecordStore(config.data_dir)
        self._clock = clock
        self._sleep = sleep

    @property
    def store(self) -> RecordStore:
        return self._store

    def _verifier(self) -> Verifier:
        if self._client is None:
            raise AnchorError("No ledger client configured")
        if self._sleep is None:
            return Verifier(self._client, batch_delay=self._config.batch_delay)
        return Verifier(self._client, batch_delay=self._config.batch_delay, sleep=self._sleep)

    # ------------------------------------------------------------------
    # Predict
    # ------------------------------------------------------------------

    def predict(
        self,
        statement: str,
        probability: int,
        resolution_date: Union[str, date],
    ) -> ServiceResult:
        """Record a prediction and anchor its commitment.

        The ledger write is attempted exactly once. On failure the
        prediction is still saved with the FAILED sentinel and a warning.
        If saving fails after the write, the hash, salt and record id are
        returned in the error so the anchor can still be revealed.
        """
        if self._client is None:
            return ServiceResult(success=False, errors=["No ledger client configured"])
        try:
            prediction = Prediction.create(statement, probability, resolution_date)
            commitment = build_commitment(prediction)
        except ValueError as exc:
            return ServiceResult(success=False, errors=[str(exc)])

        warning = None
        try:
            record_id = self._client.write(commitment.hash.encode("ascii"))
        except AnchorError as exc:
            logger.warning("Ledger write failed for %s: %s", commitment.hash, exc)
            record_id = FAILED_RECORD_ID
            warning = f"Ledger transaction failed: {exc}"
        else:
            logger.info("Anchored commitment %s as %s", commitment.hash, record_id)

        anchored = CommitmentRecord(
            hash=commitment.hash,
            salt=commitment.salt,
            record_id=record_id,
            resolution_date=commitment.resolution_date,
            probability=commitment.probability,
            statement=commitment.statement,
        )
        data: dict[str, Any] = {
            "hash": anchored.hash,
            "record_id": anchored.record_id,
            "resolution_date": prediction.resolution_date,
        }
        # Commitment row first: it alone holds the salt needed to reveal.
        try:
            self._store.append_commitment(anchored)
            self._store.append_pending(prediction)
        except (RecordStoreError, InvalidFieldError) as exc:
            logger.error(
                "Could not save commitment %s (record %s): %s",
                anchored.hash, anchored.record_id, exc,
            )
            data["salt"] = anchored.salt
            return ServiceResult(
                success=False,
                errors=[
                    f"{exc} (hash {anchored.hash}, salt {anchored.salt}, "
                    f"record {anchored.record_id})"
                ],
                data=data,
            )

        explorer_url = getattr(self._client, "explorer_url", None)
        if anchored.is_anchored and callable(explorer_url):
            data["explorer_url"] = explorer_url(anchored.record_id)
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    def matured(self, today: Optional[date] = None) -> list[Prediction]:
        """Pending predictions whose resolution date has passed."""
        today = today or self._clock()
        return [p for p in self._store.load_pending() if is_matured(p, today)]

    def resolve(
        self,
        judge: Callable[[Prediction], Judgment],
        today: Optional[date] = None,
    ) -> ServiceResult:
        """Ask judge about each matured prediction and persist the outcome.

        Nothing is written unless every judgment is valid.
        """
        today = today or self._clock()
        try:
            outcome = resolve(self._store.load_pending(), today, judge)
            self._store.apply_resolution(outcome.resolved, outcome.still_pending)
        except (InvalidJudgment, RecordStoreError) as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        return ServiceResult(
            success=True,
            data={
                "resolved": outcome.resolved,
                "still_pending": outcome.still_pending,
            },
        )

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def list_commitments(self) -> ServiceResult:
        try:
            records = self._store.load_commitments()
        except RecordStoreError as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        return ServiceResult(success=True, data={"commitments": records})

    def select(self, selection: int) -> CommitmentRecord:
        """Return the commitment at a 1-based listing index."""
        records = self._store.load_commitments()
        if not 1 <= selection <= len(records):
            raise InvalidSelection(f"Invalid selection: {selection}")
        return records[selection - 1]

    def verify(self, selection: int) -> ServiceResult:
        try:
            record = self.select(selection)
            report = self._verifier().verify(record)
        except (InvalidSelection, RecordStoreError, AnchorError) as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        return ServiceResult(success=True, data={"report": report})

    def verify_all(
        self,
        on_report: Optional[Callable[[VerificationReport], None]] = None,
    ) -> ServiceResult:
        """Verify every commitment in order; one failure never stops the batch.

        Damaged rows in the commitment file come back as failed reports
        in their position rather than failing the whole call.
        """
        try:
            records = self._store.load_commitments()
            reports = self._verifier().verify_all(records, on_report=on_report)
        except (RecordStoreError, AnchorError) as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        summary: dict[str, int] = {}
        for report in reports:
            summary[report.result.value] = summary.get(report.result.value, 0) + 1
        return ServiceResult(
            success=True,
            data={"reports": reports, "summary": summary},
        )

    # ------------------------------------------------------------------
    # Tally
    # ------------------------------------------------------------------

    def tally(self) -> ServiceResult:
        try:
            counts = tally(self._store.load_resolved())
        except (RecordStoreError, ValueError) as exc:
            return ServiceResult(success=False, errors=[str(exc)])
        return ServiceResult(
            success=True,
            data={"counts": counts, "lines": format_tally(counts)},
        )
