"""Prediction and commitment record models.

A Prediction is the user-asserted statement. A CommitmentRecord is the
derived, immutable artifact binding that statement to a salt and to the
ledger record that anchors it.

Both records duplicate the full (statement, probability, date) tuple so a
commitment row is self-describing and can be verified without a join.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Optional, Union


DATE_FORMAT = "%Y/%m/%d"

# Record-id sentinels. FAILED: the single ledger write did not succeed.
# PENDING: placeholder for a commitment not yet anchored.
FAILED_RECORD_ID = "FAILED"
PENDING_RECORD_ID = "PENDING"
UNANCHORED_RECORD_IDS = frozenset({FAILED_RECORD_ID, PENDING_RECORD_ID, ""})


class ResolutionState(str, enum.Enum):
    """Truth state of a prediction."""
    UNRESOLVED = "UNRESOLVED"
    TRUE = "TRUE"
    FALSE = "FALSE"


class VerificationResult(str, enum.Enum):
    """Outcome of re-verifying a commitment against the ledger."""
    OK = "OK"
    HASH_MISMATCH = "HASH_MISMATCH"
    LEDGER_MISMATCH = "LEDGER_MISMATCH"
    SKIPPED = "SKIPPED"


def canonical_date(value: Union[str, date]) -> str:
    """Normalise a resolution date to zero-padded ``YYYY/MM/DD``.

    Zero-padding makes lexical order equal calendar order, which is what
    maturity checks rely on. Accepts ``datetime.date`` or ``Y/M/D`` text
    with or without padding. Raises ValueError for impossible dates.
    """
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    try:
        parsed = datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError as exc:
        raise ValueError(
            f"Invalid resolution date {value!r}: expected year/month/day"
        ) from exc
    return parsed.strftime(DATE_FORMAT)


@dataclass(frozen=True)
class Prediction:
    """A falsifiable statement with a stated probability of being true."""
    statement: str
    probability: int
    resolution_date: str
    resolution_state: ResolutionState = ResolutionState.UNRESOLVED

    @staticmethod
    def create(
        statement: str,
        probability: int,
        resolution_date: Union[str, date],
    ) -> Prediction:
        """Create a new UNRESOLVED prediction with validated fields."""
        statement = statement.strip()
        if not statement:
            raise ValueError("Statement must not be empty")
        probability = int(probability)
        if not 0 <= probability <= 100:
            raise ValueError(f"Probability must be 0-100, got {probability}")
        return Prediction(
            statement=statement,
            probability=probability,
            resolution_date=canonical_date(resolution_date),
        )

    @property
    def is_resolved(self) -> bool:
        return self.resolution_state != ResolutionState.UNRESOLVED

    def resolved_as(self, state: ResolutionState) -> Prediction:
        """Return a copy stamped with a TRUE/FALSE judgment.

        A prediction transitions exactly once; re-resolving is an error.
        """
        if state == ResolutionState.UNRESOLVED:
            raise ValueError("Resolution state must be TRUE or FALSE")
        if self.is_resolved:
            raise ValueError(
                f"Prediction already resolved as {self.resolution_state.value}"
            )
        return replace(self, resolution_state=state)


@dataclass(frozen=True)
class CommitmentRecord:
    """A salted hash commitment to a prediction, plus its ledger anchor.

    probability keeps the text exactly as stored so the digest is always
    recomputed over the stored bytes. defect is set when a stored row could
    not be split into its fields; such a record never verifies.
    """
    hash: str
    salt: str
    record_id: str
    resolution_date: str
    probability: str
    statement: str
    defect: str = ""

    @property
    def is_anchored(self) -> bool:
        return not self.defect and self.record_id not in UNANCHORED_RECORD_IDS

    @property
    def status(self) -> str:
        """Human-readable anchor status used in listings."""
        if self.defect:
            return "MALFORMED"
        if self.is_anchored:
            return "ON CHAIN"
        return self.record_id or PENDING_RECORD_ID

    def prediction(self) -> Prediction:
        """The (unresolved) prediction this record commits to.

        Raises ValueError when the stored probability is not an integer.
        """
        return Prediction(
            statement=self.statement,
            probability=int(self.probability),
            resolution_date=self.resolution_date,
        )


@dataclass(frozen=True)
class VerificationReport:
    """A single verification outcome with its audit text."""
    result: VerificationResult
    record: CommitmentRecord
    detail: str = ""
    committed_utc: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result == VerificationResult.OK

    @property
    def tag(self) -> str:
        if self.result == VerificationResult.OK:
            return "OK"
        if self.result == VerificationResult.SKIPPED:
            return "SKIP"
        return "FAIL"

    def line(self) -> str:
        """Render the tagged audit line(s) for this outcome."""
        text = f"[{self.tag}] {self.record.statement}"
        if self.detail:
            text += f" - {self.detail}"
        if self.ok:
            text += f"\n     Committed: {self.committed_utc or 'unknown'}"
        return text
