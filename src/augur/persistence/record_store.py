"""Record store — tab-separated prediction and commitment files.

Three files live in the data directory, one record per line:

    pendingPredictions.txt   state<TAB>date<TAB>probability<TAB>statement
    resolvedPredictions.txt  state<TAB>date<TAB>probability<TAB>statement
    hashes.txt               hash<TAB>salt<TAB>recordId<TAB>date<TAB>probability<TAB>statement

Every mutation re-reads the file and rewrites it whole through a
temporary file and os.replace(), so an interrupted run leaves either the
old or the new contents on disk, never a partial file. A resolution
pass touches two files and goes through a journal so that it is applied
as a unit.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, Sequence

from augur.crypto.commitment import RECORD_DELIMITERS, validate_field
from augur.models.prediction import CommitmentRecord, Prediction, ResolutionState


logger = logging.getLogger(__name__)

PENDING_FILE = "pendingPredictions.txt"
RESOLVED_FILE = "resolvedPredictions.txt"
COMMITMENTS_FILE = "hashes.txt"
RESOLUTION_JOURNAL = ".resolution.journal"

DELIMITER = "\t"


class RecordStoreError(Exception):
    """Raised when a record file cannot be read or written."""


def _prediction_line(prediction: Prediction) -> str:
    validate_field("statement", prediction.statement, RECORD_DELIMITERS)
    validate_field("resolution_date", prediction.resolution_date, RECORD_DELIMITERS)
    return DELIMITER.join((
        prediction.resolution_state.value,
        prediction.resolution_date,
        str(prediction.probability),
        prediction.statement,
    ))


def _commitment_line(record: CommitmentRecord) -> str:
    for name in ("hash", "salt", "record_id", "resolution_date", "probability", "statement"):
        validate_field(name, getattr(record, name), RECORD_DELIMITERS)
    return DELIMITER.join((
        record.hash,
        record.salt,
        record.record_id,
        record.resolution_date,
        record.probability,
        record.statement,
    ))


def _parse_probability(raw: str, path: Path, line_num: int) -> int:
    try:
        return int(raw)
    except ValueError:
        raise RecordStoreError(
            f"{path.name} line {line_num}: probability {raw!r} is not an integer"
        ) from None


def _parse_prediction(line: str, path: Path, line_num: int) -> Prediction:
    fields = line.split(DELIMITER)
    if len(fields) != 4:
        raise RecordStoreError(
            f"{path.name} line {line_num}: expected 4 fields, got {len(fields)}"
        )
    state, resolution_date, probability, statement = fields
    try:
        resolution_state = ResolutionState(state)
    except ValueError:
        raise RecordStoreError(
            f"{path.name} line {line_num}: unknown resolution state {state!r}"
        ) from None
    return Prediction(
        statement=statement,
        probability=_parse_probability(probability, path, line_num),
        resolution_date=resolution_date,
        resolution_state=resolution_state,
    )


def _parse_commitment(line: str, path: Path, line_num: int) -> CommitmentRecord:
    """Parse a commitment row without judging its contents.

    Field values are kept verbatim so verification hashes what is on
    disk. A row with the wrong field count is returned as a defective
    record, so one damaged line cannot hide the rows after it.
    """
    fields = line.split(DELIMITER)
    if len(fields) != 6:
        defect = f"{path.name} line {line_num}: expected 6 fields, got {len(fields)}"
        logger.warning("%s", defect)
        return CommitmentRecord(
            hash="",
            salt="",
            record_id="",
            resolution_date="",
            probability="",
            statement=line.replace(DELIMITER, " "),
            defect=defect,
        )
    digest, salt, record_id, resolution_date, probability, statement = fields
    return CommitmentRecord(
        hash=digest,
        salt=salt,
        record_id=record_id,
        resolution_date=resolution_date,
        probability=probability,
        statement=statement,
    )


class RecordStore:
    """Durable access to pending, resolved and commitment records.

    Usage:
        store = RecordStore(Path("~/predictions").expanduser())
        store.append_pending(prediction)
        store.append_commitment(record)
        records = store.load_commitments()
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = Path(data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def pending_path(self) -> Path:
        return self._data_dir / PENDING_FILE

    @property
    def resolved_path(self) -> Path:
        return self._data_dir / RESOLVED_FILE

    @property
    def commitments_path(self) -> Path:
        return self._data_dir / COMMITMENTS_FILE

    @property
    def journal_path(self) -> Path:
        return self._data_dir / RESOLUTION_JOURNAL

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_pending(self) -> list[Prediction]:
        self._replay_journal()
        return [
            _parse_prediction(line, self.pending_path, n)
            for n, line in self._read_lines(self.pending_path)
        ]

    def load_resolved(self) -> list[Prediction]:
        self._replay_journal()
        return [
            _parse_prediction(line, self.resolved_path, n)
            for n, line in self._read_lines(self.resolved_path)
        ]

    def load_commitments(self) -> list[CommitmentRecord]:
        return [
            _parse_commitment(line, self.commitments_path, n)
            for n, line in self._read_lines(self.commitments_path)
        ]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append_pending(self, prediction: Prediction) -> None:
        line = _prediction_line(prediction)
        self._replay_journal()
        self._rewrite(self.pending_path, self._raw_lines(self.pending_path) + [line])

    def append_resolved(self, prediction: Prediction) -> None:
        if not prediction.is_resolved:
            raise RecordStoreError("Only TRUE/FALSE predictions belong in the resolved file")
        line = _prediction_line(prediction)
        self._replay_journal()
        self._rewrite(self.resolved_path, self._raw_lines(self.resolved_path) + [line])

    def append_commitment(self, record: CommitmentRecord) -> None:
        line = _commitment_line(record)
        self._rewrite(self.commitments_path, self._raw_lines(self.commitments_path) + [line])

    def replace_pending(self, predictions: Iterable[Prediction]) -> None:
        lines = [_prediction_line(p) for p in predictions]
        self._replay_journal()
        self._rewrite(self.pending_path, lines)

    def apply_resolution(
        self,
        resolved: Sequence[Prediction],
        still_pending: Sequence[Prediction],
    ) -> None:
        """Persist a resolution pass: append resolved, rewrite pending.

        Both target files are first recorded in a journal, which is then
        replayed. A crash before the journal lands changes nothing; a
        crash after it is finished by the next store access, so every
        item moves from pending to resolved exactly once.
        """
        if any(not p.is_resolved for p in resolved):
            raise RecordStoreError("Only TRUE/FALSE predictions belong in the resolved file")
        resolved_lines = [_prediction_line(p) for p in resolved]
        pending_lines = [_prediction_line(p) for p in still_pending]
        self._replay_journal()
        journal = {
            "resolved": self._raw_lines(self.resolved_path) + resolved_lines,
            "pending": pending_lines,
        }
        self._rewrite(self.journal_path, [json.dumps(journal)])
        self._replay_journal()

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _replay_journal(self) -> None:
        if not self.journal_path.exists():
            return
        try:
            journal = json.loads(self.journal_path.read_text(encoding="utf-8"))
            resolved_lines = list(journal["resolved"])
            pending_lines = list(journal["pending"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise RecordStoreError(
                f"Unreadable resolution journal {self.journal_path}: {exc}"
            ) from exc
        logger.info("Completing resolution pass from %s", self.journal_path)
        self._rewrite(self.resolved_path, resolved_lines)
        self._rewrite(self.pending_path, pending_lines)
        try:
            self.journal_path.unlink()
        except OSError as exc:
            raise RecordStoreError(f"Failed to remove {self.journal_path}: {exc}") from exc

    def _read_lines(self, path: Path) -> list[tuple[int, str]]:
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8", newline="") as f:
                lines = f.read().split("\n")
        except OSError as exc:
            raise RecordStoreError(f"Failed to read {path}: {exc}") from exc
        return [
            (line_num, line.rstrip("\r"))
            for line_num, line in enumerate(lines, 1)
            if line.strip()
        ]

    def _raw_lines(self, path: Path) -> list[str]:
        return [line for _, line in self._read_lines(path)]

    def _rewrite(self, path: Path, lines: list[str]) -> None:
        content = "".join(line + "\n" for line in lines)
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=self._data_dir)
        except OSError as exc:
            raise RecordStoreError(f"Failed to prepare {path}: {exc}") from exc
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise RecordStoreError(f"Failed to write {path}: {exc}") from exc
        logger.debug("Wrote %d records to %s", len(lines), path)
