"""Tests for the verification engine — proves tamper detection and batch pacing."""

from dataclasses import replace

import pytest

from augur.crypto.anchor import InMemoryLedger, RetryPolicy
from augur.crypto.commitment import build_commitment
from augur.engine.verification import Verifier, extract_digest
from augur.models.prediction import (
    FAILED_RECORD_ID,
    PENDING_RECORD_ID,
    CommitmentRecord,
    Prediction,
    VerificationResult,
)


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger(
        policy=RetryPolicy(sleep=lambda s: None),
        clock=lambda: 1_700_000_000,
    )


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def verifier(ledger: InMemoryLedger, sleep: SleepRecorder) -> Verifier:
    return Verifier(ledger, sleep=sleep)


def _anchored(ledger: InMemoryLedger, statement: str = "Rain tomorrow") -> CommitmentRecord:
    record = build_commitment(Prediction.create(statement, 70, "2030/01/01"))
    record_id = ledger.write(record.hash.encode("ascii"))
    return replace(record, record_id=record_id)


class TestExtractDigest:
    DIGEST = "ab" * 32

    def test_bare_payload(self) -> None:
        assert extract_digest(self.DIGEST.encode("ascii")) == self.DIGEST

    def test_memo_log_line(self) -> None:
        payload = f'Program log: Memo (len 64): "{self.DIGEST}"'.encode("utf-8")
        assert extract_digest(payload) == self.DIGEST

    def test_quoted_digest_preferred(self) -> None:
        other = "cd" * 32
        payload = f'{other} then "{self.DIGEST}"'.encode("utf-8")
        assert extract_digest(payload) == self.DIGEST

    def test_uppercase_normalised(self) -> None:
        assert extract_digest(self.DIGEST.upper().encode("ascii")) == self.DIGEST

    def test_longer_hex_run_is_not_a_digest(self) -> None:
        assert extract_digest(("ab" * 40).encode("ascii")) == ""

    def test_empty_and_missing(self) -> None:
        assert extract_digest(b"") == ""
        assert extract_digest(None) == ""
        assert extract_digest(b"no digest here") == ""

    def test_invalid_utf8_tolerated(self) -> None:
        payload = b"\xff\xfe" + self.DIGEST.encode("ascii")
        assert extract_digest(payload) == self.DIGEST


class TestVerify:
    def test_round_trip_ok(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        report = verifier.verify(_anchored(ledger))
        assert report.result == VerificationResult.OK
        assert report.committed_utc == "2023-11-14 22:13:20 UTC"
        assert report.line().startswith("[OK] Rain tomorrow")
        assert "Committed: 2023-11-14 22:13:20 UTC" in report.line()

    def test_idempotent(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = _anchored(ledger)
        first = verifier.verify(record)
        second = verifier.verify(record)
        assert first == second

    def test_tampered_hash(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = replace(_anchored(ledger), hash="0" * 64)
        report = verifier.verify(record)
        assert report.result == VerificationResult.HASH_MISMATCH
        assert report.line() == "[FAIL] Rain tomorrow - local hash mismatch"

    def test_tampered_salt(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = replace(_anchored(ledger), salt="f" * 32)
        assert verifier.verify(record).result == VerificationResult.HASH_MISMATCH

    def test_tampered_statement(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = replace(_anchored(ledger), statement="Rain today")
        assert verifier.verify(record).result == VerificationResult.HASH_MISMATCH

    def test_hash_mismatch_outranks_unreadable_ledger(
        self, ledger: InMemoryLedger, verifier: Verifier,
    ) -> None:
        record = replace(_anchored(ledger), probability="99")
        ledger.rate_limit_reads = -1
        assert verifier.verify(record).result == VerificationResult.HASH_MISMATCH

    def test_forged_ledger_payload(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = _anchored(ledger)
        ledger.tamper(record.record_id, ("cd" * 32).encode("ascii"))
        report = verifier.verify(record)
        assert report.result == VerificationResult.LEDGER_MISMATCH
        assert "chain hash mismatch" in report.line()

    def test_payload_without_digest(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = _anchored(ledger)
        ledger.tamper(record.record_id, b"")
        assert verifier.verify(record).result == VerificationResult.LEDGER_MISMATCH

    def test_unknown_record_id(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        record = replace(_anchored(ledger), record_id="0xdeadbeef")
        report = verifier.verify(record)
        assert report.result == VerificationResult.LEDGER_MISMATCH
        assert report.tag == "FAIL"

    def test_rate_limited_read_attempted_three_times(
        self, ledger: InMemoryLedger, verifier: Verifier,
    ) -> None:
        record = _anchored(ledger)
        ledger.rate_limit_reads = -1
        report = verifier.verify(record)
        assert report.result == VerificationResult.LEDGER_MISMATCH
        assert report.detail == "could not fetch payload from ledger"
        assert ledger.read_calls == 3

    @pytest.mark.parametrize("record_id", [FAILED_RECORD_ID, PENDING_RECORD_ID, ""])
    def test_unanchored_skipped_without_ledger_call(
        self, ledger: InMemoryLedger, verifier: Verifier, record_id: str,
    ) -> None:
        record = build_commitment(Prediction.create("Rain tomorrow", 70, "2030/01/01"), record_id=record_id)
        report = verifier.verify(record)
        assert report.result == VerificationResult.SKIPPED
        assert report.line() == "[SKIP] Rain tomorrow - no tx on chain"
        assert ledger.read_calls == 0

    def test_failed_sentinel_skipped_even_if_tampered(
        self, ledger: InMemoryLedger, verifier: Verifier,
    ) -> None:
        record = build_commitment(
            Prediction.create("Rain tomorrow", 70, "2030/01/01"), record_id=FAILED_RECORD_ID,
        )
        record = replace(record, hash="0" * 64)
        assert verifier.verify(record).result == VerificationResult.SKIPPED

    @pytest.mark.parametrize("stored", ["70%", "070", "+70", "70 "])
    def test_reformatted_probability_is_tampering(
        self, ledger: InMemoryLedger, verifier: Verifier, stored: str,
    ) -> None:
        record = replace(_anchored(ledger), probability=stored)
        assert verifier.verify(record).result == VerificationResult.HASH_MISMATCH

    def test_malformed_row_fails_without_ledger_call(
        self, ledger: InMemoryLedger, verifier: Verifier,
    ) -> None:
        record = CommitmentRecord(
            "", "", "", "", "", "abc def", defect="hashes.txt line 2: expected 6 fields, got 2",
        )
        report = verifier.verify(record)
        assert report.result == VerificationResult.HASH_MISMATCH
        assert report.line() == (
            "[FAIL] abc def - malformed record: hashes.txt line 2: expected 6 fields, got 2"
        )
        assert ledger.read_calls == 0


class TestVerifyAll:
    def test_reports_in_order_with_partial_failures(
        self, ledger: InMemoryLedger, verifier: Verifier,
    ) -> None:
        good = _anchored(ledger, "first")
        tampered = replace(_anchored(ledger, "second"), salt="0" * 32)
        failed = build_commitment(Prediction.create("third", 50, "2030/01/01"), record_id=FAILED_RECORD_ID)
        missing = replace(_anchored(ledger, "fourth"), record_id="0xgone")
        last = _anchored(ledger, "fifth")

        reports = verifier.verify_all([good, tampered, failed, missing, last])
        assert [r.result for r in reports] == [
            VerificationResult.OK,
            VerificationResult.HASH_MISMATCH,
            VerificationResult.SKIPPED,
            VerificationResult.LEDGER_MISMATCH,
            VerificationResult.OK,
        ]

    def test_delay_between_ledger_reads_only(
        self, ledger: InMemoryLedger, verifier: Verifier, sleep: SleepRecorder,
    ) -> None:
        failed = build_commitment(Prediction.create("skip", 50, "2030/01/01"), record_id=FAILED_RECORD_ID)
        records = [_anchored(ledger, "a"), failed, _anchored(ledger, "b"), _anchored(ledger, "c")]
        verifier.verify_all(records)
        assert sleep.calls == [2.0, 2.0]

    def test_malformed_row_adds_no_delay(
        self, ledger: InMemoryLedger, verifier: Verifier, sleep: SleepRecorder,
    ) -> None:
        damaged = CommitmentRecord("", "", "", "", "", "junk", defect="line 2: expected 6 fields, got 1")
        reports = verifier.verify_all([_anchored(ledger, "a"), damaged, _anchored(ledger, "b")])
        assert [r.tag for r in reports] == ["OK", "FAIL", "OK"]
        assert sleep.calls == [2.0]

    def test_custom_delay(self, ledger: InMemoryLedger, sleep: SleepRecorder) -> None:
        verifier = Verifier(ledger, batch_delay=0.5, sleep=sleep)
        verifier.verify_all([_anchored(ledger, "a"), _anchored(ledger, "b")])
        assert sleep.calls == [0.5]

    def test_on_report_streams(self, ledger: InMemoryLedger, verifier: Verifier) -> None:
        seen: list[str] = []
        verifier.verify_all([_anchored(ledger, "a"), _anchored(ledger, "b")], on_report=lambda r: seen.append(r.tag))
        assert seen == ["OK", "OK"]

    def test_empty_batch(self, verifier: Verifier, sleep: SleepRecorder) -> None:
        assert verifier.verify_all([]) == []
        assert sleep.calls == []

    def test_negative_delay_rejected(self, ledger: InMemoryLedger) -> None:
        with pytest.raises(ValueError):
            Verifier(ledger, batch_delay=-1)
