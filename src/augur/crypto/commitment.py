"""Commitment engine — salted SHA-256 commitments to predictions.

A commitment is the hex digest of

    statement|probability|resolution_date|salt

encoded as UTF-8. The salt is fresh per prediction, so the digest
reveals nothing about the statement until the holder discloses the
fields and salt. Given the same inputs the digest is always the same,
which is what makes later re-verification possible.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Optional

from augur.models.prediction import (
    CommitmentRecord,
    PENDING_RECORD_ID,
    Prediction,
)


SEPARATOR = "|"
SALT_BYTES = 16

# Characters that would corrupt either the hash preimage or the
# tab-separated record files.
RECORD_DELIMITERS = ("\t", "\n", "\r")
FORBIDDEN_CHARACTERS = RECORD_DELIMITERS + (SEPARATOR,)


class InvalidFieldError(ValueError):
    """Raised when a field value contains a reserved delimiter."""


def generate_salt() -> str:
    """Return 16 bytes of CSPRNG output as 32 lowercase hex characters."""
    return secrets.token_hex(SALT_BYTES)


def compute_hash(
    statement: str,
    probability: int | str,
    date: str,
    salt: str,
) -> str:
    """Compute the commitment digest for the four fields.

    Pure function. Delimiter checks are the caller's concern; see
    validate_field().
    """
    preimage = SEPARATOR.join((statement, str(probability), date, salt))
    return hashlib.sha256(preimage.encode("utf-8")).hexdigest()


def validate_field(
    name: str,
    value: str,
    forbidden: tuple[str, ...] = FORBIDDEN_CHARACTERS,
) -> None:
    """Reject values carrying a record or hash delimiter."""
    for char in forbidden:
        if char in value:
            raise InvalidFieldError(
                f"{name} must not contain {char!r}: {value!r}"
            )


def build_commitment(
    prediction: Prediction,
    record_id: str = PENDING_RECORD_ID,
    salt: Optional[str] = None,
) -> CommitmentRecord:
    """Build a commitment record for a prediction.

    A fresh salt is generated unless one is supplied (tests only).
    """
    validate_field("statement", prediction.statement)
    validate_field("resolution_date", prediction.resolution_date)
    if salt is None:
        salt = generate_salt()
    digest = compute_hash(
        prediction.statement,
        prediction.probability,
        prediction.resolution_date,
        salt,
    )
    return CommitmentRecord(
        hash=digest,
        salt=salt,
        record_id=record_id,
        resolution_date=prediction.resolution_date,
        probability=str(prediction.probability),
        statement=prediction.statement,
    )


def recompute_hash(record: CommitmentRecord) -> str:
    """Re-derive the digest from the fields stored in a record."""
    return compute_hash(
        record.statement,
        record.probability,
        record.resolution_date,
        record.salt,
    )
