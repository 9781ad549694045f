"""Core data models for Augur."""

from augur.models.prediction import (
    CommitmentRecord,
    Prediction,
    ResolutionState,
    VerificationReport,
    VerificationResult,
)

__all__ = [
    "CommitmentRecord",
    "Prediction",
    "ResolutionState",
    "VerificationReport",
    "VerificationResult",
]
