"""Verification, resolution and calibration tally."""

from augur.engine.resolution import ResolutionOutcome, resolve
from augur.engine.tally import BUCKETS, tally
from augur.engine.verification import Verifier, extract_digest

__all__ = [
    "BUCKETS",
    "ResolutionOutcome",
    "Verifier",
    "extract_digest",
    "resolve",
    "tally",
]
