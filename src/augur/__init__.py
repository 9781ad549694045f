"""Augur — ledger-anchored prediction commitments and calibration."""

__version__ = "0.1.0"
