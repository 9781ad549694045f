"""Local record persistence."""
