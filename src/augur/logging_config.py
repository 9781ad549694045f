"""Shared logging configuration for Augur.

Call ``configure_logging()`` once at a CLI entry point. It is idempotent:
if the root logger already has handlers, it does nothing.
"""

import logging
import sys


def configure_logging(level: int = logging.WARNING) -> None:
    """Configure the root logger with a stderr handler.

    Only configures if the root logger has no handlers, so test runners
    and embedding applications keep their own setup.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(level)
