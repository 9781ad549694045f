"""Runtime configuration.

Components receive an AugurConfig at construction and never read the
process environment themselves. The CLI builds one from a .env file:

    AUGUR_DATA_DIR=~/predictions          (or PREDICTIONS_DIR)
    AUGUR_RPC_URL=https://...             (or SEPOLIA_RPC_URL)
    AUGUR_PRIVATE_KEY=0x...               (or PRIVATE_KEY)
    AUGUR_CHAIN_ID=11155111
    AUGUR_READ_ATTEMPTS=3
    AUGUR_RETRY_WAIT=2
    AUGUR_BATCH_DELAY=2
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from dotenv import dotenv_values

from augur.crypto.anchor import DEFAULT_READ_ATTEMPTS, DEFAULT_RETRY_WAIT_SECONDS
from augur.crypto.ethereum import SEPOLIA_CHAIN_ID
from augur.engine.verification import DEFAULT_BATCH_DELAY_SECONDS


DEFAULT_DATA_DIR = Path("~/.augur").expanduser()
DEFAULT_ENV_FILE = Path(".env")


class ConfigError(ValueError):
    """Raised when configuration is missing or malformed."""


def _first(values: Mapping[str, Optional[str]], *keys: str) -> Optional[str]:
    for key in keys:
        value = values.get(key)
        if value:
            return value
    return None


def _number(values: Mapping[str, Optional[str]], key: str, default: float, kind: type) -> float:
    raw = values.get(key)
    if not raw:
        return default
    try:
        return kind(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a {kind.__name__}, got {raw!r}") from None


@dataclass(frozen=True)
class AugurConfig:
    """Explicit settings passed into every component."""
    data_dir: Path = DEFAULT_DATA_DIR
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    chain_id: int = SEPOLIA_CHAIN_ID
    read_attempts: int = DEFAULT_READ_ATTEMPTS
    retry_wait: float = DEFAULT_RETRY_WAIT_SECONDS
    batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.read_attempts < 1:
            raise ConfigError(f"read_attempts must be >= 1, got {self.read_attempts}")
        if self.retry_wait < 0 or self.batch_delay < 0:
            raise ConfigError("retry_wait and batch_delay must be >= 0")

    @staticmethod
    def from_mapping(values: Mapping[str, Optional[str]]) -> AugurConfig:
        data_dir = _first(values, "AUGUR_DATA_DIR", "PREDICTIONS_DIR")
        return AugurConfig(
            data_dir=Path(data_dir).expanduser() if data_dir else DEFAULT_DATA_DIR,
            rpc_url=_first(values, "AUGUR_RPC_URL", "SEPOLIA_RPC_URL"),
            private_key=_first(values, "AUGUR_PRIVATE_KEY", "PRIVATE_KEY", "SEPOLIA_PRIVATE_KEY"),
            chain_id=int(_number(values, "AUGUR_CHAIN_ID", SEPOLIA_CHAIN_ID, int)),
            read_attempts=int(_number(values, "AUGUR_READ_ATTEMPTS", DEFAULT_READ_ATTEMPTS, int)),
            retry_wait=_number(values, "AUGUR_RETRY_WAIT", DEFAULT_RETRY_WAIT_SECONDS, float),
            batch_delay=_number(values, "AUGUR_BATCH_DELAY", DEFAULT_BATCH_DELAY_SECONDS, float),
        )

    @staticmethod
    def from_env(env_file: Optional[Path] = DEFAULT_ENV_FILE) -> AugurConfig:
        """Load settings from a .env file, overridden by the process environment."""
        values: dict[str, Optional[str]] = {}
        if env_file is not None and Path(env_file).exists():
            values.update(dotenv_values(env_file))
        values.update(os.environ)
        return AugurConfig.from_mapping(values)

    def with_data_dir(self, data_dir: Path) -> AugurConfig:
        return replace(self, data_dir=Path(data_dir).expanduser())

    def require_ledger(self) -> None:
        """Fail fast when a ledger-backed command lacks an endpoint."""
        if not self.rpc_url:
            raise ConfigError("Missing AUGUR_RPC_URL (or SEPOLIA_RPC_URL) in .env")
