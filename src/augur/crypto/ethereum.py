"""Ethereum ledger backend — anchors commitment hashes in transaction data.

A write is a 0-ETH self-send whose data field carries the commitment
hash as ASCII hex. A read fetches the transaction back, returns its data
field as the payload, and looks up the block timestamp as the commit time.

This is NOT a smart contract and not a general Ethereum client: signing,
nonce management and submission are delegated to web3 and eth-account.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from requests.exceptions import HTTPError

from augur.crypto.anchor import (
    AnchorReadFailed,
    AnchorWriteFailed,
    LedgerEntry,
    RateLimited,
    RetryPolicy,
    read_with_retry,
)


logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111

EXPLORERS = {
    1: "https://etherscan.io",
    SEPOLIA_CHAIN_ID: "https://sepolia.etherscan.io",
    17000: "https://holesky.etherscan.io",
}

RATE_LIMIT_CODE = 429


def _parse_retry_after(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def classify_rate_limit(exc: BaseException) -> Optional[RateLimited]:
    """Return a RateLimited error if exc is the server's rate-limit signal.

    Two signals are recognised: an HTTP 429 response (with an optional
    Retry-After header) and a JSON-RPC error object whose code is 429.
    """
    if isinstance(exc, HTTPError) and exc.response is not None:
        if exc.response.status_code == RATE_LIMIT_CODE:
            retry_after = _parse_retry_after(exc.response.headers.get("Retry-After"))
            return RateLimited(str(exc), retry_after=retry_after)
        return None

    rpc_response = getattr(exc, "rpc_response", None)
    error = None
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error")
    elif exc.args and isinstance(exc.args[0], dict):
        error = exc.args[0]
    if isinstance(error, dict) and error.get("code") == RATE_LIMIT_CODE:
        data = error.get("data")
        retry_after = data.get("retry_after") if isinstance(data, dict) else None
        return RateLimited(
            str(error.get("message", "rate limited")),
            retry_after=_parse_retry_after(retry_after),
        )
    return None


class EthereumAnchorClient:
    """LedgerAnchorClient bound to an Ethereum JSON-RPC endpoint.

    Usage:
        client = EthereumAnchorClient(rpc_url, private_key)
        tx_hash = client.write(b"9f86d0...")
        entry = client.read(tx_hash)
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: Optional[str] = None,
        chain_id: int = SEPOLIA_CHAIN_ID,
        policy: Optional[RetryPolicy] = None,
        gas: int = 30_000,
        gas_price_gwei: str = "2",
        receipt_timeout: int = 300,
        w3: Any = None,
    ) -> None:
        self._rpc_url = rpc_url
        self._private_key = private_key
        self._chain_id = chain_id
        self._policy = policy or RetryPolicy()
        self._gas = gas
        self._gas_price_gwei = gas_price_gwei
        self._receipt_timeout = receipt_timeout
        self._w3 = w3

    @property
    def chain_id(self) -> int:
        return self._chain_id

    def _web3(self) -> Any:
        if self._w3 is None:
            from web3 import Web3, HTTPProvider

            # Retries are owned by RetryPolicy, not the provider.
            self._w3 = Web3(HTTPProvider(self._rpc_url, exception_retry_configuration=None))
        return self._w3

    def write(self, payload: bytes) -> str:
        """Send one self-transaction carrying payload; return its tx hash.

        Exactly one submission is attempted. Any failure (bad key, no
        funds, network error, receipt timeout) raises AnchorWriteFailed.
        """
        if not self._private_key:
            raise AnchorWriteFailed("No signing key configured")
        try:
            from eth_account import Account

            w3 = self._web3()
            acct = Account.from_key(self._private_key)
            nonce = w3.eth.get_transaction_count(acct.address)
            tx = {
                "to": acct.address,  # self-send, 0 ETH
                "value": 0,
                "gas": self._gas,
                "gasPrice": w3.to_wei(self._gas_price_gwei, "gwei"),
                "nonce": nonce,
                "chainId": self._chain_id,
                "data": bytes(payload),
            }
            signed = acct.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info("Sent anchor tx %s, waiting for confirmation", tx_hash.hex())
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._receipt_timeout)
        except Exception as exc:
            raise AnchorWriteFailed(f"Ethereum write failed: {exc}") from exc

        if getattr(receipt, "status", 1) != 1:
            raise AnchorWriteFailed(f"Anchor tx {tx_hash.hex()} reverted")
        logger.info("Anchor tx confirmed in block %s", receipt.blockNumber)
        return _hex(tx_hash)

    def read(self, record_id: str) -> LedgerEntry:
        return read_with_retry(self._read_once, record_id, self._policy)

    def _read_once(self, record_id: str) -> LedgerEntry:
        from web3.exceptions import TransactionNotFound

        w3 = self._web3()
        try:
            tx = w3.eth.get_transaction(record_id)
            block_number = tx["blockNumber"]
            timestamp = None
            if block_number is not None:
                timestamp = int(w3.eth.get_block(block_number)["timestamp"])
        except TransactionNotFound as exc:
            raise AnchorReadFailed(f"Transaction {record_id} not found") from exc
        except Exception as exc:
            limited = classify_rate_limit(exc)
            if limited is not None:
                raise limited from exc
            raise AnchorReadFailed(f"Ethereum read of {record_id} failed: {exc}") from exc
        return LedgerEntry(payload=bytes(tx["input"]), timestamp=timestamp)

    def explorer_url(self, record_id: str) -> str:
        base = EXPLORERS.get(self._chain_id, EXPLORERS[SEPOLIA_CHAIN_ID])
        return f"{base}/tx/{record_id}"


def _hex(value: Any) -> str:
    text = value.hex() if hasattr(value, "hex") else str(value)
    return text if text.startswith("0x") else f"0x{text}"
