"""
launch-trader Core: Solana JSON-RPC Client

Transaction submission, confirmation polling, mint decimals and balance
deltas over plain JSON-RPC.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import requests

from core.exceptions import ExecutionRejected
from core.models import SOL_MINT, USDC_MINT
from infra.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

DEFAULT_RPC = "https://api.mainnet-beta.solana.com"

KNOWN_DECIMALS = {
    USDC_MINT: 6,
    SOL_MINT: 9,
}


class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class ConfirmationResult:
    status: ConfirmationStatus
    signature: str
    error: Optional[Any] = None


class RpcError(RuntimeError):
    def __init__(self, method: str, error: Any):
        super().__init__(f"RPC {method} failed: {error}")
        self.method = method
        self.error = error


class SolanaRpcClient(JsonHttpClient):
    """Minimal Solana RPC surface used by swap execution."""

    name = "solana-rpc"

    def __init__(self, endpoint: str = DEFAULT_RPC, timeout: float = 15.0, max_retries: int = 2,
                 commitment: str = "confirmed", poll_interval: float = 1.0):
        super().__init__(endpoint, timeout=timeout, max_retries=max_retries)
        self.commitment = commitment
        self.poll_interval = float(poll_interval)
        self._ids = itertools.count(1)
        self._decimals_cache: Dict[str, int] = dict(KNOWN_DECIMALS)
        logger.info(f"Initialized SolanaRpcClient ({self.base_url}, commitment={commitment})")

    def call(self, method: str, params: Optional[List[Any]] = None, max_retries: Optional[int] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params or [],
        }
        data = self._req("POST", body=payload, max_retries=max_retries)
        if isinstance(data, dict) and data.get("error"):
            raise RpcError(method, data["error"])
        return data.get("result") if isinstance(data, dict) else None

    def send_transaction(self, signed_tx_b64: str) -> str:
        """
        Submit a signed base64 transaction.

        Submission is never retried at this layer: a resend after an
        ambiguous failure could land the same swap twice.

        Raises:
            ExecutionRejected: RPC refused the transaction
        """
        try:
            signature = self.call(
                "sendTransaction",
                [signed_tx_b64, {"encoding": "base64", "maxRetries": 3, "preflightCommitment": self.commitment}],
                max_retries=1,
            )
        except (RpcError, requests.exceptions.RequestException) as e:
            raise ExecutionRejected(f"Transaction submission rejected: {e}") from e
        if not signature:
            raise ExecutionRejected("RPC returned no signature")
        logger.info(f"Transaction sent: {signature}")
        return signature

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        result = self.call("getSignatureStatuses", [[signature], {"searchTransactionHistory": False}])
        values = (result or {}).get("value") or []
        return values[0] if values else None

    def wait_for_confirmation(self, signature: str, timeout_seconds: float) -> ConfirmationResult:
        """
        Poll until the signature reaches the configured commitment or times out.

        Transient RPC errors while polling do not end the wait.
        """
        deadline = time.monotonic() + float(timeout_seconds)
        wanted = {"confirmed", "finalized"} if self.commitment == "confirmed" else {"finalized"}

        while True:
            try:
                status = self.get_signature_status(signature)
            except (RpcError, requests.exceptions.RequestException) as e:
                logger.warning(f"Status poll failed for {signature}: {e}")
                status = None

            if status:
                if status.get("err"):
                    logger.error(f"Transaction failed: {signature} {status['err']}")
                    return ConfirmationResult(ConfirmationStatus.FAILED, signature, status["err"])
                if status.get("confirmationStatus") in wanted:
                    logger.info(f"Transaction confirmed: {signature}")
                    return ConfirmationResult(ConfirmationStatus.CONFIRMED, signature)

            if time.monotonic() >= deadline:
                logger.warning(f"Confirmation timeout after {timeout_seconds}s: {signature}")
                return ConfirmationResult(ConfirmationStatus.TIMEOUT, signature)
            time.sleep(self.poll_interval)

    def get_token_decimals(self, mint: str) -> int:
        if mint in self._decimals_cache:
            return self._decimals_cache[mint]
        result = self.call("getTokenSupply", [mint])
        decimals = int(((result or {}).get("value") or {})["decimals"])
        self._decimals_cache[mint] = decimals
        return decimals

    def get_token_balance_change(self, signature: str, owner: str, mint: str) -> Optional[float]:
        """
        Net change in `owner`'s balance of `mint` caused by a confirmed transaction.

        Returns None when the transaction or its token balances are not
        available (e.g. native SOL legs that are unwrapped in the same tx).
        """
        try:
            tx = self.call(
                "getTransaction",
                [signature, {"encoding": "jsonParsed", "commitment": self.commitment,
                             "maxSupportedTransactionVersion": 0}],
            )
        except (RpcError, requests.exceptions.RequestException) as e:
            logger.warning(f"Could not fetch transaction {signature}: {e}")
            return None

        meta = (tx or {}).get("meta") or {}
        if not meta:
            return None

        def total(entries: List[Dict[str, Any]]) -> Optional[float]:
            amounts = [
                float((entry.get("uiTokenAmount") or {}).get("uiAmountString") or 0.0)
                for entry in entries
                if entry.get("mint") == mint and entry.get("owner") == owner
            ]
            return sum(amounts) if amounts else None

        pre = total(meta.get("preTokenBalances") or [])
        post = total(meta.get("postTokenBalances") or [])
        if post is None:
            return None
        return post - (pre or 0.0)
