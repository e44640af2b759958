"""
launch-trader Core: Jupiter Swap Router Client

Quotes and swap-transaction building against the Jupiter aggregator API.
Only the fields the trading core consumes are modelled.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from core.exceptions import ExecutionRejected, QuoteUnavailable
from infra.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

JUPITER_BASE = "https://lite-api.jup.ag/swap/v1"


@dataclass
class JupiterQuote:
    """Route quote in raw (smallest-unit) integer amounts"""
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    price_impact_pct: float
    slippage_bps: int
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class JupiterClient(JsonHttpClient):
    """Jupiter quote + swap API."""

    name = "jupiter"

    def __init__(self, base_url: str = JUPITER_BASE, timeout: float = 10.0, max_retries: int = 2,
                 default_slippage_bps: int = 50, api_key: str = ""):
        headers = {"x-api-key": api_key} if api_key else None
        super().__init__(base_url, timeout=timeout, max_retries=max_retries, headers=headers)
        self.default_slippage_bps = int(default_slippage_bps)
        logger.info(f"Initialized JupiterClient ({self.base_url}, slippage={self.default_slippage_bps}bps)")

    def get_quote(self, input_mint: str, output_mint: str, amount: int,
                  slippage_bps: Optional[int] = None) -> JupiterQuote:
        """
        Quote swapping `amount` raw units of input_mint into output_mint.

        Raises:
            QuoteUnavailable: no route, zero output, or the quote API is unreachable
        """
        if amount <= 0:
            raise QuoteUnavailable(f"Cannot quote non-positive amount {amount}")

        slippage = self.default_slippage_bps if slippage_bps is None else int(slippage_bps)
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": slippage,
        }
        try:
            data = self._req("GET", "/quote", params=params)
        except requests.exceptions.RequestException as e:
            raise QuoteUnavailable(f"No quote for {input_mint} -> {output_mint}: {e}") from e

        out_amount = int(data.get("outAmount") or 0)
        in_amount = int(data.get("inAmount") or 0)
        if out_amount <= 0 or in_amount <= 0:
            raise QuoteUnavailable(f"No route for {input_mint} -> {output_mint}")

        return JupiterQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=in_amount,
            out_amount=out_amount,
            price_impact_pct=float(data.get("priceImpactPct") or 0.0),
            slippage_bps=slippage,
            raw=data,
        )

    def build_swap_transaction(self, quote: JupiterQuote, user_public_key: str) -> str:
        """
        Ask the router for an unsigned swap transaction for `quote`.

        Returns:
            Base64-encoded versioned transaction
        """
        body = {
            "quoteResponse": quote.raw,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
        }
        try:
            data = self._req("POST", "/swap", body=body)
        except requests.exceptions.RequestException as e:
            raise ExecutionRejected(f"Failed to create swap transaction: {e}") from e

        swap_tx = data.get("swapTransaction")
        if not swap_tx:
            raise ExecutionRejected("Router returned no swap transaction")
        return swap_tx
