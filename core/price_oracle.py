"""
Price oracle backed by router quotes.

The price of a token is what one whole token would fetch in the quote asset.
"""

import logging

from core.exceptions import PriceUnavailable
from core.jupiter_client import JupiterClient
from core.solana_rpc import SolanaRpcClient

logger = logging.getLogger(__name__)


class JupiterPriceOracle:
    def __init__(self, jupiter: JupiterClient, rpc: SolanaRpcClient):
        self.jupiter = jupiter
        self.rpc = rpc

    def get_price(self, token_mint: str, quote_mint: str) -> float:
        """
        Quote-asset units per token.

        Raises:
            PriceUnavailable: decimals or quote could not be fetched, or no route
        """
        try:
            token_decimals = self.rpc.get_token_decimals(token_mint)
            quote_decimals = self.rpc.get_token_decimals(quote_mint)
            quote = self.jupiter.get_quote(token_mint, quote_mint, 10 ** token_decimals)
        except Exception as e:
            logger.warning(f"Price lookup failed for {token_mint}: {e}")
            raise PriceUnavailable(token_mint, e) from e

        price = quote.out_amount / 10 ** quote_decimals
        if price <= 0:
            raise PriceUnavailable(token_mint)
        return price
