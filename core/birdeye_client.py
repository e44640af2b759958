"""
launch-trader Core: Birdeye Client

Token overview and security lookups used by the token safety analyzer.
"""

import logging
from typing import Any, Dict, Optional

import requests

from infra.http_client import JsonHttpClient

logger = logging.getLogger(__name__)

BIRDEYE_BASE = "https://public-api.birdeye.so"


class BirdeyeClient(JsonHttpClient):
    name = "birdeye"

    def __init__(self, api_key: str, base_url: str = BIRDEYE_BASE, timeout: float = 10.0, max_retries: int = 2):
        if not api_key:
            raise ValueError("Birdeye API key not configured")
        super().__init__(
            base_url,
            timeout=timeout,
            max_retries=max_retries,
            headers={"X-API-KEY": api_key, "x-chain": "solana"},
        )

    def token_overview(self, token_address: str) -> Dict[str, Any]:
        """Raises on failure: without an overview there is nothing to score."""
        data = self._req("GET", "/defi/token_overview", params={"address": token_address})
        return (data or {}).get("data") or {}

    def token_security(self, token_address: str) -> Optional[Dict[str, Any]]:
        """Security data is optional; None when Birdeye cannot provide it."""
        try:
            data = self._req("GET", "/defi/token_security", params={"address": token_address})
        except requests.exceptions.RequestException as e:
            logger.warning(f"Birdeye security lookup failed for {token_address}: {e}")
            return None
        return (data or {}).get("data")
