"""
launch-trader Infrastructure: JSON HTTP Client

Base for the Jupiter, Solana RPC and Birdeye clients. Every call has an
explicit timeout and a bounded retry for transient failures only.
"""

import random
import time
from typing import Any, Dict, Optional
import logging

import requests

logger = logging.getLogger(__name__)


class JsonHttpClient:
    """
    Thin requests wrapper with the retry policy shared by all upstreams.

    Retries on:
    - 429 (rate limit)
    - 5xx (server errors)
    - Network errors (timeout, connection)

    Does NOT retry on:
    - 4xx (except 429) - business rejections surface immediately
    """

    name = "http"

    def __init__(self, base_url: str, timeout: float = 10.0, max_retries: int = 2,
                 backoff_base: float = 0.5, headers: Optional[Dict[str, str]] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self.backoff_base = float(backoff_base)
        self.headers = {"Content-Type": "application/json", **(headers or {})}

    def _req(self, method: str, path: str = "", params: Optional[Dict[str, Any]] = None,
             body: Optional[Any] = None, max_retries: Optional[int] = None) -> Any:
        url = self.base_url + path if path else self.base_url
        attempts = self.max_retries if max_retries is None else max(1, int(max_retries))
        last_exception: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = requests.request(
                    method,
                    url,
                    headers=self.headers,
                    params=params,
                    json=body,
                    timeout=self.timeout,
                )
                response.raise_for_status()
                return response.json()

            except requests.exceptions.HTTPError as e:
                status_code = e.response.status_code if e.response is not None else 0

                # Don't retry on client errors (except 429)
                if 400 <= status_code < 500 and status_code != 429:
                    body_text = e.response.text if e.response is not None else ""
                    logger.warning(f"{self.name} client error {status_code} on {path or '/'}: {body_text[:200]}")
                    raise

                if status_code == 429:
                    logger.warning(f"{self.name} rate limited (429) on {path or '/'}, attempt {attempt + 1}/{attempts}")
                else:
                    logger.warning(f"{self.name} server error ({status_code}) on {path or '/'}, attempt {attempt + 1}/{attempts}")
                last_exception = e

            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"{self.name} network error on {path or '/'}: {e}, attempt {attempt + 1}/{attempts}")
                last_exception = e

            if attempt < attempts - 1:
                backoff = self.backoff_base * (2 ** attempt) + random.uniform(0, self.backoff_base)
                logger.info(f"Retrying {self.name} in {backoff:.1f}s...")
                time.sleep(backoff)

        logger.error(f"All {attempts} attempts exhausted for {self.name} {path or '/'}")
        if last_exception:
            raise last_exception
        raise requests.exceptions.RequestException(f"Request to {url} failed after {attempts} attempts")
