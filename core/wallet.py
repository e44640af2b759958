"""
Wallet signer

Holds the trading keypair in memory and signs router-built transactions.
How the secret reaches the process (env, secret manager) is the runner's job.
"""

import base64
import logging
import os
from typing import Optional

from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

logger = logging.getLogger(__name__)


class WalletSigner:
    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "WalletSigner":
        if not secret or len(secret) < 32:
            raise ValueError("Invalid wallet private key format")
        return cls(Keypair.from_base58_string(secret.strip()))

    @classmethod
    def from_env(cls, env_var: str = "WALLET_PRIVATE_KEY") -> Optional["WalletSigner"]:
        secret = os.getenv(env_var, "")
        if not secret:
            logger.warning(f"{env_var} not set; swaps cannot be signed")
            return None
        return cls.from_base58(secret)

    @property
    def public_key(self) -> str:
        return str(self._keypair.pubkey())

    def sign_transaction(self, unsigned_tx_b64: str) -> str:
        """Sign a base64 versioned transaction and return it base64-encoded."""
        raw = VersionedTransaction.from_bytes(base64.b64decode(unsigned_tx_b64))
        signed = VersionedTransaction(raw.message, [self._keypair])
        return base64.b64encode(bytes(signed)).decode("ascii")
