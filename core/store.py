"""
Store Interface

Abstract persistence contract consumed by the trading core. Backends live in
infra/ (JSON file, Supabase). Each write is atomic at single-row granularity;
the core never needs multi-row transactions.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from core.models import (
    BotSettings,
    CandidateStatus,
    Position,
    SafetyRecord,
    TokenLaunchCandidate,
    TradeRecord,
    TradeStatus,
    WalletConfig,
)


class Store(ABC):
    """Typed row store for positions, candidates, safety data and trade history."""

    # --- positions ---

    @abstractmethod
    def list_positions(self, user_id: str) -> List[Position]:
        ...

    @abstractmethod
    def upsert_position(self, position: Position) -> None:
        ...

    @abstractmethod
    def delete_position(self, position_id: str) -> None:
        ...

    # --- token launches ---

    @abstractmethod
    def list_candidates(
        self,
        status: CandidateStatus,
        limit: int,
        newest_first: bool = True,
    ) -> List[TokenLaunchCandidate]:
        ...

    @abstractmethod
    def update_candidate_status(self, token_address: str, status: CandidateStatus) -> None:
        ...

    @abstractmethod
    def add_candidate(self, candidate: TokenLaunchCandidate) -> None:
        ...

    # --- safety ---

    @abstractmethod
    def get_safety_record(self, token_address: str) -> Optional[SafetyRecord]:
        """Most recent analysis for the token, or None."""

    @abstractmethod
    def save_safety_record(self, record: SafetyRecord) -> None:
        ...

    # --- trade history ---

    @abstractmethod
    def append_trade_record(self, record: TradeRecord) -> str:
        """Insert and return the new record id."""

    @abstractmethod
    def finalize_trade_record(
        self,
        record_id: str,
        status: TradeStatus,
        signature: Optional[str] = None,
        exit_price: Optional[float] = None,
        profit_loss_percent: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Attach the terminal outcome of a SELL. The only allowed mutation."""

    @abstractmethod
    def list_trade_records(self, user_id: str, limit: int = 50) -> List[TradeRecord]:
        ...

    # --- user configuration ---

    @abstractmethod
    def get_settings(self, user_id: str) -> Optional[BotSettings]:
        ...

    @abstractmethod
    def save_settings(self, user_id: str, settings: BotSettings) -> None:
        ...

    @abstractmethod
    def get_wallet_config(self, user_id: str) -> Optional[WalletConfig]:
        ...

    @abstractmethod
    def save_wallet_config(self, config: WalletConfig) -> None:
        ...

    @abstractmethod
    def set_bot_active(self, user_id: str, active: bool) -> None:
        ...
