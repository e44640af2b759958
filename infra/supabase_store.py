"""
launch-trader Infrastructure: Supabase Store

Store backend over the hosted Postgres tables used by the dashboard
(active_positions, bot_settings, bot_configs, token_launches, token_safety,
trade_history). Uses the service-role client; row-level auth is the
dashboard's concern.
"""

import os
import uuid
from typing import Any, Dict, List, Optional
import logging

from supabase import Client, create_client

from core.exceptions import CriticalDataUnavailable
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
from core.store import Store

logger = logging.getLogger(__name__)

POSITIONS = "active_positions"
SETTINGS = "bot_settings"
CONFIGS = "bot_configs"
LAUNCHES = "token_launches"
SAFETY = "token_safety"
HISTORY = "trade_history"


class SupabaseStore(Store):
    """Store backed by supabase-py table queries."""

    def __init__(self, client: Client):
        self.client = client
        logger.info("Initialized SupabaseStore")

    @classmethod
    def from_env(cls, url_env: str = "SUPABASE_URL", key_env: str = "SUPABASE_KEY") -> "SupabaseStore":
        url = os.getenv(url_env, "")
        key = os.getenv(key_env, "")
        if not url or not key:
            raise ValueError(f"{url_env} and {key_env} must be set for the supabase store")
        return cls(create_client(url, key))

    def describe(self) -> str:
        return "supabase"

    def _rows(self, response: Any) -> List[Dict[str, Any]]:
        data = getattr(response, "data", None)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    def _first(self, table: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.table(table).select("*").eq(column, value).limit(1).execute()
        except Exception as e:
            raise CriticalDataUnavailable(table, e) from e
        rows = self._rows(response)
        return rows[0] if rows else None

    # --- positions ---

    def list_positions(self, user_id: str) -> List[Position]:
        try:
            response = (
                self.client.table(POSITIONS)
                .select("*")
                .eq("user_id", user_id)
                .order("opened_at")
                .execute()
            )
        except Exception as e:
            raise CriticalDataUnavailable(POSITIONS, e) from e
        return [Position.from_row(row) for row in self._rows(response)]

    def upsert_position(self, position: Position) -> None:
        self.client.table(POSITIONS).upsert(position.to_row()).execute()

    def delete_position(self, position_id: str) -> None:
        self.client.table(POSITIONS).delete().eq("id", position_id).execute()

    # --- token launches ---

    def list_candidates(
        self,
        status: CandidateStatus,
        limit: int,
        newest_first: bool = True,
    ) -> List[TokenLaunchCandidate]:
        try:
            response = (
                self.client.table(LAUNCHES)
                .select("*")
                .eq("status", status.value)
                .order("detected_at", desc=newest_first)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            raise CriticalDataUnavailable(LAUNCHES, e) from e
        return [TokenLaunchCandidate.from_row(row) for row in self._rows(response)]

    def update_candidate_status(self, token_address: str, status: CandidateStatus) -> None:
        self.client.table(LAUNCHES).update({"status": status.value}).eq("token_address", token_address).execute()

    def add_candidate(self, candidate: TokenLaunchCandidate) -> None:
        self.client.table(LAUNCHES).insert(candidate.to_row()).execute()

    # --- safety ---

    def get_safety_record(self, token_address: str) -> Optional[SafetyRecord]:
        try:
            response = (
                self.client.table(SAFETY)
                .select("*")
                .eq("token_address", token_address)
                .order("analyzed_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise CriticalDataUnavailable(SAFETY, e) from e
        rows = self._rows(response)
        return SafetyRecord.from_row(rows[0]) if rows else None

    def save_safety_record(self, record: SafetyRecord) -> None:
        self.client.table(SAFETY).insert(record.to_row()).execute()

    # --- trade history ---

    def append_trade_record(self, record: TradeRecord) -> str:
        row = record.to_row()
        row.setdefault("id", str(uuid.uuid4()))
        self.client.table(HISTORY).insert(row).execute()
        return row["id"]

    def finalize_trade_record(
        self,
        record_id: str,
        status: TradeStatus,
        signature: Optional[str] = None,
        exit_price: Optional[float] = None,
        profit_loss_percent: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> None:
        update: Dict[str, Any] = {"status": status.value}
        if signature is not None:
            update["signature"] = signature
        if exit_price is not None:
            update["exit_price"] = exit_price
        if profit_loss_percent is not None:
            update["profit_loss_percentage"] = profit_loss_percent
        if error_message is not None:
            update["error_message"] = error_message
        self.client.table(HISTORY).update(update).eq("id", record_id).execute()

    def list_trade_records(self, user_id: str, limit: int = 50) -> List[TradeRecord]:
        response = (
            self.client.table(HISTORY)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [TradeRecord.from_row(row) for row in self._rows(response)]

    # --- user configuration ---

    def get_settings(self, user_id: str) -> Optional[BotSettings]:
        row = self._first(SETTINGS, "user_id", user_id)
        return BotSettings.from_row(row) if row is not None else None

    def save_settings(self, user_id: str, settings: BotSettings) -> None:
        row = {"user_id": user_id, **settings.to_row()}
        self.client.table(SETTINGS).upsert(row, on_conflict="user_id").execute()

    def get_wallet_config(self, user_id: str) -> Optional[WalletConfig]:
        row = self._first(CONFIGS, "user_id", user_id)
        return WalletConfig.from_row(row) if row is not None else None

    def save_wallet_config(self, config: WalletConfig) -> None:
        self.client.table(CONFIGS).upsert(config.to_row(), on_conflict="user_id").execute()

    def set_bot_active(self, user_id: str, active: bool) -> None:
        self.client.table(CONFIGS).update({"is_active": bool(active)}).eq("user_id", user_id).execute()
