"""
launch-trader Infrastructure: State Store

JSON-file implementation of the Store interface with atomic writes.
Suitable for a single-user deployment; the Supabase backend covers the hosted
setup.
"""

import copy
import json
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

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


DEFAULT_STATE = {
    "active_positions": {},  # position id -> row
    "token_launches": {},  # token address -> row
    "token_safety": {},  # token address -> latest analysis row
    "trade_history": [],  # append-only rows
    "bot_settings": {},  # user id -> row
    "bot_configs": {},  # user id -> row
}


class StateStore(Store):
    """
    Persistent state storage using JSON file.

    Features:
    - Atomic writes (temp file + rename)
    - Thread-safe read-modify-write per operation
    - Typed rows in, typed rows out
    """

    def __init__(self, state_file: Optional[str] = None):
        """
        Initialize state store.

        Args:
            state_file: Path to state JSON file (default: data/.state.json)
        """
        if state_file:
            self.state_file = Path(state_file)
        else:
            state_file = os.getenv("STATE_FILE", "data/.state.json")
            self.state_file = Path(state_file)

        # Ensure directory exists
        self.state_file.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.RLock()
        logger.info(f"Initialized StateStore at {self.state_file}")

    def describe(self) -> str:
        return f"json:{self.state_file}"

    def load(self) -> Dict[str, Any]:
        """
        Load state from file.

        Returns:
            State dict with defaults merged
        """
        if not self.state_file.exists():
            logger.debug("No state file found, using defaults")
            return copy.deepcopy(DEFAULT_STATE)

        with open(self.state_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            logger.warning("Invalid state file format, using defaults")
            return copy.deepcopy(DEFAULT_STATE)

        state = copy.deepcopy(DEFAULT_STATE)
        state.update(data)
        return state

    def save(self, state: Dict[str, Any]) -> None:
        """
        Save state to file atomically.

        Args:
            state: State dict to save
        """
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.state_file.parent,
            prefix=".state_",
            suffix=".json.tmp",
        )
        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            # Atomic rename
            os.replace(temp_path, self.state_file)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.debug("Saved state to file")

    def reset(self) -> None:
        with self._lock:
            logger.warning("Full state reset")
            self.save(copy.deepcopy(DEFAULT_STATE))

    # --- positions ---

    def list_positions(self, user_id: str) -> List[Position]:
        with self._lock:
            rows = self.load()["active_positions"].values()
        positions = [Position.from_row(row) for row in rows if str(row.get("user_id")) == str(user_id)]
        positions.sort(key=lambda p: p.opened_at.isoformat() if p.opened_at else "")
        return positions

    def upsert_position(self, position: Position) -> None:
        with self._lock:
            state = self.load()
            state["active_positions"][position.id] = position.to_row()
            self.save(state)

    def delete_position(self, position_id: str) -> None:
        with self._lock:
            state = self.load()
            if state["active_positions"].pop(position_id, None) is None:
                logger.debug(f"delete_position: {position_id} already gone")
            self.save(state)

    # --- token launches ---

    def list_candidates(
        self,
        status: CandidateStatus,
        limit: int,
        newest_first: bool = True,
    ) -> List[TokenLaunchCandidate]:
        with self._lock:
            rows = list(self.load()["token_launches"].values())
        matching = [row for row in rows if row.get("status") == status.value]
        matching.sort(key=lambda row: row.get("detected_at") or "", reverse=newest_first)
        return [TokenLaunchCandidate.from_row(row) for row in matching[: max(0, limit)]]

    def update_candidate_status(self, token_address: str, status: CandidateStatus) -> None:
        with self._lock:
            state = self.load()
            row = state["token_launches"].get(token_address)
            if row is None:
                logger.warning(f"update_candidate_status: unknown token {token_address}")
                return
            row["status"] = status.value
            self.save(state)

    def add_candidate(self, candidate: TokenLaunchCandidate) -> None:
        with self._lock:
            state = self.load()
            state["token_launches"][candidate.token_address] = candidate.to_row()
            self.save(state)

    # --- safety ---

    def get_safety_record(self, token_address: str) -> Optional[SafetyRecord]:
        with self._lock:
            row = self.load()["token_safety"].get(token_address)
        return SafetyRecord.from_row(row) if row else None

    def save_safety_record(self, record: SafetyRecord) -> None:
        with self._lock:
            state = self.load()
            state["token_safety"][record.token_address] = record.to_row()
            self.save(state)

    # --- trade history ---

    def append_trade_record(self, record: TradeRecord) -> str:
        record_id = record.id or str(uuid.uuid4())
        row = record.to_row()
        row["id"] = record_id
        with self._lock:
            state = self.load()
            state["trade_history"].append(row)
            self.save(state)
        return record_id

    def finalize_trade_record(
        self,
        record_id: str,
        status: TradeStatus,
        signature: Optional[str] = None,
        exit_price: Optional[float] = None,
        profit_loss_percent: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with self._lock:
            state = self.load()
            for row in state["trade_history"]:
                if row.get("id") == record_id:
                    row["status"] = status.value
                    if signature is not None:
                        row["signature"] = signature
                    if exit_price is not None:
                        row["exit_price"] = exit_price
                    if profit_loss_percent is not None:
                        row["profit_loss_percentage"] = profit_loss_percent
                    if error_message is not None:
                        row["error_message"] = error_message
                    break
            else:
                logger.warning(f"finalize_trade_record: unknown record {record_id}")
                return
            self.save(state)

    def list_trade_records(self, user_id: str, limit: int = 50) -> List[TradeRecord]:
        with self._lock:
            rows = [row for row in self.load()["trade_history"] if str(row.get("user_id")) == str(user_id)]
        # Stable sort keeps insertion order for identical timestamps
        indexed = sorted(enumerate(rows), key=lambda pair: (pair[1].get("created_at") or "", pair[0]), reverse=True)
        return [TradeRecord.from_row(row) for _, row in indexed[: max(0, limit)]]

    # --- user configuration ---

    def get_settings(self, user_id: str) -> Optional[BotSettings]:
        with self._lock:
            row = self.load()["bot_settings"].get(str(user_id))
        return BotSettings.from_row(row) if row is not None else None

    def save_settings(self, user_id: str, settings: BotSettings) -> None:
        with self._lock:
            state = self.load()
            state["bot_settings"][str(user_id)] = {"user_id": str(user_id), **settings.to_row()}
            self.save(state)

    def get_wallet_config(self, user_id: str) -> Optional[WalletConfig]:
        with self._lock:
            row = self.load()["bot_configs"].get(str(user_id))
        return WalletConfig.from_row(row) if row is not None else None

    def save_wallet_config(self, config: WalletConfig) -> None:
        with self._lock:
            state = self.load()
            state["bot_configs"][str(config.user_id)] = config.to_row()
            self.save(state)

    def set_bot_active(self, user_id: str, active: bool) -> None:
        with self._lock:
            state = self.load()
            row = state["bot_configs"].get(str(user_id))
            if row is None:
                logger.warning(f"set_bot_active: no wallet config for {user_id}")
                return
            row["is_active"] = bool(active)
            self.save(state)


def create_state_store_from_config(state_cfg: Optional[Dict[str, Any]]) -> Store:
    """
    Build the configured Store backend.

    Args:
        state_cfg: `state` section of app.yaml ({"store": "json"|"supabase", "path": ...})
    """
    cfg = state_cfg or {}
    backend = str(cfg.get("store", "json")).lower()

    if backend == "json":
        return StateStore(state_file=cfg.get("path"))

    if backend == "supabase":
        from infra.supabase_store import SupabaseStore

        return SupabaseStore.from_env(
            url_env=cfg.get("supabase_url_env", "SUPABASE_URL"),
            key_env=cfg.get("supabase_key_env", "SUPABASE_KEY"),
        )

    raise ValueError(f"Unknown state store backend: {backend}")
