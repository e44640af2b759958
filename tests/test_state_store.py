import json
from unittest.mock import patch

import pytest

from core.models import (
    BotSettings,
    CandidateStatus,
    SafetyStatus,
    TradeAction,
    TradeRecord,
    TradeStatus,
    WalletConfig,
)
from infra.state_store import StateStore, create_state_store_from_config
from tests.helpers import make_candidate, make_position, make_safety


def test_create_state_store_from_config_json(tmp_path):
    store = create_state_store_from_config({"store": "json", "path": str(tmp_path / "state.json")})
    assert isinstance(store, StateStore)
    assert "state.json" in store.describe()


def test_create_state_store_from_config_unknown_backend():
    with pytest.raises(ValueError):
        create_state_store_from_config({"store": "sqlite"})


def test_create_state_store_from_config_supabase_requires_env(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    with pytest.raises(ValueError, match="SUPABASE_URL"):
        create_state_store_from_config({"store": "supabase"})


def test_missing_file_loads_defaults(store):
    state = store.load()
    assert state["active_positions"] == {}
    assert state["trade_history"] == []


def test_save_is_atomic_and_leaves_no_temp_files(store, tmp_path):
    store.upsert_position(make_position("TokenA"))
    on_disk = json.loads((tmp_path / "state.json").read_text())
    assert "pos-TokenA" in on_disk["active_positions"]
    assert not list(tmp_path.glob(".state_*.json.tmp"))


def test_failed_save_keeps_previous_file(store, tmp_path):
    store.upsert_position(make_position("TokenA"))
    before = (tmp_path / "state.json").read_text()

    with patch("infra.state_store.json.dump", side_effect=OSError("disk full")):
        with pytest.raises(OSError):
            store.upsert_position(make_position("TokenB"))

    assert (tmp_path / "state.json").read_text() == before
    assert not list(tmp_path.glob(".state_*.json.tmp"))


def test_positions_are_scoped_per_user(store):
    store.upsert_position(make_position("TokenA", user_id="alice"))
    store.upsert_position(make_position("TokenB", user_id="bob"))
    assert [p.token_address for p in store.list_positions("alice")] == ["TokenA"]


def test_delete_position_is_idempotent(store, user_id):
    store.upsert_position(make_position("TokenA"))
    store.delete_position("pos-TokenA")
    store.delete_position("pos-TokenA")
    assert store.list_positions(user_id) == []


def test_list_candidates_filters_sorts_and_limits(store):
    store.add_candidate(make_candidate("Old", minutes_ago=30))
    store.add_candidate(make_candidate("New", minutes_ago=1))
    store.add_candidate(make_candidate("Mid", minutes_ago=10))
    store.add_candidate(make_candidate("Gone", status=CandidateStatus.EXITED))

    newest = store.list_candidates(CandidateStatus.DETECTED, 2)
    oldest = store.list_candidates(CandidateStatus.DETECTED, 5, newest_first=False)

    assert [c.token_address for c in newest] == ["New", "Mid"]
    assert [c.token_address for c in oldest] == ["Old", "Mid", "New"]


def test_update_candidate_status(store):
    store.add_candidate(make_candidate("TokenA"))
    store.update_candidate_status("TokenA", CandidateStatus.TRADING)
    assert store.list_candidates(CandidateStatus.DETECTED, 5) == []
    assert store.list_candidates(CandidateStatus.TRADING, 5)[0].token_address == "TokenA"


def test_safety_record_latest_wins(store):
    store.save_safety_record(make_safety("TokenA", score=10))
    store.save_safety_record(make_safety("TokenA", score=80, status=SafetyStatus.DANGER))
    record = store.get_safety_record("TokenA")
    assert record.rugpull_risk_score == 80
    assert record.safety_status == SafetyStatus.DANGER
    assert store.get_safety_record("Unknown") is None


def test_trade_history_append_and_finalize(store, user_id):
    record_id = store.append_trade_record(
        TradeRecord(user_id=user_id, token_address="TokenA", action=TradeAction.SELL, status=TradeStatus.PENDING)
    )
    store.finalize_trade_record(
        record_id, TradeStatus.SUCCESS, signature="sig", exit_price=1.5, profit_loss_percent=50.0
    )

    record = store.list_trade_records(user_id)[0]
    assert record.id == record_id
    assert record.status == TradeStatus.SUCCESS
    assert record.exit_price == 1.5
    assert record.profit_loss_percent == 50.0


def test_trade_history_newest_first_with_limit(store, user_id):
    for action in (TradeAction.BOT_STARTED, TradeAction.BUY, TradeAction.SELL):
        store.append_trade_record(
            TradeRecord(user_id=user_id, token_address="SYSTEM", action=action, status=TradeStatus.SUCCESS)
        )
    records = store.list_trade_records(user_id, limit=2)
    assert [r.action for r in records] == [TradeAction.SELL, TradeAction.BUY]


def test_settings_and_wallet_config(store, user_id):
    assert store.get_settings(user_id) is None
    assert store.get_wallet_config(user_id) is None

    store.save_settings(user_id, BotSettings(max_concurrent_positions=7))
    store.save_wallet_config(WalletConfig(user_id=user_id, wallet_public_key="Key"))
    store.set_bot_active(user_id, True)

    assert store.get_settings(user_id).max_concurrent_positions == 7
    assert store.get_wallet_config(user_id).is_active is True


def test_set_bot_active_without_config_is_noop(store, user_id):
    store.set_bot_active(user_id, True)
    assert store.get_wallet_config(user_id) is None
