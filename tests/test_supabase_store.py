"""
Tests for SupabaseStore query construction and row mapping.

The supabase client is replaced by a chainable MagicMock; every builder
method returns the same query object so calls can be inspected.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from core.exceptions import CriticalDataUnavailable
from core.models import CandidateStatus, TradeAction, TradeRecord, TradeStatus
from infra.supabase_store import SupabaseStore
from tests.helpers import USER_ID, WALLET, make_position

BUILDERS = ("select", "eq", "order", "limit", "insert", "update", "upsert", "delete")


def make_client(rows=None):
    query = MagicMock()
    for name in BUILDERS:
        getattr(query, name).return_value = query
    query.execute.return_value = SimpleNamespace(data=rows if rows is not None else [])
    client = MagicMock()
    client.table.return_value = query
    return client, query


def test_list_positions_maps_rows():
    row = make_position("TokenA").to_row()
    client, query = make_client([row])

    positions = SupabaseStore(client).list_positions(USER_ID)

    client.table.assert_called_with("active_positions")
    query.eq.assert_called_with("user_id", USER_ID)
    assert positions[0].token_address == "TokenA"


def test_list_candidates_newest_first_with_limit():
    client, query = make_client([{"token_address": "Mint1", "status": "detected", "initial_liquidity": 9000}])

    candidates = SupabaseStore(client).list_candidates(CandidateStatus.DETECTED, 5)

    query.eq.assert_called_with("status", "detected")
    query.order.assert_called_with("detected_at", desc=True)
    query.limit.assert_called_with(5)
    assert candidates[0].initial_liquidity_usd == 9000.0


def test_read_failure_is_critical_data_unavailable():
    client, query = make_client()
    query.execute.side_effect = RuntimeError("connection reset")

    with pytest.raises(CriticalDataUnavailable) as exc_info:
        SupabaseStore(client).get_settings(USER_ID)
    assert exc_info.value.source == "bot_settings"


def test_missing_rows_return_none():
    client, _ = make_client([])
    store = SupabaseStore(client)
    assert store.get_wallet_config(USER_ID) is None
    assert store.get_safety_record("Mint1") is None


def test_wallet_config_single_row_dict():
    client, _ = make_client({"user_id": USER_ID, "wallet_public_key": WALLET, "is_active": True})
    config = SupabaseStore(client).get_wallet_config(USER_ID)
    assert config.wallet_public_key == WALLET
    assert config.is_active


def test_append_trade_record_assigns_id():
    client, query = make_client()
    record = TradeRecord(user_id=USER_ID, token_address="Mint1", action=TradeAction.BUY, status=TradeStatus.SUCCESS)

    record_id = SupabaseStore(client).append_trade_record(record)

    inserted = query.insert.call_args.args[0]
    assert inserted["id"] == record_id
    assert inserted["action"] == "BUY"


def test_finalize_only_sends_given_fields():
    client, query = make_client()

    SupabaseStore(client).finalize_trade_record("rec-1", TradeStatus.SUCCESS, signature="sig", exit_price=1.5)

    query.update.assert_called_once_with({"status": "success", "signature": "sig", "exit_price": 1.5})
    query.eq.assert_called_with("id", "rec-1")


def test_set_bot_active():
    client, query = make_client()
    SupabaseStore(client).set_bot_active(USER_ID, False)
    client.table.assert_called_with("bot_configs")
    query.update.assert_called_once_with({"is_active": False})


def test_from_env_requires_credentials(monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    with pytest.raises(ValueError):
        SupabaseStore.from_env()
