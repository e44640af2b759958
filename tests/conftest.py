"""
Pytest configuration and fixtures for launch-trader tests.

This conftest.py provides shared fixtures and hooks for all tests.
"""
import pytest

from core.models import BotSettings, WalletConfig
from infra.state_store import StateStore
from tests.helpers import USER_ID, WALLET


@pytest.fixture(autouse=True)
def reset_singletons():
    """
    Reset singleton instances between tests to ensure test isolation.

    This is applied automatically to all tests (autouse=True).
    """
    from infra.metrics import MetricsRecorder

    MetricsRecorder._reset_for_testing()
    yield
    MetricsRecorder._reset_for_testing()


@pytest.fixture
def user_id():
    return USER_ID


@pytest.fixture
def settings():
    return BotSettings(auto_detect_enabled=True)


@pytest.fixture
def store(tmp_path):
    return StateStore(state_file=str(tmp_path / "state.json"))


@pytest.fixture
def seeded_store(store, settings):
    """Store with a wallet config and settings for USER_ID."""
    store.save_wallet_config(WalletConfig(user_id=USER_ID, wallet_public_key=WALLET, is_active=True))
    store.save_settings(USER_ID, settings)
    return store
