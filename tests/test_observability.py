"""
Tests for the metrics recorder, the cycle audit trail and user-facing
error messages.
"""

import json

import pytest
from prometheus_client import REGISTRY

from core.audit_log import AuditLogger
from core.exceptions import (
    CriticalDataUnavailable,
    MissingSettings,
    MissingWalletConfig,
    WalletMismatch,
    safe_error_message,
)
from core.position_monitor import MonitorResult
from core.trading_cycle import CycleError, CyclePhase, CycleReport
from infra.metrics import CycleStats, MetricsRecorder


class TestMetricsRecorder:
    def test_singleton(self):
        assert MetricsRecorder(enabled=False) is MetricsRecorder(enabled=True)

    def test_enabled_recorder_exports_counters(self):
        metrics = MetricsRecorder(enabled=True)
        metrics.record_swap("sell", "success")
        metrics.record_exit("take_profit")
        metrics.record_item_error("POSITION_ERROR")
        metrics.observe_cycle(CycleStats("ok", evaluated=2, closed=1, bought=0, errors=1, duration_seconds=0.4))

        assert REGISTRY.get_sample_value(
            "launch_trader_swaps_total", {"direction": "sell", "outcome": "success"}
        ) == 1.0
        assert REGISTRY.get_sample_value("launch_trader_exits_total", {"reason": "take_profit"}) == 1.0
        assert REGISTRY.get_sample_value("launch_trader_cycle_total", {"status": "ok"}) == 1.0
        assert metrics.last_cycle().closed == 1

    def test_disabled_recorder_keeps_snapshots(self):
        metrics = MetricsRecorder(enabled=False)
        metrics.record_swap("buy", "QuoteUnavailable")
        metrics.record_item_error("BUY_ERROR")
        metrics.record_item_error("BUY_ERROR")
        metrics.record_open_positions(3)

        assert not metrics.is_enabled()
        assert metrics.swap_snapshot() == {"buy:QuoteUnavailable": 1}
        assert metrics.error_snapshot() == {"BUY_ERROR": 2}

    def test_reset_allows_reregistration(self):
        MetricsRecorder(enabled=True)
        MetricsRecorder._reset_for_testing()
        MetricsRecorder(enabled=True).record_open_positions(2)
        assert REGISTRY.get_sample_value("launch_trader_open_positions") == 2.0


class TestAuditLogger:
    def _report(self):
        report = CycleReport(user_id="user-1")
        report.phases.append(MonitorResult(evaluated=1))
        report.errors.append(CycleError("scan", "unexpected", "RuntimeError: boom", "An error occurred"))
        report.final_phase = CyclePhase.SCAN
        return report

    def test_log_cycle_writes_jsonl(self, tmp_path):
        path = tmp_path / "audit" / "cycles.jsonl"
        audit = AuditLogger(str(path))

        audit.log_cycle(self._report())

        entry = json.loads(path.read_text().strip())
        assert entry["status"] == "error"
        assert entry["final_phase"] == "scan"
        assert entry["phases"][0]["phase"] == "monitor"
        assert entry["errors"][0]["detail"] == "RuntimeError: boom"

    def test_recent_cycles_newest_first(self, tmp_path):
        audit = AuditLogger(str(tmp_path / "audit.jsonl"))
        for user in ("a", "b", "c"):
            audit.log_cycle(CycleReport(user_id=user))

        assert [e["user_id"] for e in audit.get_recent_cycles(2)] == ["c", "b"]

    def test_unwritable_audit_never_raises(self, tmp_path):
        audit = AuditLogger(str(tmp_path / "audit.jsonl"))
        audit.audit_file = tmp_path
        audit.log_cycle(CycleReport(user_id="u"))


class TestSafeErrorMessage:
    @pytest.mark.parametrize(
        "error",
        [MissingWalletConfig("user-1"), MissingSettings("user-1"), WalletMismatch("A", "B")],
    )
    def test_preconditions_are_configuration_errors(self, error):
        assert safe_error_message(error) == "Invalid configuration"

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("401 Unauthorized", "Invalid or expired authentication"),
            ("missing auth header", "Authentication required"),
            ("bad config value", "Invalid configuration"),
            ("invalid mint", "Invalid request parameters"),
            ("socket closed at 10.0.0.3", "An error occurred processing your request"),
        ],
    )
    def test_generic_mapping(self, message, expected):
        assert safe_error_message(RuntimeError(message)) == expected

    def test_raw_detail_never_leaks(self):
        error = CriticalDataUnavailable("bot_configs", OSError("password=hunter2"))
        assert "hunter2" not in safe_error_message(error)
