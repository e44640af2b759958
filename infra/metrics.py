"""Prometheus-backed metrics hooks for the trading cycle and swap execution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from prometheus_client import REGISTRY, Counter, Gauge, Summary, start_http_server

logger = logging.getLogger(__name__)

METRIC_PREFIX = "launch_trader_"


@dataclass
class CycleStats:
    status: str
    evaluated: int
    closed: int
    bought: int
    errors: int
    duration_seconds: float


class MetricsRecorder:
    """
    Expose cycle stats via Prometheus.

    Singleton pattern to prevent duplicate metric registration errors.
    When disabled every hook still updates the in-memory snapshot so the
    runner can log it.
    """
    _instance: Optional['MetricsRecorder'] = None
    _initialized: bool = False

    def __new__(cls, enabled: bool = True, port: int = 9100):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, enabled: bool = True, port: int = 9100) -> None:
        if self.__class__._initialized:
            return

        self._enabled = bool(enabled)
        self._port = port
        self._started = False
        self.__class__._initialized = True

        self._last_cycle_stats: Optional[CycleStats] = None
        self._swap_counts: Dict[str, int] = {}
        self._error_counts: Dict[str, int] = {}

        if not self._enabled:
            self._cycle_summary = None
            self._cycle_counter = None
            self._positions_gauge = None
            self._swaps_counter = None
            self._exits_counter = None
            self._item_errors_counter = None
            return

        self._cycle_summary = Summary(
            f"{METRIC_PREFIX}cycle_duration_seconds",
            "Duration of a full trading cycle",
        )
        self._cycle_counter = Counter(
            f"{METRIC_PREFIX}cycle_total",
            "Total trading cycles by status",
            labelnames=("status",),
        )
        self._positions_gauge = Gauge(
            f"{METRIC_PREFIX}open_positions",
            "Number of currently open positions",
        )
        self._swaps_counter = Counter(
            f"{METRIC_PREFIX}swaps_total",
            "Swaps by direction and outcome",
            labelnames=("direction", "outcome"),
        )
        self._exits_counter = Counter(
            f"{METRIC_PREFIX}exits_total",
            "Position exits by trigger",
            labelnames=("reason",),
        )
        self._item_errors_counter = Counter(
            f"{METRIC_PREFIX}item_errors_total",
            "Per-item and cycle-level errors by trade-history action",
            labelnames=("action",),
        )

    @classmethod
    def _reset_for_testing(cls) -> None:
        """
        Reset singleton state for testing.
        WARNING: Only call from test fixtures/teardown.
        """
        if cls._instance is not None:
            for collector in list(REGISTRY._collector_to_names):
                names = REGISTRY._collector_to_names.get(collector, set())
                if any(name.startswith(METRIC_PREFIX) for name in names):
                    try:
                        REGISTRY.unregister(collector)
                    except KeyError:
                        pass

        cls._instance = None
        cls._initialized = False

    def start(self) -> None:
        if not self._enabled or self._started:
            return
        try:
            start_http_server(self._port)
        except OSError as exc:
            self._enabled = False
            logger.error("Failed to start metrics exporter on port %s: %s", self._port, exc)
            return
        self._started = True
        logger.info("Prometheus metrics exporter listening on 0.0.0.0:%s", self._port)

    def is_enabled(self) -> bool:
        return self._enabled

    def observe_cycle(self, stats: CycleStats) -> None:
        if self._enabled:
            self._cycle_summary.observe(stats.duration_seconds)
            self._cycle_counter.labels(status=stats.status).inc()
        self._last_cycle_stats = stats

    def record_open_positions(self, count: int) -> None:
        if self._enabled and self._positions_gauge:
            self._positions_gauge.set(max(count, 0))

    def record_swap(self, direction: str, outcome: str) -> None:
        key = f"{direction}:{outcome}"
        self._swap_counts[key] = self._swap_counts.get(key, 0) + 1
        if self._enabled and self._swaps_counter:
            self._swaps_counter.labels(direction=direction, outcome=outcome).inc()

    def record_exit(self, reason: str) -> None:
        if self._enabled and self._exits_counter:
            self._exits_counter.labels(reason=reason).inc()

    def record_item_error(self, action: str) -> None:
        self._error_counts[action] = self._error_counts.get(action, 0) + 1
        if self._enabled and self._item_errors_counter:
            self._item_errors_counter.labels(action=action).inc()

    def last_cycle(self) -> Optional[CycleStats]:
        return self._last_cycle_stats

    def swap_snapshot(self) -> Dict[str, int]:
        return dict(self._swap_counts)

    def error_snapshot(self) -> Dict[str, int]:
        return dict(self._error_counts)
