"""
Trading Cycle Coordinator

One cycle for one user:

1. Acquire the user's cycle lease (a concurrent cycle is reported, not run)
2. Check preconditions: wallet config, settings, signer matches wallet
3. MONITOR: re-mark open positions, close those past a threshold
4. SCAN: re-read positions, maybe enter one new launch
5. DONE

A failure inside MONITOR is recorded and SCAN still runs; a failure inside
SCAN ends the cycle. Nothing raises past run_cycle: the caller gets a
CycleReport either way.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from core.audit_log import AuditLogger
from core.exceptions import (
    CriticalDataUnavailable,
    CycleInProgress,
    MissingSettings,
    MissingWalletConfig,
    PreconditionError,
    WalletMismatch,
    safe_error_message,
)
from core.models import BotSettings, TradeAction, WalletConfig, utc_now
from core.opportunity_scanner import OpportunityScanner, ScanResult
from core.position_monitor import MonitorResult, PositionMonitor
from core.position_store import PositionStore
from core.store import Store
from infra.instance_lock import CycleLease
from infra.metrics import CycleStats

logger = logging.getLogger(__name__)


class CyclePhase(str, Enum):
    PRECONDITIONS = "preconditions"
    MONITOR = "monitor"
    SCAN = "scan"
    DONE = "done"


@dataclass
class CycleError:
    phase: str
    kind: str
    detail: str
    user_message: str


@dataclass
class CycleReport:
    """What a cycle did. `phases` holds the MonitorResult and ScanResult that ran."""
    user_id: str
    kind: str = "cycle"
    started_at: datetime = field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    final_phase: CyclePhase = CyclePhase.PRECONDITIONS
    phases: List[Any] = field(default_factory=list)
    errors: List[CycleError] = field(default_factory=list)
    skipped: bool = False

    @property
    def monitor(self) -> Optional[MonitorResult]:
        return next((p for p in self.phases if isinstance(p, MonitorResult)), None)

    @property
    def scan(self) -> Optional[ScanResult]:
        return next((p for p in self.phases if isinstance(p, ScanResult)), None)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or utc_now()
        return (end - self.started_at).total_seconds()

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        if not self.phases and self.errors:
            return "aborted"
        if self.errors:
            return "error"
        return "ok"

    def summary(self) -> dict:
        return {
            "user_id": self.user_id,
            "kind": self.kind,
            "status": self.status,
            "final_phase": self.final_phase.value,
            "phases": [p.summary() for p in self.phases],
            "errors": [e.user_message for e in self.errors],
        }


def error_kind(error: BaseException) -> str:
    if isinstance(error, CycleInProgress):
        return "cycle_in_progress"
    if isinstance(error, MissingWalletConfig):
        return "missing_wallet_config"
    if isinstance(error, MissingSettings):
        return "missing_settings"
    if isinstance(error, WalletMismatch):
        return "wallet_mismatch"
    if isinstance(error, CriticalDataUnavailable):
        return "data_unavailable"
    return "unexpected"


@dataclass
class BotCommandResult:
    success: bool
    action: TradeAction
    message: str


class TradingCycleCoordinator:
    """
    Runs monitor then scanner for a user under a per-user lease.

    Args:
        store: Store backend
        position_store: Bookkeeping accessor over the same store
        monitor: PositionMonitor
        scanner: OpportunityScanner
        signer_public_key: Public key of the loaded signer (None when no key is loaded)
        lease_factory: Builds the per-user lease; defaults to a CycleLease under data/locks
    """

    def __init__(
        self,
        store: Store,
        position_store: PositionStore,
        monitor: PositionMonitor,
        scanner: OpportunityScanner,
        signer_public_key: Optional[str] = None,
        lease_factory: Optional[Callable[[str], CycleLease]] = None,
        audit: Optional[AuditLogger] = None,
        metrics=None,
    ):
        self.store = store
        self.position_store = position_store
        self.monitor = monitor
        self.scanner = scanner
        self.signer_public_key = signer_public_key
        self.lease_factory = lease_factory or (lambda user_id: CycleLease(user_id))
        self.audit = audit
        self.metrics = metrics

    def run_cycle(self, user_id: str) -> CycleReport:
        report = CycleReport(user_id=user_id)
        return self._locked(user_id, report, self._run)

    def refresh_positions(self, user_id: str) -> CycleReport:
        """Re-mark and persist position prices without any close or buy decisions."""
        report = CycleReport(user_id=user_id, kind="refresh")
        return self._locked(user_id, report, self._refresh)

    def start(self, user_id: str) -> BotCommandResult:
        """Mark the bot active after checking the wallet config and signer."""
        try:
            wallet = self._load_wallet(user_id)
        except (PreconditionError, CriticalDataUnavailable) as e:
            logger.warning(f"Cannot start bot for {user_id}: {e}")
            return BotCommandResult(False, TradeAction.BOT_STARTED, safe_error_message(e))

        try:
            self.store.set_bot_active(user_id, True)
            self.position_store.record_bot_event(user_id, TradeAction.BOT_STARTED)
        except Exception as e:
            logger.error(f"Failed to start bot for {user_id}: {e}", exc_info=True)
            return BotCommandResult(False, TradeAction.BOT_STARTED, safe_error_message(e))
        logger.info(f"Bot started for {user_id} (wallet {wallet.wallet_public_key})")
        return BotCommandResult(True, TradeAction.BOT_STARTED, "Trading bot started successfully")

    def stop(self, user_id: str) -> BotCommandResult:
        """Mark the bot inactive. Open positions are left as they are."""
        try:
            self.store.set_bot_active(user_id, False)
            self.position_store.record_bot_event(user_id, TradeAction.BOT_STOPPED)
        except Exception as e:
            logger.error(f"Failed to stop bot for {user_id}: {e}", exc_info=True)
            return BotCommandResult(False, TradeAction.BOT_STOPPED, safe_error_message(e))
        logger.info(f"Bot stopped for {user_id}")
        return BotCommandResult(True, TradeAction.BOT_STOPPED, "Trading bot stopped successfully")

    def _locked(
        self,
        user_id: str,
        report: CycleReport,
        body: Callable[[str, CycleReport, Any], None],
    ) -> CycleReport:
        lease = self.lease_factory(user_id)
        try:
            lease.acquire()
        except CycleInProgress as e:
            logger.warning(str(e))
            report.skipped = True
            report.errors.append(self._error(CyclePhase.PRECONDITIONS, e))
            report.finished_at = utc_now()
            return report

        try:
            body(user_id, report, lease)
        except Exception as e:
            # Phase bodies isolate their own failures; this only catches bugs in the glue.
            logger.exception(f"Cycle for {user_id} failed outside phase isolation: {e}")
            self._cycle_error(report, user_id, report.final_phase, e)
        finally:
            lease.release()
            report.finished_at = utc_now()
            self._observe(report)

        return report

    def _run(self, user_id: str, report: CycleReport, lease: Any) -> None:
        settings = self._preconditions(user_id, report, require_signer=True)
        if settings is None:
            return

        report.final_phase = CyclePhase.MONITOR
        try:
            positions = self.position_store.open_positions(user_id)
            report.phases.append(self.monitor.run(user_id, positions, settings, heartbeat=lease.renew))
        except Exception as e:
            logger.error(f"MONITOR phase failed for {user_id}: {e}", exc_info=True)
            self._cycle_error(report, user_id, CyclePhase.MONITOR, e)

        report.final_phase = CyclePhase.SCAN
        try:
            positions = self.position_store.open_positions(user_id)
            if self.metrics is not None:
                self.metrics.record_open_positions(len(positions))
            report.phases.append(self.scanner.scan(user_id, settings, positions, heartbeat=lease.renew))
        except Exception as e:
            logger.error(f"SCAN phase failed for {user_id}: {e}", exc_info=True)
            self._cycle_error(report, user_id, CyclePhase.SCAN, e)
            return

        report.final_phase = CyclePhase.DONE

    def _refresh(self, user_id: str, report: CycleReport, lease: Any) -> None:
        settings = self._preconditions(user_id, report, require_signer=False)
        if settings is None:
            return

        report.final_phase = CyclePhase.MONITOR
        try:
            positions = self.position_store.open_positions(user_id)
            report.phases.append(self.monitor.refresh(user_id, positions, settings))
        except Exception as e:
            logger.error(f"Price refresh failed for {user_id}: {e}", exc_info=True)
            self._cycle_error(report, user_id, CyclePhase.MONITOR, e)
            return
        report.final_phase = CyclePhase.DONE

    def _preconditions(self, user_id: str, report: CycleReport, require_signer: bool) -> Optional[BotSettings]:
        try:
            _, settings = self._load_context(user_id, require_signer)
        except (PreconditionError, CriticalDataUnavailable) as e:
            logger.error(f"Cycle precondition failed for {user_id}: {e}")
            self._cycle_error(report, user_id, CyclePhase.PRECONDITIONS, e)
            return None
        return settings

    def _load_context(self, user_id: str, require_signer: bool) -> Tuple[WalletConfig, BotSettings]:
        wallet = self._load_wallet(user_id, require_signer)
        try:
            settings = self.store.get_settings(user_id)
        except Exception as e:
            raise CriticalDataUnavailable("bot_settings", e) from e
        if settings is None:
            raise MissingSettings(user_id)
        return wallet, settings

    def _load_wallet(self, user_id: str, require_signer: bool = True) -> WalletConfig:
        try:
            wallet = self.store.get_wallet_config(user_id)
        except Exception as e:
            raise CriticalDataUnavailable("bot_configs", e) from e
        if wallet is None:
            raise MissingWalletConfig(user_id)
        if require_signer and self.signer_public_key != wallet.wallet_public_key:
            raise WalletMismatch(wallet.wallet_public_key, self.signer_public_key)
        return wallet

    def _error(self, phase: CyclePhase, error: BaseException) -> CycleError:
        return CycleError(
            phase=phase.value,
            kind=error_kind(error),
            detail=f"{type(error).__name__}: {error}",
            user_message=safe_error_message(error),
        )

    def _cycle_error(self, report: CycleReport, user_id: str, phase: CyclePhase, error: BaseException) -> None:
        report.errors.append(self._error(phase, error))
        self.position_store.record_error(user_id, TradeAction.CYCLE_ERROR, error)
        if self.metrics is not None:
            self.metrics.record_item_error(TradeAction.CYCLE_ERROR.value)

    def _observe(self, report: CycleReport) -> None:
        monitor = report.monitor
        scan = report.scan
        logger.info(
            f"Cycle {report.kind} for {report.user_id}: status={report.status} "
            f"phase={report.final_phase.value} duration={report.duration_seconds:.2f}s"
        )
        if self.audit is not None:
            self.audit.log_cycle(report)
        if self.metrics is not None:
            self.metrics.observe_cycle(
                CycleStats(
                    status=report.status,
                    evaluated=monitor.evaluated if monitor else 0,
                    closed=len(monitor.closed) if monitor else 0,
                    bought=1 if scan and scan.bought else 0,
                    errors=len(report.errors),
                    duration_seconds=report.duration_seconds,
                )
            )
