"""
launch-trader Core: Opportunity Scanner

Walks the newest detected launch candidates and enters at most one of them
per scan. A candidate must clear, in order: no existing position, minimum
liquidity, and the safety gate.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from core.models import (
    BotSettings,
    CandidateStatus,
    Position,
    SwapDirection,
    TokenLaunchCandidate,
    TradeAction,
)
from core.position_store import PositionStore
from core.safety_gate import SafetyGate
from core.store import Store
from core.swap_executor import SwapExecutor

logger = logging.getLogger(__name__)


class IdleReason(str, Enum):
    AUTO_DETECT_DISABLED = "auto_detect_disabled"
    AT_CAPACITY = "at_capacity"


@dataclass
class SkippedCandidate:
    token_address: str
    reason: str


@dataclass
class BuyError:
    token_address: str
    error: str
    swap_landed: bool = False


@dataclass
class ScanResult:
    """Outcome of one scan. `idle` is set when no scan was attempted."""
    idle: Optional[IdleReason] = None
    considered: int = 0
    skipped: List[SkippedCandidate] = field(default_factory=list)
    bought: Optional[Position] = None
    errors: List[BuyError] = field(default_factory=list)
    phase: str = "scan"

    def summary(self) -> dict:
        return {
            "phase": self.phase,
            "idle": self.idle.value if self.idle else None,
            "considered": self.considered,
            "skipped": len(self.skipped),
            "bought": self.bought.token_address if self.bought else None,
            "errors": len(self.errors),
        }


class OpportunityScanner:
    def __init__(
        self,
        store: Store,
        position_store: PositionStore,
        gate: SafetyGate,
        executor: Optional[SwapExecutor],
        candidate_limit: int = 5,
        metrics=None,
    ):
        self.store = store
        self.position_store = position_store
        self.gate = gate
        self.executor = executor
        self.candidate_limit = int(candidate_limit)
        self.metrics = metrics

    def scan(
        self,
        user_id: str,
        settings: BotSettings,
        open_positions: List[Position],
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> ScanResult:
        if not settings.auto_detect_enabled:
            logger.debug("Auto-detect disabled, scanner idle")
            return ScanResult(idle=IdleReason.AUTO_DETECT_DISABLED)
        if len(open_positions) >= settings.max_concurrent_positions:
            logger.info(
                f"At capacity ({len(open_positions)}/{settings.max_concurrent_positions} positions), scanner idle"
            )
            return ScanResult(idle=IdleReason.AT_CAPACITY)

        result = ScanResult()
        held = {p.token_address for p in open_positions}
        candidates = self.store.list_candidates(CandidateStatus.DETECTED, self.candidate_limit, newest_first=True)
        logger.info(f"Scanning {len(candidates)} detected candidates for {user_id}")

        for candidate in candidates:
            if heartbeat is not None:
                heartbeat()
            result.considered += 1
            reason = self._skip_reason(candidate, settings, held)
            if reason:
                logger.info(f"Skip {candidate.token_symbol or candidate.token_address}: {reason}")
                result.skipped.append(SkippedCandidate(candidate.token_address, reason))
                continue

            position = self._buy(user_id, candidate, settings, result)
            if position is not None:
                result.bought = position
                break
            if result.errors and result.errors[-1].swap_landed:
                # Swap landed but was not recorded; do not risk a second buy this scan.
                break

        return result

    def _skip_reason(self, candidate: TokenLaunchCandidate, settings: BotSettings, held: set) -> Optional[str]:
        if candidate.token_address in held:
            return "position_exists"
        liquidity = candidate.initial_liquidity_usd or 0.0
        if liquidity < settings.min_liquidity_usd:
            return f"liquidity {liquidity:.0f} < {settings.min_liquidity_usd:.0f}"
        verdict = self.gate.evaluate(candidate.token_address, settings)
        if not verdict.passed:
            return f"safety:{verdict.reason.value}"
        return None

    def _buy(
        self,
        user_id: str,
        candidate: TokenLaunchCandidate,
        settings: BotSettings,
        result: ScanResult,
    ) -> Optional[Position]:
        capital = settings.max_investment_per_token
        try:
            if self.executor is None:
                raise RuntimeError("No swap executor configured; cannot buy")
            swap = self.executor.execute(
                candidate.token_address,
                SwapDirection.BUY,
                capital,
                settings.trading_asset_mint,
            )
        except Exception as e:
            logger.error(f"Buy failed for {candidate.token_symbol or candidate.token_address}: {e}")
            self._record_buy_error(user_id, candidate, e, result)
            return None

        try:
            position = self.position_store.open_from_buy(user_id, candidate, capital, swap)
        except Exception as e:
            logger.critical(
                f"Buy {swap.signature} for {candidate.token_address} confirmed but not recorded: {e}",
                exc_info=True,
            )
            self._record_buy_error(user_id, candidate, e, result, swap_landed=True)
            return None

        try:
            self.store.update_candidate_status(candidate.token_address, CandidateStatus.TRADING)
        except Exception as e:
            # The open position already keeps this token out of later scans.
            logger.error(f"Could not mark {candidate.token_address} as trading: {e}")
        return position

    def _record_buy_error(self, user_id, candidate, error, result, swap_landed=False) -> None:
        self.position_store.record_error(
            user_id, TradeAction.BUY_ERROR, error, token_address=candidate.token_address
        )
        result.errors.append(BuyError(candidate.token_address, str(error), swap_landed))
        if self.metrics is not None:
            self.metrics.record_item_error(TradeAction.BUY_ERROR.value)
