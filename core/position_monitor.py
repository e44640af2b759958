"""
Position Monitor: Take-Profit and Stop-Loss Exits

Re-marks every open position at the oracle price, persists the derived
value and P/L, and closes positions that crossed the user's thresholds.
Each position is handled independently; one failure never stops the batch.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from core.exceptions import LandedSwapNotRecorded
from core.models import BotSettings, Position, SwapDirection, TradeAction, utc_now
from core.position_store import PositionStore
from core.price_oracle import JupiterPriceOracle
from core.swap_executor import SwapExecutor

logger = logging.getLogger(__name__)


class ExitDecision(str, Enum):
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    HOLD = "hold"


def decide_exit(pnl_pct: float, settings: BotSettings) -> ExitDecision:
    """Both thresholds are inclusive; take-profit is checked first."""
    if pnl_pct >= settings.profit_threshold_percent:
        return ExitDecision.TAKE_PROFIT
    if pnl_pct <= settings.stop_loss_percent:
        return ExitDecision.STOP_LOSS
    return ExitDecision.HOLD


@dataclass
class PositionError:
    position_id: str
    token_address: str
    error: str


@dataclass
class MonitorResult:
    """Outcome of one monitor pass"""
    evaluated: int = 0
    held: List[str] = field(default_factory=list)
    closed: List[str] = field(default_factory=list)
    errors: List[PositionError] = field(default_factory=list)
    phase: str = "monitor"

    def summary(self) -> dict:
        return {
            "phase": self.phase,
            "evaluated": self.evaluated,
            "held": len(self.held),
            "closed": len(self.closed),
            "errors": len(self.errors),
        }


class PositionMonitor:
    def __init__(
        self,
        position_store: PositionStore,
        oracle: JupiterPriceOracle,
        executor: Optional[SwapExecutor],
        metrics=None,
    ):
        self.position_store = position_store
        self.oracle = oracle
        self.executor = executor
        self.metrics = metrics

    def run(
        self,
        user_id: str,
        positions: List[Position],
        settings: BotSettings,
        heartbeat: Optional[Callable[[], None]] = None,
    ) -> MonitorResult:
        """
        Evaluate every position and close those at or past a threshold.

        Per-position failures become POSITION_ERROR records. `heartbeat` is
        called before each position; an exception from it ends the pass.
        """
        result = MonitorResult()
        for position in positions:
            if heartbeat is not None:
                heartbeat()
            result.evaluated += 1
            try:
                closed = self._evaluate(position, settings)
            except Exception as e:
                logger.error(
                    f"Position {position.id} ({position.token_symbol or position.token_address}) failed: {e}",
                    exc_info=True,
                )
                self.position_store.record_error(
                    user_id,
                    TradeAction.POSITION_ERROR,
                    e,
                    token_address=position.token_address,
                    position_id=position.id,
                )
                result.errors.append(PositionError(position.id, position.token_address, str(e)))
                if self.metrics is not None:
                    self.metrics.record_item_error(TradeAction.POSITION_ERROR.value)
                continue

            if closed:
                result.closed.append(position.id)
            else:
                result.held.append(position.id)

        logger.info(
            f"Monitor pass for {user_id}: evaluated={result.evaluated} held={len(result.held)} "
            f"closed={len(result.closed)} errors={len(result.errors)}"
        )
        return result

    def refresh(self, user_id: str, positions: List[Position], settings: BotSettings) -> MonitorResult:
        """Re-mark and persist prices only; never closes anything."""
        result = MonitorResult(phase="refresh")
        for position in positions:
            result.evaluated += 1
            try:
                price = self.oracle.get_price(position.token_address, settings.trading_asset_mint)
                self.position_store.apply_price(position, price)
            except Exception as e:
                logger.warning(f"Price refresh failed for {position.id}: {e}")
                result.errors.append(PositionError(position.id, position.token_address, str(e)))
                continue
            result.held.append(position.id)
        logger.info(f"Refreshed {len(result.held)}/{result.evaluated} positions for {user_id}")
        return result

    def _evaluate(self, position: Position, settings: BotSettings) -> bool:
        price = self.oracle.get_price(position.token_address, settings.trading_asset_mint)
        updated = self.position_store.apply_price(position, price, utc_now())

        decision = decide_exit(updated.profit_loss_percent, settings)
        if decision == ExitDecision.HOLD:
            logger.debug(f"Hold {updated.token_address}: P/L {updated.profit_loss_percent:+.2f}%")
            return False

        logger.info(
            f"{decision.value.upper()} {updated.token_symbol or updated.token_address}: "
            f"P/L {updated.profit_loss_percent:+.2f}% (tp={settings.profit_threshold_percent}, "
            f"sl={settings.stop_loss_percent})"
        )
        self._close(updated, settings)
        if self.metrics is not None:
            self.metrics.record_exit(decision.value)
        return True

    def _close(self, position: Position, settings: BotSettings) -> None:
        if self.executor is None:
            raise RuntimeError("No swap executor configured; cannot close position")

        landed = self.position_store.landed_sell(position)
        if landed is not None:
            logger.warning(
                f"Position {position.id} was already sold in {landed.signature}; removing it without a new swap"
            )
            self.position_store.remove_position(position)
            return

        record_id = self.position_store.begin_sell(position)
        try:
            swap = self.executor.execute(
                position.token_address,
                SwapDirection.SELL,
                position.amount_held,
                settings.trading_asset_mint,
            )
        except Exception as e:
            self.position_store.fail_sell(record_id, e)
            raise

        try:
            self.position_store.close_from_sell(position, record_id, swap)
        except Exception as e:
            logger.critical(
                f"Sell {swap.signature} for {position.token_address} confirmed but not recorded: {e}",
                exc_info=True,
            )
            self.position_store.settle_landed_sell(position, record_id, swap)
            raise LandedSwapNotRecorded(
                f"Sell {swap.signature} confirmed but position {position.id} was not closed: {e}",
                signature=swap.signature,
            ) from e
