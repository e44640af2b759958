"""
Position Store Accessor

Typed read/write access to a user's open positions and trade history.
Everything the monitor and scanner persist goes through here, so the
bookkeeping rules (how a buy becomes a Position, what a SELL record carries)
live in one place.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from core.exceptions import CriticalDataUnavailable
from core.models import (
    Position,
    SwapResult,
    SYSTEM_TOKEN,
    TokenLaunchCandidate,
    TradeAction,
    TradeRecord,
    TradeStatus,
    utc_now,
)
from core.store import Store

logger = logging.getLogger(__name__)


class PositionStore:
    """Position and trade-history bookkeeping for one store backend."""

    def __init__(self, store: Store):
        self.store = store

    def open_positions(self, user_id: str) -> List[Position]:
        try:
            return self.store.list_positions(user_id)
        except CriticalDataUnavailable:
            raise
        except Exception as e:
            raise CriticalDataUnavailable("positions", e) from e

    def apply_price(self, position: Position, price: float, at: Optional[datetime] = None) -> Position:
        """Re-mark a position at `price` and persist the derived fields."""
        updated = position.marked_at(price, at)
        self.store.upsert_position(updated)
        return updated

    def open_from_buy(
        self,
        user_id: str,
        candidate: TokenLaunchCandidate,
        capital: float,
        result: SwapResult,
    ) -> Position:
        """
        Create the Position for a confirmed buy.

        The realized execution price and output amount are authoritative;
        the position starts marked at entry, so value equals capital and P/L is 0.
        """
        now = utc_now()
        position = Position(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token_address=candidate.token_address,
            token_symbol=candidate.token_symbol,
            entry_price=result.execution_price,
            current_price=result.execution_price,
            amount_held=result.output_amount,
            capital_invested=capital,
            current_value=capital,
            profit_loss_percent=0.0,
            opened_at=now,
            last_updated_at=now,
            entry_tx_signature=result.signature,
        )
        self.store.upsert_position(position)
        self.store.append_trade_record(
            TradeRecord(
                user_id=user_id,
                token_address=candidate.token_address,
                action=TradeAction.BUY,
                status=TradeStatus.SUCCESS,
                amount=result.output_amount,
                price=result.execution_price,
                signature=result.signature,
                position_id=position.id,
                entry_price=result.execution_price,
                created_at=now,
            )
        )
        logger.info(
            f"Opened position {position.id} {candidate.token_symbol or candidate.token_address}: "
            f"{result.output_amount:.6f} @ {result.execution_price:.8f} ({capital} invested)"
        )
        return position

    def begin_sell(self, position: Position) -> str:
        """Insert the pending SELL record for an exit about to be submitted."""
        return self.store.append_trade_record(
            TradeRecord(
                user_id=position.user_id,
                token_address=position.token_address,
                action=TradeAction.SELL,
                status=TradeStatus.PENDING,
                amount=position.amount_held,
                price=position.current_price,
                position_id=position.id,
                entry_price=position.entry_price,
                created_at=utc_now(),
            )
        )

    def close_from_sell(self, position: Position, record_id: str, result: SwapResult) -> None:
        """
        Attach exit price and final P/L to the SELL record, then delete the position.

        The record is settled first: a successful SELL record is what keeps a
        position that could not be deleted from being sold a second time.
        """
        self._settle_sell(position, record_id, result)
        self.store.delete_position(position.id)
        logger.info(
            f"Closed position {position.id} {position.token_symbol or position.token_address}: "
            f"exit {result.execution_price:.8f}, P/L {position.profit_loss_percent:+.2f}%"
        )

    def _settle_sell(self, position: Position, record_id: str, result: SwapResult) -> None:
        self.store.finalize_trade_record(
            record_id,
            status=TradeStatus.SUCCESS,
            signature=result.signature,
            exit_price=result.execution_price,
            profit_loss_percent=position.profit_loss_percent,
        )

    def settle_landed_sell(self, position: Position, record_id: str, result: SwapResult) -> bool:
        """Best-effort retry of the SELL record update after a failed close. Returns True when written."""
        try:
            self._settle_sell(position, record_id, result)
            return True
        except Exception as e:
            logger.critical(
                f"SELL record {record_id} for {position.id} could not be settled "
                f"(signature {result.signature}): {e}",
                exc_info=True,
            )
            return False

    def landed_sell(self, position: Position) -> Optional[TradeRecord]:
        """The successful SELL record of a position that is still stored, if any."""
        for record in self.store.list_trade_records(position.user_id):
            if (
                record.action == TradeAction.SELL
                and record.status == TradeStatus.SUCCESS
                and record.position_id == position.id
            ):
                return record
        return None

    def remove_position(self, position: Position) -> None:
        self.store.delete_position(position.id)

    def fail_sell(self, record_id: str, error: Exception) -> None:
        self.store.finalize_trade_record(
            record_id,
            status=TradeStatus.FAILED,
            signature=getattr(error, "signature", None),
            error_message=str(error),
        )

    def record_error(
        self,
        user_id: str,
        action: TradeAction,
        error: BaseException,
        token_address: Optional[str] = None,
        position_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Append an error record (POSITION_ERROR, BUY_ERROR, CYCLE_ERROR).

        A store that cannot take the error record must not mask the original
        failure, so write failures are logged and swallowed here.
        """
        record = TradeRecord(
            user_id=user_id,
            token_address=token_address or SYSTEM_TOKEN,
            action=action,
            status=TradeStatus.FAILED,
            signature=getattr(error, "signature", None),
            error_message=f"{type(error).__name__}: {error}",
            position_id=position_id,
            created_at=utc_now(),
        )
        try:
            return self.store.append_trade_record(record)
        except Exception as e:
            logger.error(f"Failed to record {action.value} for {record.token_address}: {e}", exc_info=True)
            return None

    def record_bot_event(self, user_id: str, action: TradeAction) -> str:
        return self.store.append_trade_record(
            TradeRecord(
                user_id=user_id,
                token_address=SYSTEM_TOKEN,
                action=action,
                status=TradeStatus.SUCCESS,
                created_at=utc_now(),
            )
        )
