"""
launch-trader Core: Domain Models

Typed records shared by the monitor, scanner, gate and coordinator.
Store rows keep the column names of the hosted tables (`active_positions`,
`bot_settings`, `token_launches`, `token_safety`, `trade_history`, `bot_configs`).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
SOL_MINT = "So11111111111111111111111111111111111111112"

SYSTEM_TOKEN = "SYSTEM"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class CandidateStatus(str, Enum):
    DETECTED = "detected"
    ANALYZING = "analyzing"
    APPROVED = "approved"
    REJECTED = "rejected"
    TRADING = "trading"
    EXITED = "exited"


class SafetyStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    UNKNOWN = "unknown"


class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    BOT_STARTED = "BOT_STARTED"
    BOT_STOPPED = "BOT_STOPPED"
    POSITION_ERROR = "POSITION_ERROR"
    BUY_ERROR = "BUY_ERROR"
    CYCLE_ERROR = "CYCLE_ERROR"


class TradeStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"


class SwapDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"


@dataclass
class Position:
    """An open holding of a token acquired via a buy"""
    id: str
    user_id: str
    token_address: str
    entry_price: float
    current_price: float
    amount_held: float
    capital_invested: float
    current_value: float
    profit_loss_percent: float
    token_symbol: Optional[str] = None
    opened_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    entry_tx_signature: Optional[str] = None

    def marked_at(self, price: float, at: Optional[datetime] = None) -> "Position":
        """
        Return a copy re-marked at `price`.

        current_value and profit_loss_percent are always derived here so the
        two invariants hold after every refresh.
        """
        current_value = self.amount_held * price
        if self.capital_invested:
            pnl_pct = (current_value - self.capital_invested) / self.capital_invested * 100
        else:
            pnl_pct = 0.0
        return replace(
            self,
            current_price=price,
            current_value=current_value,
            profit_loss_percent=pnl_pct,
            last_updated_at=at or utc_now(),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "amount": self.amount_held,
            "usdc_invested": self.capital_invested,
            "current_value": self.current_value,
            "profit_loss_percentage": self.profit_loss_percent,
            "opened_at": _iso(self.opened_at),
            "last_updated": _iso(self.last_updated_at),
            "entry_tx_signature": self.entry_tx_signature,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Position":
        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            token_address=row["token_address"],
            token_symbol=row.get("token_symbol"),
            entry_price=_float(row.get("entry_price")),
            current_price=_float(row.get("current_price")),
            amount_held=_float(row.get("amount")),
            capital_invested=_float(row.get("usdc_invested")),
            current_value=_float(row.get("current_value")),
            profit_loss_percent=_float(row.get("profit_loss_percentage")),
            opened_at=_parse_ts(row.get("opened_at")),
            last_updated_at=_parse_ts(row.get("last_updated")),
            entry_tx_signature=row.get("entry_tx_signature"),
        )


@dataclass(frozen=True)
class BotSettings:
    """
    Per-user trading settings.

    Frozen: a cycle reads one snapshot and passes it down explicitly, so a
    settings change made mid-cycle is only seen by the next cycle.
    """
    profit_threshold_percent: float = 5.0
    stop_loss_percent: float = -10.0
    max_investment_per_token: float = 10.0
    max_concurrent_positions: int = 3
    auto_detect_enabled: bool = False
    safety_check_enabled: bool = True
    min_liquidity_usd: float = 5000.0
    max_rugpull_risk_score: float = 30.0
    trading_asset_mint: str = USDC_MINT

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BotSettings":
        defaults = cls()

        def pick(column: str, default: Any) -> Any:
            value = row.get(column)
            return default if value is None else value

        return cls(
            profit_threshold_percent=float(pick("profit_threshold_percentage", defaults.profit_threshold_percent)),
            stop_loss_percent=float(pick("stop_loss_percentage", defaults.stop_loss_percent)),
            max_investment_per_token=float(pick("max_investment_per_token", defaults.max_investment_per_token)),
            max_concurrent_positions=int(pick("max_concurrent_positions", defaults.max_concurrent_positions)),
            auto_detect_enabled=bool(pick("auto_detect_enabled", defaults.auto_detect_enabled)),
            safety_check_enabled=bool(pick("safety_check_enabled", defaults.safety_check_enabled)),
            min_liquidity_usd=float(pick("min_liquidity_usd", defaults.min_liquidity_usd)),
            max_rugpull_risk_score=float(pick("max_rugpull_risk_score", defaults.max_rugpull_risk_score)),
            trading_asset_mint=str(pick("trading_asset_mint", defaults.trading_asset_mint)),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "profit_threshold_percentage": self.profit_threshold_percent,
            "stop_loss_percentage": self.stop_loss_percent,
            "max_investment_per_token": self.max_investment_per_token,
            "max_concurrent_positions": self.max_concurrent_positions,
            "auto_detect_enabled": self.auto_detect_enabled,
            "safety_check_enabled": self.safety_check_enabled,
            "min_liquidity_usd": self.min_liquidity_usd,
            "max_rugpull_risk_score": self.max_rugpull_risk_score,
            "trading_asset_mint": self.trading_asset_mint,
        }


@dataclass
class WalletConfig:
    user_id: str
    wallet_public_key: str
    rpc_endpoint: Optional[str] = None
    is_active: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WalletConfig":
        return cls(
            user_id=str(row["user_id"]),
            wallet_public_key=row["wallet_public_key"],
            rpc_endpoint=row.get("rpc_endpoint"),
            is_active=bool(row.get("is_active") or False),
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "wallet_public_key": self.wallet_public_key,
            "rpc_endpoint": self.rpc_endpoint,
            "is_active": self.is_active,
        }


@dataclass
class TokenLaunchCandidate:
    """A newly detected token, produced by an external discovery feed"""
    token_address: str
    status: CandidateStatus = CandidateStatus.DETECTED
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    initial_liquidity_usd: Optional[float] = None
    initial_price: Optional[float] = None
    detected_at: Optional[datetime] = None
    source: str = "unknown"

    def to_row(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "token_name": self.token_name,
            "status": self.status.value,
            "initial_liquidity": self.initial_liquidity_usd,
            "initial_price": self.initial_price,
            "detected_at": _iso(self.detected_at),
            "source": self.source,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TokenLaunchCandidate":
        liquidity = row.get("initial_liquidity")
        price = row.get("initial_price")
        return cls(
            token_address=row["token_address"],
            status=CandidateStatus(row.get("status") or CandidateStatus.DETECTED.value),
            token_symbol=row.get("token_symbol"),
            token_name=row.get("token_name"),
            initial_liquidity_usd=float(liquidity) if liquidity is not None else None,
            initial_price=float(price) if price is not None else None,
            detected_at=_parse_ts(row.get("detected_at")),
            source=row.get("source") or "unknown",
        )


@dataclass
class SafetyRecord:
    token_address: str
    rugpull_risk_score: float
    safety_status: SafetyStatus
    is_verified: bool = False
    is_honeypot: bool = False
    liquidity_usd: float = 0.0
    holder_count: int = 0
    top_holder_percent: float = 0.0
    liquidity_locked: bool = False
    analyzed_at: Optional[datetime] = None
    analysis_source: str = "birdeye"
    raw_data: Optional[Dict[str, Any]] = field(default=None, repr=False)

    def to_row(self) -> Dict[str, Any]:
        return {
            "token_address": self.token_address,
            "rugpull_risk_score": self.rugpull_risk_score,
            "safety_status": self.safety_status.value,
            "contract_verified": self.is_verified,
            "honeypot_check": self.is_honeypot,
            "liquidity_usd": self.liquidity_usd,
            "holder_count": self.holder_count,
            "top_holder_percentage": self.top_holder_percent,
            "liquidity_locked": self.liquidity_locked,
            "analyzed_at": _iso(self.analyzed_at),
            "analysis_source": self.analysis_source,
            "raw_data": self.raw_data,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SafetyRecord":
        status = row.get("safety_status") or SafetyStatus.UNKNOWN.value
        return cls(
            token_address=row["token_address"],
            rugpull_risk_score=_float(row.get("rugpull_risk_score")),
            safety_status=SafetyStatus(status),
            is_verified=bool(row.get("contract_verified") or False),
            is_honeypot=bool(row.get("honeypot_check") or False),
            liquidity_usd=_float(row.get("liquidity_usd")),
            holder_count=int(row.get("holder_count") or 0),
            top_holder_percent=_float(row.get("top_holder_percentage")),
            liquidity_locked=bool(row.get("liquidity_locked") or False),
            analyzed_at=_parse_ts(row.get("analyzed_at")),
            analysis_source=row.get("analysis_source") or "birdeye",
            raw_data=row.get("raw_data"),
        )


@dataclass
class TradeRecord:
    """Audit log entry in trade history"""
    user_id: str
    token_address: str
    action: TradeAction
    status: TradeStatus
    amount: float = 0.0
    price: float = 0.0
    signature: Optional[str] = None
    error_message: Optional[str] = None
    position_id: Optional[str] = None
    entry_price: Optional[float] = None
    exit_price: Optional[float] = None
    profit_loss_percent: Optional[float] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        row = {
            "user_id": self.user_id,
            "token_address": self.token_address,
            "action": self.action.value,
            "status": self.status.value,
            "amount": self.amount,
            "price": self.price,
            "signature": self.signature,
            "error_message": self.error_message,
            "position_id": self.position_id,
            "entry_price": self.entry_price,
            "exit_price": self.exit_price,
            "profit_loss_percentage": self.profit_loss_percent,
            "created_at": _iso(self.created_at or utc_now()),
        }
        if self.id is not None:
            row["id"] = self.id
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TradeRecord":
        def opt(column: str) -> Optional[float]:
            value = row.get(column)
            return float(value) if value is not None else None

        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=str(row["user_id"]),
            token_address=row["token_address"],
            action=TradeAction(row["action"]),
            status=TradeStatus(row.get("status") or TradeStatus.SUCCESS.value),
            amount=_float(row.get("amount")),
            price=_float(row.get("price")),
            signature=row.get("signature"),
            error_message=row.get("error_message"),
            position_id=row.get("position_id"),
            entry_price=opt("entry_price"),
            exit_price=opt("exit_price"),
            profit_loss_percent=opt("profit_loss_percentage"),
            created_at=_parse_ts(row.get("created_at")),
        )


@dataclass
class SwapResult:
    """
    Normalized outcome of a confirmed swap.

    output_amount and execution_price are realized values and are the
    authoritative numbers for position bookkeeping; they can differ from the
    quote because of slippage. execution_price is trading-asset units per token
    in both directions.
    """
    success: bool
    direction: SwapDirection
    signature: str
    input_amount: float
    output_amount: float
    execution_price: float
    price_impact_pct: float = 0.0
    quoted_output_amount: Optional[float] = None
