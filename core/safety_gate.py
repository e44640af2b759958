"""
Safety Gate

Decides whether a launch candidate passes the user's configured risk limits.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.models import BotSettings, SafetyRecord, SafetyStatus
from core.store import Store

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    NO_DATA = "no_data"
    RISK_TOO_HIGH = "risk_too_high"
    MARKED_UNSAFE = "marked_unsafe"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class SafetyVerdict:
    passed: bool
    reason: Optional[RejectReason] = None
    record: Optional[SafetyRecord] = None
    bypassed: bool = False

    @classmethod
    def accept(cls, record: Optional[SafetyRecord] = None, bypassed: bool = False) -> "SafetyVerdict":
        return cls(passed=True, record=record, bypassed=bypassed)

    @classmethod
    def reject(cls, reason: RejectReason, record: Optional[SafetyRecord] = None) -> "SafetyVerdict":
        return cls(passed=False, reason=reason, record=record)


class StoredSafetyOracle:
    """Safety oracle reading the latest stored analysis for a token."""

    def __init__(self, store: Store):
        self.store = store

    def get_safety(self, token_address: str) -> Optional[SafetyRecord]:
        return self.store.get_safety_record(token_address)


class SafetyGate:
    """
    Evaluate a token against risk thresholds.

    Checks run in order and stop at the first rejection:
    lookup failure, no record, risk score above the user's maximum, status `danger`.
    With safety checks disabled in settings every token passes; that switch
    belongs to the user and is honoured as-is.
    """

    def __init__(self, oracle: StoredSafetyOracle):
        self.oracle = oracle

    def evaluate(self, token_address: str, settings: BotSettings) -> SafetyVerdict:
        if not settings.safety_check_enabled:
            logger.debug(f"Safety checks disabled, passing {token_address}")
            return SafetyVerdict.accept(bypassed=True)

        try:
            record = self.oracle.get_safety(token_address)
        except Exception as e:
            logger.warning(f"Safety lookup failed for {token_address}: {e}")
            return SafetyVerdict.reject(RejectReason.UNAVAILABLE)
        if record is None:
            return SafetyVerdict.reject(RejectReason.NO_DATA)

        if record.rugpull_risk_score > settings.max_rugpull_risk_score:
            logger.info(
                f"Safety reject {token_address}: risk {record.rugpull_risk_score:.0f} "
                f"> max {settings.max_rugpull_risk_score:.0f}"
            )
            return SafetyVerdict.reject(RejectReason.RISK_TOO_HIGH, record)

        if record.safety_status == SafetyStatus.DANGER:
            logger.info(f"Safety reject {token_address}: status {record.safety_status.value}")
            return SafetyVerdict.reject(RejectReason.MARKED_UNSAFE, record)

        return SafetyVerdict.accept(record)
