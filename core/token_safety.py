"""
Token Safety Analyzer

Scores a token's rugpull risk from Birdeye market and security data and
stores the result as the SafetyRecord the safety gate reads.

Risk factors (points, summed and capped at 100):
- liquidity below the floor: 30
- fewer than 100 holders: 20
- top-10 holders own more than half: 25
- contract not verified: 15
- honeypot: 50

Status: danger above 50, warning above 30, safe otherwise.
"""

import logging
from typing import Any, Dict, Optional

from core.birdeye_client import BirdeyeClient
from core.models import SafetyRecord, SafetyStatus, utc_now
from core.store import Store

logger = logging.getLogger(__name__)

MAX_RISK_SCORE = 100.0


def score_risk(
    overview: Dict[str, Any],
    security: Optional[Dict[str, Any]],
    min_liquidity_usd: float = 5000.0,
    min_holders: int = 100,
    max_top10_percent: float = 50.0,
) -> float:
    liquidity = float(overview.get("liquidity") or 0.0)
    holders = int(overview.get("holder") or 0)
    top10 = float(overview.get("top10HolderPercent") or 0.0)
    security = security or {}

    score = 0.0
    if liquidity < min_liquidity_usd:
        score += 30
    if holders < min_holders:
        score += 20
    if top10 > max_top10_percent:
        score += 25
    if not security.get("isVerified"):
        score += 15
    if security.get("isHoneypot"):
        score += 50
    return min(score, MAX_RISK_SCORE)


def status_for_score(score: float) -> SafetyStatus:
    if score > 50:
        return SafetyStatus.DANGER
    if score > 30:
        return SafetyStatus.WARNING
    return SafetyStatus.SAFE


class TokenSafetyAnalyzer:
    def __init__(self, birdeye: BirdeyeClient, store: Store, min_liquidity_usd: float = 5000.0):
        self.birdeye = birdeye
        self.store = store
        self.min_liquidity_usd = float(min_liquidity_usd)

    def analyze(self, token_address: str) -> SafetyRecord:
        """
        Fetch, score and persist a safety analysis.

        Raises:
            requests.exceptions.RequestException: the overview lookup failed
        """
        overview = self.birdeye.token_overview(token_address)
        security = self.birdeye.token_security(token_address)

        score = score_risk(overview, security, min_liquidity_usd=self.min_liquidity_usd)
        status = status_for_score(score)
        security = security or {}

        record = SafetyRecord(
            token_address=token_address,
            rugpull_risk_score=score,
            safety_status=status,
            is_verified=bool(security.get("isVerified") or False),
            is_honeypot=bool(security.get("isHoneypot") or False),
            liquidity_usd=float(overview.get("liquidity") or 0.0),
            holder_count=int(overview.get("holder") or 0),
            top_holder_percent=float(overview.get("top10HolderPercent") or 0.0),
            liquidity_locked=bool(security.get("liquidityLocked") or False),
            analyzed_at=utc_now(),
            analysis_source="birdeye",
            raw_data={"overview": overview, "security": security or None},
        )
        self.store.save_safety_record(record)
        logger.info(f"Safety {token_address}: score={score:.0f} status={status.value}")
        return record
