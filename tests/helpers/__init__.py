"""Test helpers for launch-trader test suite"""

from tests.helpers.trading_stubs import (
    USER_ID,
    WALLET,
    StubLease,
    StubPriceOracle,
    StubSwapExecutor,
    SwapCall,
    make_candidate,
    make_position,
    make_safety,
    rejected,
)

__all__ = [
    "USER_ID",
    "WALLET",
    "StubLease",
    "StubPriceOracle",
    "StubSwapExecutor",
    "SwapCall",
    "make_candidate",
    "make_position",
    "make_safety",
    "rejected",
]
