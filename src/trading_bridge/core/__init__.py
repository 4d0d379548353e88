"""Core module - shared types, error taxonomy and retry primitive."""

from trading_bridge.core.errors import (
    InstrumentNotFound,
    InstrumentUnavailable,
    InvalidArgument,
    NoBalanceAvailable,
    NoDecisionExtracted,
    NoExpirationAvailable,
    SessionInvalid,
    TradingBridgeError,
    Unauthenticated,
    UnsupportedCapability,
    UpstreamRejected,
    UpstreamUnavailable,
    is_session_terminated,
)
from trading_bridge.core.retry import RetryPolicy, fixed_delay, no_delay, retry_async
from trading_bridge.core.types import (
    ActiveKind,
    BalanceType,
    Direction,
    OrchestratorKind,
    Recommendation,
)

__all__ = [
    "ActiveKind",
    "BalanceType",
    "Direction",
    "InstrumentNotFound",
    "InstrumentUnavailable",
    "InvalidArgument",
    "NoBalanceAvailable",
    "NoDecisionExtracted",
    "NoExpirationAvailable",
    "OrchestratorKind",
    "Recommendation",
    "RetryPolicy",
    "SessionInvalid",
    "TradingBridgeError",
    "Unauthenticated",
    "UnsupportedCapability",
    "UpstreamRejected",
    "UpstreamUnavailable",
    "fixed_delay",
    "is_session_terminated",
    "no_delay",
    "retry_async",
]
