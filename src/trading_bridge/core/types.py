"""Global type definitions."""

from enum import Enum


class ActiveKind(str, Enum):
    """Instrument families offered by the broker."""

    BLITZ = "blitz"
    TURBO = "turbo"
    BINARY = "binary"
    DIGITAL = "digital"
    MARGIN_FOREX = "margin-forex"
    MARGIN_CFD = "margin-cfd"
    MARGIN_CRYPTO = "margin-crypto"


class BalanceType(str, Enum):
    """Broker balance type."""

    REAL = "real"
    DEMO = "demo"


class Direction(str, Enum):
    """Option direction."""

    CALL = "call"
    PUT = "put"


class Recommendation(str, Enum):
    """Vision model recommendation."""

    BUY = "buy"
    SELL = "sell"

    def inverted(self) -> "Recommendation":
        """Flip buy/sell."""
        return Recommendation.SELL if self is Recommendation.BUY else Recommendation.BUY

    def to_direction(self) -> Direction:
        """Map a recommendation onto an option direction."""
        return Direction.CALL if self is Recommendation.BUY else Direction.PUT


class OrchestratorKind(str, Enum):
    """Entry points of the orchestration layer."""

    AUTOMATOR = "automator"
    MANUAL_ANALYZER = "manual_analyzer"
