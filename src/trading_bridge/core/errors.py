"""
Error taxonomy for Trading Bridge.

Every failure surfaced to callers is one of these kinds. Routing layers map
``kind`` onto their own status codes; ``detail`` is safe to show to users.
"""

import re
from typing import Any

SESSION_TERMINATED_CODE = 4000

_TERMINATED_IN_MESSAGE = re.compile(rf"(?<!\d){SESSION_TERMINATED_CODE}(?!\d)")


class TradingBridgeError(Exception):
    """Base error for all Trading Bridge failures."""

    kind = "error"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Small stable payload for callers."""
        return {"error": self.kind, "detail": self.detail}


class Unauthenticated(TradingBridgeError):
    """Raised when the user has no broker secret on file."""

    kind = "unauthenticated"


class SessionInvalid(TradingBridgeError):
    """Raised when the broker rejects the stored secret."""

    kind = "session_invalid"


class UpstreamUnavailable(TradingBridgeError):
    """Raised when the broker or vision transport cannot be reached."""

    kind = "upstream_unavailable"


class UpstreamRejected(TradingBridgeError):
    """Raised when the vision API answers with a non-retryable error."""

    kind = "upstream_rejected"

    def __init__(self, detail: str, status: int | None = None, upstream_detail: Any = None) -> None:
        super().__init__(detail)
        self.status = status
        self.upstream_detail = upstream_detail

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["status"] = self.status
        payload["upstream"] = self.upstream_detail
        return payload


class InvalidArgument(TradingBridgeError):
    """Raised for malformed caller input."""

    kind = "invalid_argument"


class InstrumentNotFound(TradingBridgeError):
    """Raised when the broker lists no instrument to trade."""

    kind = "instrument_not_found"


class InstrumentUnavailable(TradingBridgeError):
    """Raised when the chosen instrument cannot be bought right now."""

    kind = "instrument_unavailable"


class NoExpirationAvailable(TradingBridgeError):
    """Raised when no usable expiration can be resolved."""

    kind = "no_expiration_available"


class NoBalanceAvailable(TradingBridgeError):
    """Raised when the account exposes no balance to trade from."""

    kind = "no_balance_available"


class UnsupportedCapability(TradingBridgeError):
    """Raised when the broker connection does not offer an instrument kind."""

    kind = "unsupported_capability"


class NoDecisionExtracted(TradingBridgeError):
    """Raised when a vision response holds no structured decision."""

    kind = "no_decision_extracted"


def is_session_terminated(exc: BaseException) -> bool:
    """Check whether an SDK error is the broker's session termination signal.

    The transport reports a dead or rejected session with close code 4000.
    SDK errors expose it either as a ``code``/``status`` attribute or only
    inside their message, where it must stand alone as a number.
    """
    for attr in ("code", "status", "close_code"):
        value = getattr(exc, attr, None)
        if value is None:
            continue
        try:
            if int(value) == SESSION_TERMINATED_CODE:
                return True
        except (TypeError, ValueError):
            continue
    return _TERMINATED_IN_MESSAGE.search(str(exc)) is not None
