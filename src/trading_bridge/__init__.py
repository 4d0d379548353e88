"""Trading Bridge - per-user broker sessions and automated chart-driven trades."""

__version__ = "0.1.0"

# Re-export submodules for convenient access
from trading_bridge import agent, broker, core, execution, market, session, storage, stream
from trading_bridge.container import TradingBridge

__all__ = [
    "__version__",
    "TradingBridge",
    "agent",
    "broker",
    "core",
    "execution",
    "market",
    "session",
    "storage",
    "stream",
]
