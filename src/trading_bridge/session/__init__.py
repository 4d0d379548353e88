"""Session module - user store and per-user broker session cache."""

from trading_bridge.session.connector import BrokerConnector, CallableConnector
from trading_bridge.session.registry import SessionRegistry
from trading_bridge.session.users import InMemoryUserStore, UserRecord, UserStore

__all__ = [
    "BrokerConnector",
    "CallableConnector",
    "InMemoryUserStore",
    "SessionRegistry",
    "UserRecord",
    "UserStore",
]
