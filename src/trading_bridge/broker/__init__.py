"""Broker module - REST login/registration and account linking."""

from trading_bridge.broker.accounts import BrokerAccountService
from trading_bridge.broker.gateway import BrokerGateway, BrokerResponse

__all__ = [
    "BrokerAccountService",
    "BrokerGateway",
    "BrokerResponse",
]
