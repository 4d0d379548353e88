"""Broker SDK connection port."""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any


class BrokerConnector(ABC):
    """Opens authenticated connections to the broker SDK.

    The returned handle is the SDK client itself. The trading core relies on
    this surface only:

    - ``await handle.current_time()``
    - ``await handle.balances()`` / ``positions()`` / ``quotes()`` / ``candles()``
    - ``await handle.blitz_options()`` and the other per-kind accessors
    - ``await handle.shutdown()``
    """

    @abstractmethod
    async def create(self, ws_url: str, app_id: int, ssid: str) -> Any:
        """Open a websocket session authenticated with ``ssid``."""
        ...


class CallableConnector(BrokerConnector):
    """Connector backed by an SDK factory coroutine.

    Example:
        connector = CallableConnector(
            lambda url, app, ssid: ClientSdk.create(url, app, SsidAuthMethod(ssid))
        )
    """

    def __init__(self, factory: Callable[[str, int, str], Awaitable[Any]]) -> None:
        self._factory = factory

    async def create(self, ws_url: str, app_id: int, ssid: str) -> Any:
        return await self._factory(ws_url, app_id, ssid)
