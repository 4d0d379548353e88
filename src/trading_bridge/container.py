"""Composition root wiring every service to one session registry."""

import logging
from typing import Any

import httpx

from trading_bridge.agent.automator import AutomatorOrchestrator
from trading_bridge.agent.orchestrator import OrchestratorService
from trading_bridge.agent.vision import VisionDecisionClient
from trading_bridge.broker.accounts import BrokerAccountService
from trading_bridge.broker.gateway import BrokerGateway
from trading_bridge.config import Config
from trading_bridge.execution.buy import BuyExecutor
from trading_bridge.market.account import BalancesService, PositionsService, QuotesService
from trading_bridge.market.actives import MarketDataAdapter
from trading_bridge.session.connector import BrokerConnector
from trading_bridge.session.registry import SessionRegistry
from trading_bridge.session.users import UserStore
from trading_bridge.storage.images import ImageStore
from trading_bridge.stream.service import StreamingAdapter

logger = logging.getLogger(__name__)


class TradingBridge:
    """All trading services for one process.

    Routing layers build one instance at startup and call into its
    attributes; every service shares the same ``sessions`` registry.
    """

    def __init__(
        self,
        config: Config,
        users: UserStore,
        connector: BrokerConnector,
        llm: Any | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Wire the services.

        Args:
            config: Application configuration
            users: User store holding broker secrets
            connector: Broker SDK connection factory
            llm: Vision chat model (built from config if omitted)
            http_client: Shared HTTP client for the broker REST gateway
        """
        self.config = config
        self.users = users
        self.sessions = SessionRegistry(users, connector, config.broker)

        self.gateway = BrokerGateway(config.broker, http_client=http_client)
        self.accounts = BrokerAccountService(self.gateway, users, self.sessions)

        self.market = MarketDataAdapter(self.sessions)
        self.balances = BalancesService(self.sessions)
        self.positions = PositionsService(self.sessions)
        self.quotes = QuotesService(self.sessions)
        self.streams = StreamingAdapter(self.sessions)
        self.buyer = BuyExecutor(self.sessions)

        self.vision = VisionDecisionClient(config.vision, llm=llm)
        self.automator = AutomatorOrchestrator(self.vision, self.buyer, config.automator)
        self.images = ImageStore(config.storage)
        self.orchestrator = OrchestratorService(self.images, self.automator)

        if not config.broker.is_configured:
            logger.warning("Broker transport not configured (TRADE_WS_URL / TRADE_APP_ID)")

    async def aclose(self) -> None:
        """Shut down every cached broker session."""
        await self.sessions.aclose()
        logger.info("Trading bridge closed")
