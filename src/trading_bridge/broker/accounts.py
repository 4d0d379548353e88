"""Linking user accounts to broker accounts."""

import logging

from trading_bridge.broker.gateway import BrokerGateway, BrokerResponse
from trading_bridge.core.errors import InvalidArgument, SessionInvalid, Unauthenticated
from trading_bridge.logging import mask_secret
from trading_bridge.session.registry import SessionRegistry
from trading_bridge.session.users import UserRecord, UserStore

logger = logging.getLogger(__name__)

DEFAULT_COUNTRY_ID = 30
DEFAULT_TIMEZONE = "America/Sao_Paulo"


class BrokerAccountService:
    """Registers broker accounts and stores the resulting broker secret."""

    def __init__(
        self,
        gateway: BrokerGateway,
        users: UserStore,
        sessions: SessionRegistry,
    ) -> None:
        self._gateway = gateway
        self._users = users
        self._sessions = sessions

    async def register(self, user: UserRecord, password: str) -> BrokerResponse:
        """Create the broker account for ``user`` and link it."""
        payload = {
            "identifier": user.email,
            "password": password,
            "accepted": ["terms", "privacy policy"],
            "country_id": DEFAULT_COUNTRY_ID,
            "first_name": f"{user.first_name} {user.last_name}".strip(),
            "timezone": DEFAULT_TIMEZONE,
        }
        response = await self._gateway.register(payload)
        if not response.ok:
            logger.warning(f"Broker registration rejected for {user.id}: {response.message}")
            raise InvalidArgument(
                f"Broker registration failed: {response.message or response.code}"
            )
        return await self.connect(user.id, user.email, password)

    async def connect(self, user_id: str, identifier: str, password: str) -> BrokerResponse:
        """Log into the broker, persist the secret and warm a fresh session."""
        if await self._users.find_by_id(user_id) is None:
            raise Unauthenticated("Unknown user")

        response = await self._gateway.login(identifier, password)
        if not response.ok or not response.ssid:
            logger.warning(f"Broker login rejected for {user_id}: {response.message}")
            raise SessionInvalid(f"Broker login failed: {response.message or response.code}")

        await self._users.set_broker_ssid(user_id, response.ssid)
        logger.info(f"Broker linked for {user_id} (ssid={mask_secret(response.ssid)})")

        await self._sessions.invalidate(user_id)
        await self._sessions.get_session(user_id)
        return response

    async def disconnect(self, user_id: str) -> None:
        """Forget the broker secret and drop the cached session."""
        await self._users.set_broker_ssid(user_id, None)
        await self._sessions.invalidate(user_id)
