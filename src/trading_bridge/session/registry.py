"""Per-user broker session cache.

One live SDK connection is kept per user id. Entries are health-checked on
every hit, recreated when the stored secret changes and evicted whenever
anything about them fails, so a broken connection never stays cached.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from trading_bridge.config import BrokerConfig
from trading_bridge.core.errors import (
    SessionInvalid,
    TradingBridgeError,
    Unauthenticated,
    UpstreamUnavailable,
    is_session_terminated,
)
from trading_bridge.logging import mask_secret
from trading_bridge.session.connector import BrokerConnector
from trading_bridge.session.users import UserStore

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (OSError, TimeoutError)


@dataclass
class CachedSession:
    """A cached broker connection."""

    user_id: str
    sdk: Any
    ssid: str
    created_at: datetime = field(default_factory=datetime.now)


class SessionRegistry:
    """Process-wide session cache keyed by user id.

    Build one instance at startup and hand it to every service that needs a
    broker connection. Calls for the same user are serialized by a per-user
    lock so two concurrent requests never both open and cache a session;
    different users never wait on each other.
    """

    def __init__(
        self,
        users: UserStore,
        connector: BrokerConnector,
        config: BrokerConfig,
    ) -> None:
        """Initialize the registry.

        Args:
            users: User store holding broker secrets
            connector: Factory for SDK connections
            config: Broker transport configuration
        """
        self._users = users
        self._connector = connector
        self._config = config
        self._sessions: dict[str, CachedSession] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._sessions

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())

    async def get_session(self, user_id: str) -> Any:
        """Return a live SDK handle for the user.

        Raises:
            Unauthenticated: User unknown or without a broker secret
            UpstreamUnavailable: Broker transport unreachable
            SessionInvalid: Broker rejected the secret
        """
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise Unauthenticated("Unknown user")
        ssid = user.broker_ssid
        if not ssid:
            logger.warning(f"User {user_id} has no broker secret")
            raise Unauthenticated("Connect your broker account first")

        async with self._lock_for(user_id):
            cached = self._sessions.get(user_id)
            if cached is not None:
                if cached.ssid == ssid:
                    try:
                        await cached.sdk.current_time()
                        return cached.sdk
                    except Exception as e:
                        logger.warning(f"Cached session for {user_id} failed liveness probe: {e}")
                else:
                    logger.info(f"Broker secret changed for {user_id}, dropping cached session")
                self._sessions.pop(user_id, None)
                await self._shutdown_quietly(cached.sdk)

            try:
                sdk = await self._open(ssid)
            except TradingBridgeError as e:
                self._sessions.pop(user_id, None)
                logger.error(f"Failed to create session for {user_id}: {e}")
                raise

            self._sessions[user_id] = CachedSession(user_id=user_id, sdk=sdk, ssid=ssid)
            logger.info(f"Session created for {user_id} (ssid={mask_secret(ssid)})")
            return sdk

    async def invalidate(self, user_id: str) -> None:
        """Drop the user's session. Safe to call when nothing is cached."""
        async with self._lock_for(user_id):
            cached = self._sessions.pop(user_id, None)
        if cached is None:
            return
        logger.warning(f"Invalidating session for {user_id}")
        await self._shutdown_quietly(cached.sdk)

    async def refresh(self, user_id: str) -> Any:
        """Force a brand-new session for the user."""
        await self.invalidate(user_id)
        return await self.get_session(user_id)

    async def aclose(self) -> None:
        """Shut down every cached session."""
        for user_id in list(self._sessions):
            await self.invalidate(user_id)

    async def _open(self, ssid: str) -> Any:
        """Connect and validate a session before it may be cached."""
        if not self._config.is_configured:
            raise SessionInvalid("Broker transport not configured")

        logger.info(
            f"Opening broker session ws={self._config.ws_url} "
            f"app_id={self._config.app_id} ssid={mask_secret(ssid)}"
        )
        try:
            sdk = await self._connector.create(self._config.ws_url, self._config.app_id, ssid)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if is_session_terminated(e):
                raise SessionInvalid("Broker session invalid or expired") from e
            raise UpstreamUnavailable(f"Broker transport unreachable: {e}") from e

        # Handshake: a connection that cannot answer a cheap read is not cached
        try:
            now = await sdk.current_time()
        except asyncio.CancelledError:
            await self._shutdown_quietly(sdk)
            raise
        except Exception as e:
            await self._shutdown_quietly(sdk)
            if isinstance(e, TRANSPORT_ERRORS) and not is_session_terminated(e):
                raise UpstreamUnavailable(f"Broker transport unreachable: {e}") from e
            raise SessionInvalid("Broker session invalid or expired (handshake failed)") from e

        logger.debug(f"Broker handshake ok, server time {now}")
        return sdk

    async def _shutdown_quietly(self, sdk: Any) -> None:
        with contextlib.suppress(Exception):
            await sdk.shutdown()
