"""Broker REST gateway for account registration and credential login."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from trading_bridge.config import BrokerConfig
from trading_bridge.core.retry import RetryPolicy, SleepFn, fixed_delay, retry_async

logger = logging.getLogger(__name__)


@dataclass
class BrokerResponse:
    """Normalized broker REST answer.

    Failures never raise; they come back with ``code == "error"`` so callers
    branch on ``code`` alone.
    """

    code: str
    message: str = ""
    ssid: str | None = None
    user_id: int | None = None
    status: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.code == "success"

    @classmethod
    def from_payload(cls, payload: Any, status: int | None = None) -> "BrokerResponse":
        if not isinstance(payload, dict):
            return cls(code="error", message=str(payload or ""), status=status)
        user_id = payload.get("user_id")
        try:
            user_id = int(user_id) if user_id is not None else None
        except (TypeError, ValueError):
            user_id = None
        return cls(
            code=str(payload.get("code") or "error"),
            message=str(payload.get("message") or ""),
            ssid=payload.get("ssid") or None,
            user_id=user_id,
            status=status,
            raw=payload,
        )

    @classmethod
    def error(cls, message: str, status: int | None = None) -> "BrokerResponse":
        return cls(code="error", message=message, status=status)


def is_transient_http_error(exc: BaseException) -> bool:
    """No response at all, or a 5xx answer."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return False


def _payload_of(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class BrokerGateway:
    """Stateless client for the broker's login/register endpoints."""

    def __init__(
        self,
        config: BrokerConfig,
        http_client: httpx.AsyncClient | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        """Initialize the gateway.

        Args:
            config: Broker endpoints and retry settings
            http_client: Shared HTTP client (a short-lived one is used per call if omitted)
            sleep: Awaitable sleep used between login attempts
        """
        self._config = config
        self._http = http_client
        self._sleep = sleep
        self._login_policy = RetryPolicy(
            max_attempts=config.login_attempts,
            retryable=is_transient_http_error,
            backoff=fixed_delay(config.login_retry_delay),
        )

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._http is not None:
            response = await self._http.post(url, json=payload, headers=headers, timeout=timeout)
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(url, json=payload, headers=headers)
        response.raise_for_status()
        return response

    async def register(self, payload: dict[str, Any]) -> BrokerResponse:
        """Create a broker account. Never retried."""
        headers: dict[str, str] = {}
        if self._config.affiliate_code:
            headers["Cookie"] = f"aff={self._config.affiliate_code}; aff_model=revenue; afftrack="
        try:
            response = await self._post(
                self._config.register_url, payload, self._config.register_timeout, headers
            )
        except httpx.HTTPStatusError as e:
            body = _payload_of(e.response)
            logger.error(f"Broker register failed ({e.response.status_code}): {body}")
            if isinstance(body, dict) and body.get("code"):
                return BrokerResponse.from_payload(body, e.response.status_code)
            return BrokerResponse.error("register failed", e.response.status_code)
        except httpx.HTTPError as e:
            logger.error(f"Broker register failed: {e}")
            return BrokerResponse.error("register failed")

        return BrokerResponse.from_payload(_payload_of(response), response.status_code)

    async def login(self, identifier: str, password: str) -> BrokerResponse:
        """Exchange credentials for a broker secret.

        Transient failures (no response, 5xx) are retried with a fixed delay;
        any other error status is returned right away.
        """
        payload = {"identifier": identifier, "password": password}

        async def _attempt(attempt: int) -> httpx.Response:
            return await self._post(self._config.login_url, payload, self._config.login_timeout)

        try:
            response = await retry_async(
                _attempt, self._login_policy, sleep=self._sleep, label="Broker login"
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Broker login failed ({status})")
            body = _payload_of(e.response)
            message = body.get("message") if isinstance(body, dict) else None
            return BrokerResponse.error(message or f"login failed with status {status}", status)
        except httpx.HTTPError as e:
            logger.error(f"Broker login failed: {e}")
            return BrokerResponse.error(str(e) or "login failed")

        return BrokerResponse.from_payload(_payload_of(response), response.status_code)
