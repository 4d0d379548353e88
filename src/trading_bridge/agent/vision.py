"""Rate-limited chart classification client."""

import asyncio
import logging
import random
import re
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any

import openai
from langchain_core.messages import HumanMessage

from trading_bridge.agent.llm import create_vision_llm
from trading_bridge.agent.parsing import extract_text_content, parse_decision
from trading_bridge.agent.prompts import build_chart_prompt, entry_time_label
from trading_bridge.agent.schemas import VisionDecision
from trading_bridge.config import VisionConfig
from trading_bridge.core.errors import NoDecisionExtracted, UpstreamRejected, UpstreamUnavailable
from trading_bridge.core.retry import RetryPolicy, SleepFn, retry_async

logger = logging.getLogger(__name__)

MIN_BACKOFF = 0.25
MAX_JITTER = 0.15

_TRY_AGAIN = re.compile(r"try again in\s*([\d.]+)\s*(ms|s)\b", re.IGNORECASE)


def is_retryable_api_error(exc: BaseException) -> bool:
    """Rate limiting and server-side failures."""
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code == 429 or exc.status_code >= 500
    return False


def suggested_wait(exc: BaseException) -> float | None:
    """Wait the API asks for, from ``retry-after`` headers or the error text."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    for header, scale in (("retry-after-ms", 0.001), ("retry-after", 1.0)):
        value = headers.get(header)
        if value is None:
            continue
        try:
            return max(0.0, float(value) * scale)
        except ValueError:
            continue
    match = _TRY_AGAIN.search(str(exc))
    if match:
        amount = float(match.group(1))
        return amount / 1000 if match.group(2).lower() == "ms" else amount
    return None


class VisionDecisionClient:
    """Classifies chart images into buy/sell decisions.

    All calls, across every user, go through one lock with a minimum gap
    between outbound requests to stay inside the shared API quota. Repeated
    requests for the same image within ``cache_ttl`` are answered from
    memory.
    """

    def __init__(
        self,
        config: VisionConfig,
        llm: Any | None = None,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the client.

        Args:
            config: Vision API configuration
            llm: Chat model (created from config if omitted)
            sleep: Awaitable sleep for pacing and backoff
            clock: Monotonic clock in seconds
            rng: Uniform [0, 1) source for backoff jitter
        """
        self._config = config
        self._llm = llm if llm is not None else create_vision_llm(config)
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._lock = asyncio.Lock()
        self._last_call_at: float | None = None
        self._cache: dict[str, tuple[float, VisionDecision]] = {}
        self._policy = RetryPolicy(
            max_attempts=config.max_retries + 1,
            retryable=is_retryable_api_error,
            backoff=self._backoff,
        )

    def _backoff(self, attempt: int, exc: BaseException) -> float:
        base = max(suggested_wait(exc) or 0.0, MIN_BACKOFF)
        return base * 2 ** (attempt - 1) + self._rng() * MAX_JITTER

    def _cached(self, image_ref: str) -> VisionDecision | None:
        entry = self._cache.get(image_ref)
        if entry is None:
            return None
        stored_at, decision = entry
        if self._clock() - stored_at > self._config.cache_ttl:
            self._cache.pop(image_ref, None)
            return None
        return decision

    def _remember(self, image_ref: str, decision: VisionDecision) -> None:
        now = self._clock()
        expired = [
            ref for ref, (stored_at, _) in self._cache.items()
            if now - stored_at > self._config.cache_ttl
        ]
        for ref in expired:
            del self._cache[ref]
        self._cache[image_ref] = (now, decision)

    async def _invoke(self, image_ref: str, messages: list[Any]) -> Any:
        """One outbound call, serialized and paced.

        Returns the cached decision instead when a concurrent call for the
        same image finished while this one waited for the lock.
        """
        async with self._lock:
            cached = self._cached(image_ref)
            if cached is not None:
                return cached
            if self._last_call_at is not None:
                wait = self._config.min_interval - (self._clock() - self._last_call_at)
                if wait > 0:
                    await self._sleep(wait)
            try:
                return await self._llm.ainvoke(messages)
            finally:
                self._last_call_at = self._clock()

    async def classify(self, image_ref: str) -> VisionDecision:
        """Classify one chart image.

        Raises:
            UpstreamRejected: The API refused the request (status attached)
            UpstreamUnavailable: The API could not be reached
            NoDecisionExtracted: The reply held no structured decision
        """
        cached = self._cached(image_ref)
        if cached is not None:
            logger.debug(f"Vision cache hit for {image_ref}")
            return cached

        entry = entry_time_label(datetime.now(), self._config.entry_offset_seconds)
        message = HumanMessage(
            content=[
                {"type": "text", "text": build_chart_prompt(entry)},
                {"type": "image_url", "image_url": {"url": image_ref}},
            ]
        )

        async def _attempt(attempt: int) -> Any:
            return await self._invoke(image_ref, [message])

        try:
            response = await retry_async(
                _attempt, self._policy, sleep=self._sleep, label="Vision classify"
            )
        except openai.APIStatusError as e:
            detail = e.body if e.body is not None else e.message
            logger.error(f"Vision API error ({e.status_code}): {detail}")
            raise UpstreamRejected(
                f"Vision API error ({e.status_code})", status=e.status_code, upstream_detail=detail
            ) from e
        except openai.APIConnectionError as e:
            logger.error(f"Vision API unreachable: {e}")
            raise UpstreamUnavailable(f"Vision API unreachable: {e}") from e

        if isinstance(response, VisionDecision):
            return response

        text = extract_text_content(getattr(response, "content", response))
        if not text.strip():
            raise NoDecisionExtracted("Empty vision response")
        logger.debug(f"Vision reply: {text}")

        decision = parse_decision(text)
        self._remember(image_ref, decision)
        logger.info(
            f"Vision decision: {decision.recommendation.value if decision.recommendation else '?'} "
            f"({decision.probability:.0f}%)"
        )
        return decision
