"""LLM client configuration for langchain-openai."""

from typing import Any

from trading_bridge.config import VisionConfig


def create_vision_llm(config: VisionConfig) -> Any:
    """Create the LangChain chat model used to classify chart images.

    Args:
        config: Vision API configuration

    Returns:
        Configured ChatOpenAI instance

    Note:
        Client-side retries are disabled; VisionDecisionClient applies its
        own rate-limit aware retry policy.
    """
    # Lazy import to avoid loading langchain when not needed
    from langchain_openai import ChatOpenAI
    from pydantic import SecretStr

    return ChatOpenAI(
        model=config.model,
        api_key=SecretStr(config.api_key),
        base_url=config.base_url,
        temperature=0.0,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        max_retries=0,
    )
