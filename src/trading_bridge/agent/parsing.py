"""Parsing of vision model replies into decisions."""

import json
import logging
import re
from typing import Any

from trading_bridge.agent.schemas import VisionDecision
from trading_bridge.core.errors import NoDecisionExtracted
from trading_bridge.core.types import Recommendation

logger = logging.getLogger(__name__)

# Accepted spellings per field, English first
RECOMMENDATION_KEYS = ("recommendation", "recomendacao", "recomendação")
PROBABILITY_KEYS = ("probability", "probabilidade")
EXPLANATION_KEYS = ("explanation", "explicacao", "explicação")
ENTRY_KEYS = ("entry", "entrada")

RECOMMENDATION_ALIASES = {
    "buy": Recommendation.BUY,
    "compra": Recommendation.BUY,
    "call": Recommendation.BUY,
    "sell": Recommendation.SELL,
    "venda": Recommendation.SELL,
    "put": Recommendation.SELL,
}

_MARKDOWN_PAIR = re.compile(r"\*\*([^*]+)\*\*:\s*([\s\S]*?)(?=\n\*\*|$)")
_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")


def extract_text_content(content: Any) -> str:
    """Extract text content from a chat model response.

    Handles a plain string, a list of content blocks or a dict with a
    ``text`` field.
    """
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        text_parts = []
        for block in content:
            if isinstance(block, dict):
                if block.get("type") == "text" or (
                    "text" in block and block.get("type") != "thinking"
                ):
                    text_parts.append(block.get("text", ""))
            elif isinstance(block, str):
                text_parts.append(block)
        return "\n".join(text_parts) if text_parts else str(content)

    if isinstance(content, dict):
        if "text" in content:
            return str(content["text"])
        return str(content)

    return str(content)


def _first_json_object(text: str) -> dict[str, Any] | None:
    start = text.find("{")
    if start == -1:
        return None
    decoder = json.JSONDecoder()
    while start != -1:
        try:
            data, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(data, dict):
            return data
        start = text.find("{", start + 1)
    return None


def _markdown_pairs(text: str) -> dict[str, Any] | None:
    """``**key**: value`` lines, as some models answer despite the prompt."""
    pairs = {m.group(1).strip().lower(): m.group(2).strip() for m in _MARKDOWN_PAIR.finditer(text)}
    return pairs or None


def _pick(data: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return None


def _probability(value: Any) -> float:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return float(value)
    match = _NUMBER.search(str(value or ""))
    return float(match.group(1)) if match else 0.0


def parse_decision(text: str) -> VisionDecision:
    """Parse a model reply.

    Missing or unreadable fields default to empty values.

    Raises:
        NoDecisionExtracted: Neither a JSON object nor markdown pairs found
    """
    data = _first_json_object(text)
    if data is None:
        data = _markdown_pairs(text)
    if data is None:
        logger.error(f"No structured decision in vision reply: {text[:500]}")
        raise NoDecisionExtracted("Could not extract a decision from the vision response")

    data = {str(k).strip().lower(): v for k, v in data.items()}
    raw_recommendation = str(_pick(data, RECOMMENDATION_KEYS) or "").strip().lower()
    return VisionDecision(
        recommendation=RECOMMENDATION_ALIASES.get(raw_recommendation),
        probability=_probability(_pick(data, PROBABILITY_KEYS)),
        explanation=str(_pick(data, EXPLANATION_KEYS) or ""),
        entry=str(_pick(data, ENTRY_KEYS) or ""),
    )
