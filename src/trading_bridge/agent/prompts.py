"""Prompt templates for chart classification."""

from datetime import datetime, timedelta

CHART_ANALYSIS_PROMPT = """
IMPORTANT: You are a professional trader tasked with analyzing chart images and providing structured recommendations.
IMPORTANT: You must ONLY return a valid JSON object with no additional text before or after it.

Analyze the chart image where candles last 5 seconds, evaluating support, resistance, and trend patterns.

Evaluate:
- Recent price movement patterns
- Support and resistance levels
- Volume trends
- Candle formations
- Momentum indicators

Return a JSON with:
- recommendation: "buy" or "sell"
- probability: 60-90
- explanation: max 30 words
- entry: "{entry}"

IMPORTANT: entry: "{entry}", recommendation: "buy"/"sell", probability: 60-90 only.
"""


def entry_time_label(now: datetime, offset_seconds: int = 90) -> str:
    """Entry time shown to the model, ``HH:MM:SS``."""
    return (now + timedelta(seconds=offset_seconds)).strftime("%H:%M:%S")


def build_chart_prompt(entry: str) -> str:
    return CHART_ANALYSIS_PROMPT.format(entry=entry)
