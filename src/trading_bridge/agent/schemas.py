"""Agent output schemas."""

from dataclasses import dataclass
from typing import Any

from trading_bridge.core.types import Recommendation


@dataclass
class VisionDecision:
    """Structured buy/sell call extracted from a chart image."""

    recommendation: Recommendation | None
    probability: float = 0.0
    explanation: str = ""
    entry: str = ""

    def inverted(self) -> "VisionDecision":
        """Same decision with buy and sell swapped."""
        flipped = self.recommendation.inverted() if self.recommendation else None
        return VisionDecision(flipped, self.probability, self.explanation, self.entry)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recommendation": self.recommendation.value if self.recommendation else "",
            "probability": self.probability,
            "explanation": self.explanation,
            "entry": self.entry,
        }
