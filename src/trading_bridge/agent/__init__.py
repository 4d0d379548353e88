"""Agent module - LangChain vision classifier and automated decision loop."""

from trading_bridge.agent.automator import AutomatorFormRow, AutomatorOrchestrator, AutomatorResult
from trading_bridge.agent.orchestrator import OrchestratorService
from trading_bridge.agent.schemas import VisionDecision
from trading_bridge.agent.vision import VisionDecisionClient

__all__ = [
    "AutomatorFormRow",
    "AutomatorOrchestrator",
    "AutomatorResult",
    "OrchestratorService",
    "VisionDecision",
    "VisionDecisionClient",
]
