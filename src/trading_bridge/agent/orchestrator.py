"""Entry point dispatching uploaded charts to the automator or the analyzer."""

import logging
from typing import Any

from trading_bridge.agent.automator import AutomatorOrchestrator, AutomatorResult, parse_form_rows
from trading_bridge.core.errors import InvalidArgument
from trading_bridge.core.types import OrchestratorKind
from trading_bridge.market.models import to_num
from trading_bridge.storage.images import ImageStore

logger = logging.getLogger(__name__)


def _balance_id(payload: dict[str, Any]) -> int | None:
    raw = payload.get("fromBalanceId") or payload.get("balance_id")
    if raw in (None, ""):
        return None
    number = to_num(raw)
    if number is None:
        raise InvalidArgument(f"Invalid balance id: {raw}")
    return int(number)


class OrchestratorService:
    """Stores the inbound image, then runs the requested workflow."""

    def __init__(self, images: ImageStore, automator: AutomatorOrchestrator) -> None:
        self._images = images
        self._automator = automator

    async def handle(
        self, user_id: str, kind: OrchestratorKind | str, payload: dict[str, Any]
    ) -> AutomatorResult | dict[str, Any]:
        """Run ``kind`` for the user.

        Raises:
            InvalidArgument: Unknown kind, missing image or invalid form
        """
        if not kind:
            raise InvalidArgument("kind is required")
        try:
            workflow = OrchestratorKind(kind)
        except ValueError as e:
            raise InvalidArgument(f"Invalid kind: {kind}") from e
        if not isinstance(payload, dict) or not payload.get("img"):
            raise InvalidArgument("img is required")

        if workflow is OrchestratorKind.AUTOMATOR:
            row = parse_form_rows(payload.get("form"))
            balance_id = _balance_id(payload)
            image_url = await self._store(payload["img"])
            logger.info(f"Automator run for {user_id} on {row.instrument}")
            return await self._automator.run(
                user_id,
                image_url,
                row,
                balance_type=payload.get("type_balance") or payload.get("balance_type"),
                balance_id=balance_id,
            )

        image_url = await self._store(payload["img"])
        return {"ok": True, "img": image_url}

    async def _store(self, data: str) -> str:
        try:
            stored = await self._images.save_temp_base64(data)
        except OSError as e:
            logger.error(f"Failed to store image: {e}")
            raise InvalidArgument("Image could not be processed") from e
        return stored.public_url
