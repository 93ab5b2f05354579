from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from deepchat.core.errors import GATEWAY_ERROR_KINDS, GatewayError
from deepchat.gateways.base import Gateway

logger = logging.getLogger(__name__)


class FallbackGateway:
    """Try the primary gateway; on a gateway failure of a listed kind, ask the fallback."""

    id = "fallback"

    def __init__(self, primary: Gateway, fallback: Gateway, fallback_kinds: Optional[Iterable[str]] = None) -> None:
        self.primary = primary
        self.fallback = fallback
        self.fallback_kinds = frozenset(fallback_kinds) if fallback_kinds is not None else GATEWAY_ERROR_KINDS

    async def complete_with_source(self, messages: List[Dict[str, str]]) -> Tuple[Dict[str, Any], str]:
        try:
            return await self.primary.complete(messages), "primary"
        except GatewayError as e:
            if e.kind not in self.fallback_kinds:
                raise
            logger.warning("primary gateway=%s failed kind=%s, using %s", self.primary.id, e.kind, self.fallback.id)
        return await self.fallback.complete(messages), "fallback"

    async def complete(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        envelope, _ = await self.complete_with_source(messages)
        return envelope
