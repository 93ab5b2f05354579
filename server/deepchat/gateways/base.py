from __future__ import annotations
from typing import Any, Dict, List, Protocol


class Gateway(Protocol):
    id: str

    async def complete(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Return an OpenAI-style chat.completion envelope."""
        ...


def reply_message(envelope: Dict[str, Any]) -> Dict[str, Any]:
    return envelope["choices"][0]["message"]
