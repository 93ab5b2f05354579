from __future__ import annotations
import random
import time
from typing import Any, Dict, List, Optional

# Canned openings, picked at random per reply
MOCK_RESPONSES = [
    "I understand your question. Let me explain it in detail...",
    "That's a good question. As far as I can tell, the answer is...",
    "I'm glad you asked. Let me walk you through it:",
    "Based on my analysis, the solution to this problem is...",
    "Thanks for asking. This question touches on a few aspects:",
    "This is a complex topic, so let me start from the basics...",
    "I can help you with this. First, we need to...",
    "Interesting question! From a technical point of view...",
]

ECHO_MIN_LENGTH = 10
ECHO_PREFIX_LENGTH = 20

ELABORATION = (
    "\n\nThe point you raised, \"{excerpt}\", is an important one."
    "\n\nI can look at it from a few angles:"
    "\n\n1. Basic concepts\n2. Use cases\n3. Best practices"
    "\n\nWhich one would you like me to go into?"
)


class MockGateway:
    """Deterministic stand-in for the upstream completion service."""

    id = "mock"
    model = "deepseek-v3-mock"

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    def build_reply(self, user_content: str) -> str:
        reply = self.rng.choice(MOCK_RESPONSES)
        if len(user_content) > ECHO_MIN_LENGTH:
            excerpt = user_content[:ECHO_PREFIX_LENGTH]
            if len(user_content) > ECHO_PREFIX_LENGTH:
                excerpt += "..."
            reply += ELABORATION.format(excerpt=excerpt)
        return reply

    async def complete(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        last_user = next((m for m in reversed(messages) if m.get("role") == "user"), None)
        content = self.build_reply(last_user["content"] if last_user else "")
        now_ms = int(time.time() * 1000)
        return {
            "id": f"mock-{now_ms}",
            "object": "chat.completion",
            "created": now_ms,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": content},
                    "finish_reason": "stop",
                }
            ],
        }
