from __future__ import annotations
import logging
from typing import List, Optional, Tuple

from deepchat.db.store import ConversationStore
from deepchat.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)

TITLE_ELLIPSIS = "..."
DEFAULT_TITLE = "New Conversation"


def derive_title(content: str, max_length: int = 50) -> str:
    if not content.strip():
        return DEFAULT_TITLE
    title = content[:max_length]
    if len(content) > max_length:
        title += TITLE_ELLIPSIS
    return title


async def record_turn(
    store: ConversationStore,
    user_message: Optional[ChatMessage],
    reply: str,
    chat_id: Optional[str] = None,
    user_id: Optional[str] = None,
    title_max_length: int = 50,
) -> Optional[str]:
    """Persist one user/assistant exchange.

    Appends to ``chat_id`` when given, otherwise opens a new chat owned by
    ``user_id``. Without either nothing is stored. Returns the id of a newly
    created chat, or None.
    """
    if not chat_id and not user_id:
        return None
    if user_message is None or not user_message.content:
        logger.warning("no user message to persist chat_id=%s user_id=%s", chat_id, user_id)
        return None

    created_id: Optional[str] = None
    if not chat_id:
        chat = await store.create_chat(derive_title(user_message.content, title_max_length), user_id)
        chat_id = created_id = chat.id
        logger.info("created chat id=%s user_id=%s", chat_id, user_id)

    items: List[Tuple[str, str]] = [("user", user_message.content)]
    if reply:
        items.append(("assistant", reply))
    else:
        logger.warning("empty assistant reply, storing user message only chat_id=%s", chat_id)
    await store.add_messages(chat_id, items)
    return created_id
