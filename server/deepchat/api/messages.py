from fastapi import APIRouter, Depends, Query
from typing import Dict, Optional

from deepchat.api.deps import get_store
from deepchat.core.errors import InputError
from deepchat.db.store import ConversationStore
from deepchat.schemas.chat import MessageCreate, MessageOut

router = APIRouter()

CANNED_REPLY = (
    "You sent: \"{content}\"\n\n"
    "This is a simulated reply; the completion endpoints produce real answers."
)


@router.get("/messages")
async def list_messages(chatId: Optional[str] = Query(None), store: ConversationStore = Depends(get_store)) -> Dict:
    """List a chat's messages, oldest first."""
    if not chatId:
        raise InputError("Missing chatId parameter")
    rows = await store.list_messages(chatId)
    return {"messages": [MessageOut.from_row(r) for r in rows]}


@router.post("/messages", status_code=201)
async def create_message(body: MessageCreate, store: ConversationStore = Depends(get_store)) -> Dict:
    """Append a message and a canned assistant reply."""
    if not body.content or not body.chatId:
        raise InputError("Message content and chatId are required")
    rows = await store.add_messages(
        body.chatId,
        [(body.role, body.content), ("assistant", CANNED_REPLY.format(content=body.content))],
    )
    return {"messages": [MessageOut.from_row(r) for r in rows]}
