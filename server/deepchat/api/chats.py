from fastapi import APIRouter, Depends, Query
from typing import Dict, Optional

from deepchat.api.deps import get_app_settings, get_store
from deepchat.config import Settings
from deepchat.core.errors import InputError, NotFoundError
from deepchat.db.store import ConversationStore
from deepchat.schemas.chat import ChatCreate, ChatOut, ChatUpdate

router = APIRouter()


@router.get("/chats")
async def list_chats(
    userId: Optional[str] = Query(None),
    store: ConversationStore = Depends(get_store),
) -> Dict:
    """List chats, most recently updated first."""
    rows = await store.list_chats(user_id=userId)
    return {"chats": [ChatOut.from_row(r) for r in rows]}


@router.post("/chats", status_code=201)
async def create_chat(
    body: ChatCreate,
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict:
    if not body.title or not body.title.strip():
        raise InputError("Title must not be empty")
    chat = await store.create_chat(body.title, body.userId or settings.default_user_id)
    return {"chat": ChatOut.from_row(chat)}


@router.get("/chats/{chat_id}")
async def get_chat(chat_id: str, store: ConversationStore = Depends(get_store)) -> Dict:
    chat = await store.get_chat(chat_id)
    if not chat:
        raise NotFoundError("Chat not found")
    return {"chat": ChatOut.from_row(chat)}


@router.put("/chats/{chat_id}")
async def rename_chat(chat_id: str, body: ChatUpdate, store: ConversationStore = Depends(get_store)) -> Dict:
    if not body.title or not body.title.strip():
        raise InputError("Title must not be empty")
    chat = await store.update_chat_title(chat_id, body.title)
    if not chat:
        raise NotFoundError("Chat not found")
    return {"chat": ChatOut.from_row(chat)}


@router.delete("/chats/{chat_id}")
async def delete_chat(chat_id: str, store: ConversationStore = Depends(get_store)) -> Dict:
    """Delete a chat and every message in it."""
    removed = await store.delete_chat(chat_id)
    if removed is None:
        raise NotFoundError("Chat not found")
    return {"success": True, "deletedMessages": removed}
