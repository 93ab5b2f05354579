from contextlib import AsyncExitStack
import logging
from typing import Any, Dict

import anyio
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from deepchat.api.deps import get_app_settings, get_fallback_gateway, get_gateway, get_mock_gateway, get_store
from deepchat.config import Settings
from deepchat.db.store import ConversationStore
from deepchat.gateways.base import Gateway, reply_message
from deepchat.gateways.fallback import FallbackGateway
from deepchat.gateways.mock import MockGateway
from deepchat.gateways.upstream import CompletionGateway
from deepchat.schemas.chat import CompletionRequest
from deepchat.services.relay import StreamRelay
from deepchat.services.turns import record_turn

router = APIRouter()
logger = logging.getLogger(__name__)


async def _save(
    envelope: Dict[str, Any],
    request: CompletionRequest,
    store: ConversationStore,
    settings: Settings,
) -> Dict[str, Any]:
    reply = reply_message(envelope).get("content") or ""
    created = await record_turn(
        store,
        request.last_user_message(),
        reply,
        chat_id=request.chatId,
        user_id=request.userId,
        title_max_length=settings.title_max_length,
    )
    if created:
        return {**envelope, "chatId": created}
    return envelope


async def _complete(
    gateway: Gateway,
    request: CompletionRequest,
    store: ConversationStore,
    settings: Settings,
) -> Dict[str, Any]:
    logger.info("completion gateway=%s messages=%d chat_id=%s", gateway.id, len(request.messages), request.chatId)
    envelope = await gateway.complete(request.payload_messages())
    return await _save(envelope, request, store, settings)


@router.post("/generate")
async def generate(
    request: CompletionRequest,
    gateway: CompletionGateway = Depends(get_gateway),
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """Blocking completion; returns the upstream envelope."""
    return await _complete(gateway, request, store, settings)


@router.post("/generate/mock")
async def generate_mock(
    request: CompletionRequest,
    gateway: MockGateway = Depends(get_mock_gateway),
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """Canned completion with the same shape and side effects as /generate."""
    return await _complete(gateway, request, store, settings)


@router.post("/generate/fallback")
async def generate_with_fallback(
    request: CompletionRequest,
    gateway: FallbackGateway = Depends(get_fallback_gateway),
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """Upstream completion, answered by the mock gateway when the upstream fails."""
    envelope, source = await gateway.complete_with_source(request.payload_messages())
    saved = await _save(envelope, request, store, settings)
    return {**saved, "source": source}


@router.post("/generate/stream")
async def generate_stream(
    request: CompletionRequest,
    gateway: CompletionGateway = Depends(get_gateway),
    store: ConversationStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """Stream the reply as plain text fragments while persisting it afterwards."""
    logger.info("/generate/stream start messages=%d chat_id=%s", len(request.messages), request.chatId)
    # Open upstream before responding so failures still map to an HTTP status
    stack = AsyncExitStack()
    chunks = await stack.enter_async_context(gateway.stream(request.payload_messages()))

    relay = StreamRelay(
        store,
        request.messages,
        chat_id=request.chatId,
        user_id=request.userId,
        title_max_length=settings.title_max_length,
        max_reply_chars=settings.relay_max_reply_chars,
    )

    async def body():
        try:
            async for piece in relay.run(chunks):
                yield piece
        finally:
            with anyio.CancelScope(shield=True):
                await stack.aclose()
            logger.info(
                "/generate/stream done chars=%d created_chat=%s read_error=%s",
                relay.length,
                relay.created_chat_id,
                relay.read_error,
            )

    return StreamingResponse(
        body(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
        # Also closes upstream when the body is never iterated; a second aclose is a no-op
        background=BackgroundTask(stack.aclose),
    )
