"""Relay of a streamed completion to the HTTP caller.

The upstream speaks the OpenAI server-sent-events dialect: newline separated
``data: {json}`` lines ending with ``data: [DONE]``. The relay forwards each
``choices[0].delta.content`` as plain text the moment it is decoded, keeps a
copy of the whole reply, and stores the exchange once the upstream is done.

When the exchange opened a new chat, the response ends with a marker line::

    \\n\\n__CHAT_ID__{"chatId": "<id>"}\\n

``split_chat_id_marker`` removes it from received text and returns the id.
"""
from __future__ import annotations
import codecs
import json
import logging
from typing import AsyncIterator, List, Optional, Tuple

import anyio

from deepchat.db.store import ConversationStore
from deepchat.schemas.chat import ChatMessage
from deepchat.services.turns import record_turn

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"
CHAT_ID_MARKER = "\n\n__CHAT_ID__"


def chat_id_marker(chat_id: str) -> str:
    return CHAT_ID_MARKER + json.dumps({"chatId": chat_id}) + "\n"


def split_chat_id_marker(text: str) -> Tuple[str, Optional[str]]:
    idx = text.rfind(CHAT_ID_MARKER)
    if idx < 0:
        return text, None
    try:
        obj = json.loads(text[idx + len(CHAT_ID_MARKER):])
    except ValueError:
        return text, None
    if not isinstance(obj, dict) or not isinstance(obj.get("chatId"), str):
        return text, None
    return text[:idx], obj["chatId"]


def parse_event_line(line: str) -> Optional[str]:
    """Return the text fragment carried by one event line, if any."""
    line = line.strip()
    if not line:
        return None
    if line.startswith(DATA_PREFIX):
        line = line[len(DATA_PREFIX):].lstrip()
    if line == DONE_SENTINEL:
        return None
    try:
        obj = json.loads(line)
    except ValueError:
        logger.warning("skipping malformed stream line: %.200s", line)
        return None
    try:
        content = obj["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if isinstance(content, str) and content:
        return content
    return None


class LineDecoder:
    """Turns arbitrary byte chunks into complete text lines."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        text = self._pending + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        return lines

    def flush(self) -> List[str]:
        text = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [text] if text else []


class StreamRelay:
    def __init__(
        self,
        store: ConversationStore,
        messages: List[ChatMessage],
        chat_id: Optional[str] = None,
        user_id: Optional[str] = None,
        title_max_length: int = 50,
        max_reply_chars: Optional[int] = None,
    ) -> None:
        self.store = store
        self.user_message = next((m for m in reversed(messages) if m.role == "user"), None)
        self.chat_id = chat_id
        self.user_id = user_id
        self.title_max_length = title_max_length
        self.max_reply_chars = max_reply_chars

        self.parts: List[str] = []
        self.length = 0
        self.truncated = False
        self.read_error: Optional[BaseException] = None
        self.persist_error: Optional[BaseException] = None
        self.created_chat_id: Optional[str] = None
        self._persisted = False

    @property
    def text(self) -> str:
        return "".join(self.parts)

    def _accept(self, fragment: str) -> str:
        if self.max_reply_chars is not None:
            room = self.max_reply_chars - self.length
            if len(fragment) >= room:
                fragment = fragment[:room]
                self.truncated = True
        self.parts.append(fragment)
        self.length += len(fragment)
        return fragment

    async def _fragments(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
        decoder = LineDecoder()
        async for chunk in chunks:
            for line in decoder.feed(chunk):
                fragment = parse_event_line(line)
                if fragment:
                    yield fragment
        for line in decoder.flush():
            fragment = parse_event_line(line)
            if fragment:
                yield fragment

    async def persist(self) -> Optional[str]:
        """Store the exchange once. Errors are logged, never raised."""
        if self._persisted:
            return self.created_chat_id
        self._persisted = True
        # Runs even when the caller went away mid-stream
        with anyio.CancelScope(shield=True):
            try:
                self.created_chat_id = await record_turn(
                    self.store,
                    self.user_message,
                    self.text,
                    chat_id=self.chat_id,
                    user_id=self.user_id,
                    title_max_length=self.title_max_length,
                )
            except Exception as e:
                self.persist_error = e
                logger.exception("failed to persist streamed reply chat_id=%s: %s", self.chat_id, e)
        return self.created_chat_id

    async def run(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
        """Yield reply fragments, then the chat-id marker if a chat was created."""
        try:
            fragments = self._fragments(chunks)
            try:
                async for fragment in fragments:
                    fragment = self._accept(fragment)
                    if fragment:
                        yield fragment
                    if self.truncated:
                        logger.warning("reply reached %d chars, stopping upstream read", self.max_reply_chars)
                        break
            except Exception as e:
                self.read_error = e
                logger.warning("upstream stream ended with error after %d chars: %s", self.length, e)
            finally:
                await fragments.aclose()

            created = await self.persist()
            if created:
                yield chat_id_marker(created)
        finally:
            if not self._persisted:
                await self.persist()
