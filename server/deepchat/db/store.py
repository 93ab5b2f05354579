from __future__ import annotations
from datetime import timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete
from sqlmodel import select, desc

from deepchat.core.errors import InputError
from deepchat.db.models import Chat, Message, ROLES, utcnow
from deepchat.db.session import Database


class ConversationStore:
    """Data access for chats and their messages. No business rules beyond field checks."""

    def __init__(self, database: Database) -> None:
        self.database = database

    # Chats
    async def list_chats(self, user_id: Optional[str] = None) -> List[Chat]:
        async with self.database.session() as session:
            stmt = select(Chat)
            if user_id:
                stmt = stmt.where(Chat.user_id == user_id)
            stmt = stmt.order_by(desc(Chat.updated_at))
            result = await session.exec(stmt)
            return list(result.all())

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        async with self.database.session() as session:
            return await session.get(Chat, chat_id)

    async def create_chat(self, title: str, user_id: str) -> Chat:
        if not title or not title.strip():
            raise InputError("Title must not be empty")
        if not user_id:
            raise InputError("Owner id must not be empty")
        async with self.database.session() as session:
            chat = Chat(title=title, user_id=user_id)
            session.add(chat)
            await session.flush()
            await session.refresh(chat)
            return chat

    async def update_chat_title(self, chat_id: str, title: str) -> Optional[Chat]:
        if not title or not title.strip():
            raise InputError("Title must not be empty")
        async with self.database.session() as session:
            chat = await session.get(Chat, chat_id)
            if not chat:
                return None
            chat.title = title
            chat.updated_at = utcnow()
            await session.flush()
            await session.refresh(chat)
            return chat

    async def delete_chat(self, chat_id: str) -> Optional[int]:
        """Delete a chat and its messages. Returns the number of messages removed, None if no such chat."""
        async with self.database.session() as session:
            chat = await session.get(Chat, chat_id)
            if not chat:
                return None
            result = await session.execute(delete(Message).where(Message.chat_id == chat_id))
            await session.delete(chat)
            return result.rowcount or 0

    # Messages
    async def list_messages(self, chat_id: str) -> List[Message]:
        async with self.database.session() as session:
            stmt = (
                select(Message)
                .where(Message.chat_id == chat_id)
                .order_by(Message.created_at, Message.id)
            )
            result = await session.exec(stmt)
            return list(result.all())

    async def add_messages(self, chat_id: str, items: Sequence[Tuple[str, str]]) -> List[Message]:
        """Append (role, content) pairs to a chat in one write.

        Timestamps increase strictly in the given order so listing returns the
        messages exactly as they were written.
        """
        for role, content in items:
            if role not in ROLES:
                raise InputError(f"Invalid role: {role!r}")
            if not content:
                raise InputError("Message content must not be empty")
        now = utcnow()
        async with self.database.session() as session:
            rows = [
                Message(chat_id=chat_id, role=role, content=content, created_at=now + timedelta(microseconds=i))
                for i, (role, content) in enumerate(items)
            ]
            session.add_all(rows)
            # Touch chat timestamp
            chat = await session.get(Chat, chat_id)
            if chat and rows:
                chat.updated_at = rows[-1].created_at
            await session.flush()
            for row in rows:
                await session.refresh(row)
            return rows
