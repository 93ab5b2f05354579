from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, BaseModel, Field

from deepchat.db.models import Chat, Message


class ChatMessage(BaseModel):
    role: str = Field(..., pattern=r"^(user|assistant|system)$")
    content: str


class CompletionRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)
    chatId: Optional[str] = None
    userId: Optional[str] = None

    def last_user_message(self) -> Optional[ChatMessage]:
        return next((m for m in reversed(self.messages) if m.role == "user"), None)

    def payload_messages(self) -> List[dict]:
        return [m.model_dump() for m in self.messages]


class ChatCreate(BaseModel):
    title: Optional[str] = None
    userId: Optional[str] = Field(default=None, validation_alias=AliasChoices("userId", "ownerId"))


class ChatUpdate(BaseModel):
    title: Optional[str] = None


class MessageCreate(BaseModel):
    role: str = Field(default="user", pattern=r"^(user|assistant)$")
    content: Optional[str] = None
    chatId: Optional[str] = None


class ChatOut(BaseModel):
    id: str
    title: str
    userId: str
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_row(cls, row: Chat) -> "ChatOut":
        return cls(
            id=row.id,
            title=row.title,
            userId=row.user_id,
            createdAt=row.created_at,
            updatedAt=row.updated_at,
        )


class MessageOut(BaseModel):
    id: str
    role: str
    content: str
    chatId: str
    createdAt: datetime

    @classmethod
    def from_row(cls, row: Message) -> "MessageOut":
        return cls(id=row.id, role=row.role, content=row.content, chatId=row.chat_id, createdAt=row.created_at)
