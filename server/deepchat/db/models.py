from __future__ import annotations
import uuid
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field

ROLES = ("user", "assistant")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class Chat(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    title: str = Field(min_length=1)
    user_id: str = Field(default="guest", index=True, min_length=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, index=True)


class Message(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    # Not a foreign key: the store deletes messages when their chat goes away
    chat_id: str = Field(index=True)
    role: str = Field(regex=r"^(user|assistant)$")
    content: str = Field(min_length=1)
    created_at: datetime = Field(default_factory=utcnow, index=True)
