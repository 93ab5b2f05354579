import asyncio
from datetime import timedelta

import pytest

from deepchat.core.errors import InputError
from deepchat.db import session as db_session
from deepchat.db.models import utcnow
from deepchat.db.session import Database

pytestmark = pytest.mark.anyio


async def test_create_chat_keeps_title_verbatim(store):
    title = "  A rather long title that is definitely longer than fifty characters in total  "
    chat = await store.create_chat(title, "guest")
    assert chat.id
    assert chat.title == title
    assert chat.user_id == "guest"
    assert (await store.get_chat(chat.id)).title == title


@pytest.mark.parametrize("title", ["", "   "])
async def test_create_chat_rejects_empty_title(store, title):
    with pytest.raises(InputError):
        await store.create_chat(title, "guest")
    assert await store.list_chats() == []


async def test_list_chats_most_recent_first(store):
    first = await store.create_chat("first", "alice")
    second = await store.create_chat("second", "bob")
    assert [c.id for c in await store.list_chats()] == [second.id, first.id]

    # New activity moves a chat to the top
    await store.add_messages(first.id, [("user", "ping")])
    assert [c.id for c in await store.list_chats()] == [first.id, second.id]
    assert [c.id for c in await store.list_chats(user_id="bob")] == [second.id]


async def test_update_title(store):
    chat = await store.create_chat("old", "guest")
    updated = await store.update_chat_title(chat.id, "new")
    assert updated.title == "new"
    assert updated.updated_at >= chat.updated_at
    assert await store.update_chat_title("missing", "new") is None
    with pytest.raises(InputError):
        await store.update_chat_title(chat.id, "")


async def test_messages_listed_in_write_order(store):
    chat = await store.create_chat("t", "guest")
    await store.add_messages(chat.id, [("user", "q1"), ("assistant", "a1")])
    await store.add_messages(chat.id, [("user", "q2"), ("assistant", "a2")])
    rows = await store.list_messages(chat.id)
    assert [(m.role, m.content) for m in rows] == [
        ("user", "q1"),
        ("assistant", "a1"),
        ("user", "q2"),
        ("assistant", "a2"),
    ]
    assert all(m.chat_id == chat.id for m in rows)


async def test_list_messages_for_unknown_chat_is_empty(store):
    assert await store.list_messages("nope") == []


async def test_add_messages_validates_role_and_content(store):
    chat = await store.create_chat("t", "guest")
    with pytest.raises(InputError):
        await store.add_messages(chat.id, [("system", "hello")])
    with pytest.raises(InputError):
        await store.add_messages(chat.id, [("user", "")])
    assert await store.list_messages(chat.id) == []


async def test_delete_chat_cascades_only_its_messages(store):
    doomed = await store.create_chat("doomed", "guest")
    kept = await store.create_chat("kept", "guest")
    await store.add_messages(doomed.id, [("user", "a"), ("assistant", "b")])
    await store.add_messages(kept.id, [("user", "c"), ("assistant", "d")])

    assert await store.delete_chat(doomed.id) == 2
    assert await store.get_chat(doomed.id) is None
    assert await store.list_messages(doomed.id) == []
    assert [m.content for m in await store.list_messages(kept.id)] == ["c", "d"]
    assert await store.delete_chat(doomed.id) is None


async def test_database_connects_once_and_retries_after_failure(tmp_path):
    bad = Database(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}")
    with pytest.raises(Exception):
        await bad.engine()
    assert not bad.connected

    good = Database(f"sqlite+aiosqlite:///{tmp_path / 'ok.db'}")
    engine = await good.engine()
    assert await good.engine() is engine
    await good.dispose()
    assert not good.connected


async def test_concurrent_first_use_creates_one_engine(tmp_path, monkeypatch):
    created = []
    real_create = db_session.create_async_engine

    def counting_create(*args, **kwargs):
        engine = real_create(*args, **kwargs)
        created.append(engine)
        return engine

    monkeypatch.setattr(db_session, "create_async_engine", counting_create)
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")

    engines = await asyncio.gather(*(database.engine() for _ in range(8)))

    assert len(created) == 1
    assert all(engine is created[0] for engine in engines)
    await database.dispose()


async def test_timestamps_are_timezone_aware_utc(store):
    assert utcnow().utcoffset() == timedelta(0)
    chat = await store.create_chat("t", "guest")
    (message,) = await store.add_messages(chat.id, [("user", "hi")])
    assert message.created_at is not None
    assert [m.id for m in await store.list_messages(chat.id)] == [message.id]
