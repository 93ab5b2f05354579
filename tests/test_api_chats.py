def create(client, title="My chat", **extra):
    resp = client.post("/api/chats", json={"title": title, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()["chat"]


def test_health(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/").json()["service"] == "deepchat"


def test_create_defaults_owner_to_guest(client):
    chat = create(client)
    assert chat["title"] == "My chat"
    assert chat["userId"] == "guest"
    assert chat["id"]
    assert chat["createdAt"] and chat["updatedAt"]


def test_create_accepts_owner_id_alias(client):
    assert create(client, ownerId="alice")["userId"] == "alice"
    assert create(client, userId="bob")["userId"] == "bob"


def test_create_stores_long_title_verbatim(client):
    title = "t" * 120
    assert create(client, title)["title"] == title


def test_create_empty_title_is_400(client):
    for body in ({"title": ""}, {"title": "   "}, {}):
        resp = client.post("/api/chats", json=body)
        assert resp.status_code == 400
        assert resp.json()["kind"] == "invalid_input"
    assert client.get("/api/chats").json() == {"chats": []}


def test_list_orders_by_updated_desc_and_filters_owner(client):
    a = create(client, "a", userId="alice")
    b = create(client, "b", userId="bob")
    ids = [c["id"] for c in client.get("/api/chats").json()["chats"]]
    assert ids == [b["id"], a["id"]]

    client.put(f"/api/chats/{a['id']}", json={"title": "a2"})
    ids = [c["id"] for c in client.get("/api/chats").json()["chats"]]
    assert ids == [a["id"], b["id"]]

    only_bob = client.get("/api/chats", params={"userId": "bob"}).json()["chats"]
    assert [c["id"] for c in only_bob] == [b["id"]]


def test_get_chat(client):
    chat = create(client)
    assert client.get(f"/api/chats/{chat['id']}").json()["chat"] == chat

    resp = client.get("/api/chats/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Chat not found", "kind": "not_found"}


def test_rename_chat(client):
    chat = create(client)
    resp = client.put(f"/api/chats/{chat['id']}", json={"title": "Renamed"})
    assert resp.status_code == 200
    assert resp.json()["chat"]["title"] == "Renamed"

    assert client.put(f"/api/chats/{chat['id']}", json={"title": ""}).status_code == 400
    assert client.put("/api/chats/missing", json={"title": "x"}).status_code == 404


def test_delete_chat_cascades(client):
    doomed = create(client, "doomed")
    kept = create(client, "kept")
    client.post("/api/messages", json={"content": "bye", "chatId": doomed["id"]})
    client.post("/api/messages", json={"content": "stay", "chatId": kept["id"]})

    resp = client.delete(f"/api/chats/{doomed['id']}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "deletedMessages": 2}

    assert client.get(f"/api/chats/{doomed['id']}").status_code == 404
    assert client.get("/api/messages", params={"chatId": doomed["id"]}).json() == {"messages": []}
    kept_messages = client.get("/api/messages", params={"chatId": kept["id"]}).json()["messages"]
    assert len(kept_messages) == 2

    assert client.delete(f"/api/chats/{doomed['id']}").status_code == 404
