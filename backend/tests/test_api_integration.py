"""Integration tests exercising API endpoints via FastAPI's TestClient."""

from __future__ import annotations

from fastapi.testclient import TestClient

from app.models import Conversation, Message


def login(client: TestClient, name: str) -> tuple[int, str]:
    response = client.post("/api/session", json={"name": name})
    assert response.status_code in (200, 201), response.text
    body = response.json()
    return body["user_id"], body["identifier"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def post_message(client: TestClient, token: str, conversation_id: int, content: str, **extra) -> dict:
    response = client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"content": content, **extra},
        headers=auth_headers(token),
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_session_registers_then_logs_in(client: TestClient):
    first = client.post("/api/session", json={"name": "  alice "})
    assert first.status_code == 201, first.text
    second = client.post("/api/session", json={"name": "Alice"})
    assert second.status_code == 200, second.text

    assert first.json()["user_id"] == second.json()["user_id"]
    assert first.json()["token_type"] == "bearer"

    me = client.get("/api/users/me", headers=auth_headers(second.json()["identifier"]))
    assert me.status_code == 200
    assert me.json()["username"] == "alice"


def test_session_rejects_short_names(client: TestClient):
    response = client.post("/api/session", json={"name": "al"})
    assert response.status_code == 422


def test_requests_without_token_are_rejected(client: TestClient):
    assert client.get("/api/conversations").status_code == 401
    response = client.get("/api/conversations", headers=auth_headers("garbage"))
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


def test_user_directory_and_profile_updates(client: TestClient):
    _, alice_token = login(client, "alice")
    login(client, "alfred")
    login(client, "bob")

    response = client.get("/api/users", params={"name": "AL"}, headers=auth_headers(alice_token))
    assert response.status_code == 200
    assert [user["username"] for user in response.json()] == ["alfred", "alice"]

    taken = client.put("/api/users/me/username", json={"username": "bob"}, headers=auth_headers(alice_token))
    assert taken.status_code == 409

    renamed = client.put("/api/users/me/username", json={"username": "ally"}, headers=auth_headers(alice_token))
    assert renamed.status_code == 200
    assert renamed.json()["username"] == "ally"

    photo = client.put(
        "/api/users/me/photo",
        json={"photo": "https://example.com/ally.png"},
        headers=auth_headers(alice_token),
    )
    assert photo.status_code == 200
    assert photo.json()["profile_picture"] == "https://example.com/ally.png"


def test_direct_conversation_is_reused(client: TestClient):
    alice_id, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")

    created = client.post("/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token))
    assert created.status_code == 201, created.text
    assert created.json()["is_group"] is False
    assert created.json()["members"] == sorted([alice_id, bob_id])

    again = client.post("/api/conversations", json={"members": [alice_id]}, headers=auth_headers(bob_token))
    assert again.status_code == 200, again.text
    assert again.json()["id"] == created.json()["id"]


def test_conversation_creation_validation(client: TestClient):
    alice_id, alice_token = login(client, "alice")
    bob_id, _ = login(client, "bob")
    carol_id, _ = login(client, "carol")

    only_self = client.post("/api/conversations", json={"members": [alice_id]}, headers=auth_headers(alice_token))
    assert only_self.status_code == 400

    unnamed = client.post(
        "/api/conversations", json={"members": [bob_id, carol_id]}, headers=auth_headers(alice_token)
    )
    assert unnamed.status_code == 422

    unknown = client.post("/api/conversations", json={"members": [999]}, headers=auth_headers(alice_token))
    assert unknown.status_code == 404


def test_conversation_access_control(client: TestClient):
    _, alice_token = login(client, "alice")
    bob_id, _ = login(client, "bob")
    _, mallory_token = login(client, "mallory")
    conversation = client.post(
        "/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)
    ).json()

    forbidden = client.get(f"/api/conversations/{conversation['id']}", headers=auth_headers(mallory_token))
    assert forbidden.status_code == 403

    missing = client.get("/api/conversations/4242", headers=auth_headers(alice_token))
    assert missing.status_code == 404

    post = client.post(
        f"/api/conversations/{conversation['id']}/messages",
        json={"content": "let me in"},
        headers=auth_headers(mallory_token),
    )
    assert post.status_code == 403


def test_message_states_follow_the_recipient(client: TestClient, session_factory):
    _, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")
    conversation_id = client.post(
        "/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)
    ).json()["id"]
    message = post_message(client, alice_token, conversation_id, "ping?")
    assert message["state"] == "sent"

    listing = client.get("/api/conversations", headers=auth_headers(bob_token))
    assert listing.status_code == 200
    assert listing.json()[0]["last_message"]["state"] == "received"

    detail = client.get(f"/api/conversations/{conversation_id}", headers=auth_headers(bob_token))
    assert detail.status_code == 200
    assert [item["state"] for item in detail.json()["messages"]] == ["read"]
    assert {user["username"] for user in detail.json()["participants"]} == {"alice", "bob"}

    with session_factory() as session:
        stored = session.get(Message, message["id"])
        assert stored is not None
        assert stored.state.value == "read"


def test_replies_forwarding_and_deletion(client: TestClient, session_factory):
    _, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")
    carol_id, _ = login(client, "carol")
    direct_id = client.post(
        "/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)
    ).json()["id"]
    group_id = client.post(
        "/api/conversations",
        json={"name": "crew", "members": [bob_id, carol_id]},
        headers=auth_headers(alice_token),
    ).json()["id"]

    original = post_message(client, alice_token, direct_id, "original")
    reply = post_message(client, bob_token, direct_id, "answer", reply_to=original["id"])
    assert reply["reply_to_id"] == original["id"]
    assert reply["reply_to"]["content"] == "original"

    foreign = client.post(
        f"/api/conversations/{group_id}/messages",
        json={"content": "wrong thread", "reply_to": original["id"]},
        headers=auth_headers(alice_token),
    )
    assert foreign.status_code == 400

    forwarded = client.post(
        f"/api/conversations/{direct_id}/messages/{original['id']}/forward",
        json={"conversation_id": group_id},
        headers=auth_headers(bob_token),
    )
    assert forwarded.status_code == 201, forwarded.text
    assert forwarded.json()["is_forwarded"] is True
    assert forwarded.json()["conversation_id"] == group_id
    assert forwarded.json()["sender_id"] == bob_id

    not_sender = client.delete(
        f"/api/conversations/{direct_id}/messages/{original['id']}", headers=auth_headers(bob_token)
    )
    assert not_sender.status_code == 403

    deleted = client.delete(
        f"/api/conversations/{direct_id}/messages/{original['id']}", headers=auth_headers(alice_token)
    )
    assert deleted.status_code == 204

    with session_factory() as session:
        assert session.get(Message, original["id"]) is None
        assert session.get(Message, reply["id"]).reply_to_id is None


def test_reactions_are_one_per_user(client: TestClient):
    _, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")
    conversation_id = client.post(
        "/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)
    ).json()["id"]
    message = post_message(client, alice_token, conversation_id, "vote")
    url = f"/api/conversations/{conversation_id}/messages/{message['id']}/reaction"

    client.put(url, json={"emoji": "👍"}, headers=auth_headers(alice_token))
    client.put(url, json={"emoji": "👍"}, headers=auth_headers(bob_token))
    changed = client.put(url, json={"emoji": "❤️"}, headers=auth_headers(bob_token))
    assert changed.status_code == 200
    assert changed.json()["reactions"] == [{"emoji": "❤️", "count": 1}, {"emoji": "👍", "count": 1}]

    removed = client.delete(url, headers=auth_headers(bob_token))
    assert removed.status_code == 204
    assert client.delete(url, headers=auth_headers(bob_token)).status_code == 404

    empty = client.put(url, json={"emoji": " "}, headers=auth_headers(bob_token))
    assert empty.status_code == 422


def test_comments_can_only_be_removed_by_author(client: TestClient):
    _, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")
    conversation_id = client.post(
        "/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)
    ).json()["id"]
    message = post_message(client, alice_token, conversation_id, "thoughts?")
    base = f"/api/conversations/{conversation_id}/messages/{message['id']}/comments"

    comment = client.post(base, json={"content": "looks good"}, headers=auth_headers(bob_token))
    assert comment.status_code == 201, comment.text
    assert comment.json()["sender_name"] == "bob"

    listing = client.get(base, headers=auth_headers(alice_token))
    assert [item["content"] for item in listing.json()] == ["looks good"]

    forbidden = client.delete(f"{base}/{comment.json()['id']}", headers=auth_headers(alice_token))
    assert forbidden.status_code == 403

    removed = client.delete(f"{base}/{comment.json()['id']}", headers=auth_headers(bob_token))
    assert removed.status_code == 204
    assert client.get(base, headers=auth_headers(alice_token)).json() == []


def test_group_membership_management(client: TestClient, session_factory):
    alice_id, alice_token = login(client, "alice")
    bob_id, bob_token = login(client, "bob")
    carol_id, carol_token = login(client, "carol")
    dave_id, _ = login(client, "dave")
    group = client.post(
        "/api/conversations",
        json={"name": "crew", "members": [bob_id, carol_id]},
        headers=auth_headers(alice_token),
    ).json()
    url = f"/api/conversations/{group['id']}"

    added = client.post(f"{url}/members", json={"user_id": dave_id}, headers=auth_headers(bob_token))
    assert added.status_code == 200, added.text
    assert added.json()["members"] == sorted([alice_id, bob_id, carol_id, dave_id])
    again = client.post(f"{url}/members", json={"user_id": dave_id}, headers=auth_headers(bob_token))
    assert again.json()["members"] == added.json()["members"]

    renamed = client.put(f"{url}/name", json={"name": "new crew"}, headers=auth_headers(carol_token))
    assert renamed.json()["name"] == "new crew"
    photo = client.put(f"{url}/photo", json={"photo": "data:image/png;base64,AAAA"}, headers=auth_headers(carol_token))
    assert photo.json()["picture"] == "data:image/png;base64,AAAA"

    left = client.delete(f"{url}/members/me", headers=auth_headers(carol_token))
    assert left.status_code == 204
    assert client.get(url, headers=auth_headers(carol_token)).status_code == 403

    direct = client.post("/api/conversations", json={"members": [bob_id]}, headers=auth_headers(alice_token)).json()
    rename_direct = client.put(
        f"/api/conversations/{direct['id']}/name", json={"name": "nope"}, headers=auth_headers(alice_token)
    )
    assert rename_direct.status_code == 400

    for token in (alice_token, bob_token):
        client.delete(f"/api/conversations/{direct['id']}/members/me", headers=auth_headers(token))
    with session_factory() as session:
        assert session.get(Conversation, direct["id"]) is None


def test_contacts_roundtrip(client: TestClient):
    alice_id, alice_token = login(client, "alice")
    bob_id, _ = login(client, "bob")

    assert client.post("/api/contacts", json={"user_id": alice_id}, headers=auth_headers(alice_token)).status_code == 400
    assert client.post("/api/contacts", json={"user_id": 999}, headers=auth_headers(alice_token)).status_code == 404

    added = client.post("/api/contacts", json={"user_id": bob_id}, headers=auth_headers(alice_token))
    assert added.status_code == 201
    duplicate = client.post("/api/contacts", json={"user_id": bob_id}, headers=auth_headers(alice_token))
    assert duplicate.status_code == 200

    listing = client.get("/api/contacts", headers=auth_headers(alice_token))
    assert [user["id"] for user in listing.json()] == [bob_id]

    assert client.delete(f"/api/contacts/{bob_id}", headers=auth_headers(alice_token)).status_code == 204
    assert client.delete(f"/api/contacts/{bob_id}", headers=auth_headers(alice_token)).status_code == 404


def test_system_endpoints(client: TestClient):
    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/liveness").json() == {"status": "ok"}

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "realtime_active_connections" in metrics.text
