from bson import ObjectId


CHAT = {"buyerId": "buyer1", "sellerId": "seller1", "petId": "pet1"}


def test_create_then_reuse(client, db):
    first = client.post("/api/chats", json=CHAT)
    assert first.status_code == 201
    second = client.post("/api/chats", json=CHAT)
    assert second.status_code == 200
    assert first.json()["chatId"] == second.json()["chatId"]
    assert db.chats.count_documents({}) == 1


def test_different_pet_gets_new_chat(client):
    first = client.post("/api/chats", json=CHAT).json()["chatId"]
    other = client.post("/api/chats", json={**CHAT, "petId": "pet2"}).json()["chatId"]
    assert first != other


def test_create_requires_all_ids(client):
    assert client.post("/api/chats", json={"buyerId": "b", "sellerId": "s"}).status_code == 400
    assert client.post("/api/chats", json={**CHAT, "petId": ""}).status_code == 400


def test_new_chat_shape(client):
    chat_id = client.post("/api/chats", json=CHAT).json()["chatId"]
    chat = client.get(f"/api/chats/{chat_id}").json()
    assert chat["id"] == chat_id
    assert chat["memberIds"] == ["buyer1", "seller1"]
    assert chat["messages"] == []


def test_post_messages_in_order(client):
    chat_id = client.post("/api/chats", json=CHAT).json()["chatId"]
    response = client.post(f"/api/chats/{chat_id}", json={"sender": "buyer1", "text": "Is Rex still available?"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    client.post(f"/api/chats/{chat_id}", json={"sender": "seller1", "text": "Yes"})

    messages = client.get(f"/api/chats/{chat_id}").json()["messages"]
    assert [(m["sender"], m["text"]) for m in messages] == [("buyer1", "Is Rex still available?"), ("seller1", "Yes")]


def test_post_message_errors(client):
    chat_id = client.post("/api/chats", json=CHAT).json()["chatId"]
    assert client.post(f"/api/chats/{chat_id}", json={"text": " "}).status_code == 400
    assert client.post("/api/chats/bad", json={"text": "hi"}).status_code == 400
    assert client.post(f"/api/chats/{ObjectId()}", json={"text": "hi"}).status_code == 404


def test_get_missing_chat(client):
    assert client.get(f"/api/chats/{ObjectId()}").status_code == 404


def test_list_chats_for_member(client):
    client.post("/api/chats", json=CHAT)
    client.post("/api/chats", json={"buyerId": "buyer2", "sellerId": "seller1", "petId": "pet1"})

    assert len(client.get("/api/chats", params={"userId": "seller1"}).json()) == 2
    assert len(client.get("/api/chats", params={"userId": "buyer2"}).json()) == 1
    assert client.get("/api/chats", params={"userId": "nobody"}).json() == []


def test_overlong_message_is_400(client):
    chat_id = client.post("/api/chats", json=CHAT).json()["chatId"]
    response = client.post(f"/api/chats/{chat_id}", json={"sender": "buyer1", "text": "x" * 5001})
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid input.")
    assert client.get(f"/api/chats/{chat_id}").json()["messages"] == []
