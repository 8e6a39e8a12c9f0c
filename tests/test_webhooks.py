import base64
import uuid

from chatlearn.error_handlers import ErrorCode
from chatlearn.webhooks.payloads import (
    RawText,
    TextItems,
    TextObject,
    Unrecognized,
    decode_response_data,
    resolve_content,
)

from conftest import USER_ID, chat_messages, seed_chat


def _deliver(client, chat_id, response_data, delivery_id=None, **extra):
    headers = {"X-Webhook-Delivery-Id": delivery_id} if delivery_id else {}
    return client.post(
        "/api/webhook-handler",
        json={"chat_id": str(chat_id), "response_data": response_data, **extra},
        headers=headers,
    )


def test_list_payload_inserts_one_message(client):
    chat = seed_chat()

    resp = _deliver(client, chat.id, [{"text": "First answer"}, {"text": "Second answer"}])
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["content"] == "First answer"

    stored = chat_messages(chat.id)
    assert len(stored) == 1
    assert stored[0].role == "assistant"
    assert str(stored[0].id) == body["message_id"]


def test_object_and_string_payloads(client):
    chat = seed_chat()

    assert _deliver(client, chat.id, {"content": "From content key"}).json()["content"] == "From content key"
    assert _deliver(client, chat.id, "Plain string reply").json()["content"] == "Plain string reply"
    assert len(chat_messages(chat.id)) == 2


def test_unrecognized_payload_is_rejected(client):
    chat = seed_chat()

    for payload in ({"foo": 1}, [], None, 42, "   "):
        resp = _deliver(client, chat.id, payload)
        assert resp.status_code == 400, payload
        assert resp.json()["code"] == ErrorCode.INVALID_WEBHOOK_PAYLOAD
        assert resp.json()["error"] == "No AI response text found"

    assert chat_messages(chat.id) == []


def test_image_payload_is_stored(client, storage):
    chat = seed_chat()
    image = base64.b64encode(b"\x89PNG-webhook").decode()

    resp = _deliver(client, chat.id, {"text": "Here is your chart", "image_base64": image})
    assert resp.status_code == 200, resp.text

    assert len(storage.objects) == 1
    path = next(iter(storage.objects))
    assert path.startswith(f"{USER_ID}/{chat.id}/webhook_")

    stored = chat_messages(chat.id)
    assert stored[0].file_attachments[0]["url"] == storage.public_url(path)


def test_repeated_delivery_id_inserts_once(client):
    chat = seed_chat()

    first = _deliver(client, chat.id, "Only once", delivery_id="delivery-1")
    second = _deliver(client, chat.id, "Only once", delivery_id="delivery-1")

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["duplicate"] is True
    assert second.json()["message_id"] == first.json()["message_id"]
    assert len(chat_messages(chat.id)) == 1


def test_without_delivery_id_every_call_inserts(client):
    chat = seed_chat()

    _deliver(client, chat.id, "Again")
    _deliver(client, chat.id, "Again")

    assert len(chat_messages(chat.id)) == 2


def test_unknown_chat_is_not_found(client):
    resp = _deliver(client, uuid.uuid4(), "orphan")
    assert resp.status_code == 404


def test_decode_response_data_variants():
    assert decode_response_data("hi") == RawText("hi")
    assert decode_response_data([{"text": "a"}, "b"]) == TextItems(["a", "b"])
    assert decode_response_data({"text": "a", "image_base64": "xyz"}) == TextObject("a", "xyz")
    assert isinstance(decode_response_data([{"other": 1}]), Unrecognized)
    assert isinstance(decode_response_data(3.5), Unrecognized)


def test_resolve_content():
    assert resolve_content(TextItems(["a", "b"])).text == "a"
    assert resolve_content(RawText("  ")).is_empty
    assert resolve_content(Unrecognized({"x": 1})).is_empty
    assert not resolve_content(TextObject("", "img")).is_empty
