import base64

from chatlearn.config import settings
from chatlearn.database import SessionLocal
from chatlearn.error_handlers import ErrorCode, ExternalServiceException
from chatlearn.favorites.models import FavoriteTool
from chatlearn.jobs.models import BackgroundJob
from chatlearn.chats.models import Chat, Message
from chatlearn.usage.models import TokenUsage
from chatlearn.users.models import User

from conftest import OTHER_USER_ID, USER_ID, seed_chat, seed_messages


def test_store_user_creates_then_updates(client):
    first = client.post("/api/users/store", json={"email": "ada@example.com", "full_name": "Ada"})
    assert first.status_code == 200, first.text
    assert first.json()["user_id"] == USER_ID

    second = client.post("/api/users/store", json={"full_name": "Ada Lovelace"})
    assert second.json()["email"] == "ada@example.com"
    assert second.json()["full_name"] == "Ada Lovelace"


def test_delete_account_removes_everything(client, storage, monkeypatch):
    deleted = []

    async def fake_delete_clerk_user(user_id):
        deleted.append(user_id)
        return True

    monkeypatch.setattr("chatlearn.users.service.delete_clerk_user", fake_delete_clerk_user)

    client.post("/api/users/store", json={"email": "ada@example.com"})
    mine = seed_chat()
    seed_messages(mine.id, 3)
    theirs = seed_chat(user_id=OTHER_USER_ID)
    seed_messages(theirs.id, 2)
    client.post("/api/favorite-tools", json={"tool_name": "translator"})
    reply = client.post("/api/chat-with-ai-fast", json={"message": "hi", "chat_id": str(mine.id), "user_id": USER_ID})
    assert reply.json()["job_ids"]
    storage.objects[f"{USER_ID}/chat/a.png"] = b"a"
    storage.objects[f"{OTHER_USER_ID}/chat/b.png"] = b"b"

    resp = client.delete("/api/delete-account")
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"message": "Account deleted successfully"}
    assert deleted == [USER_ID]
    assert list(storage.objects) == [f"{OTHER_USER_ID}/chat/b.png"]

    with SessionLocal() as db:
        assert db.get(User, USER_ID) is None
        assert db.query(Chat).filter(Chat.user_id == USER_ID).count() == 0
        assert db.query(FavoriteTool).count() == 0
        assert db.query(TokenUsage).filter(TokenUsage.user_id == USER_ID).count() == 0
        assert db.query(BackgroundJob).filter(BackgroundJob.user_id == USER_ID).count() == 0
        # Other users are untouched
        assert db.query(Message).filter(Message.chat_id == theirs.id).count() == 2


def test_delete_account_failure_is_generic(client, monkeypatch):
    async def failing_delete_clerk_user(user_id):
        raise Exception("Clerk deletion failed: 500")

    monkeypatch.setattr("chatlearn.users.service.delete_clerk_user", failing_delete_clerk_user)

    resp = client.post("/api/delete-account")
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Unable to process request"
    assert body["code"] == ErrorCode.ACCOUNT_DELETION_FAILED
    assert body["requestId"]
    assert "Clerk" not in resp.text


def _upload(client, data: bytes, file_name="recording.webm"):
    return client.post("/api/speech-to-text", files={"audio": (file_name, data, "audio/webm")})


def test_speech_to_text(client, provider):
    resp = _upload(client, b"\x1a" * (settings.MIN_AUDIO_SIZE_BYTES + 1))
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"text": provider.transcript}


def test_speech_to_text_accepts_base64_json(client, provider):
    audio = base64.b64encode(b"\x1a" * (settings.MIN_AUDIO_SIZE_BYTES + 1)).decode()
    resp = client.post("/api/speech-to-text", json={"audio": audio})
    assert resp.status_code == 200, resp.text
    assert resp.json()["text"] == provider.transcript


def test_speech_to_text_size_limits(client):
    too_small = _upload(client, b"\x1a" * 100)
    assert too_small.status_code == 400
    assert too_small.json()["code"] == ErrorCode.INVALID_AUDIO

    too_large = _upload(client, b"\x1a" * (settings.MAX_AUDIO_SIZE_BYTES + 1))
    assert too_large.status_code == 400


def test_speech_to_text_rejects_blank_transcript(client, provider):
    provider.transcript = " "
    resp = _upload(client, b"\x1a" * (settings.MIN_AUDIO_SIZE_BYTES + 1))
    assert resp.status_code == 400


def test_speech_to_text_upstream_errors(client, provider):
    audio = b"\x1a" * (settings.MIN_AUDIO_SIZE_BYTES + 1)

    async def rate_limited(audio, file_name):
        raise ExternalServiceException("OpenAI", "slow down", ErrorCode.AI_PROVIDER_ERROR, upstream_status=429)

    provider.transcribe = rate_limited
    assert _upload(client, audio).status_code == 429

    async def unavailable(audio, file_name):
        raise ExternalServiceException("OpenAI", "boom", ErrorCode.AI_PROVIDER_ERROR, upstream_status=502)

    provider.transcribe = unavailable
    resp = _upload(client, audio)
    assert resp.status_code == 503
    assert resp.json()["code"] == ErrorCode.SPEECH_SERVICE_ERROR


def test_text_to_speech(client, provider):
    resp = client.post("/api/text-to-speech", json={"text": "Hello there"})
    assert resp.status_code == 200, resp.text
    assert base64.b64decode(resp.json()["audioContent"]) == provider.speech

    assert client.post("/api/text-to-speech", json={"text": ""}).status_code == 400
