import uuid

from chatlearn.ai.base import ChatCompletionResult, TokenCounts, ToolCall
from chatlearn.database import SessionLocal
from chatlearn.error_handlers import ErrorCode, ExternalServiceException
from chatlearn.jobs.models import BackgroundJob, JobStatus, JobType
from chatlearn.orchestration.router import APOLOGY
from chatlearn.orchestration.service import EMPTY_REPLY_FALLBACK, compose_user_turn, image_reply_text
from chatlearn.subscriptions.models import PlanTier, UserSubscription
from chatlearn.usage.models import TokenUsage

from conftest import OTHER_USER_ID, USER_ID, chat_messages, seed_chat, seed_messages


def _ask(client, chat_id, message="hello", endpoint="/api/chat-with-ai", **extra):
    body = {"message": message, "chat_id": str(chat_id), "user_id": USER_ID, **extra}
    return client.post(endpoint, json=body)


def _image_tool_call(prompt: str) -> ChatCompletionResult:
    return ChatCompletionResult(
        content="",
        model="gpt-4o-mini",
        tool_call=ToolCall(name="generate_image", arguments={"prompt": prompt}),
        usage=TokenCounts(prompt_tokens=15, completion_tokens=5, total_tokens=20),
    )


def test_context_is_last_ten_messages_in_order(client, provider):
    chat = seed_chat()
    seed_messages(chat.id, 12)

    resp = _ask(client, chat.id, message="what did I say?")
    assert resp.status_code == 200, resp.text

    sent = provider.calls[0]["messages"]
    assert sent[0].role == "system"
    assert [m.content for m in sent[1:-1]] == [f"message {i}" for i in range(2, 12)]
    assert sent[-1].role == "user"
    assert sent[-1].content == "what did I say?"


def test_text_reply_has_no_image_url(client, provider):
    chat = seed_chat()

    resp = _ask(client, chat.id)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["type"] == "text"
    assert body["content"] == "Hi! How can I help?"
    assert "image_url" not in body
    assert provider.calls[0]["tools"][0]["name"] == "generate_image"

    stored = chat_messages(chat.id)
    assert [(m.role, m.content) for m in stored] == [("assistant", "Hi! How can I help?")]
    assert str(stored[0].id) == body["message_id"]


def test_hello_with_empty_history(client, provider):
    chat = seed_chat()

    body = _ask(client, chat.id, message="hello").json()

    assert body["type"] == "text"
    assert body["content"]
    assert provider.image_prompts == []
    assert len(provider.calls[0]["messages"]) == 2


def test_draw_a_cat(client, provider):
    chat = seed_chat()
    provider.completions.append(_image_tool_call("a cat"))

    body = _ask(client, chat.id, message="draw a cat").json()

    assert provider.image_prompts == ["a cat"]
    assert body["type"] == "image_generated"
    assert body["content"] == 'I\'ve generated an image for you: "a cat"'
    assert body["image_url"] == provider.image_url


def test_baseline_profile_token_cap_and_no_jobs(client, provider):
    chat = seed_chat()

    body = _ask(client, chat.id).json()

    assert provider.calls[0]["max_tokens"] == 2000
    assert "job_ids" not in body
    with SessionLocal() as db:
        assert db.query(BackgroundJob).count() == 0


def test_tool_call_generates_image(client, provider):
    chat = seed_chat()
    provider.completions.append(_image_tool_call("a red fox in snow"))

    resp = _ask(client, chat.id, message="draw a red fox in snow")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["type"] == "image_generated"
    assert body["image_url"] == provider.image_url
    assert body["prompt"] == "a red fox in snow"
    assert body["content"] == image_reply_text("a red fox in snow")

    stored = chat_messages(chat.id)
    assert len(stored) == 1
    assert stored[0].file_attachments[0]["url"] == provider.image_url
    assert stored[0].file_attachments[0]["name"] == "generated_image.png"


def test_image_failure_returns_error_reply(client, provider):
    chat = seed_chat()
    provider.completions.append(_image_tool_call("a castle"))
    provider.image_error = ExternalServiceException(
        service_name="OpenAI",
        message="content policy violation",
        error_code=ErrorCode.AI_PROVIDER_ERROR,
        upstream_status=400,
    )

    resp = _ask(client, chat.id, message="draw a castle")
    assert resp.status_code == 500
    assert resp.json() == {"type": "error", "content": APOLOGY}
    assert chat_messages(chat.id) == []


def test_tool_call_without_prompt_is_an_error(client, provider):
    chat = seed_chat()
    provider.completions.append(_image_tool_call("   "))

    resp = _ask(client, chat.id)
    assert resp.status_code == 500
    assert resp.json()["type"] == "error"


def test_fast_profile_runs_embedding_job(client, provider):
    chat = seed_chat()

    resp = _ask(client, chat.id, endpoint="/api/chat-with-ai-fast")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert provider.calls[0]["max_tokens"] == 1000
    assert len(body["job_ids"]) == 1

    with SessionLocal() as db:
        job = db.get(BackgroundJob, uuid.UUID(body["job_ids"][0]))
        assert job.job_type == JobType.EMBED_MESSAGE.value
        assert job.status == JobStatus.COMPLETED.value

    stored = chat_messages(chat.id)
    assert stored[0].embedding == provider.embedding


def test_optimized_image_reply_is_moved_to_storage(client, provider, storage):
    chat = seed_chat()
    provider.completions.append(_image_tool_call("a lighthouse"))

    resp = _ask(client, chat.id, endpoint="/api/chat-with-ai-optimized")
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert len(body["job_ids"]) == 2

    # The reply carries the provider URL; the stored message gets the permanent one
    assert body["image_url"] == provider.image_url
    assert len(storage.objects) == 1
    path = next(iter(storage.objects))
    assert path.startswith(f"{USER_ID}/")

    stored = chat_messages(chat.id)
    assert stored[0].file_attachments[0]["url"] == storage.public_url(path)

    resp = client.get(f"/api/jobs/{body['job_ids'][0]}")
    assert resp.status_code == 200
    assert resp.json()["status"] == "completed"
    assert resp.json()["result"]["url"] == storage.public_url(path)


def test_file_analysis_only_merged_by_optimized_profile(client, provider):
    chat = seed_chat()

    _ask(client, chat.id, message="summarize", file_analysis="Quarterly revenue grew 12%.")
    _ask(client, chat.id, message="summarize", endpoint="/api/chat-with-ai-optimized",
         file_analysis="Quarterly revenue grew 12%.")

    assert provider.calls[0]["messages"][-1].content == "summarize"
    assert provider.calls[1]["messages"][-1].content == compose_user_turn("summarize", "Quarterly revenue grew 12%.")
    assert "Quarterly revenue grew 12%." in provider.calls[1]["messages"][-1].content


def test_usage_recorded_for_reply(client):
    chat = seed_chat()

    body = _ask(client, chat.id).json()

    with SessionLocal() as db:
        rows = db.query(TokenUsage).all()
    assert len(rows) == 1
    assert rows[0].total_tokens == 30
    assert str(rows[0].message_id) == body["message_id"]


def test_chat_of_another_user_is_forbidden(client, provider):
    chat = seed_chat(user_id=OTHER_USER_ID)

    resp = _ask(client, chat.id)
    assert resp.status_code == 403
    assert provider.calls == []


def test_unknown_chat_is_not_found(client):
    resp = _ask(client, uuid.uuid4())
    assert resp.status_code == 404
    assert resp.json()["code"] == ErrorCode.NOT_FOUND


def test_pro_model_requires_subscription(client, provider):
    chat = seed_chat()

    resp = _ask(client, chat.id, model="gemini-2-5-flash")
    assert resp.status_code == 403
    assert resp.json()["code"] == ErrorCode.SUBSCRIPTION_REQUIRED

    with SessionLocal() as db:
        db.add(UserSubscription(user_id=USER_ID, plan=PlanTier.PRO, status="active"))
        db.commit()

    resp = _ask(client, chat.id, model="gemini-2-5-flash")
    assert resp.status_code == 200, resp.text
    assert provider.calls[0]["model"] == "gemini-2.5-flash"


def test_free_catalog_model_and_unknown_model(client, provider):
    chat = seed_chat()

    assert _ask(client, chat.id, model="openai-gpt-4o-mini").status_code == 200
    assert provider.calls[0]["model"] == "gpt-4o-mini"

    resp = _ask(client, chat.id, model="no-such-model")
    assert resp.status_code == 400


def test_missing_chat_id_is_validation_error(client):
    resp = client.post("/api/chat-with-ai", json={"message": "hi", "user_id": USER_ID})
    assert resp.status_code == 400
    assert resp.json()["code"] == ErrorCode.VALIDATION_ERROR


def test_compose_user_turn():
    assert compose_user_turn("hi", None) == "hi"
    assert compose_user_turn("", "file text") == "file text"
    assert compose_user_turn("hi", "file text") == "hi\n\nBased on the file content:\nfile text"


def test_models_catalog(client):
    resp = client.get("/api/models")
    assert resp.status_code == 200
    ids = [m["id"] for m in resp.json()["models"]]
    assert "openai-gpt-4o-mini" in ids
    assert "deepseek-r1" in ids


def test_empty_completion_falls_back_to_apology(client, provider):
    chat = seed_chat()
    provider.completions.append(ChatCompletionResult(content="", model="gpt-4o-mini"))

    body = _ask(client, chat.id, endpoint="/api/chat-with-ai-fast").json()

    assert body["type"] == "text"
    assert body["content"] == EMPTY_REPLY_FALLBACK
    stored = chat_messages(chat.id)
    assert [(m.role, m.content) for m in stored] == [("assistant", EMPTY_REPLY_FALLBACK)]
    assert stored[0].embedding == provider.embedding
