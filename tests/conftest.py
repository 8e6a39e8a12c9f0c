import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

_TEST_DIR = tempfile.mkdtemp(prefix="chatlearn-tests-")

# Settings are read at import time, so these must be set before chatlearn loads
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ.pop("DATABASE_ASYNC_URL", None)
os.environ["ENVIRONMENT"] = "test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RATE_LIMIT_STORAGE_URI"] = "memory://"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["WEBHOOK_SECRET"] = ""

from fastapi.testclient import TestClient  # noqa: E402

from chatlearn.ai.base import (  # noqa: E402
    BaseAIProvider,
    ChatCompletionResult,
    GeneratedImage,
    TokenCounts,
)
from chatlearn.ai.factory import get_openai_provider  # noqa: E402
from chatlearn.auth.dependencies import get_current_user_id  # noqa: E402
from chatlearn.chats.models import Chat, Message  # noqa: E402
from chatlearn.database import Base, SessionLocal, create_tables, engine  # noqa: E402
from chatlearn.main import app  # noqa: E402
from chatlearn.orchestration.service import get_provider_resolver  # noqa: E402
from chatlearn.storage.service import get_storage  # noqa: E402

USER_ID = "user_test_1"
OTHER_USER_ID = "user_test_2"

create_tables()


class FakeProvider(BaseAIProvider):
    """Scripted stand-in for every hosted model call"""

    def __init__(self):
        self.completions: List[ChatCompletionResult] = []
        self.calls: List[Dict[str, Any]] = []
        self.image_url: Optional[str] = "https://images.example.com/tmp/generated.png"
        self.image_error: Optional[Exception] = None
        self.transcript = "hello there"
        self.speech = b"ID3-fake-mp3"
        self.embedding = [0.1, 0.2, 0.3]
        self.image_prompts: List[str] = []
        super().__init__({})

    def _initialize_client(self):
        self.client = None

    async def chat_completion(self, messages, model, max_tokens, temperature=0.7, tools=None):
        self.calls.append({"messages": messages, "model": model, "max_tokens": max_tokens, "tools": tools})
        if self.completions:
            return self.completions.pop(0)
        return ChatCompletionResult(
            content="Hi! How can I help?",
            model=model,
            usage=TokenCounts(prompt_tokens=20, completion_tokens=10, total_tokens=30),
        )

    async def embed(self, text):
        return list(self.embedding)

    async def generate_image(self, prompt):
        self.image_prompts.append(prompt)
        if self.image_error:
            raise self.image_error
        return GeneratedImage(url=self.image_url, revised_prompt=prompt)

    async def edit_image(self, image, file_name, prompt):
        return GeneratedImage(url="https://images.example.com/tmp/edited.png")

    async def transcribe(self, audio, file_name):
        return self.transcript

    async def synthesize_speech(self, text, voice):
        return self.speech


class FakeStorage:

    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.deleted_prefixes: List[str] = []

    def public_url(self, path):
        return f"https://storage.example.com/generated-images/{path}"

    def upload(self, path, data, content_type="image/png"):
        self.objects[path] = data
        return self.public_url(path)

    async def upload_async(self, path, data, content_type="image/png"):
        return self.upload(path, data, content_type)

    async def delete_prefix_async(self, prefix):
        self.deleted_prefixes.append(prefix)
        doomed = [p for p in self.objects if p.startswith(prefix)]
        for path in doomed:
            del self.objects[path]
        return len(doomed)


@pytest.fixture(autouse=True)
def _isolate_db() -> None:
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            _ = conn.execute(table.delete())


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture()
def client(provider: FakeProvider, storage: FakeStorage, monkeypatch):
    app.dependency_overrides[get_current_user_id] = lambda: USER_ID
    app.dependency_overrides[get_provider_resolver] = lambda: (lambda _provider: provider)
    app.dependency_overrides[get_openai_provider] = lambda: provider
    app.dependency_overrides[get_storage] = lambda: storage

    # Worker-side lookups bypass FastAPI dependencies
    monkeypatch.setattr("chatlearn.jobs.service.get_embedding_provider", lambda: provider)
    monkeypatch.setattr("chatlearn.jobs.service.get_storage", lambda: storage)
    monkeypatch.setattr("chatlearn.images.service.download_image", lambda url: b"\x89PNG-permanent")

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


def seed_chat(user_id: str = USER_ID, title: str = "New Chat") -> Chat:
    with SessionLocal() as db:
        chat = Chat(user_id=user_id, title=title)
        db.add(chat)
        db.commit()
        db.refresh(chat)
        return chat


def seed_messages(chat_id, count: int, role: str = None) -> List[Message]:
    """Messages one second apart, alternating user/assistant unless a role is given"""
    start = datetime.now(timezone.utc) - timedelta(hours=1)
    rows = []
    with SessionLocal() as db:
        for i in range(count):
            rows.append(Message(
                chat_id=chat_id,
                role=role or ("user" if i % 2 == 0 else "assistant"),
                content=f"message {i}",
                file_attachments=[],
                created_at=start + timedelta(seconds=i),
            ))
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
    return rows


def chat_messages(chat_id) -> List[Message]:
    with SessionLocal() as db:
        return list(
            db.query(Message).filter(Message.chat_id == chat_id).order_by(Message.created_at.asc()).all()
        )
