# chatlearn/voice/client.py
import base64
from typing import Optional

import httpx

from ..logging_config import get_logger

logger = get_logger(__name__)


class VoiceApiClient:
    """
    VoiceBackend that talks to this service over HTTP: speech-to-text,
    the optimized chat pipeline, then text-to-speech.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        chat_id: str,
        user_id: str,
        token: Optional[str] = None,
        base_url: str = "",
    ):
        self.client = client
        self.chat_id = chat_id
        self.user_id = user_id
        self.token = token
        self.base_url = base_url.rstrip("/")

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def transcribe(self, audio: bytes) -> str:
        response = await self.client.post(
            f"{self.base_url}/api/speech-to-text",
            files={"audio": ("recording.webm", audio, "audio/webm")},
        )
        response.raise_for_status()
        return response.json()["text"]

    async def reply(self, text: str) -> str:
        # The pipeline expects the caller to have stored the user turn
        if self.token:
            stored = await self.client.post(
                f"{self.base_url}/api/chats/{self.chat_id}/messages",
                json={"role": "user", "content": text},
                headers=self._headers(),
            )
            if stored.status_code >= 400:
                logger.warning(f"Failed to store voice transcript: {stored.status_code}")

        response = await self.client.post(
            f"{self.base_url}/api/chat-with-ai-optimized",
            json={"message": text, "chat_id": self.chat_id, "user_id": self.user_id},
        )
        response.raise_for_status()
        return response.json()["content"]

    async def synthesize(self, text: str, voice: str) -> bytes:
        response = await self.client.post(
            f"{self.base_url}/api/text-to-speech",
            json={"text": text, "voice": voice},
        )
        response.raise_for_status()
        return base64.b64decode(response.json()["audioContent"])
