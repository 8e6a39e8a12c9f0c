# chatlearn/ai/providers/openai_provider.py
import json
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from ...config import settings
from ...error_handlers import ConfigurationException, ErrorCode, ExternalServiceException
from ...logging_config import get_logger
from ...monitoring import track_external_api_call
from ..base import (
    BaseAIProvider,
    ChatCompletionResult,
    ChatMessage,
    GeneratedImage,
    TokenCounts,
    ToolCall,
)

logger = get_logger(__name__)


class OpenAIProvider(BaseAIProvider):
    """
    OpenAI chat, image, embedding and speech endpoints.

    Also serves any OpenAI-compatible endpoint (DeepSeek) when the config
    carries a base_url.
    """

    service_name = "OpenAI"

    def _initialize_client(self):
        api_key = self.config.get("api_key")
        if not api_key:
            raise ConfigurationException(self.config.get("key_name", "OPENAI_API_KEY"))
        self.service_name = self.config.get("service_name", self.service_name)
        self.client = AsyncOpenAI(api_key=api_key, base_url=self.config.get("base_url"))

    def _wrap_error(self, operation: str, e: Exception) -> ExternalServiceException:
        upstream_status = getattr(e, "status_code", None)
        return ExternalServiceException(
            service_name=self.service_name,
            message=f"{operation} failed: {e}",
            error_code=ErrorCode.AI_PROVIDER_ERROR,
            upstream_status=upstream_status,
        )

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float = 0.7,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletionResult:
        request: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if tools:
            request["tools"] = [{"type": "function", "function": t} for t in tools]
            request["tool_choice"] = "auto"

        try:
            with track_external_api_call(self.service_name, "chat.completions", model=model):
                completion = await self.client.chat.completions.create(**request)
        except openai.OpenAIError as e:
            raise self._wrap_error("chat completion", e)

        if not completion.choices:
            raise ExternalServiceException(
                service_name=self.service_name,
                message="no completion choices returned",
                error_code=ErrorCode.AI_PROVIDER_ERROR,
            )

        message = completion.choices[0].message
        tool_call = None
        if message.tool_calls:
            first = message.tool_calls[0]
            try:
                arguments = json.loads(first.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise ExternalServiceException(
                    service_name=self.service_name,
                    message=f"malformed tool arguments: {e}",
                    error_code=ErrorCode.AI_PROVIDER_ERROR,
                )
            tool_call = ToolCall(name=first.function.name, arguments=arguments)

        usage = TokenCounts()
        if completion.usage:
            usage = TokenCounts(
                prompt_tokens=completion.usage.prompt_tokens or 0,
                completion_tokens=completion.usage.completion_tokens or 0,
                total_tokens=completion.usage.total_tokens or 0,
            )

        return ChatCompletionResult(
            content=message.content or "",
            model=completion.model or model,
            tool_call=tool_call,
            usage=usage,
        )

    async def embed(self, text: str) -> List[float]:
        try:
            with track_external_api_call(self.service_name, "embeddings", model=settings.EMBEDDING_MODEL):
                response = await self.client.embeddings.create(
                    model=settings.EMBEDDING_MODEL,
                    input=text,
                )
        except openai.OpenAIError as e:
            raise self._wrap_error("embedding", e)
        return list(response.data[0].embedding)

    async def generate_image(self, prompt: str) -> GeneratedImage:
        try:
            with track_external_api_call(self.service_name, "images.generate", model=settings.IMAGE_MODEL):
                response = await self.client.images.generate(
                    model=settings.IMAGE_MODEL,
                    prompt=prompt,
                    n=1,
                    size=settings.IMAGE_SIZE,
                    quality=settings.IMAGE_QUALITY,
                )
        except openai.OpenAIError as e:
            raise self._wrap_error("image generation", e)

        image = response.data[0]
        return GeneratedImage(url=image.url, b64_json=image.b64_json, revised_prompt=image.revised_prompt)

    async def edit_image(self, image: bytes, file_name: str, prompt: str) -> GeneratedImage:
        try:
            with track_external_api_call(self.service_name, "images.edit", model=settings.IMAGE_EDIT_MODEL):
                response = await self.client.images.edit(
                    model=settings.IMAGE_EDIT_MODEL,
                    image=(file_name, image, "image/png"),
                    prompt=prompt,
                    n=1,
                    size=settings.IMAGE_SIZE,
                )
        except openai.OpenAIError as e:
            raise self._wrap_error("image edit", e)

        edited = response.data[0]
        return GeneratedImage(url=edited.url, b64_json=edited.b64_json)

    async def transcribe(self, audio: bytes, file_name: str) -> str:
        try:
            with track_external_api_call(self.service_name, "audio.transcriptions", size_bytes=len(audio)):
                transcription = await self.client.audio.transcriptions.create(
                    model=settings.TRANSCRIPTION_MODEL,
                    file=(file_name, audio),
                )
        except openai.OpenAIError as e:
            raise self._wrap_error("transcription", e)
        return transcription.text

    async def synthesize_speech(self, text: str, voice: str) -> bytes:
        try:
            with track_external_api_call(self.service_name, "audio.speech", voice=voice):
                response = await self.client.audio.speech.create(
                    model=settings.TTS_MODEL,
                    voice=voice,
                    input=text,
                    response_format="mp3",
                )
        except openai.OpenAIError as e:
            raise self._wrap_error("speech synthesis", e)
        return response.content
