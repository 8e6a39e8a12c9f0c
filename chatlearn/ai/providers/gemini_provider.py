# chatlearn/ai/providers/gemini_provider.py
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ...config import settings
from ...error_handlers import ConfigurationException, ErrorCode, ExternalServiceException
from ...logging_config import get_logger
from ...monitoring import track_external_api_call
from ..base import BaseAIProvider, ChatCompletionResult, ChatMessage, TokenCounts, ToolCall

logger = get_logger(__name__)


def _to_schema(schema: Dict[str, Any]) -> types.Schema:
    """Convert a JSON-schema style dict into a Gemini Schema"""
    properties = schema.get("properties")
    return types.Schema(
        type=types.Type(schema.get("type", "string").upper()),
        description=schema.get("description"),
        properties={name: _to_schema(p) for name, p in properties.items()} if properties else None,
        required=schema.get("required"),
    )


class GeminiProvider(BaseAIProvider):
    """Gemini chat with function calling and embeddings"""

    service_name = "Gemini"

    def _initialize_client(self):
        api_key = self.config.get("api_key")
        if not api_key:
            raise ConfigurationException("GEMINI_API_KEY")
        self.client = genai.Client(api_key=api_key)

    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float = 0.7,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletionResult:
        system_instruction = "\n".join(m.content for m in messages if m.role == "system") or None
        contents = [
            types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[types.Part(text=m.content)],
            )
            for m in messages
            if m.role != "system"
        ]

        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_tokens,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )
        if tools:
            config.tools = [
                types.Tool(function_declarations=[
                    types.FunctionDeclaration(
                        name=t["name"],
                        description=t.get("description"),
                        parameters=_to_schema(t["parameters"]),
                    )
                    for t in tools
                ])
            ]

        try:
            with track_external_api_call(self.service_name, "generate_content", model=model):
                response = await self.client.aio.models.generate_content(
                    model=model,
                    contents=contents,
                    config=config,
                )
        except genai_errors.APIError as e:
            raise ExternalServiceException(
                service_name=self.service_name,
                message=f"chat completion failed: {e}",
                error_code=ErrorCode.AI_PROVIDER_ERROR,
                upstream_status=e.code,
            )

        tool_call = None
        if response.function_calls:
            call = response.function_calls[0]
            tool_call = ToolCall(name=call.name, arguments=dict(call.args or {}))

        usage = TokenCounts()
        if response.usage_metadata:
            meta = response.usage_metadata
            usage = TokenCounts(
                prompt_tokens=meta.prompt_token_count or 0,
                completion_tokens=meta.candidates_token_count or 0,
                total_tokens=meta.total_token_count or 0,
            )

        return ChatCompletionResult(
            content=(response.text or "") if not tool_call else "",
            model=model,
            tool_call=tool_call,
            usage=usage,
        )

    async def embed(self, text: str) -> List[float]:
        try:
            with track_external_api_call(self.service_name, "embed_content", model=settings.GEMINI_EMBEDDING_MODEL):
                resp = await self.client.aio.models.embed_content(
                    model=settings.GEMINI_EMBEDDING_MODEL,
                    contents=[text],
                    config=types.EmbedContentConfig(task_type="semantic_similarity"),
                )
        except genai_errors.APIError as e:
            raise ExternalServiceException(
                service_name=self.service_name,
                message=f"embedding failed: {e}",
                error_code=ErrorCode.AI_PROVIDER_ERROR,
                upstream_status=e.code,
            )
        return list(resp.embeddings[0].values)
