# chatlearn/ai/base.py
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class AIProvider(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"
    DEEPSEEK = "deepseek"


# The one tool the chat model may call
GENERATE_IMAGE_TOOL = {
    "name": "generate_image",
    "description": "Generate an image based on the user's description",
    "parameters": {
        "type": "object",
        "properties": {
            "prompt": {
                "type": "string",
                "description": "Detailed description of the image to generate",
            }
        },
        "required": ["prompt"],
    },
}


@dataclass
class ChatMessage:
    role: str  # 'system' | 'user' | 'assistant'
    content: str


@dataclass
class ToolCall:
    name: str
    arguments: Dict[str, Any]


@dataclass
class TokenCounts:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class ChatCompletionResult:
    """Standardized response for a chat completion"""
    content: str
    model: str
    tool_call: Optional[ToolCall] = None
    usage: TokenCounts = field(default_factory=TokenCounts)


@dataclass
class GeneratedImage:
    url: Optional[str] = None
    b64_json: Optional[str] = None
    revised_prompt: Optional[str] = None


class BaseAIProvider(ABC):
    """Abstract base class for hosted model providers"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self._initialize_client()

    @abstractmethod
    def _initialize_client(self):
        """Initialize provider-specific client"""
        pass

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[ChatMessage],
        model: str,
        max_tokens: int,
        temperature: float = 0.7,
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletionResult:
        """
        Run one non-streaming completion.

        Args:
            messages: System instruction first, then history oldest to newest
            model: Upstream model name
            max_tokens: Completion token cap
            tools: Function declarations the model may call (auto choice)

        Returns:
            ChatCompletionResult with at most one tool call
        """
        pass

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed one text for semantic search"""
        pass

    async def generate_image(self, prompt: str) -> GeneratedImage:
        raise NotImplementedError(f"{type(self).__name__} does not generate images")

    async def edit_image(self, image: bytes, file_name: str, prompt: str) -> GeneratedImage:
        raise NotImplementedError(f"{type(self).__name__} does not edit images")

    async def transcribe(self, audio: bytes, file_name: str) -> str:
        raise NotImplementedError(f"{type(self).__name__} does not transcribe audio")

    async def synthesize_speech(self, text: str, voice: str) -> bytes:
        raise NotImplementedError(f"{type(self).__name__} does not synthesize speech")
