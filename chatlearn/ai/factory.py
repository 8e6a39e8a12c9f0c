# chatlearn/ai/factory.py
from typing import Any, Dict

from ..config import settings
from .base import AIProvider, BaseAIProvider
from .providers.gemini_provider import GeminiProvider
from .providers.openai_provider import OpenAIProvider


class AIProviderFactory:
    """Factory for creating hosted model provider instances"""

    _providers = {
        AIProvider.OPENAI: OpenAIProvider,
        AIProvider.GEMINI: GeminiProvider,
        # OpenAI-compatible endpoint
        AIProvider.DEEPSEEK: OpenAIProvider,
    }

    @classmethod
    def create_provider(
        cls,
        provider: AIProvider,
        config: Dict[str, Any] = None
    ) -> BaseAIProvider:
        """
        Create a provider instance

        Args:
            provider: Provider type (openai/gemini/deepseek)
            config: Provider-specific configuration, defaults to settings

        Raises:
            ValueError: If provider not supported
            ConfigurationException: If the provider's API key is missing
        """
        provider_class = cls._providers.get(provider)

        if not provider_class:
            raise ValueError(f"Unsupported AI provider: {provider}")

        return provider_class(config or cls.default_config(provider))

    @staticmethod
    def default_config(provider: AIProvider) -> Dict[str, Any]:
        if provider == AIProvider.GEMINI:
            return {"api_key": settings.GEMINI_API_KEY}
        if provider == AIProvider.DEEPSEEK:
            return {
                "api_key": settings.DEEPSEEK_API_KEY,
                "base_url": settings.DEEPSEEK_BASE_URL,
                "key_name": "DEEPSEEK_API_KEY",
                "service_name": "DeepSeek",
            }
        return {"api_key": settings.OPENAI_API_KEY}


def get_openai_provider() -> BaseAIProvider:
    """Provider for images, speech and embeddings"""
    return AIProviderFactory.create_provider(AIProvider.OPENAI)


def get_embedding_provider() -> BaseAIProvider:
    return AIProviderFactory.create_provider(AIProvider(settings.EMBEDDING_PROVIDER))
