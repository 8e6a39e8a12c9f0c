from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    DATABASE_ASYNC_URL: Optional[str] = None

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # "text" or "json"
    ENABLE_FILE_LOGGING: bool = False
    CORS_ORIGINS: List[str] = ["*"]

    # Redis & Celery
    REDIS_URL: str = Field(default="redis://localhost:6379/0")
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_TASK_ALWAYS_EAGER: bool = False
    JOB_MAX_RETRIES: int = 3
    JOB_RETRY_BACKOFF_SECONDS: int = 5

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: Optional[str] = None

    # Auth
    CLERK_SECRET_KEY: str = ""
    FRONTEND_URL: Optional[str] = None

    # Hosted AI providers
    OPENAI_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    DEEPSEEK_API_KEY: str = ""
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com"

    # Chat pipeline
    SYSTEM_PROMPT: str = (
        "You are AdamGPT, a helpful AI assistant. If the user asks you to generate, "
        "create, make, or draw an image, use the generate_image function."
    )
    CHAT_HISTORY_LIMIT: int = 10
    CHAT_TEMPERATURE: float = 0.7
    BASELINE_CHAT_MODEL: str = "gpt-4o"
    FAST_CHAT_MODEL: str = "gpt-4o-mini"
    OPTIMIZED_CHAT_MODEL: str = "gpt-4o-mini"

    # Images, embeddings, speech
    IMAGE_MODEL: str = "dall-e-3"
    IMAGE_SIZE: str = "1024x1024"
    IMAGE_QUALITY: str = "standard"
    IMAGE_EDIT_MODEL: str = "dall-e-2"
    EMBEDDING_PROVIDER: str = "openai"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    GEMINI_EMBEDDING_MODEL: str = "gemini-embedding-001"
    TRANSCRIPTION_MODEL: str = "whisper-1"
    TTS_MODEL: str = "tts-1"
    TTS_DEFAULT_VOICE: str = "alloy"
    MAX_AUDIO_SIZE_BYTES: int = 25 * 1024 * 1024
    MIN_AUDIO_SIZE_BYTES: int = 5000
    IMAGE_DOWNLOAD_TIMEOUT: int = 60

    # Object storage (S3 compatible)
    STORAGE_BUCKET: str = "generated-images"
    STORAGE_ENDPOINT_URL: Optional[str] = None
    STORAGE_ACCESS_KEY_ID: Optional[str] = None
    STORAGE_SECRET_ACCESS_KEY: Optional[str] = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_PUBLIC_BASE_URL: Optional[str] = None

    # Webhooks
    WEBHOOK_SECRET: Optional[str] = None

    # Stripe subscriptions
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PRO_PRODUCT_ID: str = "prod_TDSeCiQ2JEFnWB"
    STRIPE_ULTRA_PRO_PRODUCT_ID: str = "prod_TDSfAtaWP5KbhM"
    SUBSCRIPTION_REFRESH_SECONDS: int = 300
    FREE_MESSAGE_LIMIT: int = 15

    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')


settings = Settings()

# Celery falls back to Redis when no dedicated broker/backend is configured
if not settings.CELERY_BROKER_URL:
    settings.CELERY_BROKER_URL = settings.REDIS_URL
if not settings.CELERY_RESULT_BACKEND:
    settings.CELERY_RESULT_BACKEND = settings.REDIS_URL
if not settings.RATE_LIMIT_STORAGE_URI:
    settings.RATE_LIMIT_STORAGE_URI = settings.REDIS_URL
