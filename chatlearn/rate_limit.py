"""
Rate limiting for the routes that spend provider money (chat completions,
image generation, speech). SlowAPI with Redis storage so limits hold across
workers.
"""

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)


def get_user_id_or_ip(request: Request) -> str:
    """Per-account key when authenticated, per-IP otherwise"""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_id_or_ip,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    default_limits=[],
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)

# Chat completions (hosted model + optional image generation)
CHAT_LIMIT = "30/minute"

# Image generation / edit / upload
IMAGE_LIMIT = "10/minute"

# Speech-to-text and text-to-speech
SPEECH_LIMIT = "30/minute"

# External automation callbacks
WEBHOOK_LIMIT = "120/minute"

if settings.ENVIRONMENT == "development":
    CHAT_LIMIT = "120/minute"
    IMAGE_LIMIT = "60/minute"
    logger.info("Rate limiting: DEVELOPMENT mode (relaxed limits)")


def register_rate_limiting(app):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
