"""
Chat orchestration API
Endpoints:
- POST /chat-with-ai (baseline profile)
- POST /chat-with-ai-fast
- POST /chat-with-ai-optimized
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..chats import service as chat_service
from ..database import get_async_db
from ..logging_config import get_logger
from ..rate_limit import CHAT_LIMIT, limiter
from . import profiles
from .schemas import ChatReply, ChatRequest
from .service import ChatOrchestrator, ProviderResolver, get_provider_resolver

logger = get_logger(__name__)

router = APIRouter(tags=["chat"])

APOLOGY = "I apologize, but I encountered an error. Please try again."


async def run_pipeline(
    request: Request,
    payload: ChatRequest,
    profile: profiles.PipelineProfile,
    db: AsyncSession,
    resolve_provider: ProviderResolver,
):
    """
    Unknown chat, foreign chat, unknown model and missing subscription are
    rejected before the pipeline runs and answer 404/403/400 in the common
    {error, code} format. Any failure inside the pipeline becomes a generic
    500 reply of type "error".
    """
    await chat_service.get_owned_chat(db, payload.chat_id, payload.user_id)
    orchestrator = ChatOrchestrator(db, profile, resolve_provider)
    model = await orchestrator.resolve_model(payload.model, payload.user_id)

    try:
        reply = await orchestrator.respond(payload, model)
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Chat pipeline failed: {e}",
            extra={
                "user_id": payload.user_id,
                "request_id": getattr(request.state, "request_id", None),
                "extra_data": {
                    "chat_id": str(payload.chat_id),
                    "profile": profile.name,
                    "error_type": type(e).__name__,
                }
            },
            exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content=ChatReply(type="error", content=APOLOGY).model_dump(mode="json", exclude_none=True),
        )

    return reply.model_dump(mode="json", exclude_none=True)


@router.post("/chat-with-ai")
@limiter.limit(CHAT_LIMIT)
async def chat_with_ai(
    request: Request,
    payload: ChatRequest,
    db: AsyncSession = Depends(get_async_db),
    resolve_provider: ProviderResolver = Depends(get_provider_resolver)
):
    return await run_pipeline(request, payload, profiles.BASELINE, db, resolve_provider)


@router.post("/chat-with-ai-fast")
@limiter.limit(CHAT_LIMIT)
async def chat_with_ai_fast(
    request: Request,
    payload: ChatRequest,
    db: AsyncSession = Depends(get_async_db),
    resolve_provider: ProviderResolver = Depends(get_provider_resolver)
):
    return await run_pipeline(request, payload, profiles.FAST, db, resolve_provider)


@router.post("/chat-with-ai-optimized")
@limiter.limit(CHAT_LIMIT)
async def chat_with_ai_optimized(
    request: Request,
    payload: ChatRequest,
    db: AsyncSession = Depends(get_async_db),
    resolve_provider: ProviderResolver = Depends(get_provider_resolver)
):
    return await run_pipeline(request, payload, profiles.OPTIMIZED, db, resolve_provider)
