# chatlearn/orchestration/service.py
"""
The chat pipeline behind all three chat endpoints:

1. Load the last N messages of the chat (chronological)
2. Append the incoming user turn (merged with a file analysis when given)
3. Ask the model, offering the generate_image tool
4. Either reply with text, or generate the image and reply with its URL
5. Persist the assistant turn, record usage, start background jobs

Steps 1-4 decide the response; step 5 is best effort and never fails it.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..ai import catalog
from ..ai.base import GENERATE_IMAGE_TOOL, AIProvider, BaseAIProvider, ChatCompletionResult, ChatMessage
from ..ai.factory import AIProviderFactory
from ..chats import service as chat_service
from ..chats.models import Message
from ..config import settings
from ..error_handlers import ErrorCode, ExternalServiceException, SubscriptionRequiredException, ValidationException
from ..jobs import service as job_service
from ..jobs.models import JobType
from ..logging_config import get_logger, log_business_event
from ..monitoring import track_async_time
from ..subscriptions import service as subscription_service
from ..usage import service as usage_service
from .profiles import PipelineProfile
from .schemas import ChatReply, ChatRequest

logger = get_logger(__name__)

ProviderResolver = Callable[[AIProvider], BaseAIProvider]

GENERATED_IMAGE_NAME = "generated_image.png"

EMPTY_REPLY_FALLBACK = "I apologize, but I could not generate a response."


def get_provider_resolver() -> ProviderResolver:
    """Providers are built on first use so a missing key only breaks the models that need it"""
    return AIProviderFactory.create_provider


@dataclass
class ResolvedModel:
    provider: AIProvider
    upstream_model: str


def compose_user_turn(message: str, file_analysis: Optional[str]) -> str:
    if not file_analysis:
        return message
    if not message.strip():
        return file_analysis
    return f"{message}\n\nBased on the file content:\n{file_analysis}"


def image_reply_text(prompt: str) -> str:
    return f'I\'ve generated an image for you: "{prompt}"'


class ChatOrchestrator:

    def __init__(self, db: AsyncSession, profile: PipelineProfile, resolve_provider: ProviderResolver):
        self.db = db
        self.profile = profile
        self.resolve_provider = resolve_provider

    async def resolve_model(self, model_id: Optional[str], user_id: str) -> ResolvedModel:
        """Profile default, or a catalog model the user's plan allows"""
        if not model_id:
            return ResolvedModel(AIProvider.OPENAI, self.profile.model)

        entry = catalog.get_model(model_id)
        if not entry:
            raise ValidationException(f"Unknown model: {model_id}", details={"model": model_id})
        if entry.tier == "pro" and not await subscription_service.has_active_subscription(self.db, user_id):
            raise SubscriptionRequiredException(entry.id)
        return ResolvedModel(entry.provider, entry.upstream_model)

    async def build_context(self, chat_id: UUID, user_turn: str) -> List[ChatMessage]:
        history = await chat_service.load_recent_history(self.db, chat_id, self.profile.history_limit)
        messages = [ChatMessage(role="system", content=settings.SYSTEM_PROMPT)]
        messages.extend(ChatMessage(role=m.role, content=m.content) for m in history)
        messages.append(ChatMessage(role="user", content=user_turn))
        return messages

    @track_async_time("chat_pipeline")
    async def respond(self, request: ChatRequest, model: ResolvedModel) -> ChatReply:
        file_analysis = request.file_analysis if self.profile.uses_file_analysis else None
        user_turn = compose_user_turn(request.message, file_analysis)
        context = await self.build_context(request.chat_id, user_turn)

        provider = self.resolve_provider(model.provider)
        completion = await provider.chat_completion(
            context,
            model=model.upstream_model,
            max_tokens=self.profile.max_tokens,
            temperature=settings.CHAT_TEMPERATURE,
            tools=[GENERATE_IMAGE_TOOL],
        )

        if completion.tool_call and completion.tool_call.name == GENERATE_IMAGE_TOOL["name"]:
            reply = await self._generate_image_reply(completion, request.user_id)
        else:
            reply = ChatReply(type="text", content=completion.content or EMPTY_REPLY_FALLBACK)

        await self._after_reply(request, reply, completion)

        log_business_event(
            "chat_reply",
            user_id=request.user_id,
            chat_id=str(request.chat_id),
            profile=self.profile.name,
            model=model.upstream_model,
            reply_type=reply.type,
            history_size=len(context) - 2,
        )
        return reply

    async def _generate_image_reply(self, completion: ChatCompletionResult, user_id: str) -> ChatReply:
        prompt = str(completion.tool_call.arguments.get("prompt") or "").strip()
        if not prompt:
            raise ExternalServiceException(
                service_name="Chat model",
                message="generate_image called without a prompt",
                error_code=ErrorCode.IMAGE_GENERATION_FAILED,
                status_code=500,
            )

        logger.info("Image generation requested", extra={"user_id": user_id, "extra_data": {"prompt": prompt[:100]}})
        image = await self.resolve_provider(AIProvider.OPENAI).generate_image(prompt)
        if not image.url:
            raise ExternalServiceException(
                service_name="OpenAI",
                message="No image URL returned",
                error_code=ErrorCode.IMAGE_GENERATION_FAILED,
                status_code=500,
            )

        return ChatReply(
            type="image_generated",
            content=image_reply_text(prompt),
            image_url=image.url,
            prompt=prompt,
        )

    async def _after_reply(self, request: ChatRequest, reply: ChatReply, completion: ChatCompletionResult):
        message = await self._persist_reply(request, reply)
        if message:
            reply.message_id = message.id

        await self._record_usage(request, completion, message)

        if self.profile.background_jobs and message:
            reply.job_ids = await self._start_background_jobs(request, reply, message)

    async def _persist_reply(self, request: ChatRequest, reply: ChatReply) -> Optional[Message]:
        attachments = []
        if reply.image_url:
            # Temporary provider URL; the persist_image job swaps in the permanent one
            attachments.append(chat_service.build_attachment(GENERATED_IMAGE_NAME, reply.image_url))
        try:
            return await chat_service.add_message(
                self.db, request.chat_id, "assistant", reply.content, attachments
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to persist assistant message: {e}",
                extra={"user_id": request.user_id, "extra_data": {"chat_id": str(request.chat_id)}},
                exc_info=True
            )
            return None

    async def _record_usage(self, request: ChatRequest, completion: ChatCompletionResult, message: Optional[Message]):
        if not completion.usage.total_tokens:
            return
        try:
            await usage_service.record_usage(
                self.db,
                user_id=request.user_id,
                model=completion.model,
                total_tokens=completion.usage.total_tokens,
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
                chat_id=request.chat_id,
                message_id=message.id if message else None,
            )
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Failed to record token usage: {e}",
                extra={"user_id": request.user_id},
                exc_info=True
            )

    async def _start_background_jobs(self, request: ChatRequest, reply: ChatReply, message: Message) -> List[UUID]:
        jobs = []
        if reply.image_url:
            jobs.append((JobType.PERSIST_IMAGE, {"temp_url": reply.image_url}))
        jobs.append((JobType.EMBED_MESSAGE, {}))

        job_ids = []
        for job_type, payload in jobs:
            try:
                job = await job_service.enqueue_job(
                    self.db,
                    job_type,
                    user_id=request.user_id,
                    chat_id=request.chat_id,
                    message_id=message.id,
                    payload=payload,
                )
                job_ids.append(job.id)
            except Exception as e:
                await self.db.rollback()
                logger.error(
                    f"Failed to enqueue {job_type.value}: {e}",
                    extra={"user_id": request.user_id, "extra_data": {"message_id": str(message.id)}},
                    exc_info=True
                )
        return job_ids
