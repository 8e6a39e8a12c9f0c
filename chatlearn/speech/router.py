from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ..ai.base import BaseAIProvider
from ..ai.factory import get_openai_provider
from ..logging_config import get_logger
from ..rate_limit import SPEECH_LIMIT, limiter
from . import service

logger = get_logger(__name__)

router = APIRouter(tags=["speech"])


class TextToSpeechRequest(BaseModel):
    text: str = Field(..., min_length=1)
    voice: Optional[str] = None


@router.post("/speech-to-text")
@limiter.limit(SPEECH_LIMIT)
async def speech_to_text(
    request: Request,
    provider: BaseAIProvider = Depends(get_openai_provider)
):
    """Multipart `audio` file or JSON {audio: base64} -> {text}"""
    audio = await service.read_audio(request)
    text = await service.transcribe(provider, audio)
    logger.info("Transcription succeeded", extra={"extra_data": {"size_bytes": len(audio.data), "chars": len(text)}})
    return {"text": text}


@router.post("/text-to-speech")
@limiter.limit(SPEECH_LIMIT)
async def text_to_speech(
    request: Request,
    payload: TextToSpeechRequest,
    provider: BaseAIProvider = Depends(get_openai_provider)
):
    audio_content = await service.synthesize(provider, payload.text, payload.voice)
    return {"audioContent": audio_content}
