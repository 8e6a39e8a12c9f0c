# chatlearn/speech/service.py
"""
Speech bridge: transcription (audio upload or base64 JSON) and speech
synthesis (base64 mp3).
"""

import base64
import binascii
from dataclasses import dataclass

from fastapi import Request, status
from starlette.datastructures import UploadFile

from ..ai.base import BaseAIProvider
from ..config import settings
from ..error_handlers import AppException, ErrorCode, ExternalServiceException, ValidationException
from ..logging_config import get_logger

logger = get_logger(__name__)

MIN_TRANSCRIPT_CHARS = 2


@dataclass
class AudioInput:
    data: bytes
    file_name: str = "audio.webm"


async def read_audio(request: Request) -> AudioInput:
    """Multipart field `audio`, or JSON `{"audio": "<base64>"}`"""
    content_type = request.headers.get("content-type", "")

    if "multipart/form-data" in content_type:
        form = await request.form()
        audio_file = form.get("audio")
        if not isinstance(audio_file, UploadFile):
            raise ValidationException("No audio file provided", error_code=ErrorCode.INVALID_AUDIO)
        if not audio_file.filename or audio_file.filename == "undefined":
            raise ValidationException("Invalid audio file name", error_code=ErrorCode.INVALID_AUDIO)
        return AudioInput(data=await audio_file.read(), file_name=audio_file.filename)

    try:
        body = await request.json()
    except ValueError:
        raise ValidationException("Request body must be JSON or multipart form data", error_code=ErrorCode.INVALID_AUDIO)

    audio = body.get("audio") if isinstance(body, dict) else None
    if not audio or not isinstance(audio, str):
        raise ValidationException("No audio data provided", error_code=ErrorCode.INVALID_AUDIO)
    try:
        return AudioInput(data=base64.b64decode(audio, validate=True))
    except (binascii.Error, ValueError):
        raise ValidationException("Audio data is not valid base64", error_code=ErrorCode.INVALID_AUDIO)


def validate_audio_size(audio: AudioInput):
    size = len(audio.data)
    if size > settings.MAX_AUDIO_SIZE_BYTES:
        raise ValidationException(
            f"Audio file too large (max {settings.MAX_AUDIO_SIZE_BYTES // (1024 * 1024)}MB)",
            details={"size_bytes": size},
            error_code=ErrorCode.INVALID_AUDIO,
        )
    if size < settings.MIN_AUDIO_SIZE_BYTES:
        raise ValidationException(
            "Audio file too small - please speak more clearly",
            details={"size_bytes": size},
            error_code=ErrorCode.INVALID_AUDIO,
        )


async def transcribe(provider: BaseAIProvider, audio: AudioInput) -> str:
    validate_audio_size(audio)

    try:
        text = await provider.transcribe(audio.data, audio.file_name)
    except ExternalServiceException as e:
        if e.upstream_status == 400:
            raise ValidationException("Invalid audio format or content", error_code=ErrorCode.INVALID_AUDIO)
        if e.upstream_status == 429:
            raise AppException(
                message="Rate limit exceeded, please try again later",
                error_code=ErrorCode.RATE_LIMIT_EXCEEDED,
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            )
        raise ExternalServiceException(
            service_name="Speech recognition",
            message="service temporarily unavailable",
            error_code=ErrorCode.SPEECH_SERVICE_ERROR,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            upstream_status=e.upstream_status,
        )

    if not text or len(text.strip()) < MIN_TRANSCRIPT_CHARS:
        logger.warning("Empty or very short transcription", extra={"extra_data": {"size_bytes": len(audio.data)}})
        raise ValidationException(
            "No clear speech detected - please speak louder and more clearly",
            error_code=ErrorCode.INVALID_AUDIO,
        )
    return text


async def synthesize(provider: BaseAIProvider, text: str, voice: str = None) -> str:
    """Returns base64-encoded mp3"""
    try:
        audio = await provider.synthesize_speech(text, voice or settings.TTS_DEFAULT_VOICE)
    except ExternalServiceException as e:
        raise ExternalServiceException(
            service_name="Speech synthesis",
            message="Failed to generate speech",
            error_code=ErrorCode.SPEECH_SERVICE_ERROR,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            upstream_status=e.upstream_status,
        )
    return base64.b64encode(audio).decode("ascii")
