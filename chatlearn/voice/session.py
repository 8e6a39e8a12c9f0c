# chatlearn/voice/session.py
"""
Push-to-talk voice turn state machine.

    idle -> listening -> processing -> playing -> idle

Any failure drops straight back to idle and clears the transcript. A new
recording can only start from idle, so turns never overlap.
"""

from enum import Enum
from typing import Callable, Optional, Protocol

from ..config import settings
from ..logging_config import get_logger

logger = get_logger(__name__)


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    PLAYING = "playing"


ALLOWED_TRANSITIONS = {
    VoiceState.IDLE: {VoiceState.LISTENING},
    VoiceState.LISTENING: {VoiceState.PROCESSING, VoiceState.IDLE},
    VoiceState.PROCESSING: {VoiceState.PLAYING, VoiceState.IDLE},
    VoiceState.PLAYING: {VoiceState.IDLE},
}


class VoiceStateError(Exception):
    pass


class AudioRecorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> bytes: ...

    def release(self) -> None: ...


class AudioPlayer(Protocol):
    async def play(self, audio: bytes) -> None: ...

    def stop(self) -> None: ...

    def release(self) -> None: ...


class VoiceBackend(Protocol):
    async def transcribe(self, audio: bytes) -> str: ...

    async def reply(self, text: str) -> str: ...

    async def synthesize(self, text: str, voice: str) -> bytes: ...


class VoiceSession:

    def __init__(
        self,
        backend: VoiceBackend,
        recorder: AudioRecorder,
        player: AudioPlayer,
        voice: str = None,
        on_state_change: Optional[Callable[[VoiceState], None]] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
        on_response: Optional[Callable[[str], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        self.backend = backend
        self.recorder = recorder
        self.player = player
        self.voice = voice or settings.TTS_DEFAULT_VOICE
        self.on_state_change = on_state_change
        self.on_transcript = on_transcript
        self.on_response = on_response
        self.on_error = on_error

        self.state = VoiceState.IDLE
        self.transcript = ""
        self.response = ""

    def _set_state(self, new_state: VoiceState):
        if new_state == self.state:
            return
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise VoiceStateError(f"Cannot go from {self.state.value} to {new_state.value}")
        self.state = new_state
        if self.on_state_change:
            self.on_state_change(new_state)

    def _fail(self, message: str):
        logger.warning(f"Voice turn failed: {message}")
        self.transcript = ""
        self.state = VoiceState.IDLE
        if self.on_state_change:
            self.on_state_change(VoiceState.IDLE)
        if self.on_error:
            self.on_error(message)

    @property
    def can_record(self) -> bool:
        return self.state == VoiceState.IDLE

    def press(self) -> bool:
        """Start recording. Ignored unless idle."""
        if not self.can_record:
            return False
        try:
            self.recorder.start()
        except Exception as e:
            self._fail(f"Microphone access denied: {e}")
            return False
        self._set_state(VoiceState.LISTENING)
        return True

    async def release(self):
        """Stop recording and run the turn. Ignored unless listening."""
        if self.state != VoiceState.LISTENING:
            return
        try:
            audio = self.recorder.stop()
        except Exception as e:
            self._fail(f"Recording error: {e}")
            return

        self._set_state(VoiceState.PROCESSING)
        await self._run_turn(audio)

    async def _run_turn(self, audio: bytes):
        if not audio:
            logger.info("Released before any audio was captured")
            self.transcript = ""
            self._set_state(VoiceState.IDLE)
            return

        try:
            self.transcript = await self.backend.transcribe(audio)
            if self.on_transcript:
                self.on_transcript(self.transcript)

            self.response = await self.backend.reply(self.transcript)
            if self.on_response:
                self.on_response(self.response)

            speech = await self.backend.synthesize(self.response, self.voice)
        except Exception as e:
            self._fail(f"Server processing error: {e}")
            return

        self._set_state(VoiceState.PLAYING)
        try:
            await self.player.play(speech)
        except Exception as e:
            self._fail(f"Audio playback error: {e}")
            return

        # Playback ended
        if self.state == VoiceState.PLAYING:
            self._set_state(VoiceState.IDLE)

    def stop_playback(self):
        if self.state == VoiceState.PLAYING:
            self.player.stop()
            self._set_state(VoiceState.IDLE)

    def cleanup(self):
        """Release the microphone and player; the session ends idle"""
        if self.state == VoiceState.LISTENING:
            try:
                self.recorder.stop()
            except Exception as e:
                logger.debug(f"Recorder stop during cleanup failed: {e}")
        if self.state == VoiceState.PLAYING:
            self.player.stop()
        self.recorder.release()
        self.player.release()
        self.state = VoiceState.IDLE
        self.transcript = ""
