import asyncio
import base64

import httpx

from chatlearn.voice.client import VoiceApiClient
from chatlearn.voice.session import VoiceSession, VoiceState


class FakeRecorder:

    def __init__(self, audio: bytes = b"voice-bytes"):
        self.audio = audio
        self.started = 0
        self.released = False

    def start(self):
        self.started += 1

    def stop(self):
        return self.audio

    def release(self):
        self.released = True


class FakePlayer:

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.played = []
        self.released = False

    async def play(self, audio):
        if self.fail:
            raise RuntimeError("speaker unplugged")
        self.played.append(audio)

    def stop(self):
        pass

    def release(self):
        self.released = True


class FakeBackend:

    def __init__(self, fail_at: str = None):
        self.fail_at = fail_at
        self.calls = []

    async def transcribe(self, audio):
        self.calls.append("transcribe")
        if self.fail_at == "transcribe":
            raise RuntimeError("transcription failed")
        return "what's the weather"

    async def reply(self, text):
        self.calls.append("reply")
        if self.fail_at == "reply":
            raise RuntimeError("chat failed")
        return "Sunny and warm"

    async def synthesize(self, text, voice):
        self.calls.append("synthesize")
        return b"mp3:" + text.encode()


def _session(backend=None, recorder=None, player=None):
    states = []
    errors = []
    session = VoiceSession(
        backend or FakeBackend(),
        recorder or FakeRecorder(),
        player or FakePlayer(),
        on_state_change=states.append,
        on_error=errors.append,
    )
    return session, states, errors


def test_full_turn_walks_every_state():
    player = FakePlayer()
    session, states, errors = _session(player=player)

    assert session.press() is True
    asyncio.run(session.release())

    assert states == [VoiceState.LISTENING, VoiceState.PROCESSING, VoiceState.PLAYING, VoiceState.IDLE]
    assert errors == []
    assert session.transcript == "what's the weather"
    assert session.response == "Sunny and warm"
    assert player.played == [b"mp3:Sunny and warm"]


def test_press_only_from_idle():
    recorder = FakeRecorder()
    session, states, _ = _session(recorder=recorder)

    assert session.press() is True
    assert session.press() is False
    assert recorder.started == 1

    session.state = VoiceState.PROCESSING
    assert session.press() is False
    session.state = VoiceState.PLAYING
    assert session.press() is False


def test_release_ignored_unless_listening():
    backend = FakeBackend()
    session, states, _ = _session(backend=backend)

    asyncio.run(session.release())

    assert states == []
    assert backend.calls == []


def test_empty_recording_returns_to_idle_quietly():
    backend = FakeBackend()
    session, states, errors = _session(backend=backend, recorder=FakeRecorder(audio=b""))

    session.press()
    asyncio.run(session.release())

    assert states == [VoiceState.LISTENING, VoiceState.PROCESSING, VoiceState.IDLE]
    assert errors == []
    assert backend.calls == []


def test_backend_failure_resets_to_idle():
    session, states, errors = _session(backend=FakeBackend(fail_at="reply"))

    session.press()
    asyncio.run(session.release())

    assert states[-1] == VoiceState.IDLE
    assert VoiceState.PLAYING not in states
    assert session.transcript == ""
    assert len(errors) == 1
    # A new turn can start right away
    assert session.press() is True


def test_playback_failure_resets_to_idle():
    session, states, errors = _session(player=FakePlayer(fail=True))

    session.press()
    asyncio.run(session.release())

    assert states == [VoiceState.LISTENING, VoiceState.PROCESSING, VoiceState.PLAYING, VoiceState.IDLE]
    assert "speaker unplugged" in errors[0]


def test_microphone_failure_stays_idle():
    class DeniedRecorder(FakeRecorder):
        def start(self):
            raise PermissionError("denied")

    session, states, errors = _session(recorder=DeniedRecorder())

    assert session.press() is False
    assert session.state == VoiceState.IDLE
    assert len(errors) == 1


def test_cleanup_releases_devices():
    recorder, player = FakeRecorder(), FakePlayer()
    session, _, _ = _session(recorder=recorder, player=player)

    session.press()
    session.cleanup()

    assert recorder.released and player.released
    assert session.state == VoiceState.IDLE


def test_voice_api_client_round_trip():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/api/speech-to-text":
            assert b'name="audio"; filename="recording.webm"' in request.content
            return httpx.Response(200, json={"text": "hi"})
        if request.url.path == "/api/chat-with-ai-optimized":
            return httpx.Response(200, json={"type": "text", "content": "hello!"})
        if request.url.path == "/api/text-to-speech":
            return httpx.Response(200, json={"audioContent": base64.b64encode(b"mp3").decode()})
        return httpx.Response(201, json={})

    async def scenario():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as http:
            api = VoiceApiClient(http, chat_id="c1", user_id="u1", token="tok")
            text = await api.transcribe(b"audio")
            reply = await api.reply(text)
            audio = await api.synthesize(reply, "alloy")
            return text, reply, audio

    assert asyncio.run(scenario()) == ("hi", "hello!", b"mp3")
    assert seen == [
        "/api/speech-to-text",
        "/api/chats/c1/messages",
        "/api/chat-with-ai-optimized",
        "/api/text-to-speech",
    ]
