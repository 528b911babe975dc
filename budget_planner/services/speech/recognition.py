"""
Speech-to-Text Input

Lets the user dictate into one form field at a time.

A RecognitionCapability turns one recorded utterance into exactly one
outcome: a transcript, an error code, or an end with no speech.
SpeechInputBridge runs one request-scoped RecognitionSession per
dictation and routes the transcript into the field that asked for it.

There is no shared recognizer: every session gets a fresh capability
from the factory, and starting a new session stops the previous one.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Literal, Optional

import google.generativeai as genai
import structlog
from pydantic import BaseModel

from budget_planner.config import GeminiSettings, get_settings
from budget_planner.models.plan import ActiveInput, PlanForm


logger = structlog.get_logger(__name__)

TRANSCRIPTION_PROMPT = (
    "Transcribe this recording exactly as spoken. "
    "Write numbers as digits. "
    "Reply with the transcript only. "
    "If nobody speaks, reply with an empty message."
)


class RecognitionError(Exception):
    """Speech could not be recognized."""

    def __init__(self, message: str, code: str = "error"):
        super().__init__(message)
        self.code = code


class RecognitionUnavailableError(RecognitionError):
    """Speech recognition is not supported here. Not retryable."""

    def __init__(self, message: str = "Speech recognition is not supported in this environment."):
        super().__init__(message, code="unavailable")


class RecognitionOutcome(BaseModel):
    kind: Literal["result", "error", "end"]
    transcript: str = ""
    error_code: Optional[str] = None


class RecognitionCapability(ABC):
    """
    Platform speech recognition.

    The session assigns the callbacks before start(). Each start() emits
    exactly one of on_result, on_error or on_end.
    """

    on_result: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[str], None]] = None
    on_end: Optional[Callable[[], None]] = None

    @property
    @abstractmethod
    def available(self) -> bool:
        pass

    @abstractmethod
    async def start(self, audio: bytes, mime_type: str) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass


class GeminiSpeechRecognizer(RecognitionCapability):
    """Transcribes a recorded clip with Gemini."""

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Any = None,
    ):
        self._settings = settings
        self._model = model
        self._emitted = False
        self.on_result = None
        self.on_error = None
        self.on_end = None

    @property
    def available(self) -> bool:
        if self._model is not None:
            return True
        try:
            settings = self._settings or get_settings().gemini
        except Exception:
            return False
        return bool(settings.api_key)

    def _get_model(self):
        if self._model is None:
            settings = self._settings or get_settings().gemini
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(model_name=settings.transcription_model)
        return self._model

    def _emit(self, kind: str, value: Optional[str] = None) -> None:
        if self._emitted:
            return
        self._emitted = True
        if kind == "result" and self.on_result:
            self.on_result(value)
        elif kind == "error" and self.on_error:
            self.on_error(value)
        elif kind == "end" and self.on_end:
            self.on_end()

    async def start(self, audio: bytes, mime_type: str) -> None:
        if not audio:
            self._emit("end")
            return

        try:
            response = await self._get_model().generate_content_async(
                [TRANSCRIPTION_PROMPT, {"mime_type": mime_type, "data": audio}]
            )
            transcript = (response.text or "").strip()
        except Exception as e:
            logger.error("transcription_failed", error=str(e))
            self._emit("error", "network")
            return

        if transcript:
            self._emit("result", transcript)
        else:
            self._emit("end")

    def stop(self) -> None:
        self._emit("end")


class RecognitionSession:
    """One dictation into one target."""

    def __init__(self, capability: RecognitionCapability, target: ActiveInput):
        self.capability = capability
        self.target = target
        self._outcome: Optional[asyncio.Future] = None

    def _settle(self, outcome: RecognitionOutcome) -> None:
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(outcome)

    def _attach(self) -> None:
        self.capability.on_result = lambda text: self._settle(
            RecognitionOutcome(kind="result", transcript=text)
        )
        self.capability.on_error = lambda code: self._settle(
            RecognitionOutcome(kind="error", error_code=code)
        )
        self.capability.on_end = lambda: self._settle(RecognitionOutcome(kind="end"))

    def _detach(self) -> None:
        self.capability.on_result = None
        self.capability.on_error = None
        self.capability.on_end = None

    async def run(self, audio: bytes, mime_type: str) -> RecognitionOutcome:
        self._outcome = asyncio.get_running_loop().create_future()
        self._attach()
        try:
            await self.capability.start(audio, mime_type)
            return await self._outcome
        finally:
            self._detach()

    def stop(self) -> None:
        self.capability.stop()
        self._settle(RecognitionOutcome(kind="end"))


class SpeechInputBridge:
    """
    Routes dictated speech into the planner form.

    Only one session is active at a time.
    """

    def __init__(self, capability_factory: Callable[[], RecognitionCapability]):
        self._factory = capability_factory
        self._active: Optional[RecognitionSession] = None

    @property
    def is_listening(self) -> bool:
        return self._active is not None

    @property
    def active_target(self) -> Optional[ActiveInput]:
        return self._active.target if self._active else None

    def stop(self) -> None:
        if self._active is not None:
            session, self._active = self._active, None
            session.stop()

    async def listen(
        self,
        form: PlanForm,
        target: ActiveInput,
        audio: bytes,
        mime_type: str = "audio/wav",
    ) -> RecognitionOutcome:
        """
        Recognize one utterance and apply it to `target` on the form.

        Returns:
            The session outcome; the form changes only on a result

        Raises:
            RecognitionUnavailableError: If the platform cannot recognize speech
        """
        self.stop()

        capability = self._factory()
        if not capability.available:
            raise RecognitionUnavailableError()

        session = RecognitionSession(capability, target)
        self._active = session
        try:
            outcome = await session.run(audio, mime_type)
        finally:
            if self._active is session:
                self._active = None

        if outcome.kind == "result":
            form.apply_transcript(target, outcome.transcript)
            logger.info("speech_routed", target=target.type)
        elif outcome.kind == "error":
            logger.warning("speech_recognition_error", code=outcome.error_code)
        return outcome
