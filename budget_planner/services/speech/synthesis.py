"""
Speech Synthesis (text-to-speech)

DESIGN DECISION: Synthesis sits behind SpeechSynthesisClient so playback
never talks to a provider directly. Two delivery modes:

1. synthesize(): one complete clip (buffered playback)
2. stream(): audio chunks as the provider produces them (streamed playback)

ElevenLabs is the provider. Requests go through httpx; the streaming
endpoint is read with AsyncClient.stream so closing the iterator aborts
the network read.
"""

import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import structlog
from pydantic import BaseModel

from budget_planner.config import ElevenLabsSettings, get_settings


logger = structlog.get_logger(__name__)

DEFAULT_ERROR_MESSAGE = "Failed to fetch audio from ElevenLabs."


class SynthesisError(Exception):
    """Text could not be turned into audio."""
    pass


class PlaybackRejectedError(SynthesisError):
    """The audio pipeline refused to start playing."""
    pass


class SynthesizedAudio(BaseModel):
    """A complete audio payload."""
    data: bytes
    mime_type: str = "audio/mpeg"


class SpeechSynthesisClient(ABC):
    """Text-to-speech provider."""

    @abstractmethod
    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesizedAudio:
        """Return the whole clip at once."""
        pass

    @abstractmethod
    def stream(self, text: str, voice_id: Optional[str] = None) -> AsyncIterator[bytes]:
        """Yield audio chunks in arrival order."""
        pass


def _error_message(response_body: bytes) -> str:
    """Pull detail.message out of an ElevenLabs error body."""
    try:
        data = json.loads(response_body)
    except (ValueError, TypeError):
        return DEFAULT_ERROR_MESSAGE
    detail = data.get("detail") if isinstance(data, dict) else None
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if isinstance(detail, str) and detail:
        return detail
    return DEFAULT_ERROR_MESSAGE


class ElevenLabsSynthesisClient(SpeechSynthesisClient):
    """
    ElevenLabs REST client.

    POST {base_url}/{voice_id}          -> audio/mpeg body
    POST {base_url}/{voice_id}/stream   -> chunked audio/mpeg body

    An httpx.AsyncClient can be injected (tests use MockTransport);
    otherwise one is opened per request.
    """

    def __init__(
        self,
        settings: Optional[ElevenLabsSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().elevenlabs
        self._client = client

    @property
    def voices(self) -> dict[str, str]:
        return dict(self._settings.voices)

    @property
    def default_voice_id(self) -> str:
        return self._settings.default_voice_id

    def _require_key(self) -> str:
        if not self._settings.is_configured:
            raise SynthesisError(
                "ElevenLabs API key is not configured. Set ELEVENLABS_API_KEY."
            )
        return self._settings.api_key

    def _request(self, text: str, voice_id: Optional[str], streaming: bool) -> dict:
        voice = voice_id or self._settings.default_voice_id
        url = f"{self._settings.base_url.rstrip('/')}/{voice}"
        if streaming:
            url += "/stream"
        return {
            "url": url,
            "headers": {
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
                "xi-api-key": self._require_key(),
            },
            "json": {
                "text": text,
                "model_id": self._settings.model_id,
                "voice_settings": {
                    "stability": self._settings.stability,
                    "similarity_boost": self._settings.similarity_boost,
                },
            },
        }

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient(timeout=self._settings.timeout_seconds) as client:
                yield client

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesizedAudio:
        """
        Fetch one complete clip.

        Raises:
            SynthesisError: Missing key, transport failure or non-2xx response
        """
        request = self._request(text, voice_id, streaming=False)

        try:
            async with self._http() as client:
                response = await client.post(
                    request["url"],
                    headers=request["headers"],
                    json=request["json"],
                )
        except httpx.HTTPError as e:
            logger.error("synthesis_request_failed", error=str(e))
            raise SynthesisError(
                "Failed to generate audio from text using ElevenLabs."
            ) from e

        if not response.is_success:
            message = _error_message(response.content)
            logger.error(
                "synthesis_rejected",
                status=response.status_code,
                message=message,
            )
            raise SynthesisError(message)

        if not response.content:
            raise SynthesisError("No audio data received from ElevenLabs.")

        return SynthesizedAudio(
            data=response.content,
            mime_type=response.headers.get("content-type", "audio/mpeg").split(";")[0],
        )

    async def stream(self, text: str, voice_id: Optional[str] = None) -> AsyncIterator[bytes]:
        """
        Yield audio chunks as they arrive.

        Raises:
            SynthesisError: Missing key, transport failure or non-2xx response
        """
        request = self._request(text, voice_id, streaming=True)

        try:
            async with self._http() as client:
                async with client.stream(
                    "POST",
                    request["url"],
                    headers=request["headers"],
                    json=request["json"],
                ) as response:
                    if not response.is_success:
                        body = await response.aread()
                        message = _error_message(body)
                        logger.error(
                            "synthesis_stream_rejected",
                            status=response.status_code,
                            message=message,
                        )
                        raise SynthesisError(message)

                    async for chunk in response.aiter_bytes():
                        if chunk:
                            yield chunk
        except httpx.HTTPError as e:
            logger.error("synthesis_stream_failed", error=str(e))
            raise SynthesisError(
                "Failed to generate audio from text using ElevenLabs."
            ) from e
