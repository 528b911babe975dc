"""
Plan Playback

Reads a generated plan aloud. Two implementations of one interface:

- BufferedPlayback: fetch the whole clip, append it once, play.
- StreamedPlayback: start playing as soon as the first chunk arrives.

Audio output goes through an AudioSink, a growing playable buffer in the
style of a media-source pipeline (append, play, end of stream).

STREAMED PLAYBACK INVARIANTS:
- Chunks are appended in arrival order
- At most one sink.append is in flight; the next starts when it finishes
- end_of_stream happens only once the queue is empty and no append is pending

Every exit path (stop, natural end, any failure) runs the same teardown:
cancel in-flight tasks, halt the sink, detach our listeners, release the
sink, drop queued chunks. Teardown runs at most once per playback.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import deque
from typing import Callable, Optional

import structlog

from budget_planner.services.speech.synthesis import (
    PlaybackRejectedError,
    SpeechSynthesisClient,
    SynthesisError,
)


logger = structlog.get_logger(__name__)

EndedListener = Callable[[], None]


class AudioSink(ABC):
    """Platform audio pipeline capability."""

    @abstractmethod
    async def open(self) -> None:
        pass

    @abstractmethod
    async def append(self, chunk: bytes) -> None:
        """Append a chunk to the playable buffer. Completes when the buffer is updated."""
        pass

    @abstractmethod
    async def play(self) -> None:
        """
        Start playing.

        Raises:
            PlaybackRejectedError: If the platform refuses to play
        """
        pass

    @abstractmethod
    def end_of_stream(self) -> None:
        """No more chunks will be appended."""
        pass

    @abstractmethod
    def halt(self) -> None:
        pass

    @abstractmethod
    def release(self) -> None:
        pass

    @abstractmethod
    def add_ended_listener(self, listener: EndedListener) -> None:
        pass

    @abstractmethod
    def remove_ended_listener(self, listener: EndedListener) -> None:
        pass


class BufferAudioSink(AudioSink):
    """
    In-process sink.

    Accumulates the appended audio and hands the finished clip to
    `on_clip` at end of stream, which is when the view can play it.
    """

    def __init__(
        self,
        on_clip: Optional[Callable[[bytes, str], None]] = None,
        mime_type: str = "audio/mpeg",
    ):
        self._on_clip = on_clip
        self._mime_type = mime_type
        self._buffer = bytearray()
        self._listeners: list[EndedListener] = []
        self._opened = False
        self._playing = False
        self._ended = False
        self._released = False

    @property
    def data(self) -> bytes:
        return bytes(self._buffer)

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def open(self) -> None:
        self._opened = True

    async def append(self, chunk: bytes) -> None:
        if self._released or self._ended:
            raise SynthesisError("Cannot append to a closed audio buffer.")
        self._buffer.extend(chunk)
        await asyncio.sleep(0)

    async def play(self) -> None:
        if not self._opened or self._released:
            raise PlaybackRejectedError("Audio output is not available.")
        self._playing = True

    def end_of_stream(self) -> None:
        if self._ended or self._released:
            return
        self._ended = True
        if self._on_clip and self._buffer:
            self._on_clip(bytes(self._buffer), self._mime_type)
        self._playing = False
        for listener in list(self._listeners):
            listener()

    def halt(self) -> None:
        self._playing = False

    def release(self) -> None:
        self._released = True

    def add_ended_listener(self, listener: EndedListener) -> None:
        self._listeners.append(listener)

    def remove_ended_listener(self, listener: EndedListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)


class Playback(ABC):
    """
    One read-aloud of one text.

    start() returns once playback is under way; wait() returns after
    teardown. A Playback object is single-use.
    """

    mode: str

    def __init__(
        self,
        synthesizer: SpeechSynthesisClient,
        sink: AudioSink,
    ):
        self._synthesizer = synthesizer
        self._sink = sink
        self._tasks: set[asyncio.Task] = set()
        self._listeners: list[EndedListener] = []
        self._cancelled: list[asyncio.Task] = []
        self._finished = asyncio.Event()
        self._started = False
        self._torn_down = False
        self._error: Optional[Exception] = None
        self.stop_reason: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self._started and not self._torn_down

    @property
    def error(self) -> Optional[Exception]:
        return self._error

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _listen(self, listener: EndedListener) -> None:
        self._sink.add_ended_listener(listener)
        self._listeners.append(listener)

    async def start(self, text: str, voice_id: Optional[str] = None) -> None:
        if self._started:
            raise RuntimeError("Playback objects are single-use")
        self._started = True
        if self._torn_down:
            # Stopped before it started; the sink is already released
            return
        try:
            await self._sink.open()
        except Exception as e:
            self._fail(e)
            raise
        if self._torn_down:
            return
        self._listen(self._on_ended)
        self._spawn(self._run(text, voice_id))

    async def _run(self, text: str, voice_id: Optional[str]) -> None:
        try:
            await self._play(text, voice_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(e)

    @abstractmethod
    async def _play(self, text: str, voice_id: Optional[str]) -> None:
        pass

    def _on_ended(self) -> None:
        self._teardown("ended")

    def _fail(self, error: Exception) -> None:
        if self._torn_down:
            return
        self._error = error
        logger.error("playback_failed", mode=self.mode, error=str(error))
        self._teardown("error")

    def _clear_pending(self) -> None:
        pass

    def _teardown(self, reason: str) -> None:
        if self._torn_down:
            return
        self._torn_down = True
        self.stop_reason = reason

        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()
                self._cancelled.append(task)

        self._sink.halt()
        for listener in self._listeners:
            self._sink.remove_ended_listener(listener)
        self._listeners.clear()
        self._sink.release()
        self._clear_pending()

        logger.debug("playback_torn_down", mode=self.mode, reason=reason)
        self._finished.set()

    async def stop(self) -> None:
        """Stop now. Safe to call at any stage and more than once."""
        self._teardown("stopped")
        await self._drain_cancelled()

    async def wait(self) -> None:
        """Wait until playback has ended, failed or been stopped."""
        await self._finished.wait()
        await self._drain_cancelled()

    async def _drain_cancelled(self) -> None:
        cancelled, self._cancelled = self._cancelled, []
        if cancelled:
            await asyncio.gather(*cancelled, return_exceptions=True)


class BufferedPlayback(Playback):
    """Fetch the full clip, append it once, play it."""

    mode = "buffered"

    async def _play(self, text: str, voice_id: Optional[str]) -> None:
        audio = await self._synthesizer.synthesize(text, voice_id)
        await self._sink.append(audio.data)
        await self._sink.play()
        self._sink.end_of_stream()


class StreamedPlayback(Playback):
    """
    Play while the response is still arriving.

    Incoming chunks queue up in a FIFO; a single appender drains it.
    """

    mode = "streamed"

    def __init__(
        self,
        synthesizer: SpeechSynthesisClient,
        sink: AudioSink,
        poll_interval: float = 0.1,
    ):
        super().__init__(synthesizer, sink)
        self.poll_interval = poll_interval
        self._queue: deque[bytes] = deque()
        self._appending = False
        self._playing = False

    @property
    def pending_chunks(self) -> int:
        return len(self._queue)

    @property
    def is_appending(self) -> bool:
        return self._appending

    async def _play(self, text: str, voice_id: Optional[str]) -> None:
        stream = self._synthesizer.stream(text, voice_id)
        try:
            async for chunk in stream:
                if self._torn_down:
                    return
                self._queue.append(chunk)
                self._process_queue()
                if not self._playing:
                    self._playing = True
                    await self._sink.play()
        finally:
            await stream.aclose()

        if not self._playing:
            raise SynthesisError("No audio data received from ElevenLabs.")

        await self._finalize()

    def _process_queue(self) -> None:
        """Start the next append unless one is already running."""
        if self._torn_down or self._appending or not self._queue:
            return
        chunk = self._queue.popleft()
        self._appending = True
        self._spawn(self._append(chunk))

    async def _append(self, chunk: bytes) -> None:
        try:
            await self._sink.append(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._fail(e)
            return
        finally:
            self._appending = False
        self._process_queue()

    async def _finalize(self) -> None:
        while (self._queue or self._appending) and not self._torn_down:
            await asyncio.sleep(self.poll_interval)
        if not self._torn_down:
            self._sink.end_of_stream()

    def _clear_pending(self) -> None:
        self._queue.clear()
