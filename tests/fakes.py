"""
In-memory stand-ins for the external providers.

No test talks to Gemini, ElevenLabs, Google Sheets or a real audio
device; these fakes record what they were asked to do instead.
"""

import asyncio
from types import SimpleNamespace
from typing import Optional

from budget_planner.services.speech import (
    AudioSink,
    PlaybackRejectedError,
    RecognitionCapability,
    SpeechSynthesisClient,
    SynthesisError,
    SynthesizedAudio,
)


async def settle(rounds: int = 20) -> None:
    """Let every ready task run a few steps."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeGeminiModel:
    """Exposes generate_content_async like genai.GenerativeModel."""

    def __init__(self, text: Optional[str] = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.prompts: list = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeSynthesizer(SpeechSynthesisClient):
    """
    Returns canned audio.

    hold_at=N makes the stream wait on `gate` before yielding chunk N.
    """

    def __init__(
        self,
        chunks: tuple = (b"chunk-1", b"chunk-2", b"chunk-3"),
        error: Optional[Exception] = None,
        hold_at: Optional[int] = None,
    ):
        self.chunks = list(chunks)
        self.error = error
        self.hold_at = hold_at
        self.gate: Optional[asyncio.Event] = None
        self.calls: list[tuple[str, str, Optional[str]]] = []
        self.closed = False
        self.finished = False

    async def synthesize(self, text, voice_id=None):
        self.calls.append(("synthesize", text, voice_id))
        if self.error is not None:
            raise self.error
        return SynthesizedAudio(data=b"".join(self.chunks))

    async def stream(self, text, voice_id=None):
        self.calls.append(("stream", text, voice_id))
        try:
            for idx, chunk in enumerate(self.chunks):
                if idx == self.hold_at:
                    self.gate = asyncio.Event()
                    await self.gate.wait()
                if self.error is not None:
                    raise self.error
                yield chunk
                await asyncio.sleep(0)
            self.finished = True
        finally:
            self.closed = True


class FakeSink(AudioSink):
    """
    Records every call.

    With hold_appends=True each append waits until the test sets the
    matching event in `pending`.
    """

    def __init__(
        self,
        hold_appends: bool = False,
        reject_play: bool = False,
        fail_on: Optional[bytes] = None,
        auto_end: bool = True,
    ):
        self.hold_appends = hold_appends
        self.reject_play = reject_play
        self.fail_on = fail_on
        self.auto_end = auto_end
        self.events: list = []
        self.appended: list[bytes] = []
        self.listeners: list = []
        self.pending: list[asyncio.Event] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def open(self):
        self.events.append("open")

    async def append(self, chunk):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("append", chunk))
        try:
            if self.hold_appends:
                gate = asyncio.Event()
                self.pending.append(gate)
                await gate.wait()
            else:
                await asyncio.sleep(0)
            if chunk == self.fail_on:
                raise SynthesisError("buffer update failed")
            self.appended.append(chunk)
        finally:
            self.in_flight -= 1

    async def play(self):
        if self.reject_play:
            raise PlaybackRejectedError("autoplay blocked")
        self.events.append("play")

    def end_of_stream(self):
        self.events.append("end_of_stream")
        if self.auto_end:
            self.finish()

    def halt(self):
        self.events.append("halt")

    def release(self):
        self.events.append("release")

    def add_ended_listener(self, listener):
        self.listeners.append(listener)

    def remove_ended_listener(self, listener):
        self.listeners.remove(listener)

    def finish(self):
        """Simulate the audio element reaching the end."""
        for listener in list(self.listeners):
            listener()


class FakeRecognizer(RecognitionCapability):
    """
    Emits a canned outcome on start().

    With manual=True it emits nothing until stop() (which ends the session).
    """

    def __init__(
        self,
        transcript: Optional[str] = None,
        error_code: Optional[str] = None,
        available: bool = True,
        manual: bool = False,
    ):
        self.transcript = transcript
        self.error_code = error_code
        self._available = available
        self.manual = manual
        self.started_with: Optional[tuple[bytes, str]] = None
        self.stopped = False
        self.on_result = None
        self.on_error = None
        self.on_end = None

    @property
    def available(self):
        return self._available

    async def start(self, audio, mime_type):
        self.started_with = (audio, mime_type)
        if self.manual:
            return
        if self.error_code:
            self.on_error(self.error_code)
        elif self.transcript:
            self.on_result(self.transcript)
        else:
            self.on_end()

    def stop(self):
        self.stopped = True
        if self.on_end:
            self.on_end()


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the Sheets backend."""

    def __init__(self, header: list[str]):
        self.rows: list[list[str]] = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update(self, range_name=None, values=None, value_input_option=None):
        row_number = int(range_name.lstrip("A"))
        self.rows[row_number - 1] = [str(v) for v in values[0]]

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = str(value)

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient."""

    def __init__(self):
        from budget_planner.services.storage.google_sheets import (
            AUDIT_COLUMNS,
            PLAN_COLUMNS,
            PROFILE_COLUMNS,
        )
        self.plans = FakeWorksheet(PLAN_COLUMNS)
        self.profiles = FakeWorksheet(PROFILE_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_plans_sheet(self):
        return self.plans

    def get_profiles_sheet(self):
        return self.profiles

    def get_audit_sheet(self):
        return self.audit
