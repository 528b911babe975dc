"""Tests for buffered and streamed playback (synthesizer and sink are faked)."""

import asyncio

import pytest

from budget_planner.services.speech import (
    BufferAudioSink,
    BufferedPlayback,
    Playback,
    PlaybackRejectedError,
    StreamedPlayback,
    SynthesisError,
)
from tests.fakes import FakeSink, FakeSynthesizer, settle


def _assert_torn_down(playback, sink):
    assert not playback.is_active
    assert sink.listeners == []
    assert sink.events.count("release") == 1
    assert "halt" in sink.events


class TestBufferedPlayback:
    """Tests for BufferedPlayback."""

    def test_plays_whole_clip(self):
        """Test the clip is appended once, played and finished."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"ab", b"cd"))
            sink = FakeSink()
            playback = BufferedPlayback(synth, sink)
            await playback.start("Plan text", "voice-1")
            await playback.wait()
            return synth, sink, playback

        synth, sink, playback = asyncio.run(scenario())

        assert synth.calls == [("synthesize", "Plan text", "voice-1")]
        assert sink.appended == [b"abcd"]
        assert sink.events.index("play") < sink.events.index("end_of_stream")
        assert playback.error is None
        assert playback.stop_reason == "ended"
        _assert_torn_down(playback, sink)

    def test_active_until_sink_ends(self):
        """Test playback stays active while audio is still playing."""
        async def scenario():
            sink = FakeSink(auto_end=False)
            playback = BufferedPlayback(FakeSynthesizer(), sink)
            await playback.start("text")
            await settle()
            active_while_playing = playback.is_active
            sink.finish()
            await playback.wait()
            return active_while_playing, playback, sink

        active_while_playing, playback, sink = asyncio.run(scenario())
        assert active_while_playing
        assert playback.stop_reason == "ended"
        _assert_torn_down(playback, sink)

    def test_synthesis_error_tears_down(self):
        """Test a provider failure is recorded and cleaned up."""
        async def scenario():
            sink = FakeSink()
            playback = BufferedPlayback(
                FakeSynthesizer(error=SynthesisError("quota exceeded")), sink
            )
            await playback.start("text")
            await playback.wait()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert isinstance(playback.error, SynthesisError)
        assert playback.stop_reason == "error"
        assert "play" not in sink.events
        _assert_torn_down(playback, sink)

    def test_play_rejected(self):
        """Test a refused play() surfaces as PlaybackRejectedError."""
        async def scenario():
            sink = FakeSink(reject_play=True)
            playback = BufferedPlayback(FakeSynthesizer(), sink)
            await playback.start("text")
            await playback.wait()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert isinstance(playback.error, PlaybackRejectedError)
        _assert_torn_down(playback, sink)

    def test_stop_is_idempotent(self):
        """Test stopping twice runs teardown once."""
        async def scenario():
            sink = FakeSink(auto_end=False)
            playback = BufferedPlayback(FakeSynthesizer(), sink)
            await playback.start("text")
            await settle()
            await playback.stop()
            await playback.stop()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert playback.stop_reason == "stopped"
        _assert_torn_down(playback, sink)


class TestStreamedPlayback:
    """Tests for StreamedPlayback."""

    def test_chunks_appended_in_arrival_order(self):
        """Test every chunk is appended, in order, then the stream ends."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"1", b"2", b"3", b"4"))
            sink = FakeSink()
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text", "voice-2")
            await playback.wait()
            return synth, sink, playback

        synth, sink, playback = asyncio.run(scenario())

        assert synth.calls == [("stream", "text", "voice-2")]
        assert sink.appended == [b"1", b"2", b"3", b"4"]
        assert sink.max_in_flight == 1
        assert sink.events[-3:] == ["end_of_stream", "halt", "release"]
        assert playback.error is None
        assert synth.closed
        _assert_torn_down(playback, sink)

    def test_single_appender_and_finalize_waits(self):
        """Test one append at a time and no end_of_stream while appends are pending."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a", b"b", b"c"))
            sink = FakeSink(hold_appends=True)
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()

            observations = {
                "stream_done": synth.finished,
                "pending": playback.pending_chunks,
                "appending": playback.is_appending,
                "in_flight": sink.in_flight,
            }

            for released in range(3):
                while len(sink.pending) <= released:
                    await asyncio.sleep(0)
                assert "end_of_stream" not in sink.events
                sink.pending[released].set()

            await playback.wait()
            return observations, sink, playback

        observations, sink, playback = asyncio.run(scenario())

        assert observations == {
            "stream_done": True,
            "pending": 2,
            "appending": True,
            "in_flight": 1,
        }
        assert sink.max_in_flight == 1
        assert sink.appended == [b"a", b"b", b"c"]
        assert sink.events.index("end_of_stream") > sink.events.index(("append", b"c"))
        _assert_torn_down(playback, sink)

    def test_plays_before_stream_completes(self):
        """Test playback starts on the first chunk, not at the end."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"first", b"second"), hold_at=1)
            sink = FakeSink()
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()
            played_early = "play" in sink.events and not synth.finished
            synth.gate.set()
            await playback.wait()
            return played_early, sink

        played_early, sink = asyncio.run(scenario())
        assert played_early
        assert sink.appended == [b"first", b"second"]

    def test_stop_before_first_chunk(self):
        """Test stopping while waiting for the first chunk."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a", b"b"), hold_at=0)
            sink = FakeSink()
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()
            await playback.stop()
            return synth, sink, playback

        synth, sink, playback = asyncio.run(scenario())
        assert synth.closed
        assert "play" not in sink.events
        assert sink.appended == []
        assert playback.pending_chunks == 0
        _assert_torn_down(playback, sink)

    @pytest.mark.parametrize("playback_cls", [StreamedPlayback, BufferedPlayback])
    def test_stop_before_start(self, playback_cls):
        """Test a playback stopped before start() never opens, listens or calls out."""
        async def scenario():
            synth = FakeSynthesizer()
            sink = FakeSink()
            playback = playback_cls(synth, sink)
            await playback.stop()
            await playback.start("text")
            await settle()
            await playback.wait()
            return synth, sink, playback

        synth, sink, playback = asyncio.run(scenario())
        assert synth.calls == []
        assert "open" not in sink.events
        assert sink.listeners == []
        assert playback.stop_reason == "stopped"
        _assert_torn_down(playback, sink)

    def test_stop_mid_stream(self):
        """Test stopping with the network read still open."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a", b"b", b"c"), hold_at=2)
            sink = FakeSink()
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()
            await playback.stop()
            await settle()
            return synth, sink, playback

        synth, sink, playback = asyncio.run(scenario())
        assert synth.closed
        assert not synth.finished
        assert "end_of_stream" not in sink.events
        assert playback.pending_chunks == 0
        _assert_torn_down(playback, sink)

    def test_stop_during_append(self):
        """Test stopping with an append in flight and chunks queued."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a", b"b", b"c"))
            sink = FakeSink(hold_appends=True)
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()
            queued_before = playback.pending_chunks
            await playback.stop()
            await settle()
            return queued_before, sink, playback

        queued_before, sink, playback = asyncio.run(scenario())
        assert queued_before == 2
        assert playback.pending_chunks == 0
        assert sink.in_flight == 0
        assert sink.appended == []
        assert "end_of_stream" not in sink.events
        _assert_torn_down(playback, sink)

    def test_stop_while_finalizing(self):
        """Test stopping while finalize is polling."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a",))
            sink = FakeSink(hold_appends=True)
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await settle()
            stream_done = synth.finished
            await playback.stop()
            return stream_done, sink, playback

        stream_done, sink, playback = asyncio.run(scenario())
        assert stream_done
        assert "end_of_stream" not in sink.events
        _assert_torn_down(playback, sink)

    def test_append_failure(self):
        """Test a failed append stops everything and keeps the error."""
        async def scenario():
            synth = FakeSynthesizer(chunks=(b"a", b"bad", b"c"))
            sink = FakeSink(fail_on=b"bad")
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await playback.wait()
            return sink, playback

        sink, playback = asyncio.run(scenario())
        assert isinstance(playback.error, SynthesisError)
        assert playback.stop_reason == "error"
        assert b"c" not in sink.appended
        assert "end_of_stream" not in sink.events
        _assert_torn_down(playback, sink)

    def test_stream_error(self):
        """Test a provider error mid-stream tears down."""
        async def scenario():
            synth = FakeSynthesizer(error=SynthesisError("Invalid API key"))
            sink = FakeSink()
            playback = StreamedPlayback(synth, sink, poll_interval=0.001)
            await playback.start("text")
            await playback.wait()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert str(playback.error) == "Invalid API key"
        _assert_torn_down(playback, sink)

    def test_empty_stream_is_an_error(self):
        """Test a response with no audio is reported."""
        async def scenario():
            sink = FakeSink()
            playback = StreamedPlayback(FakeSynthesizer(chunks=()), sink)
            await playback.start("text")
            await playback.wait()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert isinstance(playback.error, SynthesisError)
        _assert_torn_down(playback, sink)


class TestBufferAudioSink:
    """Tests for the in-process sink."""

    def test_publishes_clip_at_end_of_stream(self):
        """Test the accumulated audio is handed over once."""
        clips = []
        ended = []

        async def scenario():
            sink = BufferAudioSink(on_clip=lambda data, mime: clips.append((data, mime)))
            sink.add_ended_listener(lambda: ended.append(True))
            await sink.open()
            await sink.append(b"ab")
            await sink.play()
            await sink.append(b"cd")
            sink.end_of_stream()
            sink.end_of_stream()
            return sink

        sink = asyncio.run(scenario())
        assert clips == [(b"abcd", "audio/mpeg")]
        assert ended == [True]
        assert sink.data == b"abcd"
        assert not sink.is_playing

    def test_play_before_open_rejected(self):
        """Test play() on an unopened sink is refused."""
        async def scenario():
            await BufferAudioSink().play()

        with pytest.raises(PlaybackRejectedError):
            asyncio.run(scenario())

    def test_streamed_playback_with_buffer_sink(self):
        """Test the real sink works end to end with streamed playback."""
        clips = []

        async def scenario():
            sink = BufferAudioSink(on_clip=lambda data, mime: clips.append(data))
            playback = StreamedPlayback(
                FakeSynthesizer(chunks=(b"x", b"y", b"z")), sink, poll_interval=0.001
            )
            await playback.start("text")
            await playback.wait()
            return playback, sink

        playback, sink = asyncio.run(scenario())
        assert clips == [b"xyz"]
        assert playback.error is None
        assert sink.listener_count == 0


class TestPlaybackMode:
    """Tests for the mode label each implementation reports."""

    def test_subclasses_name_their_mode(self):
        """Test each implementation carries its own mode."""
        assert BufferedPlayback.mode == "buffered"
        assert StreamedPlayback.mode == "streamed"

    def test_base_class_has_no_mode(self):
        """Test the base class leaves mode to its subclasses."""
        assert "mode" in Playback.__annotations__
        assert not hasattr(Playback, "mode")
