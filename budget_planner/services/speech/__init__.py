"""
Speech Services Package

Text-to-speech for reading plans aloud and speech-to-text for dictating
form fields.
"""

from budget_planner.services.speech.synthesis import (
    ElevenLabsSynthesisClient,
    PlaybackRejectedError,
    SpeechSynthesisClient,
    SynthesisError,
    SynthesizedAudio,
)
from budget_planner.services.speech.playback import (
    AudioSink,
    BufferAudioSink,
    BufferedPlayback,
    Playback,
    StreamedPlayback,
)
from budget_planner.services.speech.recognition import (
    GeminiSpeechRecognizer,
    RecognitionCapability,
    RecognitionError,
    RecognitionOutcome,
    RecognitionSession,
    RecognitionUnavailableError,
    SpeechInputBridge,
)

__all__ = [
    # Synthesis
    "ElevenLabsSynthesisClient",
    "PlaybackRejectedError",
    "SpeechSynthesisClient",
    "SynthesisError",
    "SynthesizedAudio",
    # Playback
    "AudioSink",
    "BufferAudioSink",
    "BufferedPlayback",
    "Playback",
    "StreamedPlayback",
    # Recognition
    "GeminiSpeechRecognizer",
    "RecognitionCapability",
    "RecognitionError",
    "RecognitionOutcome",
    "RecognitionSession",
    "RecognitionUnavailableError",
    "SpeechInputBridge",
]
