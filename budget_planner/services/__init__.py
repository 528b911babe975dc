"""Services package."""

from budget_planner.services.speech import (
    BufferAudioSink,
    BufferedPlayback,
    ElevenLabsSynthesisClient,
    GeminiSpeechRecognizer,
    PlaybackRejectedError,
    RecognitionError,
    RecognitionUnavailableError,
    SpeechInputBridge,
    StreamedPlayback,
    SynthesisError,
)
from budget_planner.services.storage import (
    CollaborationService,
    InMemoryPlanStorage,
    JsonFilePlanStorage,
    NotAuthenticatedError,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Speech services
    "BufferAudioSink",
    "BufferedPlayback",
    "ElevenLabsSynthesisClient",
    "GeminiSpeechRecognizer",
    "PlaybackRejectedError",
    "RecognitionError",
    "RecognitionUnavailableError",
    "SpeechInputBridge",
    "StreamedPlayback",
    "SynthesisError",
    # Storage services
    "CollaborationService",
    "InMemoryPlanStorage",
    "JsonFilePlanStorage",
    "NotAuthenticatedError",
    "NotFoundError",
    "StorageError",
]
