from .engine import (
    Alternative,
    EngineBusyError,
    ListeningEngine,
    RecognitionSegment,
    VoskListeningEngine,
)
from .local_provider import LocalSpeechProvider, SessionState
from .manager import SpeechRecognitionManager, get_speech_manager
from .provider import (
    ProviderDescriptor,
    ProviderType,
    ProviderUnavailableError,
    RecognitionOptions,
    SpeechProvider,
    SpeechRecognitionError,
    TranscriptEvent,
)
from .remote_provider import (
    RemoteState,
    RemoteWhisperProvider,
    TranscriptionServiceError,
    WhisperClient,
)

__all__ = [
    # Engine primitive
    "Alternative",
    "EngineBusyError",
    "ListeningEngine",
    "RecognitionSegment",
    "VoskListeningEngine",
    # Providers
    "LocalSpeechProvider",
    "SessionState",
    "RemoteState",
    "RemoteWhisperProvider",
    "TranscriptionServiceError",
    "WhisperClient",
    # Contract
    "ProviderDescriptor",
    "ProviderType",
    "ProviderUnavailableError",
    "RecognitionOptions",
    "SpeechProvider",
    "SpeechRecognitionError",
    "TranscriptEvent",
    # Manager
    "SpeechRecognitionManager",
    "get_speech_manager",
]
