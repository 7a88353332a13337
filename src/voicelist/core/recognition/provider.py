"""
Speech recognition provider abstraction layer.

Every recognizer the manager can dispatch to implements SpeechProvider:
- LocalSpeechProvider: continuous, interim-capable, runs on-device (Vosk)
- RemoteWhisperProvider: record-then-upload, final-only (Whisper API)

Lifecycle contract shared by all providers:
  1. await start(options) -> on_start fires before any transcript event
  2. on_result / on_interim_result / on_error as recognition progresses
  3. stop() -> exactly one on_end, however the session ended
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ...utils.logger import get_logger
from ..settings.config import DEFAULT_LANGUAGE

logger = get_logger(__name__)


class ProviderType(str, Enum):
    """Provider selectors accepted by the manager."""

    AUTO = "auto"
    LOCAL = "local"
    REMOTE = "remote"

    @classmethod
    def parse(cls, raw: "str | ProviderType | None") -> "ProviderType":
        if isinstance(raw, ProviderType):
            return raw
        name = (raw or "auto").strip().lower()
        name = _ALIAS_MAP.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"Unknown speech provider: {raw!r}") from None


_ALIAS_MAP = {
    "": "auto",
    "web-speech": "local",
    "vosk": "local",
    "offline": "local",
    "openai-whisper": "remote",
    "openai": "remote",
    "whisper": "remote",
}


_ERROR_MESSAGES = {
    "no-speech": "No speech was detected. Please try speaking again.",
    "network": "Speech recognition lost its connection. Please try again.",
    "audio-capture": "No microphone was found or it could not be opened.",
    "not-allowed": (
        "Microphone access was denied. Allow microphone access for this "
        "application and try again."
    ),
    "service-not-allowed": "The speech recognition service is not available.",
    "aborted": "Speech recognition was aborted.",
}


class SpeechRecognitionError(Exception):
    """Recognition failure with a message that is safe to show to users."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code

    @property
    def message(self) -> str:
        return str(self)

    @classmethod
    def from_code(cls, code: str) -> "SpeechRecognitionError":
        message = _ERROR_MESSAGES.get(code, f"Speech recognition error: {code}")
        return cls(message, code=code)


class ProviderUnavailableError(SpeechRecognitionError):
    """Raised before a session starts when no usable recognizer exists."""


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool
    confidence: Optional[float] = None


@dataclass(frozen=True)
class ProviderDescriptor:
    id: str
    name: str
    supported: bool
    accuracy: float
    latency_ms: int


@dataclass
class RecognitionOptions:
    """
    Per-session configuration and callbacks.

    Attributes:
        language: BCP-47 language tag (e.g. "vi-VN")
        continuous: Keep listening across pauses instead of stopping
            after the first utterance
        interim_results: Report live, non-final text
        max_alternatives: Number of hypotheses requested per segment
        auto_restart: Re-arm the recognizer after recoverable interruptions
    """

    language: str = DEFAULT_LANGUAGE
    continuous: bool = True
    interim_results: bool = True
    max_alternatives: int = 3
    auto_restart: bool = True
    on_start: Optional[Callable[[], None]] = None
    on_interim_result: Optional[Callable[[str], None]] = None
    on_result: Optional[Callable[[str, bool], None]] = None
    on_error: Optional[Callable[[SpeechRecognitionError], None]] = None
    on_end: Optional[Callable[[], None]] = None


class SpeechProvider(ABC):
    """
    Abstract base class for speech recognition providers.

    start() may raise ProviderUnavailableError before listening is
    attempted. Anything that goes wrong afterwards is reported through
    options.on_error, never raised.
    """

    @abstractmethod
    def is_supported(self) -> bool:
        """Check, without side effects, whether this provider can run now."""
        pass

    @abstractmethod
    async def start(self, options: RecognitionOptions) -> None:
        """
        Begin a recognition session.

        Resolves once listening has begun or has failed to begin.

        Raises:
            ProviderUnavailableError: If the provider is not supported
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the current session. Idempotent; on_end fires exactly once."""
        pass

    @abstractmethod
    def is_listening(self) -> bool:
        pass

    @abstractmethod
    def get_name(self) -> str:
        pass

    @abstractmethod
    def get_accuracy(self) -> float:
        """Estimated accuracy (0.0-1.0)."""
        pass

    @abstractmethod
    def get_speed(self) -> int:
        """Typical latency in milliseconds."""
        pass

    async def wait_closed(self) -> None:
        """Wait for in-flight work to settle. No-op by default."""
        return None

    def describe(self, provider_id: str) -> ProviderDescriptor:
        return ProviderDescriptor(
            id=provider_id,
            name=self.get_name(),
            supported=self.is_supported(),
            accuracy=self.get_accuracy(),
            latency_ms=self.get_speed(),
        )


def invoke_callback(callback: Optional[Callable], *args) -> None:
    """Run a caller callback; exceptions are logged and never propagate."""
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as e:
        logger.exception(f"Recognition callback {callback!r} failed: {e}")
