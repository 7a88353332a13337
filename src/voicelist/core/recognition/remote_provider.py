"""
Remote transcription provider.

Records a single clip from the microphone and uploads it to an
OpenAI-compatible transcription endpoint once the session is stopped:

    IDLE -> RECORDING -> UPLOADING -> IDLE

There are no interim results; the only transcript event is one final
result after the upload completes.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, Set

import numpy as np
import requests

from ...utils.logger import get_logger
from ..audio.recorder import AudioRecorder, to_wav_bytes
from ..settings.config import DEFAULT_TRANSCRIPTION_ENDPOINT, DEFAULT_WHISPER_MODEL
from ..transcript_processor.normalizer import normalize_final
from .engine import AUDIO_CAPTURE, NETWORK, SERVICE_NOT_ALLOWED
from .provider import (
    ProviderUnavailableError,
    RecognitionOptions,
    SpeechProvider,
    SpeechRecognitionError,
    invoke_callback,
)

logger = get_logger(__name__)


class TranscriptionServiceError(SpeechRecognitionError):
    """The transcription service could not be reached or rejected the request."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, code=code)
        self.status_code = status_code


def primary_language(tag: str) -> str:
    """'vi-VN' -> 'vi'."""
    return tag.replace("_", "-").split("-")[0].strip().lower()


class WhisperClient:
    def __init__(
        self,
        api_key: Optional[str],
        endpoint: str = DEFAULT_TRANSCRIPTION_ENDPOINT,
        model: str = DEFAULT_WHISPER_MODEL,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.timeout = timeout

    def transcribe(self, audio_wav: bytes, language: str) -> str:
        """
        Upload a WAV clip and return the transcribed text.

        Args:
            audio_wav: Complete WAV file contents
            language: BCP-47 tag; only the primary subtag is sent

        Raises:
            TranscriptionServiceError: On transport failure or a non-2xx response
        """
        if not self.api_key:
            raise TranscriptionServiceError(
                "No OpenAI API key is configured.", code=SERVICE_NOT_ALLOWED
            )

        data = {"model": self.model, "response_format": "json"}
        lang = primary_language(language)
        if lang:
            data["language"] = lang

        logger.info(f"Uploading {len(audio_wav)} bytes to {self.endpoint}")

        try:
            response = requests.post(
                self.endpoint,
                headers={"Authorization": f"Bearer {self.api_key}"},
                data=data,
                files={"file": ("audio.wav", audio_wav, "audio/wav")},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Transcription request failed: {e}")
            raise TranscriptionServiceError(
                f"Could not reach the transcription service: {e}", code=NETWORK
            ) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = None
            if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
                message = payload["error"].get("message")
            if not message:
                message = (
                    f"Transcription failed with HTTP status {response.status_code}"
                )
            logger.error(f"Transcription service error ({response.status_code}): {message}")
            raise TranscriptionServiceError(message, status_code=response.status_code)

        if not isinstance(payload, dict):
            raise TranscriptionServiceError(
                "Transcription service returned an unreadable response",
                status_code=response.status_code,
            )

        return str(payload.get("text") or "")


class RemoteState(Enum):
    IDLE = auto()
    RECORDING = auto()
    UPLOADING = auto()


@dataclass
class _RemoteSession:
    options: RecognitionOptions
    state: RemoteState = RemoteState.IDLE
    recorder: Optional[AudioRecorder] = None
    stop_requested: bool = False
    ended: bool = False


class RemoteWhisperProvider(SpeechProvider):
    """Record-then-upload recognition through the Whisper API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        sample_rate: int = 16000,
        device: Optional[str] = None,
        client: Optional[WhisperClient] = None,
        recorder_factory: Optional[Callable[[], AudioRecorder]] = None,
    ):
        self.api_key = api_key
        self.sample_rate = sample_rate
        self.device = device
        self._client = client or WhisperClient(api_key)
        self._recorder_factory = recorder_factory or (
            lambda: AudioRecorder(sample_rate=self.sample_rate, device=self.device)
        )
        self._session: Optional[_RemoteSession] = None
        self._uploads: Set["asyncio.Task[None]"] = set()
        # Last pending open or release of the microphone
        self._device_busy: Optional[asyncio.Future] = None

    @property
    def state(self) -> RemoteState:
        if self._session is None:
            return RemoteState.IDLE
        return self._session.state

    def is_supported(self) -> bool:
        if not self.api_key:
            return False
        try:
            return bool(AudioRecorder.list_devices())
        except Exception as e:
            logger.debug(f"Audio device query failed: {e}")
            return False

    def get_name(self) -> str:
        return "OpenAI Whisper"

    def get_accuracy(self) -> float:
        return 0.95

    def get_speed(self) -> int:
        return 2000

    def is_listening(self) -> bool:
        return self.state is RemoteState.RECORDING

    async def start(self, options: RecognitionOptions) -> None:
        if not self.is_supported():
            raise ProviderUnavailableError(
                "OpenAI Whisper needs an API key and a microphone.",
                code=SERVICE_NOT_ALLOWED,
            )

        if self._session is not None:
            self.stop()

        session = _RemoteSession(options)
        self._session = session
        recorder = self._recorder_factory()

        acquisition = asyncio.get_running_loop().create_task(
            self._open(session, recorder, self._device_busy)
        )
        self._device_busy = acquisition
        await acquisition

    async def _open(
        self,
        session: _RemoteSession,
        recorder: AudioRecorder,
        previous: Optional[asyncio.Future],
    ) -> None:
        """Open the microphone once the previous session has let go of it."""
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        if session.stop_requested or session is not self._session:
            self._end(session)
            return

        loop = asyncio.get_running_loop()
        try:
            acquired = await loop.run_in_executor(None, recorder.start)
        except Exception as e:
            logger.error(f"Could not open microphone: {e}")
            acquired = False

        if not acquired:
            code = getattr(recorder, "last_error_code", None) or AUDIO_CAPTURE
            invoke_callback(
                session.options.on_error, SpeechRecognitionError.from_code(code)
            )
            self._end(session)
            return

        if session.stop_requested or session is not self._session:
            await loop.run_in_executor(None, recorder.stop)
            self._end(session)
            return

        session.recorder = recorder
        session.state = RemoteState.RECORDING
        logger.info("Recording for remote transcription")
        invoke_callback(session.options.on_start)

    def stop(self) -> None:
        session = self._session
        if session is None or session.stop_requested:
            return
        session.stop_requested = True

        # Still acquiring the microphone; _open() releases it and ends
        if session.recorder is None:
            return

        recorder, session.recorder = session.recorder, None
        session.state = RemoteState.UPLOADING
        loop = asyncio.get_running_loop()
        release = loop.run_in_executor(None, recorder.stop)
        self._device_busy = release
        task = loop.create_task(self._transcribe_recording(session, release))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)

    async def _transcribe_recording(
        self, session: _RemoteSession, release: "asyncio.Future[Optional[np.ndarray]]"
    ) -> None:
        try:
            audio = await release
        except Exception as e:
            logger.error(f"Failed to finalize recording: {e}")
            audio = None

        if audio is None or len(audio) == 0:
            logger.info("No audio captured, skipping upload")
            self._end(session)
            return

        await self._upload(session, audio)

    async def _upload(self, session: _RemoteSession, audio: np.ndarray) -> None:
        options = session.options
        loop = asyncio.get_running_loop()
        try:
            wav_bytes = to_wav_bytes(audio, self.sample_rate)
            text = await loop.run_in_executor(
                None, self._client.transcribe, wav_bytes, options.language
            )
            if session is not self._session:
                logger.info("Dropping transcript of a superseded session")
                return
            text = normalize_final(text)
            if text:
                invoke_callback(options.on_result, text, True)
        except SpeechRecognitionError as e:
            if session is self._session:
                invoke_callback(options.on_error, e)
        except Exception as e:
            logger.exception(f"Remote transcription failed: {e}")
            if session is self._session:
                invoke_callback(
                    options.on_error,
                    TranscriptionServiceError(f"Transcription failed: {e}"),
                )
        finally:
            self._end(session)

    def _end(self, session: _RemoteSession) -> None:
        if session.ended:
            return
        session.ended = True
        session.state = RemoteState.IDLE
        if session is self._session:
            self._session = None
        invoke_callback(session.options.on_end)

    async def wait_closed(self) -> None:
        if self._uploads:
            await asyncio.gather(*list(self._uploads))
