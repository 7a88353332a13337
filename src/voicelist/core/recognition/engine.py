"""
Continuous listening engines used by the local provider.

A ListeningEngine is the raw recognition primitive: it captures audio,
decodes it, and reports events through plain callbacks (on_start,
on_result, on_error, on_end). It knows nothing about sessions, restarts,
or transcript accumulation; LocalSpeechProvider layers that on top.

Thread <-> Async Bridge:
 - VoskListeningEngine decodes on a worker thread fed by the sounddevice
   callback. Every event is marshalled onto the asyncio loop that called
   start() via call_soon_threadsafe, so callbacks always run on the loop
   thread.
"""

import asyncio
import json
import os
import queue
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import sounddevice as sd
from vosk import KaldiRecognizer, Model, SetLogLevel

from ...utils.logger import get_logger
from ..audio.recorder import AudioRecorder, classify_device_error
from ..settings.config import AUDIO_SLICE_MS, DEFAULT_LANGUAGE, NO_SPEECH_TIMEOUT_SECONDS

logger = get_logger(__name__)

# Error codes reported through on_error
NO_SPEECH = "no-speech"
NETWORK = "network"
AUDIO_CAPTURE = "audio-capture"
NOT_ALLOWED = "not-allowed"
SERVICE_NOT_ALLOWED = "service-not-allowed"
ABORTED = "aborted"


class EngineBusyError(RuntimeError):
    """start() was called while the engine is still running."""


@dataclass(frozen=True)
class Alternative:
    transcript: str
    confidence: float = 0.0


@dataclass(frozen=True)
class RecognitionSegment:
    alternatives: Tuple[Alternative, ...]
    is_final: bool

    def best(self) -> Optional[Alternative]:
        """Highest-confidence alternative; ties keep the first listed."""
        best: Optional[Alternative] = None
        for alternative in self.alternatives:
            if best is None or alternative.confidence > best.confidence:
                best = alternative
        return best


class ListeningEngine(ABC):
    """
    Interface for continuous recognizers.

    Configure the public attributes, assign callbacks, then call start().
    Callbacks:
        on_start(): audio capture has begun
        on_result(segments): a batch of RecognitionSegment
        on_error(code): one of the module-level error codes (or unknown)
        on_end(): the run is over; start() may be called again
    """

    def __init__(self) -> None:
        self.language = DEFAULT_LANGUAGE
        self.continuous = True
        self.interim_results = True
        self.max_alternatives = 3

        self.on_start: Optional[Callable[[], None]] = None
        self.on_result: Optional[Callable[[Sequence[RecognitionSegment]], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_end: Optional[Callable[[], None]] = None

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def start(self) -> None:
        """
        Begin a listening run. Must be called from the event loop thread.

        Raises:
            EngineBusyError: If a previous run has not ended yet
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing, deliver any pending final result, then end."""
        pass

    @abstractmethod
    def abort(self) -> None:
        """Stop capturing and end without delivering pending results."""
        pass

    @property
    @abstractmethod
    def is_running(self) -> bool:
        pass


_MODEL_CACHE: dict = {}
_MODEL_LOCK = threading.Lock()


def _load_model(model_path: Optional[str], language: str) -> Model:
    key = model_path or language.lower()
    with _MODEL_LOCK:
        model = _MODEL_CACHE.get(key)
        if model is None:
            if model_path:
                logger.info(f"Loading Vosk model from {model_path}")
                model = Model(model_path)
            else:
                lang = language.split("-")[0].lower()
                logger.info(f"Loading Vosk model for language '{lang}'")
                model = Model(lang=lang)
            _MODEL_CACHE[key] = model
        return model


class _ListeningRun:
    """State owned by one start() -> on_end cycle."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.audio: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self.flush = True
        self.finishing = False
        self.thread: Optional[threading.Thread] = None


class VoskListeningEngine(ListeningEngine):
    """Listening engine backed by Vosk and a sounddevice input stream."""

    def __init__(
        self,
        model_path: Optional[str] = None,
        sample_rate: int = 16000,
        device: Optional[str] = None,
        no_speech_timeout: float = NO_SPEECH_TIMEOUT_SECONDS,
    ):
        super().__init__()
        self.model_path = model_path
        self.sample_rate = sample_rate
        self.device = device
        self.no_speech_timeout = no_speech_timeout
        self._run: Optional[_ListeningRun] = None
        SetLogLevel(-1)

    @property
    def is_running(self) -> bool:
        return self._run is not None

    def is_available(self) -> bool:
        if self.model_path and not os.path.isdir(self.model_path):
            return False
        try:
            return bool(AudioRecorder.list_devices())
        except Exception as e:
            logger.debug(f"Audio device query failed: {e}")
            return False

    def start(self) -> None:
        if self._run is not None:
            raise EngineBusyError("Recognizer is already running")

        run = _ListeningRun(asyncio.get_running_loop())
        self._run = run
        run.thread = threading.Thread(
            target=self._worker_loop,
            args=(run, self.language, self.continuous, self.interim_results, self.max_alternatives),
            daemon=True,
            name="VoskListening",
        )
        run.thread.start()

    def stop(self) -> None:
        self._finish_run(flush=True)

    def abort(self) -> None:
        self._finish_run(flush=False)

    def _finish_run(self, flush: bool) -> None:
        run = self._run
        if run is None:
            return
        run.flush = flush
        run.finishing = True
        run.audio.put(None)

    # ------------------------------------------------------------------
    # Worker thread

    def _worker_loop(
        self,
        run: _ListeningRun,
        language: str,
        continuous: bool,
        interim_results: bool,
        max_alternatives: int,
    ) -> None:
        stream: Optional[sd.RawInputStream] = None
        try:
            try:
                model = _load_model(self.model_path, language)
                recognizer = KaldiRecognizer(model, self.sample_rate)
                recognizer.SetMaxAlternatives(max_alternatives)
            except Exception as e:
                logger.error(f"Could not load Vosk model: {e}")
                self._dispatch(run, "error", SERVICE_NOT_ALLOWED)
                return

            if run.finishing:
                logger.info("Stopped while loading the model, not opening audio input")
                return

            def audio_callback(indata, frames, time_info, status) -> None:
                run.audio.put(bytes(indata))

            try:
                stream = sd.RawInputStream(
                    samplerate=self.sample_rate,
                    blocksize=int(self.sample_rate * AUDIO_SLICE_MS / 1000),
                    device=AudioRecorder.find_device_index(self.device),
                    channels=1,
                    dtype="int16",
                    callback=audio_callback,
                )
                stream.start()
            except Exception as e:
                logger.error(f"Could not open audio input: {e}")
                self._dispatch(run, "error", classify_device_error(e))
                return

            self._dispatch(run, "start")
            self._decode(run, recognizer, continuous, interim_results)

            if run.flush:
                segment = self.parse_final(recognizer.FinalResult())
                if segment is not None:
                    self._dispatch(run, "result", [segment])
        except Exception as e:
            logger.exception(f"Error in Vosk worker loop: {e}")
            self._dispatch(run, "error", AUDIO_CAPTURE)
        finally:
            if stream is not None:
                try:
                    stream.stop()
                    stream.close()
                except Exception as e:
                    logger.debug(f"Closing input stream failed: {e}")
            self._dispatch(run, "end")

    def _decode(
        self,
        run: _ListeningRun,
        recognizer: KaldiRecognizer,
        continuous: bool,
        interim_results: bool,
    ) -> None:
        last_speech = time.monotonic()
        last_partial = ""

        while True:
            try:
                chunk = run.audio.get(timeout=0.1)
            except queue.Empty:
                chunk = b""
            if chunk is None:
                return

            if chunk:
                if recognizer.AcceptWaveform(chunk):
                    last_partial = ""
                    segment = self.parse_final(recognizer.Result())
                    if segment is not None:
                        last_speech = time.monotonic()
                        self._dispatch(run, "result", [segment])
                        if not continuous:
                            run.flush = False
                            return
                elif interim_results:
                    segment = self.parse_partial(recognizer.PartialResult())
                    if segment is not None:
                        last_speech = time.monotonic()
                        text = segment.alternatives[0].transcript
                        if text != last_partial:
                            last_partial = text
                            self._dispatch(run, "result", [segment])

            if time.monotonic() - last_speech > self.no_speech_timeout:
                self._dispatch(run, "error", NO_SPEECH)
                run.flush = False
                return

    def _dispatch(self, run: _ListeningRun, kind: str, payload=None) -> None:
        try:
            run.loop.call_soon_threadsafe(self._deliver, run, kind, payload)
        except RuntimeError:
            logger.debug(f"Event loop closed, dropping '{kind}' event")

    # ------------------------------------------------------------------
    # Loop thread

    def _deliver(self, run: _ListeningRun, kind: str, payload) -> None:
        if run is not self._run:
            return
        if kind == "end":
            self._run = None
            callback, args = self.on_end, ()
        elif kind == "start":
            callback, args = self.on_start, ()
        elif kind == "result":
            callback, args = self.on_result, (payload,)
        else:
            callback, args = self.on_error, (payload,)
        if callback is not None:
            callback(*args)

    # ------------------------------------------------------------------
    # Result parsing

    @staticmethod
    def parse_final(payload: str) -> Optional[RecognitionSegment]:
        try:
            data = json.loads(payload) if payload else {}
        except json.JSONDecodeError:
            logger.debug("Failed to parse Vosk result JSON", exc_info=True)
            return None

        alternatives: List[Alternative] = []
        raw_alternatives = data.get("alternatives")
        if isinstance(raw_alternatives, list):
            for entry in raw_alternatives:
                if not isinstance(entry, dict):
                    continue
                text = (entry.get("text") or "").strip()
                if not text:
                    continue
                try:
                    confidence = float(entry.get("confidence", 0.0))
                except (TypeError, ValueError):
                    confidence = 0.0
                alternatives.append(Alternative(text, confidence))
        else:
            text = (data.get("text") or "").strip()
            if text:
                alternatives.append(Alternative(text))

        if not alternatives:
            return None
        return RecognitionSegment(tuple(alternatives), is_final=True)

    @staticmethod
    def parse_partial(payload: str) -> Optional[RecognitionSegment]:
        try:
            data = json.loads(payload) if payload else {}
        except json.JSONDecodeError:
            return None
        text = (data.get("partial") or "").strip()
        if not text:
            return None
        return RecognitionSegment((Alternative(text),), is_final=False)
