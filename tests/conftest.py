"""
Shared fakes for recognition tests.

FakeEngine stands in for the Vosk listening engine and FakeRecorder for the
microphone, so no test touches audio hardware, models or the network.
"""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from voicelist.core.recognition.engine import (
    Alternative,
    EngineBusyError,
    ListeningEngine,
    RecognitionSegment,
)
from voicelist.core.recognition.provider import RecognitionOptions


def final(*texts: str, confidences: Optional[List[float]] = None) -> RecognitionSegment:
    confidences = confidences or [0.9] * len(texts)
    return RecognitionSegment(
        tuple(Alternative(t, c) for t, c in zip(texts, confidences)), is_final=True
    )


def interim(text: str) -> RecognitionSegment:
    return RecognitionSegment((Alternative(text),), is_final=False)


class FakeEngine(ListeningEngine):
    """
    Engine double that counts held capture handles.

    start() acquires a handle and schedules on_start on the loop; the handle
    is released when the run ends (end(), or the end scheduled by stop/abort).
    """

    def __init__(self, available: bool = True, auto_start: bool = True):
        super().__init__()
        self.available = available
        self.auto_start = auto_start
        self.fail_next_start = False
        self.active = 0
        self.max_active = 0
        self.start_calls = 0
        self.stop_calls = 0
        self.abort_calls = 0
        # Seconds between stop/abort and the end of the run
        self.end_delay = 0.0
        self._running = False

    def is_available(self) -> bool:
        return self.available

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            raise EngineBusyError("Recognizer is already running")
        if self.fail_next_start:
            self.fail_next_start = False
            raise RuntimeError("device busy")
        self.start_calls += 1
        self._running = True
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.auto_start:
            asyncio.get_running_loop().call_soon(self.emit_start)

    def stop(self) -> None:
        self.stop_calls += 1
        self._schedule_end()

    def abort(self) -> None:
        self.abort_calls += 1
        self._schedule_end()

    def _schedule_end(self) -> None:
        if not self._running:
            return
        loop = asyncio.get_running_loop()
        if self.end_delay:
            loop.call_later(self.end_delay, self.end)
        else:
            loop.call_soon(self.end)

    def emit_start(self) -> None:
        if self._running and self.on_start:
            self.on_start()

    def emit(self, *segments: RecognitionSegment) -> None:
        self.on_result(list(segments))

    def emit_error(self, code: str) -> None:
        self.on_error(code)

    def end(self) -> None:
        if not self._running:
            return
        self._running = False
        self.active -= 1
        if self.on_end:
            self.on_end()


class CallbackLog:
    """Records every callback a provider makes, in order."""

    def __init__(self):
        self.events: list = []

    def on_start(self):
        self.events.append(("start",))

    def on_interim_result(self, text):
        self.events.append(("interim", text))

    def on_result(self, text, is_final):
        self.events.append(("result", text, is_final))

    def on_error(self, error):
        self.events.append(("error", error))

    def on_end(self):
        self.events.append(("end",))

    def options(self, **overrides) -> RecognitionOptions:
        callbacks = dict(
            on_start=self.on_start,
            on_interim_result=self.on_interim_result,
            on_result=self.on_result,
            on_error=self.on_error,
            on_end=self.on_end,
        )
        callbacks.update(overrides)
        return RecognitionOptions(**callbacks)

    def of(self, kind: str) -> list:
        return [event for event in self.events if event[0] == kind]

    @property
    def errors(self) -> list:
        return [event[1] for event in self.of("error")]

    @property
    def finals(self) -> List[str]:
        return [event[1] for event in self.of("result") if event[2]]


class FakeRecorder:
    """AudioRecorder double: start() succeeds or fails with a fixed code."""

    def __init__(
        self,
        audio: Optional[np.ndarray] = None,
        error_code: Optional[str] = None,
    ):
        self.audio = audio
        self.error_code = error_code
        self.last_error: Optional[str] = None
        self.last_error_code: Optional[str] = None
        self.start_calls = 0
        self.stop_calls = 0
        self.is_recording = False

    def start(self) -> bool:
        self.start_calls += 1
        if self.error_code:
            self.last_error = "Audio device error"
            self.last_error_code = self.error_code
            return False
        self.is_recording = True
        return True

    def stop(self) -> Optional[np.ndarray]:
        self.stop_calls += 1
        self.is_recording = False
        return self.audio


@pytest.fixture
def callbacks() -> CallbackLog:
    return CallbackLog()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture(autouse=True)
def no_provider_env(monkeypatch):
    monkeypatch.delenv("VOICELIST_SPEECH_PROVIDER", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
