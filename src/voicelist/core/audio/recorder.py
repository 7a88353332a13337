import io
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
import scipy.io.wavfile as wav
import sounddevice as sd

from ...utils.logger import get_logger
from ..settings.config import AUDIO_SLICE_MS

logger = get_logger(__name__)

PERMISSION_DENIED = "not-allowed"
DEVICE_UNAVAILABLE = "audio-capture"

_PERMISSION_MARKERS = ("permission", "not allowed", "not authorized", "access denied")


def classify_device_error(error: BaseException) -> str:
    """Map an input-device failure onto a recognition error code."""
    if isinstance(error, PermissionError):
        return PERMISSION_DENIED
    message = str(error).lower()
    if any(marker in message for marker in _PERMISSION_MARKERS):
        return PERMISSION_DENIED
    return DEVICE_UNAVAILABLE


def to_wav_bytes(audio: np.ndarray, sample_rate: int) -> bytes:
    buffer = io.BytesIO()
    wav.write(buffer, sample_rate, audio)
    return buffer.getvalue()


@dataclass
class AudioDevice:
    name: str
    index: int
    channels: int
    default_sample_rate: float


class AudioRecorder:
    """
    Microphone capture that buffers audio in fixed slices.

    Each slice (AUDIO_SLICE_MS) is appended to the buffer as soon as the
    device delivers it, so stop() can always return what was heard so far.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Optional[str] = None,
        slice_ms: int = AUDIO_SLICE_MS,
    ):

        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self.slice_ms = slice_ms

        self._stream: Optional[sd.InputStream] = None
        self._audio_buffer: List[np.ndarray] = []
        self._is_recording = False
        self._last_error: Optional[str] = None
        self._last_error_code: Optional[str] = None

    @property
    def is_recording(self) -> bool:
        return self._is_recording

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def last_error_code(self) -> Optional[str]:
        return self._last_error_code

    def start(self) -> bool:
        if self._is_recording:
            return True

        self._audio_buffer = []
        self._last_error = None
        self._last_error_code = None

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=int(self.sample_rate * self.slice_ms / 1000),
                device=self.find_device_index(self.device),
                callback=self._audio_callback,
            )
            self._stream.start()
            self._is_recording = True
            return True

        except sd.PortAudioError as e:
            self._fail(f"Audio device error: {e}", classify_device_error(e))
            return False
        except Exception as e:
            self._fail(f"Failed to start recording: {e}", classify_device_error(e))
            return False

    def _fail(self, message: str, code: str) -> None:
        logger.error(message)
        self._last_error = message
        self._last_error_code = code
        self._is_recording = False
        self._release_stream()

    def stop(self) -> Optional[np.ndarray]:
        if not self._is_recording:
            return None

        self._is_recording = False

        if self._stream is not None:
            try:
                self._stream.stop()
            except Exception as e:
                logger.warning(f"Stopping input stream failed: {e}")
            finally:
                self._release_stream()

        if not self._audio_buffer:
            return None

        audio_data = np.concatenate(self._audio_buffer, axis=0)
        self._audio_buffer = []

        return audio_data

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.close()
        except Exception as e:
            logger.warning(f"Closing input stream failed: {e}")

    def _audio_callback(self, indata: np.ndarray, frames: int, time, status) -> None:
        if self._is_recording:
            self._audio_buffer.append(indata.copy())

    @staticmethod
    def find_device_index(name: Optional[str]) -> Optional[int]:
        if name is None:
            return None

        for device in AudioRecorder.list_devices():
            if device.name == name:
                return device.index

        return None

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        devices = []

        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append(
                    AudioDevice(
                        name=device["name"],
                        index=i,
                        channels=device["max_input_channels"],
                        default_sample_rate=device["default_samplerate"],
                    )
                )

        return devices
