from .recorder import AudioDevice, AudioRecorder, classify_device_error, to_wav_bytes

__all__ = ["AudioDevice", "AudioRecorder", "classify_device_error", "to_wav_bytes"]
