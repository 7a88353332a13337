"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = False  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# RECOGNITION SETTINGS
# =============================================================================
DEFAULT_LANGUAGE = "vi-VN"
RESTART_DELAY_SECONDS = 0.1  # Pause before re-arming the local recognizer
START_GRACE_SECONDS = 0.1  # Pause between stopping a session and starting a new one
ENGINE_STOP_TIMEOUT_SECONDS = 2.0  # Wind-down wait after which start() logs a warning
MAX_SILENT_RECOVERIES = 5  # Consecutive recoverable errors before surfacing
NO_SPEECH_TIMEOUT_SECONDS = 8.0
AUDIO_SLICE_MS = 100
# =============================================================================

# =============================================================================
# REMOTE TRANSCRIPTION SETTINGS
# =============================================================================
DEFAULT_TRANSCRIPTION_ENDPOINT = "https://api.openai.com/v1/audio/transcriptions"
DEFAULT_WHISPER_MODEL = "whisper-1"
API_KEY_ENV_VAR = "OPENAI_API_KEY"
PROVIDER_ENV_VAR = "VOICELIST_SPEECH_PROVIDER"
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
