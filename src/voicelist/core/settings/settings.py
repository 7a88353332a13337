"""
Settings management with JSON persistence.

Handles loading, saving, and validating application settings.
Uses platformdirs for cross-platform directory resolution.
"""

import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from platformdirs import user_config_path
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ...utils.logger import get_logger
from .config import (
    API_KEY_ENV_VAR,
    DEFAULT_LANGUAGE,
    DEFAULT_TRANSCRIPTION_ENDPOINT,
    DEFAULT_WHISPER_MODEL,
    PROVIDER_ENV_VAR,
)

if TYPE_CHECKING:
    from ..recognition.provider import ProviderType, RecognitionOptions

APP_NAME = "voicelist"


def get_config_dir() -> Path:
    return user_config_path(APP_NAME, ensure_exists=True)


logger = get_logger(__name__)


class Settings(BaseModel):
    model_config = ConfigDict(validate_assignment=False)

    speech_provider: str = "auto"
    language: str = DEFAULT_LANGUAGE
    continuous: bool = True
    interim_results: bool = True
    max_alternatives: int = Field(default=3, ge=1, le=10)
    auto_restart: bool = True

    sample_rate: int = Field(default=16000, ge=8000, le=192000)
    input_device: Optional[str] = None
    vosk_model_path: Optional[str] = None

    openai_api_key: Optional[str] = None
    whisper_model: str = DEFAULT_WHISPER_MODEL
    transcription_endpoint: str = DEFAULT_TRANSCRIPTION_ENDPOINT
    request_timeout: Optional[float] = Field(default=None, gt=0)

    vocabulary_replacements: List[Tuple[str, str]] = Field(default_factory=list)

    @field_validator("speech_provider")
    @classmethod
    def speech_provider_known(cls, v):
        from ..recognition.provider import ProviderType

        return ProviderType.parse(v).value

    @field_validator("language")
    @classmethod
    def language_not_empty(cls, v):
        if not isinstance(v, str) or not v.strip():
            raise ValueError("language must be a non-empty string")
        return v.strip()

    @classmethod
    def load(cls) -> "Settings":
        config_file = get_config_dir() / "settings.json"

        if config_file.exists():
            try:
                with open(config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)

                # Filter to valid keys only
                valid_keys = cls.model_fields.keys()
                filtered_data = {k: v for k, v in data.items() if k in valid_keys}

                return cls._load_with_fallbacks(filtered_data)
            except (json.JSONDecodeError, TypeError, AttributeError) as e:
                logger.warning(
                    f"Could not load settings: {e}. Using defaults.", exc_info=True
                )
                return cls()

        return cls()

    @classmethod
    def _load_with_fallbacks(cls, data: dict) -> "Settings":
        """Load settings with field-level fallback to defaults on validation errors."""
        defaults = cls()
        result_data = {}

        for field_name in cls.model_fields:
            if field_name in data:
                try:
                    validated = cls.model_validate(
                        {**defaults.model_dump(), field_name: data[field_name]}
                    )
                    result_data[field_name] = getattr(validated, field_name)
                except Exception:
                    default_val = getattr(defaults, field_name)
                    logger.warning(
                        f"Invalid {field_name} {data[field_name]!r}, resetting to {default_val}"
                    )
                    result_data[field_name] = default_val
            else:
                result_data[field_name] = getattr(defaults, field_name)

        return cls.model_construct(**result_data)

    def save(self) -> None:
        config_file = get_config_dir() / "settings.json"

        data = self.model_dump()

        with open(config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def reset_to_defaults(self) -> None:
        default = Settings()
        for key, value in default.model_dump().items():
            setattr(self, key, value)

    def resolve_provider(self) -> "ProviderType":
        """Preferred provider, with the environment variable taking precedence."""
        from ..recognition.provider import ProviderType

        override = os.environ.get(PROVIDER_ENV_VAR)
        if override and override.strip():
            try:
                return ProviderType.parse(override)
            except ValueError:
                logger.warning(
                    f"Ignoring unknown {PROVIDER_ENV_VAR}={override!r}, "
                    f"using '{self.speech_provider}'"
                )
        return ProviderType.parse(self.speech_provider)

    def resolve_api_key(self) -> Optional[str]:
        if self.openai_api_key and self.openai_api_key.strip():
            return self.openai_api_key.strip()
        env_key = os.environ.get(API_KEY_ENV_VAR, "").strip()
        return env_key or None

    def to_recognition_options(self, **callbacks) -> "RecognitionOptions":
        from ..recognition.provider import RecognitionOptions

        return RecognitionOptions(
            language=self.language,
            continuous=self.continuous,
            interim_results=self.interim_results,
            max_alternatives=self.max_alternatives,
            auto_restart=self.auto_restart,
            **callbacks,
        )


_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.load()
    return _settings_instance
