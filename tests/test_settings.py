"""Tests for Settings persistence."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from voicelist.core.recognition.provider import ProviderType
from voicelist.core.settings import Settings, get_config_dir


@pytest.fixture
def config_dir(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    with patch(
        "voicelist.core.settings.settings.get_config_dir",
        return_value=config_dir,
    ):
        yield config_dir


class TestSettings:
    def test_default_values(self):
        settings = Settings()
        assert settings.speech_provider == "auto"
        assert settings.language == "vi-VN"
        assert settings.continuous is True
        assert settings.interim_results is True
        assert settings.max_alternatives == 3
        assert settings.auto_restart is True
        assert settings.sample_rate == 16000
        assert settings.openai_api_key is None
        assert settings.whisper_model == "whisper-1"
        assert settings.vocabulary_replacements == []

    def test_save_load_cycle(self, config_dir):
        original = Settings(
            speech_provider="remote",
            language="en-US",
            input_device="Test Mic",
            openai_api_key="sk-test",
            request_timeout=20.0,
            vocabulary_replacements=[("pép si", "Pepsi")],
        )
        original.save()

        config_file = config_dir / "settings.json"
        assert config_file.exists()
        assert "pép si" in config_file.read_text(encoding="utf-8")

        loaded = Settings.load()
        assert loaded.speech_provider == "remote"
        assert loaded.language == "en-US"
        assert loaded.input_device == "Test Mic"
        assert loaded.openai_api_key == "sk-test"
        assert loaded.request_timeout == 20.0
        assert loaded.vocabulary_replacements == [("pép si", "Pepsi")]

    def test_load_nonexistent_returns_defaults(self, config_dir):
        settings = Settings.load()
        assert settings.model_dump() == Settings().model_dump()

    def test_load_corrupted_json_returns_defaults(self, config_dir):
        (config_dir / "settings.json").write_text("{ this is not valid json }")

        settings = Settings.load()
        assert settings.language == Settings().language

    def test_unknown_keys_ignored(self, config_dir):
        (config_dir / "settings.json").write_text(
            json.dumps({"hotkey": {"key": "space"}, "language": "en-GB"})
        )

        settings = Settings.load()
        assert settings.language == "en-GB"
        assert not hasattr(settings, "hotkey")

    def test_reset_to_defaults(self):
        settings = Settings(language="en-US", max_alternatives=7)
        settings.reset_to_defaults()

        assert settings.language == "vi-VN"
        assert settings.max_alternatives == 3


class TestProviderSetting:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("auto", "auto"),
            ("", "auto"),
            ("web-speech", "local"),
            ("Vosk", "local"),
            ("openai-whisper", "remote"),
            ("whisper", "remote"),
        ],
    )
    def test_aliases_normalized(self, raw, expected):
        assert Settings(speech_provider=raw).speech_provider == expected

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            Settings(speech_provider="google")

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("VOICELIST_SPEECH_PROVIDER", "openai")
        assert Settings(speech_provider="local").resolve_provider() is ProviderType.REMOTE

    def test_blank_environment_override_ignored(self, monkeypatch):
        monkeypatch.setenv("VOICELIST_SPEECH_PROVIDER", "  ")
        assert Settings(speech_provider="local").resolve_provider() is ProviderType.LOCAL


class TestApiKey:
    def test_setting_takes_precedence(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert Settings(openai_api_key=" sk-saved ").resolve_api_key() == "sk-saved"

    def test_environment_fallback(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        assert Settings().resolve_api_key() == "sk-env"

    def test_missing_key(self):
        assert Settings(openai_api_key="   ").resolve_api_key() is None


class TestRecognitionOptions:
    def test_options_built_from_settings(self):
        def on_end():
            pass

        settings = Settings(language="en-US", continuous=False, max_alternatives=5)
        options = settings.to_recognition_options(on_end=on_end)

        assert options.language == "en-US"
        assert options.continuous is False
        assert options.max_alternatives == 5
        assert options.auto_restart is True
        assert options.on_end is on_end


class TestConfigPaths:
    def test_get_config_dir_returns_path(self):
        result = get_config_dir()
        assert isinstance(result, Path)
        assert "voicelist" in str(result)
        assert result.exists()


class TestSettingsValidation:
    @pytest.mark.parametrize("sample_rate", [-1000, 100, 999999])
    def test_invalid_sample_rate_resets_to_default(self, config_dir, sample_rate):
        (config_dir / "settings.json").write_text(json.dumps({"sample_rate": sample_rate}))

        settings = Settings.load()
        assert settings.sample_rate == 16000

    def test_invalid_provider_resets_to_default(self, config_dir):
        (config_dir / "settings.json").write_text(
            json.dumps({"speech_provider": "google", "language": "en-US"})
        )

        settings = Settings.load()
        assert settings.speech_provider == "auto"
        assert settings.language == "en-US"

    def test_empty_language_resets_to_default(self, config_dir):
        (config_dir / "settings.json").write_text(json.dumps({"language": " "}))

        settings = Settings.load()
        assert settings.language == "vi-VN"

    def test_max_alternatives_bounds(self, config_dir):
        (config_dir / "settings.json").write_text(json.dumps({"max_alternatives": 0}))

        settings = Settings.load()
        assert settings.max_alternatives == 3

    def test_validation_logs_warnings(self, config_dir, caplog):
        import logging

        (config_dir / "settings.json").write_text(
            json.dumps({"sample_rate": -1000, "speech_provider": "google"})
        )

        logger = logging.getLogger("voicelist")
        logger.propagate = True

        with caplog.at_level(logging.WARNING, logger="voicelist"):
            Settings.load()

        assert "Invalid sample_rate" in caplog.text
        assert "Invalid speech_provider" in caplog.text

    def test_valid_settings_pass_validation(self, config_dir):
        valid_settings = {
            "sample_rate": 44100,
            "speech_provider": "vosk",
            "vosk_model_path": "/opt/models/vosk-vi",
            "vocabulary_replacements": [["cô ca", "Coca"]],
        }
        (config_dir / "settings.json").write_text(json.dumps(valid_settings))

        settings = Settings.load()
        assert settings.sample_rate == 44100
        assert settings.speech_provider == "local"
        assert settings.vosk_model_path == "/opt/models/vosk-vi"
        assert settings.vocabulary_replacements == [("cô ca", "Coca")]
