"""
Speech recognition manager.

Owns one instance of every provider, picks which one serves a session,
and routes the caller's callbacks through the text normalizer.

Selection policy:
- "local": the on-device recognizer
- "remote": Whisper, falling back to local when it is unusable right now
- "auto": local only; the paid remote service is never chosen implicitly
"""

import dataclasses
from typing import Dict, List, Optional

from ...utils.logger import get_logger
from ..settings.settings import Settings, get_settings
from ..transcript_processor.normalizer import TextNormalizer
from .engine import VoskListeningEngine
from .local_provider import LocalSpeechProvider
from .provider import (
    ProviderDescriptor,
    ProviderType,
    ProviderUnavailableError,
    RecognitionOptions,
    SpeechProvider,
)
from .remote_provider import RemoteWhisperProvider, WhisperClient

logger = get_logger(__name__)


def create_default_providers(settings: Settings) -> Dict[ProviderType, SpeechProvider]:
    api_key = settings.resolve_api_key()
    engine = VoskListeningEngine(
        model_path=settings.vosk_model_path,
        sample_rate=settings.sample_rate,
        device=settings.input_device,
    )
    client = WhisperClient(
        api_key,
        endpoint=settings.transcription_endpoint,
        model=settings.whisper_model,
        timeout=settings.request_timeout,
    )
    return {
        ProviderType.LOCAL: LocalSpeechProvider(engine),
        ProviderType.REMOTE: RemoteWhisperProvider(
            api_key=api_key,
            sample_rate=settings.sample_rate,
            device=settings.input_device,
            client=client,
        ),
    }


class SpeechRecognitionManager:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        providers: Optional[Dict[ProviderType, SpeechProvider]] = None,
        normalizer: Optional[TextNormalizer] = None,
    ):
        settings = settings or get_settings()
        self._providers = (
            providers if providers is not None else create_default_providers(settings)
        )
        self._normalizer = normalizer or TextNormalizer.with_vocabulary(
            settings.vocabulary_replacements
        )
        self._preferred = settings.resolve_provider()
        self._current: Optional[SpeechProvider] = None
        self._current_type: Optional[ProviderType] = None

    @property
    def normalizer(self) -> TextNormalizer:
        return self._normalizer

    def set_provider(self, provider: "ProviderType | str") -> None:
        """Choose the provider for the next start(); a live session is untouched."""
        self._preferred = ProviderType.parse(provider)
        logger.info(f"Preferred speech provider set to '{self._preferred.value}'")

    def get_preferred_provider(self) -> ProviderType:
        return self._preferred

    def _usable(self, ptype: ProviderType) -> Optional[SpeechProvider]:
        provider = self._providers.get(ptype)
        if provider is not None and provider.is_supported():
            return provider
        return None

    def _resolve_provider(self) -> Optional[ProviderType]:
        if self._preferred is ProviderType.REMOTE:
            if self._usable(ProviderType.REMOTE) is not None:
                return ProviderType.REMOTE
            logger.info("Remote provider unavailable, falling back to local")

        if self._usable(ProviderType.LOCAL) is not None:
            return ProviderType.LOCAL
        return None

    def is_supported(self) -> bool:
        return self._resolve_provider() is not None

    def get_current_provider(self) -> Optional[SpeechProvider]:
        return self._current

    def get_current_provider_type(self) -> Optional[ProviderType]:
        return self._current_type

    def get_provider_name(self) -> str:
        if self._current is not None:
            return self._current.get_name()
        ptype = self._resolve_provider()
        if ptype is None:
            return "None"
        return self._providers[ptype].get_name()

    async def start(self, options: RecognitionOptions) -> None:
        """
        Start a session on the resolved provider.

        Raises:
            ProviderUnavailableError: If no provider can run right now
        """
        ptype = self._resolve_provider()
        if ptype is None:
            raise ProviderUnavailableError(
                "Speech recognition is not available on this device."
            )

        provider = self._providers[ptype]
        if self._current is not None and self._current is not provider:
            self._current.stop()

        self._current = provider
        self._current_type = ptype
        logger.info(f"Starting recognition with {provider.get_name()}")
        await provider.start(self._wrap(options))

    def _wrap(self, options: RecognitionOptions) -> RecognitionOptions:
        normalizer = self._normalizer
        on_result = options.on_result
        on_interim_result = options.on_interim_result

        def normalized_result(text: str, is_final: bool) -> None:
            if on_result is None:
                return
            if is_final:
                text = normalizer.normalize(text)
                if not text:
                    return
            else:
                text = normalizer.normalize_interim(text)
            on_result(text, is_final)

        def normalized_interim(text: str) -> None:
            if on_interim_result is not None:
                on_interim_result(normalizer.normalize_interim(text))

        return dataclasses.replace(
            options,
            on_result=normalized_result,
            on_interim_result=normalized_interim,
        )

    def stop(self) -> None:
        if self._current is None:
            return
        self._current.stop()

    def is_listening(self) -> bool:
        return self._current is not None and self._current.is_listening()

    def get_available_providers(self) -> List[ProviderDescriptor]:
        return [
            provider.describe(ptype.value)
            for ptype, provider in self._providers.items()
        ]

    async def wait_closed(self) -> None:
        for provider in self._providers.values():
            await provider.wait_closed()


_manager_instance: Optional[SpeechRecognitionManager] = None


def get_speech_manager() -> SpeechRecognitionManager:
    global _manager_instance
    if _manager_instance is None:
        _manager_instance = SpeechRecognitionManager()
    return _manager_instance
