"""Console runtime."""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional, Sequence

from voicelist import __app_name__, __version__
from voicelist.core.recognition import (
    ProviderType,
    ProviderUnavailableError,
    SpeechRecognitionError,
    SpeechRecognitionManager,
    TranscriptEvent,
    get_speech_manager,
)
from voicelist.core.settings import get_settings
from voicelist.utils.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


class ConsoleApp:
    """Prints live recognition to a terminal until Ctrl+C."""

    def __init__(
        self,
        manager: SpeechRecognitionManager,
        language: str,
        single: bool = False,
        out=None,
    ):
        self._manager = manager
        self._language = language
        self._single = single
        self._out = out or sys.stdout
        self._finals: List[TranscriptEvent] = []
        self._ended: Optional[asyncio.Event] = None
        self._interim_width = 0

    @property
    def transcript(self) -> str:
        return " ".join(event.text for event in self._finals)

    def _write_line(self, text: str) -> None:
        self._clear_interim()
        print(text, file=self._out, flush=True)

    def _clear_interim(self) -> None:
        if self._interim_width:
            print("\r" + " " * self._interim_width + "\r", end="", file=self._out)
            self._interim_width = 0

    def _on_start(self) -> None:
        self._write_line(f"Listening with {self._manager.get_provider_name()}... (Ctrl+C to finish)")

    def _on_interim(self, text: str) -> None:
        self._clear_interim()
        line = f"  {text}"
        print(line, end="", file=self._out, flush=True)
        self._interim_width = len(line)

    def _on_result(self, text: str, is_final: bool) -> None:
        if not is_final:
            return
        self._finals.append(TranscriptEvent(text=text, is_final=True))
        self._write_line(f"> {text}")

    def _on_error(self, error: SpeechRecognitionError) -> None:
        self._write_line(f"! {error.message}")

    def _on_end(self) -> None:
        if self._ended is not None:
            self._ended.set()

    async def run(self) -> str:
        loop = asyncio.get_running_loop()
        self._ended = asyncio.Event()

        settings = get_settings()
        options = settings.to_recognition_options(
            on_start=self._on_start,
            on_interim_result=self._on_interim,
            on_result=self._on_result,
            on_error=self._on_error,
            on_end=self._on_end,
        )
        options.language = self._language
        if self._single:
            options.continuous = False

        try:
            loop.add_signal_handler(signal.SIGINT, self._manager.stop)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no signal handlers; KeyboardInterrupt still applies
            logger.debug("Signal handlers unsupported on this event loop")

        try:
            await self._manager.start(options)
            await self._ended.wait()
            await self._manager.wait_closed()
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass
            self._manager.stop()

        self._clear_interim()
        return self.transcript


def list_providers(manager: SpeechRecognitionManager, out=None) -> None:
    out = out or sys.stdout
    for descriptor in manager.get_available_providers():
        status = "available" if descriptor.supported else "unavailable"
        print(
            f"{descriptor.id:<8} {descriptor.name:<20} {status:<12} "
            f"accuracy={descriptor.accuracy:.2f} latency={descriptor.latency_ms}ms",
            file=out,
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Dictate a list and print the normalized transcript.",
    )
    parser.add_argument(
        "--provider",
        help="local, remote or auto (aliases: vosk, offline, whisper, openai)",
    )
    parser.add_argument("--language", help="BCP-47 language tag, e.g. vi-VN")
    parser.add_argument(
        "--list-providers",
        action="store_true",
        help="Show every recognizer and whether it can run here",
    )
    parser.add_argument(
        "--single",
        action="store_true",
        help="Stop after the first utterance",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()

    manager = get_speech_manager()

    if args.provider:
        try:
            manager.set_provider(ProviderType.parse(args.provider))
        except ValueError as e:
            print(str(e), file=sys.stderr)
            return 2

    if args.list_providers:
        list_providers(manager)
        return 0

    app = ConsoleApp(manager, language=args.language or settings.language, single=args.single)

    try:
        transcript = asyncio.run(app.run())
    except ProviderUnavailableError as e:
        print(e.message, file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        transcript = app.transcript
    finally:
        shutdown_logging()

    if transcript:
        print()
        print(transcript)
    return 0


if __name__ == "__main__":
    sys.exit(main())
