"""
Local continuous-listening provider.

Drives a ListeningEngine through a small session state machine:

    IDLE -> LISTENING -> (RESTART_PENDING -> LISTENING)* -> STOPPED

The engine ends its run on its own after pauses, silence timeouts and
transient failures. While the session is continuous with auto_restart
enabled, every such end re-arms the engine after a short delay, so the
caller sees one uninterrupted session with a single on_start and a single
on_end.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Sequence

from ...utils.logger import get_logger
from ..settings.config import (
    ENGINE_STOP_TIMEOUT_SECONDS,
    MAX_SILENT_RECOVERIES,
    RESTART_DELAY_SECONDS,
    START_GRACE_SECONDS,
)
from .engine import (
    ABORTED,
    AUDIO_CAPTURE,
    NETWORK,
    NO_SPEECH,
    NOT_ALLOWED,
    SERVICE_NOT_ALLOWED,
    ListeningEngine,
    RecognitionSegment,
)
from .provider import (
    ProviderUnavailableError,
    RecognitionOptions,
    SpeechProvider,
    SpeechRecognitionError,
    invoke_callback,
)

logger = get_logger(__name__)

RECOVERABLE_CODES = frozenset({NO_SPEECH, NETWORK})
FATAL_CODES = frozenset({AUDIO_CAPTURE, NOT_ALLOWED, SERVICE_NOT_ALLOWED})


class SessionState(Enum):
    IDLE = auto()
    LISTENING = auto()
    RESTART_PENDING = auto()
    STOPPED = auto()


@dataclass
class RecognitionSession:
    """Mutable state of one start() -> on_end cycle."""

    options: RecognitionOptions
    started: "asyncio.Future[None]"
    state: SessionState = SessionState.IDLE
    accumulated: str = ""
    manual_stop: bool = False
    restart_handle: Optional[asyncio.TimerHandle] = None
    silent_recoveries: int = 0
    announced: bool = False
    ended: bool = False

    @property
    def can_restart(self) -> bool:
        return self.options.continuous and self.options.auto_restart


class LocalSpeechProvider(SpeechProvider):
    """On-device recognition with transparent auto-restart."""

    def __init__(
        self,
        engine: ListeningEngine,
        restart_delay: float = RESTART_DELAY_SECONDS,
        start_grace: float = START_GRACE_SECONDS,
        max_silent_recoveries: int = MAX_SILENT_RECOVERIES,
        engine_stop_timeout: float = ENGINE_STOP_TIMEOUT_SECONDS,
    ):
        self._engine = engine
        self._restart_delay = restart_delay
        self._start_grace = start_grace
        self._max_silent_recoveries = max_silent_recoveries
        self._engine_stop_timeout = engine_stop_timeout
        self._session: Optional[RecognitionSession] = None

    @property
    def engine(self) -> ListeningEngine:
        return self._engine

    @property
    def state(self) -> SessionState:
        if self._session is None:
            return SessionState.IDLE
        return self._session.state

    def is_supported(self) -> bool:
        try:
            return self._engine.is_available()
        except Exception as e:
            logger.warning(f"Local recognizer availability check failed: {e}")
            return False

    def get_name(self) -> str:
        return "Vosk (offline)"

    def get_accuracy(self) -> float:
        return 0.75

    def get_speed(self) -> int:
        return 200

    def is_listening(self) -> bool:
        return self.state in (SessionState.LISTENING, SessionState.RESTART_PENDING)

    def get_accumulated_transcript(self) -> str:
        if self._session is None:
            return ""
        return self._session.accumulated

    def clear_accumulated_transcript(self) -> None:
        if self._session is not None:
            self._session.accumulated = ""

    # ------------------------------------------------------------------
    # Session lifecycle

    async def start(self, options: RecognitionOptions) -> None:
        if not self.is_supported():
            raise ProviderUnavailableError(
                "Offline speech recognition is not available on this device.",
                code=SERVICE_NOT_ALLOWED,
            )

        loop = asyncio.get_running_loop()
        warn_at = loop.time() + self._engine_stop_timeout
        # The previous run may still be loading its model; it ends on its own
        while self._session is not None or self._engine.is_running:
            if self._session is not None:
                self.stop()
            if warn_at is not None and loop.time() >= warn_at:
                logger.warning("Waiting for the previous recognizer run to end")
                warn_at = None
            await asyncio.sleep(self._start_grace)

        session = RecognitionSession(options=options, started=loop.create_future())
        self._session = session
        self._configure_engine(session)

        try:
            self._engine.start()
        except Exception as e:
            logger.error(f"Failed to start local recognizer: {e}")
            invoke_callback(
                options.on_error,
                SpeechRecognitionError(
                    f"Speech recognition could not be started: {e}", code=ABORTED
                ),
            )
            self._session = None
            self._finish(session)
            return

        logger.info(f"Local recognition started (language={options.language})")
        await session.started

    def stop(self) -> None:
        session = self._session
        if session is None:
            return

        session.manual_stop = True
        self._cancel_restart(session)
        self._session = None

        try:
            self._engine.stop()
        except Exception as e:
            logger.warning(f"Stopping local recognizer failed: {e}")

        session.state = SessionState.STOPPED
        session.accumulated = ""
        self._finish(session)
        logger.info("Local recognition stopped")

    def _configure_engine(self, session: RecognitionSession) -> None:
        engine = self._engine
        options = session.options
        engine.language = options.language
        engine.continuous = options.continuous
        engine.interim_results = options.interim_results
        engine.max_alternatives = options.max_alternatives

        engine.on_start = lambda: self._handle_start(session)
        engine.on_result = lambda segments: self._handle_results(session, segments)
        engine.on_error = lambda code: self._handle_error(session, code)
        engine.on_end = lambda: self._handle_end(session)

    def _is_live(self, session: RecognitionSession) -> bool:
        return session is self._session and not session.ended

    def _finish(self, session: RecognitionSession) -> None:
        """Emit on_end for the session, at most once."""
        if session.ended:
            return
        session.ended = True
        session.state = SessionState.STOPPED
        if not session.started.done():
            session.started.set_result(None)
        invoke_callback(session.options.on_end)

    def _terminate(self, session: RecognitionSession) -> None:
        self._cancel_restart(session)
        if session is self._session:
            self._session = None
        session.state = SessionState.STOPPED
        try:
            self._engine.abort()
        except Exception as e:
            logger.warning(f"Aborting local recognizer failed: {e}")
        self._finish(session)

    # ------------------------------------------------------------------
    # Engine events

    def _handle_start(self, session: RecognitionSession) -> None:
        if not self._is_live(session) or session.manual_stop:
            return
        session.state = SessionState.LISTENING
        if not session.started.done():
            session.started.set_result(None)
        if not session.announced:
            session.announced = True
            invoke_callback(session.options.on_start)

    def _handle_results(
        self, session: RecognitionSession, segments: Sequence[RecognitionSegment]
    ) -> None:
        if not self._is_live(session):
            return

        finals: List[str] = []
        interims: List[str] = []
        for segment in segments:
            best = segment.best()
            if best is None:
                continue
            text = best.transcript.strip()
            if not text:
                continue
            (finals if segment.is_final else interims).append(text)

        options = session.options
        for text in finals:
            session.accumulated = f"{session.accumulated} {text}".strip()
            session.silent_recoveries = 0
            invoke_callback(options.on_result, text, True)
            if not self._is_live(session):
                return

        if interims and options.interim_results:
            interim = " ".join(interims)
            invoke_callback(
                options.on_interim_result, f"{session.accumulated} {interim}".strip()
            )
            if not self._is_live(session):
                return
            invoke_callback(options.on_result, interim, False)

    def _handle_error(self, session: RecognitionSession, code: str) -> None:
        if not self._is_live(session):
            return

        if code == ABORTED:
            logger.debug("Local recognizer reported 'aborted'")
            return

        options = session.options
        if code in FATAL_CODES:
            logger.error(f"Local recognition failed: {code}")
            invoke_callback(options.on_error, SpeechRecognitionError.from_code(code))
            self._terminate(session)
            return

        if not session.can_restart:
            logger.warning(f"Local recognition ended by '{code}', auto-restart is off")
            invoke_callback(options.on_error, SpeechRecognitionError.from_code(code))
            self._terminate(session)
            return

        if code in RECOVERABLE_CODES:
            session.silent_recoveries += 1
            if session.silent_recoveries > self._max_silent_recoveries:
                logger.warning(
                    f"Giving up after {self._max_silent_recoveries} silent recoveries ({code})"
                )
                invoke_callback(options.on_error, SpeechRecognitionError.from_code(code))
                self._terminate(session)
            else:
                logger.debug(
                    f"Recovering from '{code}' "
                    f"({session.silent_recoveries}/{self._max_silent_recoveries})"
                )
            return

        # Unknown codes are surfaced, and the restart on engine end still applies
        logger.warning(f"Unknown local recognition error: {code}")
        invoke_callback(options.on_error, SpeechRecognitionError.from_code(code))

    def _handle_end(self, session: RecognitionSession) -> None:
        if not self._is_live(session):
            return

        if session.manual_stop or not session.can_restart:
            if session is self._session:
                self._session = None
            self._finish(session)
            return

        self._schedule_restart(session)

    # ------------------------------------------------------------------
    # Restart scheduling

    def _schedule_restart(self, session: RecognitionSession) -> None:
        self._cancel_restart(session)
        session.state = SessionState.RESTART_PENDING
        loop = asyncio.get_running_loop()
        session.restart_handle = loop.call_later(
            self._restart_delay, self._restart, session
        )

    def _cancel_restart(self, session: RecognitionSession) -> None:
        handle, session.restart_handle = session.restart_handle, None
        if handle is not None:
            handle.cancel()

    def _restart(self, session: RecognitionSession) -> None:
        session.restart_handle = None
        # stop() may have run after this restart was scheduled
        if session.manual_stop or not self._is_live(session):
            return

        try:
            self._engine.start()
        except Exception as e:
            logger.warning(f"Restarting local recognizer failed: {e}")
