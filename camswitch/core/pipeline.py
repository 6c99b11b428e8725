"""
Voice-command pipeline: backend selection, fallback and command dispatch.

One activation creates one ``RecognitionSession``. The session runs the
cloud recognizer when an API key is configured and the local recognizer
otherwise. A cloud failure demotes the session to local recognition for the
rest of its life; the next activation evaluates the configuration again.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from ..utils.command_router import ConfidenceGate, KeywordDispatcher
from ..utils.config import RecognitionConfig
from ..utils.errors import DeviceUnavailable, RemoteServiceError, UnsupportedBackend
from .cloud_recognizer import CloudChunkedRecognizer
from .interfaces import CameraSwitcher, FailureCallback, RecognitionBackend, ResultCallback
from .local_recognizer import LocalRecognitionAdapter
from .speech_api import SpeechApiClient, make_http_client
from .types import PipelineState, PipelineStatus, RecognitionMode, RecognitionResult

logger = logging.getLogger(__name__)

TextCallback = Callable[[str, float], None]
CommandCallback = Callable[[str, str, float], None]
StatusCallback = Callable[[PipelineStatus], None]
NoticeCallback = Callable[[str], None]
LocalFactory = Callable[[ResultCallback], RecognitionBackend]
CloudFactory = Callable[[str, ResultCallback, FailureCallback], RecognitionBackend]


@dataclass
class RecognitionSession:
    """Live state of one activation span."""

    config: RecognitionConfig
    mode: RecognitionMode
    active: bool = True
    last_confidence: float = 0.0
    fell_back: bool = False
    backend: Optional[RecognitionBackend] = None


def select_mode(recognition_config: RecognitionConfig) -> RecognitionMode:
    """Cloud when a service key is configured, local otherwise."""
    if recognition_config.has_api_key:
        return RecognitionMode.CLOUD
    return RecognitionMode.LOCAL


def _describe(error: Exception) -> str:
    if isinstance(error, RemoteServiceError):
        return error.describe()
    return str(error)


class VoiceCommandPipeline:
    def __init__(
        self,
        cameras: CameraSwitcher,
        on_text_recognized: Optional[TextCallback] = None,
        on_command_matched: Optional[CommandCallback] = None,
        on_status: Optional[StatusCallback] = None,
        on_notice: Optional[NoticeCallback] = None,
        local_factory: Optional[LocalFactory] = None,
        cloud_factory: Optional[CloudFactory] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._cameras = cameras
        self._on_text_recognized = on_text_recognized
        self._on_command_matched = on_command_matched
        self._on_status = on_status
        self._on_notice = on_notice
        self._local_factory = local_factory or self._default_local
        self._cloud_factory = cloud_factory or self._default_cloud
        self._http_client = http_client

        self._state = PipelineState.INACTIVE
        self._session: Optional[RecognitionSession] = None
        self._gate: Optional[ConfidenceGate] = None
        self._dispatcher: Optional[KeywordDispatcher] = None
        self._transition_task: Optional[asyncio.Task] = None
        self._config = RecognitionConfig()
        self.last_diagnostic = ""

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def mode(self) -> Optional[RecognitionMode]:
        return self._session.mode if self._session else None

    @property
    def session(self) -> Optional[RecognitionSession]:
        return self._session

    def status(self) -> PipelineStatus:
        session = self._session
        return PipelineStatus(
            state=self._state,
            mode=session.mode if session else None,
            listening=self._state == PipelineState.RUNNING,
            last_confidence=session.last_confidence if session else 0.0,
            confidence_threshold=self._config.confidence_threshold,
            auto_switch_enabled=self._config.auto_switch_enabled,
            fell_back=session.fell_back if session else False,
            diagnostic=self.last_diagnostic,
        )

    async def activate(self, recognition_config: RecognitionConfig) -> bool:
        """Start recognition with a fresh configuration snapshot.

        Returns True once a backend is running. Failures are reported through
        the status and notice callbacks, never raised.
        """
        if self._state != PipelineState.INACTIVE:
            logger.debug(f"Activation ignored in state {self._state.value}")
            return False

        self._config = recognition_config
        self.last_diagnostic = ""
        session = RecognitionSession(recognition_config, select_mode(recognition_config))
        self._session = session
        self._gate = ConfidenceGate(recognition_config.confidence_threshold, downstream=self._deliver)
        self._dispatcher = KeywordDispatcher(
            self._cameras,
            auto_switch_enabled=recognition_config.auto_switch_enabled,
            on_command_matched=self._on_command_matched,
        )

        logger.info(f"🚀 Activating voice commands ({session.mode.value})")
        self._transition(PipelineState.STARTING)
        if session.mode == RecognitionMode.CLOUD:
            return await self._start_cloud(session)
        return await self._start_local(session)

    def deactivate(self) -> None:
        """Stop the running backend without waiting on pending requests."""
        session = self._session
        if session is None:
            return
        self._transition(PipelineState.STOPPING)
        session.active = False
        self._session = None
        self._stop_backend(session)
        task, self._transition_task = self._transition_task, None
        if task is not None and not task.done():
            task.cancel()
        self._transition(PipelineState.INACTIVE)
        logger.info("👋 Voice commands deactivated")

    async def wait_settled(self) -> None:
        """Wait for a scheduled fallback to finish starting the local backend."""
        task = self._transition_task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def aclose(self) -> None:
        self.deactivate()
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def _start_cloud(self, session: RecognitionSession) -> bool:
        backend = self._cloud_factory(
            session.config.api_key.strip(),
            lambda result: self._on_backend_result(session, RecognitionMode.CLOUD, result),
            lambda error: self._on_cloud_failure(session, error),
        )
        session.backend = backend
        try:
            await backend.start()
        except (DeviceUnavailable, RemoteServiceError) as e:
            if not self._is_current(session):
                return False
            self._begin_fallback(session, e)
            return await self._start_local(session)

        if not self._is_current(session):
            backend.stop()
            return False
        self._transition(PipelineState.RUNNING)
        return True

    async def _start_local(self, session: RecognitionSession) -> bool:
        backend = self._local_factory(
            lambda result: self._on_backend_result(session, RecognitionMode.LOCAL, result),
        )
        session.backend = backend
        try:
            await backend.start()
        except (UnsupportedBackend, DeviceUnavailable) as e:
            backend.stop()
            if self._is_current(session):
                self._end_session(session, e)
            return False

        if not self._is_current(session):
            backend.stop()
            return False
        self._transition(PipelineState.RUNNING)
        return True

    def _on_cloud_failure(self, session: RecognitionSession, error: Exception) -> None:
        if not self._is_current(session) or session.mode != RecognitionMode.CLOUD:
            return
        if self._state != PipelineState.RUNNING:
            # Still starting: the failure surfaces from backend.start()
            return
        self._begin_fallback(session, error)
        self._transition_task = asyncio.create_task(self._start_local(session))

    def _begin_fallback(self, session: RecognitionSession, error: Exception) -> None:
        self._transition(PipelineState.FALLBACK)
        self._stop_backend(session)
        session.mode = RecognitionMode.LOCAL
        session.fell_back = True
        self.last_diagnostic = _describe(error)
        logger.warning(f"⚠️  Falling back to local recognition: {self.last_diagnostic}")
        self._notify(f"Cloud recognition unavailable, using local recognition. {self.last_diagnostic}")

    def _end_session(self, session: RecognitionSession, error: Exception) -> None:
        session.active = False
        session.backend = None
        self._session = None
        self.last_diagnostic = str(error)
        logger.error(f"✗ Voice recognition unavailable: {error}")
        self._notify(f"Voice recognition unavailable: {error}")
        self._transition(PipelineState.INACTIVE)

    def _on_backend_result(self, session: RecognitionSession, mode: RecognitionMode, result: RecognitionResult) -> None:
        if not self._is_current(session) or session.mode != mode:
            logger.debug(f"Discarding result from stale {mode.value} backend")
            return
        session.last_confidence = result.confidence
        self._emit_status()
        self._gate.forward(result)

    def _deliver(self, result: RecognitionResult) -> None:
        if self._on_text_recognized is not None:
            self._on_text_recognized(result.transcript, result.confidence)
        self._dispatcher.dispatch(result.transcript, result.confidence)

    def _is_current(self, session: RecognitionSession) -> bool:
        return session is self._session and session.active

    def _stop_backend(self, session: RecognitionSession) -> None:
        backend, session.backend = session.backend, None
        if backend is not None:
            backend.stop()

    def _notify(self, message: str) -> None:
        if self._on_notice is not None:
            self._on_notice(message)

    def _transition(self, to_state: PipelineState) -> None:
        if self._state == to_state:
            return
        logger.debug(f"Pipeline {self._state.value} → {to_state.value}")
        self._state = to_state
        self._emit_status()

    def _emit_status(self) -> None:
        if self._on_status is not None:
            self._on_status(self.status())

    def _default_local(self, on_result: ResultCallback) -> RecognitionBackend:
        return LocalRecognitionAdapter(on_result)

    def _default_cloud(self, api_key: str, on_result: ResultCallback, on_failure: FailureCallback) -> RecognitionBackend:
        if self._http_client is None:
            self._http_client = make_http_client()
        client = SpeechApiClient(api_key, client=self._http_client)
        return CloudChunkedRecognizer(client, on_result, on_failure)
