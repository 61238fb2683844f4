"""State-machine based recording/transcription orchestration.

The Orchestrator owns one AudioCapture and one InferenceEngine and moves a
single session at a time through IDLE -> RECORDING -> PROCESSING -> IDLE.
Blocking work (device open/close, model load, submission) runs on two
single-thread workers; callbacks from those workers are matched against the
current session id and dropped when stale. Everything the consumer sees goes
out through the NotificationChannel.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Optional

from dispatch import NotificationChannel
from errors import (
    ENGINE_BUSY,
    ERROR_MESSAGES,
    INFERENCE_FAILURE,
    DeviceUnavailable,
    EngineBusy,
    ModelLoadError,
    WhisperImeError,
)
from interfaces import AudioCapture, InferenceEngine
from models import (
    SAMPLE_RATE,
    Action,
    CaptureEvent,
    CaptureKind,
    EngineEvent,
    EngineKind,
    ModelHandle,
    Notification,
    NotificationKind,
    Session,
    SessionState,
)
from registry import ModelRegistry

logger = logging.getLogger(__name__)

STATUS_RECORDING = "recording"
STATUS_RECORDING_DONE = "recording done"
STATUS_PROCESSING = "processing"
STATUS_PROCESSING_DONE = "processing done"
STATUS_PROCESSING_STOPPED = "processing stopped"
STATUS_MODEL_LOADED = "model loaded"


class Orchestrator:
    def __init__(
        self,
        capture: AudioCapture,
        engine: InferenceEngine,
        registry: ModelRegistry,
        channel: NotificationChannel,
        min_duration_s: float = 0.0,
    ) -> None:
        self._capture = capture
        self._engine = engine
        self._registry = registry
        self._channel = channel
        self._min_frames = int(min_duration_s * SAMPLE_RATE)

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._session_id = 0
        self._session: Optional[Session] = None
        self._selected = registry.selected_model()
        self._append_mode = False
        self._translate_mode = False
        self._shut_down = False

        self._capture_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._engine_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="engine")
        self._capture.set_listener(self._handle_capture_event)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def selected_model(self) -> str:
        return self._selected

    def is_recording(self) -> bool:
        return self._state == SessionState.RECORDING

    def is_processing(self) -> bool:
        return self._state == SessionState.PROCESSING

    def set_append_mode(self, enabled: bool) -> None:
        with self._lock:
            self._append_mode = enabled

    def set_translate_mode(self, enabled: bool) -> None:
        with self._lock:
            self._translate_mode = enabled

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def press_record(self) -> None:
        """Start a new session.

        Raises ``EngineBusy`` while a previous session is still being
        processed and ``ModelLoadError`` when no model is selected; both are
        also published as failures.
        """
        with self._lock:
            if self._shut_down:
                logger.warning("press ignored after shutdown")
                return
            if self._state == SessionState.RECORDING:
                logger.warning("Already recording, ignoring press")
                return
            if self._state == SessionState.PROCESSING or self._engine.is_in_progress():
                self._reject(EngineBusy())
            if not self._selected:
                self._reject(ModelLoadError("no model selected"))

            self._session_id += 1
            session = Session(session_id=self._session_id, append_mode=self._append_mode)
            self._session = session
            self._transition(SessionState.RECORDING)
            if not self._engine.is_loaded:
                self._engine_worker.submit(self._preload, self._selected)
            self._capture_worker.submit(self._start_capture, session)

    def release_record(self) -> None:
        with self._lock:
            if self._shut_down or self._state != SessionState.RECORDING:
                return
            self._capture_worker.submit(self._capture.stop)

    def select_model(self, model_name: str) -> None:
        """Switch models; rejected with ``EngineBusy`` while processing."""
        with self._lock:
            if self._shut_down:
                logger.warning("select_model ignored after shutdown")
                return
            if self._state == SessionState.PROCESSING or self._engine.is_in_progress():
                self._reject(EngineBusy())
            if self._state == SessionState.RECORDING:
                logger.info("Model change while recording, discarding session %d", self._session_id)
                self._session = None
                self._capture_worker.submit(self._capture.cancel)
                self._transition(SessionState.IDLE)

            self._selected = model_name
            self._registry.set_selected_model(model_name)
            handle = self._registry.resolve(model_name)
            self._engine_worker.submit(self._reload_model, handle)

    def stop_processing(self) -> None:
        """Cancel the in-flight inference; its late result is discarded."""
        with self._lock:
            if self._state != SessionState.PROCESSING:
                return
            logger.info("Stopping processing of session %d", self._session_id)
            self._engine.stop()
            self._session = None
            self._transition(SessionState.IDLE)
            self._publish_status(STATUS_PROCESSING_STOPPED)

    def shutdown(self) -> None:
        with self._lock:
            if self._shut_down:
                return
            self._shut_down = True
            self._session = None
            self._transition(SessionState.IDLE)

        self._capture_worker.submit(self._capture.cancel)
        self._engine.stop()
        self._engine_worker.submit(self._engine.unload_model)
        self._capture_worker.shutdown(wait=True)
        self._engine_worker.shutdown(wait=True)
        self._capture.set_listener(None)
        self._channel.close()
        logger.info("Orchestrator shut down")

    # ------------------------------------------------------------------
    # Worker jobs
    # ------------------------------------------------------------------

    def _start_capture(self, session: Session) -> None:
        with self._lock:
            if not self._is_current(session, SessionState.RECORDING):
                return
        try:
            self._capture.start(session)
        except DeviceUnavailable as exc:
            self._fail_session(session.session_id, exc)

    def _preload(self, model_name: str) -> None:
        if self._engine.is_loaded:
            return
        try:
            self._engine.load_model(self._registry.resolve(model_name))
        except ModelLoadError as exc:
            # reported again, once, if the session reaches submission
            logger.warning("Preloading %s failed: %s", model_name, exc.message)

    def _reload_model(self, handle: ModelHandle) -> None:
        self._engine.unload_model()
        try:
            self._engine.load_model(handle)
        except ModelLoadError as exc:
            logger.error("Loading %s failed: %s", handle.name, exc.message)
            self._publish_failure(exc)
            return
        self._publish_status(f"{STATUS_MODEL_LOADED}: {handle.name}")

    def _submit_session(self, session: Session) -> None:
        with self._lock:
            if not self._is_current(session, SessionState.PROCESSING):
                return
            model_name = self._selected
        try:
            if not self._engine.is_loaded:
                self._engine.load_model(self._registry.resolve(model_name))
            with self._lock:
                # the session may have been stopped or replaced while loading
                if not self._is_current(session, SessionState.PROCESSING):
                    logger.debug("Session %d gone before submission", session.session_id)
                    return
                self._engine.submit(
                    session.audio,
                    session.action,
                    partial(self._handle_engine_event, session.session_id),
                )
        except WhisperImeError as exc:
            self._fail_session(session.session_id, exc)

    # ------------------------------------------------------------------
    # Callbacks from capture and inference threads
    # ------------------------------------------------------------------

    def _handle_capture_event(self, event: CaptureEvent) -> None:
        session = event.session
        with self._lock:
            if session is None or not self._is_current(session, SessionState.RECORDING):
                logger.debug("Dropping stale capture %s event", event.kind)
                return
            if event.kind == CaptureKind.STARTED.value:
                self._publish_status(STATUS_RECORDING)
                return
            if event.kind != CaptureKind.DONE.value:
                return

            self._publish_status(STATUS_RECORDING_DONE)
            frames = session.audio.frame_count if session.audio else 0
            if frames == 0 or frames < self._min_frames:
                logger.info("Discarding session %d with %d frames", session.session_id, frames)
                self._session = None
                self._transition(SessionState.IDLE)
                return

            session.action = Action.TRANSLATE if self._translate_mode else Action.TRANSCRIBE
            self._transition(SessionState.PROCESSING)
            self._engine_worker.submit(self._submit_session, session)

    def _handle_engine_event(self, session_id: int, event: EngineEvent) -> None:
        with self._lock:
            session = self._session
            if (
                session is None
                or session.session_id != session_id
                or self._state != SessionState.PROCESSING
            ):
                logger.debug("Dropping stale engine %s event for session %d", event.kind, session_id)
                return

            if event.kind == EngineKind.PROCESSING.value:
                self._publish_status(STATUS_PROCESSING)
                return
            if event.kind == EngineKind.RESULT.value and event.result is not None:
                result = event.result
                result.append = session.append_mode
                result.session_id = session_id
                logger.info(
                    "Session %d done in %d ms (language=%s, task=%s)",
                    session_id,
                    result.elapsed_ms,
                    result.language,
                    result.task.value,
                )
                self._session = None
                self._channel.publish(
                    Notification(
                        kind=NotificationKind.RESULT.value,
                        message=STATUS_PROCESSING_DONE,
                        result=result,
                    )
                )
                self._transition(SessionState.IDLE)
                return
            self._fail_locked(
                event.code or INFERENCE_FAILURE,
                event.message or ERROR_MESSAGES[INFERENCE_FAILURE],
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_current(self, session: Session, state: SessionState) -> bool:
        return self._session is session and self._state == state

    def _reject(self, exc: WhisperImeError) -> None:
        if exc.code == ENGINE_BUSY:
            logger.info("Engine busy, rejecting command")
        self._publish_failure(exc)
        raise exc

    def _fail_session(self, session_id: int, exc: WhisperImeError) -> None:
        with self._lock:
            if self._session is None or self._session.session_id != session_id:
                return
            self._fail_locked(exc.code, exc.message)

    def _fail_locked(self, code: str, message: str) -> None:
        logger.error("Session %d failed: %s: %s", self._session_id, code, message)
        self._channel.publish(
            Notification(kind=NotificationKind.FAILURE.value, code=code, message=message)
        )
        self._session = None
        self._transition(SessionState.IDLE)

    def _publish_status(self, message: str) -> None:
        self._channel.publish(Notification(kind=NotificationKind.STATUS.value, message=message))

    def _publish_failure(self, exc: WhisperImeError) -> None:
        self._channel.publish(
            Notification(kind=NotificationKind.FAILURE.value, code=exc.code, message=exc.message)
        )

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("State %s -> %s", from_state.value, to_state.value)
        self._channel.publish(
            Notification(
                kind=NotificationKind.STATE.value,
                message=f"{from_state.value} -> {to_state.value}",
                state=to_state.value,
            )
        )
