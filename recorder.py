"""Microphone capture over sounddevice."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

import numpy as np

from errors import DeviceUnavailable
from models import BYTES_PER_SAMPLE, SAMPLE_RATE, AudioBuffer, CaptureEvent, CaptureKind, Session

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

CaptureListener = Callable[[CaptureEvent], None]


class SoundDeviceRecorder:
    """Records one session at a time into an in-memory PCM buffer.

    Samples arrive on the PortAudio callback thread and are appended to a
    private buffer. ``stop()`` freezes that buffer into ``session.audio`` and
    emits a ``done`` event; the buffer is never touched again afterwards.
    """

    def __init__(
        self,
        sample_rate: int = SAMPLE_RATE,
        channels: int = 1,
        chunk_ms: int = 100,
        max_duration_s: float = 30.0,
        device: Any = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._max_bytes = int(max_duration_s * sample_rate) * BYTES_PER_SAMPLE * channels
        self._stream: Any = None
        self._running = False
        self._auto_stopping = False
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._pcm = bytearray()
        self._listener: Optional[CaptureListener] = None
        self.overflow_count = 0

    def set_listener(self, listener: Optional[CaptureListener]) -> None:
        self._listener = listener

    def is_in_progress(self) -> bool:
        return self._running

    def start(self, session: Session) -> None:
        with self._lock:
            if self._running:
                logger.warning(
                    "Capture already in progress, ignoring start for session %d",
                    session.session_id,
                )
                return
            if sd is None:
                raise DeviceUnavailable("sounddevice is not installed")
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    device=self.device,
                    callback=self._on_audio,
                )
            except Exception as exc:
                raise DeviceUnavailable(f"cannot open microphone: {exc}") from exc

            self._session = session
            self._pcm = bytearray()
            self._auto_stopping = False
            self._stream = stream
            self._running = True
            try:
                stream.start()
            except Exception as exc:
                self._close_stream_locked()
                self._reset_locked()
                raise DeviceUnavailable(f"cannot start microphone: {exc}") from exc

        logger.info("Capture started for session %d", session.session_id)
        self._emit(CaptureEvent(kind=CaptureKind.STARTED.value, session=session))

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            session = self._session
            self._close_stream_locked()
            pcm = bytes(self._pcm[: self._max_bytes])
            self._reset_locked()

        if session is None:
            return
        session.audio = AudioBuffer(pcm16=pcm, sample_rate=self.sample_rate, channels=self.channels)
        logger.info(
            "Capture finished for session %d: %.2f s",
            session.session_id,
            session.audio.duration_s,
        )
        self._emit(CaptureEvent(kind=CaptureKind.DONE.value, session=session))

    def cancel(self) -> None:
        with self._lock:
            if not self._running:
                return
            session_id = self._session.session_id if self._session else 0
            self._close_stream_locked()
            self._reset_locked()
        logger.info("Capture cancelled for session %d", session_id)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running:
            return
        if status:
            self.overflow_count += 1
            logger.warning("Input stream status: %s", status)
        self._pcm.extend(np.asarray(indata, dtype=np.int16).tobytes())
        if len(self._pcm) >= self._max_bytes and not self._auto_stopping:
            # stream.stop() must not run on the PortAudio callback thread
            self._auto_stopping = True
            logger.info("Maximum recording length reached, stopping")
            threading.Thread(target=self.stop, name="capture-autostop", daemon=True).start()

    def _close_stream_locked(self) -> None:
        self._running = False
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        except Exception:
            logger.exception("Error while closing input stream")

    def _reset_locked(self) -> None:
        self._running = False
        self._stream = None
        self._session = None
        self._pcm = bytearray()

    def _emit(self, event: CaptureEvent) -> None:
        if self._listener is not None:
            self._listener(event)
