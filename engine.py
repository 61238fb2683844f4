"""Offline Whisper inference engine.

Wraps a CTranslate2 Whisper model loaded through ``faster-whisper``. The
engine is single-flight: one submission at a time runs on a dedicated worker
thread and reports ``processing`` followed by exactly one ``result`` or
``error`` event through the callback given to ``submit``. A submission that is
stopped reports nothing further.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from typing import Any, Callable, Optional

import numpy as np

from errors import INFERENCE_FAILURE, EngineBusy, ModelLoadError
from models import Action, AudioBuffer, EngineEvent, EngineKind, ModelHandle, TranscriptionResult

try:
    import faster_whisper
except Exception:  # pragma: no cover
    faster_whisper = None  # type: ignore

try:
    import tokenizers
except Exception:  # pragma: no cover
    tokenizers = None  # type: ignore

logger = logging.getLogger(__name__)

EngineCallback = Callable[[EngineEvent], None]

INT16_MAX_ABS_VALUE = 32768.0
ENGLISH = "en"
TOKENIZER_FILE = "tokenizer.json"


def _pcm16_to_float32(audio: AudioBuffer) -> np.ndarray:
    """Convert PCM16 bytes to mono float32 samples in [-1, 1]."""
    samples = np.frombuffer(audio.pcm16, dtype=np.int16).astype(np.float32) / INT16_MAX_ABS_VALUE
    if audio.channels > 1:
        samples = samples.reshape(-1, audio.channels).mean(axis=1)
    return samples


def _install_tokenizer(handle: ModelHandle) -> None:
    """Place the shared vocabulary in the model directory as ``tokenizer.json``.

    WhisperModel reads its tokenizer from the model directory while it is
    constructed and falls back to a Hugging Face Hub download when the file
    is missing, so it has to be there beforehand. A tokenizer shipped with
    the model is left alone.
    """
    target = handle.model_path / TOKENIZER_FILE
    if target.is_file():
        return
    try:
        shutil.copyfile(handle.vocab_path, target)
    except OSError as exc:
        raise ModelLoadError(f"cannot install vocabulary into {handle.model_path}: {exc}") from exc
    logger.info("Installed %s as tokenizer for %s", handle.vocab_path.name, handle.name)


class WhisperEngine:
    def __init__(
        self,
        device: str = "cpu",
        compute_type: str = "int8",
        cpu_threads: int = 0,
        beam_size: int = 5,
        unload_timeout_s: float = 10.0,
    ) -> None:
        self._device = device
        self._compute_type = compute_type
        self._cpu_threads = cpu_threads
        self._beam_size = beam_size
        self._unload_timeout_s = unload_timeout_s

        self._lock = threading.Lock()
        self._model: Any = None
        self._handle: Optional[ModelHandle] = None
        self._thread: Optional[threading.Thread] = None
        self._cancel: Optional[threading.Event] = None
        self._busy = False

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    def is_in_progress(self) -> bool:
        return self._busy

    def load_model(self, handle: ModelHandle) -> None:
        self.unload_model()
        if faster_whisper is None or tokenizers is None:
            raise ModelLoadError("faster-whisper is not installed")
        if not handle.model_path.is_dir():
            raise ModelLoadError(f"model not found: {handle.model_path}")
        if not handle.vocab_path.is_file():
            raise ModelLoadError(f"vocabulary not found: {handle.vocab_path}")

        logger.info("Loading model %s (multilingual=%s)", handle.name, handle.is_multilingual)
        started = time.monotonic()
        try:
            tokenizers.Tokenizer.from_file(str(handle.vocab_path))
        except Exception as exc:
            raise ModelLoadError(f"invalid vocabulary {handle.vocab_path.name}: {exc}") from exc
        _install_tokenizer(handle)

        try:
            model = faster_whisper.WhisperModel(
                str(handle.model_path),
                device=self._device,
                compute_type=self._compute_type,
                cpu_threads=self._cpu_threads,
                local_files_only=True,
            )
        except Exception as exc:
            raise ModelLoadError(f"cannot load {handle.name}: {exc}") from exc

        with self._lock:
            self._model = model
            self._handle = handle
        logger.info("Model %s ready in %.2f s", handle.name, time.monotonic() - started)

    def unload_model(self) -> None:
        with self._lock:
            thread = self._thread
            if self._cancel is not None:
                self._cancel.set()
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=self._unload_timeout_s)
            if thread.is_alive():
                logger.warning("Inference thread did not stop before unload")

        with self._lock:
            if self._model is None:
                return
            name = self._handle.name if self._handle else "?"
            self._model = None
            self._handle = None
        logger.info("Unloaded model %s", name)

    def submit(self, audio: AudioBuffer, action: Action, on_event: EngineCallback) -> None:
        with self._lock:
            if self._busy:
                raise EngineBusy()
            if self._model is None or self._handle is None:
                raise ModelLoadError("no model loaded")
            self._busy = True
            cancel = threading.Event()
            self._cancel = cancel
            thread = threading.Thread(
                target=self._worker,
                args=(self._model, self._handle, audio, action, on_event, cancel),
                name="inference",
                daemon=True,
            )
            self._thread = thread

        on_event(EngineEvent(kind=EngineKind.PROCESSING.value))
        thread.start()

    def stop(self) -> None:
        with self._lock:
            if self._busy and self._cancel is not None:
                logger.info("Stopping in-flight inference")
                self._cancel.set()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _worker(
        self,
        model: Any,
        handle: ModelHandle,
        audio: AudioBuffer,
        action: Action,
        on_event: EngineCallback,
        cancel: threading.Event,
    ) -> None:
        started = time.monotonic()
        try:
            text, language = self._transcribe(model, handle, audio, action, cancel)
        except Exception as exc:
            logger.exception("Inference failed")
            event = EngineEvent(kind=EngineKind.ERROR.value, code=INFERENCE_FAILURE, message=str(exc))
        else:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            event = EngineEvent(
                kind=EngineKind.RESULT.value,
                result=TranscriptionResult(
                    text=text,
                    language=language,
                    task=action,
                    elapsed_ms=elapsed_ms,
                ),
            )

        with self._lock:
            self._busy = False
            if self._thread is threading.current_thread():
                self._thread = None

        if cancel.is_set():
            logger.info("Discarding result of stopped inference")
            return
        on_event(event)

    def _transcribe(
        self,
        model: Any,
        handle: ModelHandle,
        audio: AudioBuffer,
        action: Action,
        cancel: threading.Event,
    ) -> tuple[str, str]:
        samples = _pcm16_to_float32(audio)
        if handle.is_multilingual:
            language, task = None, action.value
        else:
            # translating into English is a no-op for English-only models
            language, task = ENGLISH, Action.TRANSCRIBE.value

        segments, info = model.transcribe(
            samples,
            language=language,
            task=task,
            beam_size=self._beam_size,
        )
        parts = []
        for segment in segments:
            if cancel.is_set():
                break
            parts.append(segment.text)

        detected = info.language if handle.is_multilingual else ENGLISH
        return "".join(parts).strip(), detected
