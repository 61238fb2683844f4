"""Tests for WhisperEngine."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional
from unittest.mock import MagicMock

import numpy as np
import pytest

import engine as engine_mod
from engine import WhisperEngine, _pcm16_to_float32
from errors import INFERENCE_FAILURE, EngineBusy, ModelLoadError
from models import Action, AudioBuffer, EngineEvent, EngineKind, ModelHandle
from registry import ENGLISH_ONLY_MODEL, MULTI_LINGUAL_MODEL_FAST, is_multilingual, vocab_file_for


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

class FakeSegment:
    def __init__(self, text: str) -> None:
        self.text = text


class FakeInfo:
    def __init__(self, language: str) -> None:
        self.language = language


class FakeWhisperModel:
    """Mimics faster_whisper.WhisperModel.transcribe (lazy segment generator)."""

    def __init__(
        self,
        texts: tuple[str, ...] = (" hello", " world"),
        language: str = "de",
        gate: Optional[threading.Event] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.texts = texts
        self.language = language
        self.gate = gate
        self.error = error
        self.calls: list[dict] = []

    def transcribe(self, audio, language=None, task="transcribe", beam_size=5):  # noqa: ANN001, ANN201
        self.calls.append({"audio": audio, "language": language, "task": task})
        if self.error is not None:
            raise self.error

        def segments():  # noqa: ANN202
            for text in self.texts:
                if self.gate is not None:
                    self.gate.wait(2.0)
                yield FakeSegment(text)

        return segments(), FakeInfo(self.language)


def _handle(tmp_path: Path, name: str = MULTI_LINGUAL_MODEL_FAST) -> ModelHandle:
    model_path = tmp_path / name
    model_path.mkdir(exist_ok=True)
    vocab_path = tmp_path / vocab_file_for(name)
    vocab_path.write_text("{}", encoding="utf-8")
    return ModelHandle(
        name=name,
        model_path=model_path,
        vocab_path=vocab_path,
        is_multilingual=is_multilingual(name),
    )


def _audio(n_samples: int = 1600) -> AudioBuffer:
    return AudioBuffer(pcm16=b"\x00\x10" * n_samples)


def _wait_for(predicate, timeout: float = 3.0) -> None:  # noqa: ANN001
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)


def _terminal(events: list[EngineEvent]) -> list[EngineEvent]:
    return [e for e in events if e.kind != EngineKind.PROCESSING.value]


@pytest.fixture
def fake_backend(monkeypatch) -> MagicMock:  # noqa: ANN001
    backend = MagicMock()
    monkeypatch.setattr(engine_mod, "faster_whisper", backend)
    monkeypatch.setattr(engine_mod, "tokenizers", MagicMock())
    return backend


def _loaded_engine(fake_backend: MagicMock, handle: ModelHandle, model: FakeWhisperModel) -> WhisperEngine:
    fake_backend.WhisperModel.return_value = model
    engine = WhisperEngine()
    engine.load_model(handle)
    return engine


# ---------------------------------------------------------------
# PCM conversion
# ---------------------------------------------------------------

def test_pcm16_to_float32_scales_into_unit_range() -> None:
    pcm = np.array([-32768, 0, 16384], dtype=np.int16).tobytes()
    samples = _pcm16_to_float32(AudioBuffer(pcm16=pcm))
    assert samples.dtype == np.float32
    assert samples.tolist() == [-1.0, 0.0, 0.5]


def test_pcm16_to_float32_downmixes_stereo() -> None:
    pcm = np.array([16384, 0, -16384, -16384], dtype=np.int16).tobytes()
    samples = _pcm16_to_float32(AudioBuffer(pcm16=pcm, channels=2))
    assert samples.tolist() == [0.25, -0.5]


# ---------------------------------------------------------------
# Loading
# ---------------------------------------------------------------

def test_load_model_passes_settings_to_backend(tmp_path: Path, fake_backend: MagicMock) -> None:
    handle = _handle(tmp_path)
    fake_backend.WhisperModel.return_value = FakeWhisperModel()

    engine = WhisperEngine(device="cpu", compute_type="int8", cpu_threads=2)
    engine.load_model(handle)

    assert engine.is_loaded is True
    assert engine.handle == handle
    args, kwargs = fake_backend.WhisperModel.call_args
    assert args[0] == str(handle.model_path)
    assert kwargs["compute_type"] == "int8"
    assert kwargs["cpu_threads"] == 2
    assert kwargs["local_files_only"] is True
    engine_mod.tokenizers.Tokenizer.from_file.assert_called_once_with(str(handle.vocab_path))


def test_vocabulary_is_in_model_dir_before_construction(tmp_path: Path, fake_backend: MagicMock) -> None:
    handle = _handle(tmp_path)
    handle.vocab_path.write_text('{"model": "shared"}', encoding="utf-8")
    seen: list[str] = []

    def construct(model_path, **kwargs):  # noqa: ANN001, ANN003, ANN202
        # WhisperModel resolves its tokenizer inside the constructor
        seen.append((Path(model_path) / "tokenizer.json").read_text(encoding="utf-8"))
        return FakeWhisperModel()

    fake_backend.WhisperModel.side_effect = construct
    WhisperEngine().load_model(handle)

    assert seen == ['{"model": "shared"}']


def test_tokenizer_shipped_with_model_is_kept(tmp_path: Path, fake_backend: MagicMock) -> None:
    handle = _handle(tmp_path)
    own = handle.model_path / "tokenizer.json"
    own.write_text('{"model": "own"}', encoding="utf-8")
    fake_backend.WhisperModel.return_value = FakeWhisperModel()

    WhisperEngine().load_model(handle)

    assert own.read_text(encoding="utf-8") == '{"model": "own"}'


def test_invalid_vocabulary_fails_before_model_load(tmp_path: Path, fake_backend: MagicMock) -> None:
    engine_mod.tokenizers.Tokenizer.from_file.side_effect = Exception("expected value at line 1")
    handle = _handle(tmp_path)

    with pytest.raises(ModelLoadError, match="invalid vocabulary"):
        WhisperEngine().load_model(handle)

    fake_backend.WhisperModel.assert_not_called()
    assert not (handle.model_path / "tokenizer.json").exists()


def test_load_missing_model_raises(tmp_path: Path, fake_backend: MagicMock) -> None:
    handle = _handle(tmp_path)
    handle.model_path.rmdir()

    with pytest.raises(ModelLoadError, match="model not found"):
        WhisperEngine().load_model(handle)


def test_load_missing_vocabulary_raises(tmp_path: Path, fake_backend: MagicMock) -> None:
    handle = _handle(tmp_path)
    handle.vocab_path.unlink()

    with pytest.raises(ModelLoadError, match="vocabulary not found"):
        WhisperEngine().load_model(handle)


def test_load_corrupt_model_raises(tmp_path: Path, fake_backend: MagicMock) -> None:
    fake_backend.WhisperModel.side_effect = RuntimeError("Unable to open file 'model.bin'")
    engine = WhisperEngine()

    with pytest.raises(ModelLoadError, match="model.bin"):
        engine.load_model(_handle(tmp_path))
    assert engine.is_loaded is False


def test_load_without_faster_whisper_raises(tmp_path: Path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(engine_mod, "faster_whisper", None)

    with pytest.raises(ModelLoadError, match="not installed"):
        WhisperEngine().load_model(_handle(tmp_path))


def test_unload_twice_is_safe(tmp_path: Path, fake_backend: MagicMock) -> None:
    engine = _loaded_engine(fake_backend, _handle(tmp_path), FakeWhisperModel())

    engine.unload_model()
    engine.unload_model()

    assert engine.is_loaded is False
    assert engine.handle is None


def test_unload_without_model_is_noop() -> None:
    engine = WhisperEngine()
    engine.unload_model()
    assert engine.is_loaded is False


# ---------------------------------------------------------------
# Submission
# ---------------------------------------------------------------

def test_submit_emits_processing_then_one_result(tmp_path: Path, fake_backend: MagicMock) -> None:
    model = FakeWhisperModel(texts=(" Hallo", " Welt"), language="de")
    engine = _loaded_engine(fake_backend, _handle(tmp_path), model)
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    assert events[0].kind == EngineKind.PROCESSING.value
    _wait_for(lambda: len(events) == 2)
    time.sleep(0.05)

    assert len(events) == 2
    result = events[1].result
    assert events[1].kind == EngineKind.RESULT.value
    assert result.text == "Hallo Welt"
    assert result.language == "de"
    assert result.task == Action.TRANSCRIBE
    assert result.elapsed_ms >= 0
    assert model.calls[0]["language"] is None
    assert model.calls[0]["task"] == "transcribe"
    assert engine.is_in_progress() is False


def test_multilingual_translate_passes_task(tmp_path: Path, fake_backend: MagicMock) -> None:
    model = FakeWhisperModel(texts=(" Hello world",), language="de")
    engine = _loaded_engine(fake_backend, _handle(tmp_path), model)
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSLATE, events.append)
    _wait_for(lambda: _terminal(events))

    assert model.calls[0]["task"] == "translate"
    assert events[-1].result.task == Action.TRANSLATE
    assert events[-1].result.language == "de"


def test_english_only_model_pins_language(tmp_path: Path, fake_backend: MagicMock) -> None:
    model = FakeWhisperModel(texts=(" hello",), language="fr")
    engine = _loaded_engine(fake_backend, _handle(tmp_path, ENGLISH_ONLY_MODEL), model)
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSLATE, events.append)
    _wait_for(lambda: _terminal(events))

    assert model.calls[0]["language"] == "en"
    assert model.calls[0]["task"] == "transcribe"
    assert events[-1].result.language == "en"
    assert events[-1].result.task == Action.TRANSLATE


def test_submit_while_in_progress_raises_busy(tmp_path: Path, fake_backend: MagicMock) -> None:
    gate = threading.Event()
    engine = _loaded_engine(fake_backend, _handle(tmp_path), FakeWhisperModel(gate=gate))
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    assert engine.is_in_progress() is True
    with pytest.raises(EngineBusy):
        engine.submit(_audio(), Action.TRANSCRIBE, events.append)

    gate.set()
    _wait_for(lambda: len(_terminal(events)) == 1)
    assert len(_terminal(events)) == 1
    assert engine.is_in_progress() is False

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    _wait_for(lambda: len(_terminal(events)) == 2)
    assert len(_terminal(events)) == 2


def test_submit_without_model_raises() -> None:
    with pytest.raises(ModelLoadError):
        WhisperEngine().submit(_audio(), Action.TRANSCRIBE, lambda e: None)


def test_inference_error_emits_one_failure(tmp_path: Path, fake_backend: MagicMock) -> None:
    model = FakeWhisperModel(error=RuntimeError("bad audio"))
    engine = _loaded_engine(fake_backend, _handle(tmp_path), model)
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    _wait_for(lambda: _terminal(events))
    time.sleep(0.05)

    terminal = _terminal(events)
    assert len(terminal) == 1
    assert terminal[0].kind == EngineKind.ERROR.value
    assert terminal[0].code == INFERENCE_FAILURE
    assert "bad audio" in terminal[0].message
    assert engine.is_in_progress() is False


# ---------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------

def test_stop_suppresses_result(tmp_path: Path, fake_backend: MagicMock) -> None:
    gate = threading.Event()
    engine = _loaded_engine(fake_backend, _handle(tmp_path), FakeWhisperModel(gate=gate))
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    time.sleep(0.05)
    engine.stop()
    gate.set()
    _wait_for(lambda: not engine.is_in_progress())
    time.sleep(0.05)

    assert [e.kind for e in events] == [EngineKind.PROCESSING.value]


def test_unload_waits_for_in_flight_inference(tmp_path: Path, fake_backend: MagicMock) -> None:
    gate = threading.Event()
    engine = _loaded_engine(fake_backend, _handle(tmp_path), FakeWhisperModel(gate=gate))
    events: list[EngineEvent] = []

    engine.submit(_audio(), Action.TRANSCRIBE, events.append)
    threading.Timer(0.1, gate.set).start()
    engine.unload_model()

    assert engine.is_loaded is False
    assert engine.is_in_progress() is False
    assert [e.kind for e in events] == [EngineKind.PROCESSING.value]
