from __future__ import annotations

from pathlib import Path

from config import JsonConfigStore
from registry import (
    ENGLISH_ONLY_MODEL,
    MULTI_LINGUAL_MODEL_FAST,
    MULTI_LINGUAL_MODEL_SLOW,
    ModelRegistry,
    display_name,
    is_multilingual,
    vocab_file_for,
)


def _registry(tmp_path: Path) -> ModelRegistry:
    return ModelRegistry(tmp_path / "data", JsonConfigStore(path=tmp_path / "config.json"))


def test_language_mode_follows_name_suffix() -> None:
    assert is_multilingual(MULTI_LINGUAL_MODEL_FAST) is True
    assert is_multilingual(ENGLISH_ONLY_MODEL) is False
    assert vocab_file_for(MULTI_LINGUAL_MODEL_SLOW) == "vocab_multilingual.json"
    assert vocab_file_for("my-model.en.ct2") == "vocab_en.json"


def test_display_names() -> None:
    assert display_name(MULTI_LINGUAL_MODEL_FAST) == "Multi-lingual, fast"
    assert display_name(ENGLISH_ONLY_MODEL) == "English only, fast"
    assert display_name("whisper-large.ct2") == "whisper-large"


def test_resolve_does_not_touch_filesystem(tmp_path: Path) -> None:
    registry = _registry(tmp_path)

    handle = registry.resolve(ENGLISH_ONLY_MODEL)

    assert handle.name == ENGLISH_ONLY_MODEL
    assert handle.model_path == tmp_path / "data" / ENGLISH_ONLY_MODEL
    assert handle.vocab_path == tmp_path / "data" / "vocab_en.json"
    assert handle.is_multilingual is False
    assert not (tmp_path / "data").exists()


def test_list_models_puts_selected_first(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    data_dir = registry.data_dir
    data_dir.mkdir()
    for name in (MULTI_LINGUAL_MODEL_FAST, MULTI_LINGUAL_MODEL_SLOW, ENGLISH_ONLY_MODEL):
        (data_dir / name).mkdir()
    (data_dir / "vocab_en.json").write_text("{}", encoding="utf-8")

    assert registry.list_models() == [
        MULTI_LINGUAL_MODEL_SLOW,
        MULTI_LINGUAL_MODEL_FAST,
        ENGLISH_ONLY_MODEL,
    ]

    registry.set_selected_model(ENGLISH_ONLY_MODEL)
    assert registry.list_models()[0] == ENGLISH_ONLY_MODEL


def test_list_models_without_data_dir(tmp_path: Path) -> None:
    assert _registry(tmp_path).list_models() == []


def test_selection_is_persisted(tmp_path: Path) -> None:
    registry = _registry(tmp_path)
    assert registry.selected_model() == MULTI_LINGUAL_MODEL_SLOW

    registry.set_selected_model(MULTI_LINGUAL_MODEL_FAST)

    assert _registry(tmp_path).selected_model() == MULTI_LINGUAL_MODEL_FAST
