"""Model registry: resolves model names against the data directory."""

from __future__ import annotations

import logging
from pathlib import Path

from interfaces import ConfigStore
from models import ModelHandle

logger = logging.getLogger(__name__)

MODEL_SUFFIX = ".ct2"
# English-only models are named "<name>.en.ct2"
ENGLISH_ONLY_SUFFIX = ".en" + MODEL_SUFFIX

MULTI_LINGUAL_MODEL_FAST = "whisper-base.ct2"
MULTI_LINGUAL_MODEL_SLOW = "whisper-small.ct2"
ENGLISH_ONLY_MODEL = "whisper-tiny.en.ct2"

MULTILINGUAL_VOCAB_FILE = "vocab_multilingual.json"
ENGLISH_ONLY_VOCAB_FILE = "vocab_en.json"

_LABELS = {
    MULTI_LINGUAL_MODEL_SLOW: "Multi-lingual, slow",
    MULTI_LINGUAL_MODEL_FAST: "Multi-lingual, fast",
    ENGLISH_ONLY_MODEL: "English only, fast",
}


def is_multilingual(model_name: str) -> bool:
    return not model_name.endswith(ENGLISH_ONLY_SUFFIX)


def vocab_file_for(model_name: str) -> str:
    return MULTILINGUAL_VOCAB_FILE if is_multilingual(model_name) else ENGLISH_ONLY_VOCAB_FILE


def display_name(model_name: str) -> str:
    label = _LABELS.get(model_name)
    if label:
        return label
    if model_name.endswith(MODEL_SUFFIX):
        return model_name[: -len(MODEL_SUFFIX)]
    return model_name


class ModelRegistry:
    def __init__(self, data_dir: Path, config_store: ConfigStore) -> None:
        self._data_dir = data_dir
        self._config_store = config_store

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def resolve(self, model_name: str) -> ModelHandle:
        """Map a model name to its files and language mode.

        Existence is not checked here; the engine reports missing files when
        it loads the handle.
        """
        return ModelHandle(
            name=model_name,
            model_path=self._data_dir / model_name,
            vocab_path=self._data_dir / vocab_file_for(model_name),
            is_multilingual=is_multilingual(model_name),
        )

    def list_models(self) -> list[str]:
        """Model names found in the data directory, selected model first."""
        if not self._data_dir.is_dir():
            return []
        names = sorted(
            entry.name for entry in self._data_dir.iterdir() if entry.name.endswith(MODEL_SUFFIX)
        )
        selected = self.selected_model()
        if selected in names:
            names.remove(selected)
            names.insert(0, selected)
        return names

    def selected_model(self) -> str:
        return self._config_store.get_model_name()

    def set_selected_model(self, model_name: str) -> None:
        logger.info("Selected model %s", model_name)
        self._config_store.set_model_name(model_name)
