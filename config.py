"""Simple JSON-based preference store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

MODEL_NAME_KEY = "modelName"
DEFAULT_MODEL_NAME = "whisper-small.ct2"
DEFAULT_HOTKEY = "Key.alt_r"

DEFAULTS: dict[str, Any] = {
    MODEL_NAME_KEY: DEFAULT_MODEL_NAME,
    "hotkey": DEFAULT_HOTKEY,
    "append": False,
    "translate": False,
    "data_dir": str(Path.home() / ".local" / "share" / "whisper_ime"),
    "device": "cpu",
    "compute_type": "int8",
    "commit_method": "paste",
    "log_level": "INFO",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "whisper_ime" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get(self, key: str) -> Any:
        data = self._read_all()
        return data.get(key, DEFAULTS.get(key))

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def get_model_name(self) -> str:
        return str(self.get(MODEL_NAME_KEY))

    def set_model_name(self, name: str) -> None:
        self.set(MODEL_NAME_KEY, name)

    def get_hotkey(self) -> str:
        return str(self.get("hotkey"))

    def set_hotkey(self, hotkey: str) -> None:
        self.set("hotkey", hotkey)

    def get_flag(self, key: str) -> bool:
        return bool(self.get(key))

    def get_data_dir(self) -> Path:
        return Path(str(self.get("data_dir"))).expanduser()

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
