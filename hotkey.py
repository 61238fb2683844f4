"""Push-to-talk global key based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


def parse_key(name: str) -> Any:
    """Turn ``Key.alt_r`` or a single character into a pynput key."""
    if keyboard is None:
        raise RuntimeError("pynput is not installed")
    if name.startswith("Key."):
        try:
            return keyboard.Key[name[len("Key."):]]
        except KeyError as exc:
            raise ValueError(f"unknown key: {name}") from exc
    if len(name) == 1:
        return keyboard.KeyCode.from_char(name)
    raise ValueError(f"unknown key: {name}")


class PushToTalkKey:
    """Turns key-down/key-up of one key into press/release edges.

    Auto-repeat key-down events while held are swallowed so each physical
    press produces exactly one ``on_press`` and one ``on_release``.
    """

    def __init__(self, key_name: str = "Key.alt_r") -> None:
        self._key_name = key_name
        self._listener: Optional[Any] = None
        self._held = False
        self._lock = threading.Lock()

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        target = parse_key(self._key_name)

        def _on_press(key: Any) -> None:
            if key != target:
                return
            with self._lock:
                if self._held:
                    return
                self._held = True
            on_press()

        def _on_release(key: Any) -> None:
            if key != target:
                return
            with self._lock:
                if not self._held:
                    return
                self._held = False
            on_release()

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()
        logger.info("Push-to-talk bound to %s", self._key_name)

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
