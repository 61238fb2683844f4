"""Commits recognized text into whichever field has keyboard focus."""

from __future__ import annotations

import logging
import sys
import time

from errors import NO_ACTIVE_TARGET
from models import CommitResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)

COMMIT_PASTE = "paste"
COMMIT_TYPE = "type"


def _paste_modifier():  # noqa: ANN202
    return Key.cmd if sys.platform == "darwin" else Key.ctrl


class FocusedFieldCommitter:
    """Pastes through the clipboard (restoring it afterwards) or types keys."""

    def __init__(self, method: str = COMMIT_PASTE, restore_delay_s: float = 0.1) -> None:
        if method not in (COMMIT_PASTE, COMMIT_TYPE):
            raise ValueError(f"unknown commit method: {method}")
        self._method = method
        self._restore_delay_s = restore_delay_s

    def commit_text(self, text: str) -> CommitResult:
        if not text.strip():
            return CommitResult(success=False, reason="empty text", clipboard_restored=True)
        if Controller is None or Key is None:
            return CommitResult(
                success=False,
                reason="keyboard dependency missing",
                clipboard_restored=False,
            )
        if self._method == COMMIT_TYPE:
            return self._type(text)
        if pyperclip is None:
            return CommitResult(
                success=False,
                reason="clipboard dependency missing",
                clipboard_restored=False,
            )
        return self._paste(text)

    def _type(self, text: str) -> CommitResult:
        try:
            Controller().type(text)
        except Exception as exc:
            logger.warning("Typing into focused field failed: %s", exc)
            return CommitResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=True,
            )
        return CommitResult(success=True, reason="ok", clipboard_restored=True)

    def _paste(self, text: str) -> CommitResult:
        old_clip: str | None = None
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            keyboard = Controller()
            with keyboard.pressed(_paste_modifier()):
                keyboard.press("v")
                keyboard.release("v")
            time.sleep(self._restore_delay_s)
            pyperclip.copy(old_clip)
            return CommitResult(success=True, reason="ok", clipboard_restored=True)
        except Exception as exc:
            logger.warning("Paste into focused field failed: %s", exc)
            restored = False
            if old_clip is not None:
                try:
                    pyperclip.copy(old_clip)
                    restored = True
                except Exception:
                    logger.exception("Could not restore clipboard")
            return CommitResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=restored,
            )


def copy_to_clipboard(text: str) -> bool:
    if pyperclip is None:
        return False
    try:
        pyperclip.copy(text)
    except Exception as exc:
        logger.warning("Clipboard copy failed: %s", exc)
        return False
    return True
