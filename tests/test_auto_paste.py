from __future__ import annotations

from unittest.mock import MagicMock

import pytest

import auto_paste
from auto_paste import FocusedFieldCommitter, copy_to_clipboard


class FakeClipboard:
    def __init__(self, content: str = "previous", fail_copy: bool = False) -> None:
        self.content = content
        self.history: list[str] = []
        self.fail_copy = fail_copy

    def paste(self) -> str:
        return self.content

    def copy(self, text: str) -> None:
        if self.fail_copy:
            raise RuntimeError("no clipboard")
        self.history.append(text)
        self.content = text


def test_commit_returns_failure_when_dependencies_missing(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(auto_paste, "pyperclip", None)
    monkeypatch.setattr(auto_paste, "Controller", None)
    monkeypatch.setattr(auto_paste, "Key", None)

    result = FocusedFieldCommitter().commit_text("hello")

    assert result.success is False
    assert result.clipboard_restored is False


def test_commit_returns_failure_on_empty_text() -> None:
    result = FocusedFieldCommitter().commit_text("   ")

    assert result.success is False
    assert result.clipboard_restored is True


def test_unknown_method_is_rejected() -> None:
    with pytest.raises(ValueError):
        FocusedFieldCommitter(method="dictate")


def test_paste_restores_previous_clipboard(monkeypatch) -> None:  # noqa: ANN001
    clipboard = FakeClipboard("previous")
    controller = MagicMock()
    monkeypatch.setattr(auto_paste, "pyperclip", clipboard)
    monkeypatch.setattr(auto_paste, "Controller", MagicMock(return_value=controller))
    monkeypatch.setattr(auto_paste, "Key", MagicMock())

    result = FocusedFieldCommitter(restore_delay_s=0).commit_text("hello world")

    assert result.success is True
    assert result.clipboard_restored is True
    assert clipboard.history == ["hello world", "previous"]
    controller.press.assert_called_once_with("v")
    controller.release.assert_called_once_with("v")


def test_paste_without_clipboard_library_fails(monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(auto_paste, "pyperclip", None)
    monkeypatch.setattr(auto_paste, "Controller", MagicMock())
    monkeypatch.setattr(auto_paste, "Key", MagicMock())

    result = FocusedFieldCommitter().commit_text("hello")

    assert result.success is False
    assert result.reason == "clipboard dependency missing"


def test_type_method_sends_keystrokes(monkeypatch) -> None:  # noqa: ANN001
    controller = MagicMock()
    monkeypatch.setattr(auto_paste, "Controller", MagicMock(return_value=controller))
    monkeypatch.setattr(auto_paste, "Key", MagicMock())

    result = FocusedFieldCommitter(method="type").commit_text("hello")

    assert result.success is True
    controller.type.assert_called_once_with("hello")


def test_type_failure_reports_no_target(monkeypatch) -> None:  # noqa: ANN001
    controller = MagicMock()
    controller.type.side_effect = RuntimeError("no focused window")
    monkeypatch.setattr(auto_paste, "Controller", MagicMock(return_value=controller))
    monkeypatch.setattr(auto_paste, "Key", MagicMock())

    result = FocusedFieldCommitter(method="type").commit_text("hello")

    assert result.success is False
    assert "no focused window" in result.reason


def test_copy_to_clipboard(monkeypatch) -> None:  # noqa: ANN001
    clipboard = FakeClipboard()
    monkeypatch.setattr(auto_paste, "pyperclip", clipboard)
    assert copy_to_clipboard("transcript") is True
    assert clipboard.content == "transcript"

    monkeypatch.setattr(auto_paste, "pyperclip", FakeClipboard(fail_copy=True))
    assert copy_to_clipboard("transcript") is False

    monkeypatch.setattr(auto_paste, "pyperclip", None)
    assert copy_to_clipboard("transcript") is False
