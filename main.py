"""Application entrypoint."""

from __future__ import annotations

import logging
import sys
import threading

from assets import install_assets, missing_vocabularies
from auto_paste import FocusedFieldCommitter, copy_to_clipboard
from config import JsonConfigStore
from dispatch import NotificationChannel
from engine import WhisperEngine
from errors import WhisperImeError
from hotkey import PushToTalkKey
from interfaces import TextCommitter
from models import Notification, NotificationKind, SessionState, TranscriptionResult
from orchestrator import Orchestrator
from recorder import SoundDeviceRecorder
from registry import ModelRegistry, display_name

try:
    from PySide6.QtCore import QObject, QSize, Qt, Signal
    from PySide6.QtGui import QAction, QActionGroup, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QMenu, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

logger = logging.getLogger(__name__)

APP_NAME = "Whisper IME"


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_COLORS = {
    SessionState.IDLE.value: "#888888",
    SessionState.RECORDING.value: "#FF4444",
    SessionState.PROCESSING.value: "#FF8800",
}


def describe_result(result: TranscriptionResult) -> str:
    task = "transcribing" if result.task.value == "transcribe" else "translating"
    return (
        f"processing done: {result.elapsed_ms / 1000.0:.1f} s\n"
        f"language: {result.language} {task}"
    )


class QtDispatcher(QObject):
    """Marshals notification delivery onto the Qt GUI thread."""

    posted = Signal(object)

    def __init__(self) -> None:
        super().__init__()
        self.posted.connect(self._run, Qt.QueuedConnection)

    def post(self, fn) -> None:  # noqa: ANN001
        self.posted.emit(fn)

    def _run(self, fn) -> None:  # noqa: ANN001
        fn()


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)
        self.config_store = JsonConfigStore()
        logging.basicConfig(
            level=str(self.config_store.get("log_level")).upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        data_dir = self.config_store.get_data_dir()
        install_assets(data_dir)
        missing = missing_vocabularies(data_dir)
        if missing:
            logger.warning(
                "Missing %s in %s; run whisper-ime-fetch to download them",
                ", ".join(missing),
                data_dir,
            )
        self.registry = ModelRegistry(data_dir, self.config_store)

        self.channel = NotificationChannel(QtDispatcher())
        self.channel.subscribe(self._on_notification)
        self.controller = Orchestrator(
            capture=SoundDeviceRecorder(),
            engine=WhisperEngine(
                device=str(self.config_store.get("device")),
                compute_type=str(self.config_store.get("compute_type")),
            ),
            registry=self.registry,
            channel=self.channel,
            min_duration_s=0.1,
        )
        self.controller.set_append_mode(self.config_store.get_flag("append"))
        self.controller.set_translate_mode(self.config_store.get_flag("translate"))

        self.committer: TextCommitter = FocusedFieldCommitter(
            method=str(self.config_store.get("commit_method"))
        )
        self.hotkey = PushToTalkKey(key_name=self.config_store.get_hotkey())
        self._transcript = ""

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_COLORS[SessionState.IDLE.value]))
        self.tray.setToolTip(f"{APP_NAME} — Ready")
        self._setup_menu()
        self.tray.show()

        self.controller.select_model(self.registry.selected_model())

    def _setup_menu(self) -> None:
        menu = QMenu()

        model_menu = menu.addMenu("Model")
        self._model_group = QActionGroup(model_menu)
        self._model_group.setExclusive(True)
        selected = self.registry.selected_model()
        for name in self.registry.list_models():
            action = QAction(display_name(name), model_menu, checkable=True)
            action.setData(name)
            action.setChecked(name == selected)
            self._model_group.addAction(action)
            model_menu.addAction(action)
        self._model_group.triggered.connect(self._on_model_triggered)

        append_action = QAction("Append", menu, checkable=True)
        append_action.setChecked(self.config_store.get_flag("append"))
        append_action.toggled.connect(self._set_append)
        menu.addAction(append_action)

        translate_action = QAction("Translate", menu, checkable=True)
        translate_action.setChecked(self.config_store.get_flag("translate"))
        translate_action.toggled.connect(self._set_translate)
        menu.addAction(translate_action)

        menu.addSeparator()
        copy_action = QAction("Copy transcript", menu)
        copy_action.triggered.connect(lambda: copy_to_clipboard(self._transcript.strip()))
        menu.addAction(copy_action)

        stop_action = QAction("Stop processing", menu)
        stop_action.triggered.connect(self.controller.stop_processing)
        menu.addAction(stop_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _on_model_triggered(self, action: QAction) -> None:
        name = str(action.data())
        try:
            self.controller.select_model(name)
        except WhisperImeError:
            # rejected while busy; put the check mark back
            for other in self._model_group.actions():
                other.setChecked(other.data() == self.controller.selected_model)

    def _set_append(self, enabled: bool) -> None:
        self.config_store.set("append", enabled)
        self.controller.set_append_mode(enabled)

    def _set_translate(self, enabled: bool) -> None:
        self.config_store.set("translate", enabled)
        self.controller.set_translate_mode(enabled)

    # ------------------------------------------------------------------
    # Notifications (already on the Qt GUI thread)
    # ------------------------------------------------------------------

    def _on_notification(self, notification: Notification) -> None:
        kind = notification.kind
        if kind == NotificationKind.STATE.value:
            color = ICON_COLORS.get(notification.state, ICON_COLORS[SessionState.IDLE.value])
            self.tray.setIcon(_create_icon(color))
        elif kind == NotificationKind.STATUS.value:
            self.tray.setToolTip(f"{APP_NAME} — {notification.message}")
        elif kind == NotificationKind.FAILURE.value:
            self.tray.showMessage(
                APP_NAME, notification.message, QSystemTrayIcon.MessageIcon.Warning, 2000
            )
        elif kind == NotificationKind.RESULT.value and notification.result is not None:
            self._on_result(notification.result)

    def _on_result(self, result: TranscriptionResult) -> None:
        self.tray.setToolTip(f"{APP_NAME} — {describe_result(result)}")
        if not result.append:
            self._transcript = ""
        self._transcript += result.text
        if result.text.strip():
            threading.Thread(target=self._commit, args=(result.text,), daemon=True).start()

    def _commit(self, text: str) -> None:
        outcome = self.committer.commit_text(text)
        if not outcome.success:
            logger.warning("Commit failed: %s", outcome.reason)

    # ------------------------------------------------------------------
    # Hotkey handlers (pynput listener thread)
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        try:
            self.controller.press_record()
        except WhisperImeError as exc:
            logger.debug("Press rejected: %s", exc.code)

    def _on_hotkey_release(self) -> None:
        self.controller.release_record()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
            )
        except Exception as exc:
            logger.error("Hotkey disabled: %s", exc)
            self.tray.showMessage(APP_NAME, f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.shutdown()
        self.app.quit()


def main() -> int:
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
