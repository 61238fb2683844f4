"""Protocol interfaces used by the Orchestrator."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from models import Action, AudioBuffer, CaptureEvent, CommitResult, EngineEvent, ModelHandle, Session


class AudioCapture(Protocol):
    def set_listener(self, listener: Optional[Callable[[CaptureEvent], None]]) -> None: ...

    def start(self, session: Session) -> None: ...

    def stop(self) -> None: ...

    def cancel(self) -> None: ...

    def is_in_progress(self) -> bool: ...


class InferenceEngine(Protocol):
    @property
    def is_loaded(self) -> bool: ...

    def load_model(self, handle: ModelHandle) -> None: ...

    def unload_model(self) -> None: ...

    def submit(
        self,
        audio: AudioBuffer,
        action: Action,
        on_event: Callable[[EngineEvent], None],
    ) -> None: ...

    def stop(self) -> None: ...

    def is_in_progress(self) -> bool: ...


class Dispatcher(Protocol):
    def post(self, fn: Callable[[], None]) -> None: ...


class TextCommitter(Protocol):
    def commit_text(self, text: str) -> CommitResult: ...


class ConfigStore(Protocol):
    def get_model_name(self) -> str: ...

    def set_model_name(self, name: str) -> None: ...

    def get_hotkey(self) -> str: ...

    def set_hotkey(self, hotkey: str) -> None: ...
