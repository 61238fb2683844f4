"""Core data models for the app."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

SAMPLE_RATE = 16000
BYTES_PER_SAMPLE = 2


class SessionState(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"


class Action(str, Enum):
    TRANSCRIBE = "transcribe"
    TRANSLATE = "translate"


class CaptureKind(str, Enum):
    STARTED = "started"
    DONE = "done"


class EngineKind(str, Enum):
    PROCESSING = "processing"
    RESULT = "result"
    ERROR = "error"


class NotificationKind(str, Enum):
    STATUS = "status"
    RESULT = "result"
    FAILURE = "failure"
    STATE = "state"


@dataclass(frozen=True)
class AudioBuffer:
    """Mono 16-bit PCM captured for one session."""

    pcm16: bytes
    sample_rate: int = SAMPLE_RATE
    channels: int = 1

    @property
    def frame_count(self) -> int:
        return len(self.pcm16) // (BYTES_PER_SAMPLE * self.channels)

    @property
    def duration_s(self) -> float:
        return self.frame_count / float(self.sample_rate)


@dataclass
class Session:
    session_id: int
    append_mode: bool = False
    action: Optional[Action] = None
    audio: Optional[AudioBuffer] = None


@dataclass(frozen=True)
class ModelHandle:
    name: str
    model_path: Path
    vocab_path: Path
    is_multilingual: bool


@dataclass
class TranscriptionResult:
    text: str
    language: str
    task: Action
    elapsed_ms: int
    append: bool = False
    session_id: int = 0


@dataclass
class CaptureEvent:
    kind: str
    session: Optional[Session] = None
    message: str = ""


@dataclass
class EngineEvent:
    kind: str
    result: Optional[TranscriptionResult] = None
    code: str = ""
    message: str = ""


@dataclass
class Notification:
    kind: str
    message: str = ""
    code: str = ""
    result: Optional[TranscriptionResult] = None
    state: str = ""


@dataclass
class CommitResult:
    success: bool
    reason: str
    clipboard_restored: bool
