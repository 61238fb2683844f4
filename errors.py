"""Shared error codes, user-facing messages and exceptions."""

from __future__ import annotations

DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
MODEL_LOAD_ERROR = "MODEL_LOAD_ERROR"
ENGINE_BUSY = "ENGINE_BUSY"
INFERENCE_FAILURE = "INFERENCE_FAILURE"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"

ERROR_MESSAGES = {
    DEVICE_UNAVAILABLE: "Microphone is not available.",
    MODEL_LOAD_ERROR: "Model could not be loaded.",
    ENGINE_BUSY: "please wait",
    INFERENCE_FAILURE: "Transcription failed, please retry.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
}


class WhisperImeError(Exception):
    code = ""

    def __init__(self, message: str = "") -> None:
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        super().__init__(self.message)


class DeviceUnavailable(WhisperImeError):
    code = DEVICE_UNAVAILABLE


class ModelLoadError(WhisperImeError):
    code = MODEL_LOAD_ERROR


class EngineBusy(WhisperImeError):
    code = ENGINE_BUSY


class InferenceFailure(WhisperImeError):
    code = INFERENCE_FAILURE
