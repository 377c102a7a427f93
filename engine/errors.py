"""Failure taxonomy shared by every acquisition stage."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    INVALID_INPUT = "invalid_input"
    TOOL_UNAVAILABLE = "tool_unavailable"
    TIMEOUT = "timeout"
    BOT_DETECTION = "bot_detection"
    AUTH_REQUIRED = "auth_required"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    UPSTREAM_OTHER = "upstream_other"
    STORAGE_UPLOAD_FAILED = "storage_upload_failed"
    OUTPUT_NOT_FOUND = "output_not_found"
    NORMALIZATION_FAILED = "normalization_failed"


class AcquisitionError(RuntimeError):
    """Raised inside the pipeline; converted to a failure result at operation boundaries."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"AcquisitionError(kind={self.kind.value!r}, message={self.message!r})"
