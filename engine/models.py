"""Request, outcome and result records for the acquisition pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from engine.errors import ErrorKind
from input.platform_router import Platform
from metadata.types import MediaMetadata


class Operation(Enum):
    VIDEO = "video"
    AUDIO = "audio"
    TRANSCRIPT = "transcript"
    THUMBNAIL = "thumbnail"
    METADATA = "metadata"


@dataclass(frozen=True)
class AcquisitionRequest:
    url: str
    operation: Operation
    platform: Platform
    session_token: str
    quality: str = "best"
    language: str = "en"


@dataclass(frozen=True)
class AttemptRecord:
    strategy: str
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class ExtractionOutcome:
    success: bool
    strategy: str = ""
    artifact_path: Path | None = None
    sidecar_path: Path | None = None
    raw_output: str = ""
    metadata: MediaMetadata | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None
    attempts: tuple[AttemptRecord, ...] = ()

    @classmethod
    def failed(cls, strategy: str, kind: ErrorKind, message: str, *, raw_output: str = "") -> "ExtractionOutcome":
        return cls(
            success=False,
            strategy=strategy,
            error_kind=kind,
            error=message,
            raw_output=raw_output,
        )

    def with_attempts(self, attempts: list[AttemptRecord]) -> "ExtractionOutcome":
        return replace(self, attempts=tuple(attempts))


@dataclass(frozen=True)
class PublishedArtifact:
    public_url: str
    filename: str
    byte_size: int
    content_type: str


def _result_dict(result: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name in result.__dataclass_fields__:
        value = getattr(result, name)
        if isinstance(value, ErrorKind):
            value = value.value
        elif isinstance(value, MediaMetadata):
            value = value.to_dict()
        payload[name] = value
    return payload


@dataclass
class DownloadResult:
    success: bool
    public_url: str | None = None
    filename: str | None = None
    file_size: int | None = None
    content_type: str | None = None
    metadata: MediaMetadata | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return _result_dict(self)


@dataclass
class TranscriptResult:
    success: bool
    public_url: str | None = None
    filename: str | None = None
    transcript: str | None = None
    language: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return _result_dict(self)


@dataclass
class ThumbnailResult:
    success: bool
    public_url: str | None = None
    filename: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        return _result_dict(self)


@dataclass
class MetadataResult:
    success: bool
    metadata: MediaMetadata | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    attempts: list[AttemptRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = _result_dict(self)
        payload["attempts"] = [
            {"strategy": item.strategy, "kind": item.kind.value, "message": item.message}
            for item in self.attempts
        ]
        return payload
