"""Canonical metadata records shared by every extraction source."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

PLACEHOLDER_TITLE = "Unknown Title"


@dataclass(frozen=True)
class MediaFormat:
    format_id: str
    ext: str
    resolution: str | None = None
    filesize: int | None = None
    url: str | None = None
    quality: float | None = None


@dataclass(frozen=True)
class MediaMetadata:
    """Normalized description of one remote media item.

    ``None`` means the source did not report a value. Absent numbers are
    never coerced to ``0`` and absent strings never to ``""``.
    """

    id: str
    title: str
    source_url: str
    platform: str
    description: str | None = None
    duration: float | None = None
    uploader: str | None = None
    upload_date: str | None = None
    view_count: int | None = None
    like_count: int | None = None
    thumbnail_url: str | None = None
    extractor: str | None = None
    formats: tuple[MediaFormat, ...] = field(default_factory=tuple)

    @property
    def is_placeholder(self) -> bool:
        return self.title == PLACEHOLDER_TITLE and not self.id

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["formats"] = [asdict(fmt) for fmt in self.formats]
        return payload


__all__ = ["MediaFormat", "MediaMetadata", "PLACEHOLDER_TITLE"]
