"""Normalization helpers mapping raw tool/API payloads to ``MediaMetadata``."""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from datetime import date, datetime, timezone
from typing import Any, Iterable

from engine.errors import AcquisitionError, ErrorKind
from metadata.types import PLACEHOLDER_TITLE, MediaFormat, MediaMetadata

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_COMPACT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")

_VIEW_KEYS = ("view_count", "viewCount", "play_count", "video_view_count", "video_play_count")
_LIKE_KEYS = ("like_count", "likeCount", "digg_count")
_UPLOADER_KEYS = ("uploader", "channel", "creator", "uploader_id", "author")
_DATE_KEYS = ("upload_date", "uploadDate", "release_date", "timestamp", "taken_at_timestamp")
_THUMBNAIL_KEYS = ("thumbnail", "thumbnailUrl", "thumbnail_url", "display_url")
_DURATION_KEYS = ("duration", "video_duration", "durationSeconds")
_DESCRIPTION_KEYS = ("description", "caption")


def normalize_ytdlp_info(info: dict[str, Any], *, source_url: str, platform: str) -> MediaMetadata:
    """Map a yt-dlp info dict (``--dump-json`` or ``.info.json``) to ``MediaMetadata``."""
    if not isinstance(info, dict):
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "metadata payload is not a JSON object")

    media_id = _normalize_optional_text(_first_present(info, ("id", "display_id")))
    title = _normalize_optional_text(_first_present(info, ("title", "fulltitle")))
    if not media_id and not title:
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "metadata payload has neither id nor title")

    return MediaMetadata(
        id=media_id or "",
        title=title or PLACEHOLDER_TITLE,
        source_url=_normalize_optional_text(info.get("webpage_url")) or source_url,
        platform=platform,
        description=_normalize_optional_text(_first_present(info, _DESCRIPTION_KEYS), collapse=False),
        duration=_optional_number(_first_present(info, _DURATION_KEYS)),
        uploader=_normalize_optional_text(_first_present(info, _UPLOADER_KEYS)),
        upload_date=normalize_upload_date(_first_present(info, _DATE_KEYS)),
        view_count=_optional_count(_first_present(info, _VIEW_KEYS)),
        like_count=_optional_count(_first_present(info, _LIKE_KEYS)),
        thumbnail_url=_thumbnail_url(info),
        extractor=_normalize_optional_text(_first_present(info, ("extractor_key", "extractor"))),
        formats=tuple(_normalize_formats(info.get("formats"))),
    )


def normalize_instagram_media(node: dict[str, Any], *, source_url: str) -> MediaMetadata:
    """Map an Instagram GraphQL ``xdt_shortcode_media`` node to ``MediaMetadata``."""
    if not isinstance(node, dict):
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "instagram media node is not a JSON object")

    shortcode = _normalize_optional_text(_first_present(node, ("shortcode", "code", "id")))
    if not shortcode:
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "instagram media node has no shortcode")

    caption = _instagram_caption(node)
    owner = node.get("owner") if isinstance(node.get("owner"), dict) else {}
    likes = node.get("edge_media_preview_like") if isinstance(node.get("edge_media_preview_like"), dict) else {}
    title = _normalize_optional_text(node.get("title"))
    if not title and caption:
        title = _normalize_optional_text(caption.splitlines()[0])
    video_url = _normalize_optional_text(node.get("video_url"))

    formats: list[MediaFormat] = []
    if video_url:
        dimensions = node.get("dimensions") if isinstance(node.get("dimensions"), dict) else {}
        width = _optional_count(dimensions.get("width"))
        height = _optional_count(dimensions.get("height"))
        formats.append(
            MediaFormat(
                format_id="direct",
                ext="mp4",
                resolution=f"{width}x{height}" if width and height else None,
                url=video_url,
            )
        )

    return MediaMetadata(
        id=shortcode,
        title=title or PLACEHOLDER_TITLE,
        source_url=source_url,
        platform="instagram",
        description=_normalize_optional_text(caption, collapse=False),
        duration=_optional_number(_first_present(node, _DURATION_KEYS)),
        uploader=_normalize_optional_text(_first_present(owner, ("username", "full_name"))),
        upload_date=normalize_upload_date(_first_present(node, _DATE_KEYS)),
        view_count=_optional_count(_first_present(node, _VIEW_KEYS)),
        like_count=_optional_count(likes.get("count") if likes else _first_present(node, _LIKE_KEYS)),
        thumbnail_url=_thumbnail_url(node),
        extractor="Instagram",
        formats=tuple(formats),
    )


def parse_ytdlp_json(text: str, *, source_url: str, platform: str) -> MediaMetadata:
    """Parse ``--dump-json`` output; any failure is ``NormalizationFailed``.

    yt-dlp prints one JSON object per line; the first object line wins.
    """
    payload = None
    for line in (text or "").splitlines():
        stripped = line.strip()
        if not stripped.startswith("{"):
            continue
        try:
            payload = json.loads(stripped)
        except json.JSONDecodeError as exc:
            raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, f"invalid metadata JSON: {exc}") from exc
        break
    if payload is None:
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "extraction tool returned no metadata JSON")
    return normalize_ytdlp_info(payload, source_url=source_url, platform=platform)


def load_sidecar_metadata(path, *, source_url: str, platform: str) -> MediaMetadata:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, f"unreadable metadata sidecar: {exc}") from exc
    return normalize_ytdlp_info(payload, source_url=source_url, platform=platform)


def placeholder_metadata(source_url: str, platform: str) -> MediaMetadata:
    return MediaMetadata(id="", title=PLACEHOLDER_TITLE, source_url=source_url, platform=platform)


def metadata_or_placeholder(sidecar_path, *, source_url: str, platform: str) -> MediaMetadata:
    """Best-effort metadata for download operations; never aborts the download."""
    if sidecar_path is None:
        return placeholder_metadata(source_url, platform)
    try:
        return load_sidecar_metadata(sidecar_path, source_url=source_url, platform=platform)
    except AcquisitionError as exc:
        logger.warning("metadata degraded to placeholder url=%s reason=%s", source_url, exc.message)
        return placeholder_metadata(source_url, platform)


def normalize_upload_date(value: Any) -> str | None:
    """Return ``YYYY-MM-DD`` for compact, ISO or epoch inputs; preserve other strings."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return None

    text = _normalize_optional_text(str(value))
    if not text:
        return None
    for pattern in (_COMPACT_DATE_RE, _ISO_DATE_RE):
        match = pattern.match(text)
        if match:
            year_s, month_s, day_s = match.groups()
            try:
                return date(int(year_s), int(month_s), int(day_s)).isoformat()
            except ValueError:
                break
    if text.isdigit():
        return normalize_upload_date(int(text))
    logger.debug("unparseable upload date; preserving original value=%s", text)
    return text


def _first_present(payload: dict[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _normalize_optional_text(value: Any, *, collapse: bool = True) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = unicodedata.normalize("NFC", str(value)).strip()
    if collapse:
        text = _WHITESPACE_RE.sub(" ", text)
    return text or None


def _optional_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    if parsed != parsed or parsed < 0:
        return None
    return parsed


def _optional_count(value: Any) -> int | None:
    parsed = _optional_number(value)
    return int(parsed) if parsed is not None else None


def _thumbnail_url(payload: dict[str, Any]) -> str | None:
    direct = _normalize_optional_text(_first_present(payload, _THUMBNAIL_KEYS))
    if direct:
        return direct
    thumbnails = payload.get("thumbnails")
    if isinstance(thumbnails, list):
        for entry in reversed(thumbnails):
            if isinstance(entry, dict) and entry.get("url"):
                return _normalize_optional_text(entry["url"])
    return None


def _instagram_caption(node: dict[str, Any]) -> str | None:
    edges = (node.get("edge_media_to_caption") or {}).get("edges") or []
    for edge in edges:
        text = ((edge or {}).get("node") or {}).get("text")
        if text:
            return str(text)
    caption = node.get("caption")
    if isinstance(caption, dict):
        return caption.get("text")
    return caption if isinstance(caption, str) else None


def _normalize_formats(raw_formats: Any) -> list[MediaFormat]:
    if not isinstance(raw_formats, list):
        return []
    formats: list[MediaFormat] = []
    for raw in raw_formats:
        if not isinstance(raw, dict):
            continue
        format_id = _normalize_optional_text(raw.get("format_id"))
        if not format_id:
            continue
        formats.append(
            MediaFormat(
                format_id=format_id,
                ext=_normalize_optional_text(raw.get("ext")) or "unknown",
                resolution=_normalize_optional_text(raw.get("resolution")),
                filesize=_optional_count(raw.get("filesize") or raw.get("filesize_approx")),
                url=_normalize_optional_text(raw.get("url")),
                quality=_optional_number(raw.get("quality")),
            )
        )
    return formats
