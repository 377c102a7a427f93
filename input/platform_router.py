"""Platform routing helpers for raw source URLs."""

from __future__ import annotations

from enum import Enum
from urllib.parse import urlparse


class Platform(Enum):
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"
    FACEBOOK = "facebook"
    LINKEDIN = "linkedin"
    UNKNOWN = "unknown"


# Checked in order; platform-specific hosts come before the generic fallback.
_PLATFORM_MARKERS: tuple[tuple[Platform, tuple[str, ...]], ...] = (
    (Platform.INSTAGRAM, ("instagram.com", "instagr.am")),
    (Platform.TIKTOK, ("tiktok.com",)),
    (Platform.FACEBOOK, ("facebook.com", "fb.watch", "fb.com")),
    (Platform.LINKEDIN, ("linkedin.com", "lnkd.in")),
    (Platform.YOUTUBE, ("youtube.com", "youtu.be", "youtube-nocookie.com")),
)


def detect_platform(url: str) -> Platform:
    """Classify a source URL without network calls.

    Matching is a case-insensitive substring check against known host names.
    Anything unmatched, including empty input, is ``Platform.UNKNOWN``.
    """
    lowered = (url or "").strip().lower()
    if not lowered:
        return Platform.UNKNOWN
    for platform, markers in _PLATFORM_MARKERS:
        if any(marker in lowered for marker in markers):
            return platform
    return Platform.UNKNOWN


def is_http_url(url: str) -> bool:
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)
