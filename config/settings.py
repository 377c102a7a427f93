"""Application settings constants."""

from __future__ import annotations

import os


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _env_bool(name: str, default: bool) -> bool:
    text = os.environ.get(name, "").strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    return default


APP_VERSION = os.environ.get("MEDIAGRAB_VERSION", "0.1.0")

# Executable used for the external extraction tool.
YTDLP_BIN = os.environ.get("MEDIAGRAB_YTDLP_BIN", "yt-dlp")

# Per-operation process timeouts (seconds).
METADATA_TIMEOUT_SECONDS = _env_float("MEDIAGRAB_METADATA_TIMEOUT_SECONDS", 60.0)
AUX_TIMEOUT_SECONDS = _env_float("MEDIAGRAB_AUX_TIMEOUT_SECONDS", 120.0)
MEDIA_TIMEOUT_SECONDS = _env_float("MEDIAGRAB_MEDIA_TIMEOUT_SECONDS", 900.0)

# Timeout for each direct API HTTPS call.
HTTP_TIMEOUT_SECONDS = _env_float("MEDIAGRAB_HTTP_TIMEOUT_SECONDS", 30.0)

# Whether the quality cascade also moves on after a rate-limit failure.
CASCADE_ADVANCE_ON_RATE_LIMIT = _env_bool("MEDIAGRAB_CASCADE_ADVANCE_ON_RATE_LIMIT", False)

# Longest stderr excerpt carried into a failure message.
STDERR_EXCERPT_CHARS = 500
