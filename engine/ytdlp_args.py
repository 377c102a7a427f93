"""yt-dlp argument construction: platform profiles, quality cascades and argv rendering."""

from __future__ import annotations

import random
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Sequence, assert_never

from config.settings import YTDLP_BIN
from engine.models import Operation
from input.platform_router import Platform

USER_AGENT_POOL: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
)

_COMMON_HEADERS: tuple[tuple[str, str], ...] = (
    ("Accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
    ("Accept-Language", "en-us,en;q=0.5"),
    ("Sec-Fetch-Mode", "navigate"),
)

_VIDEO_CASCADE_BEST = ("best[height<=1080]", "best[height<=720]", "best[height<=480]", "worst")
_VIDEO_FALLBACK_TAIL = ("best[height<=720]", "worst")
# ``None`` means "no -f selector": let yt-dlp pick any audio and convert it.
AUDIO_CASCADE: tuple[str | None, ...] = (
    "bestaudio[ext=m4a]/bestaudio[ext=mp3]/bestaudio",
    "worstaudio",
    None,
)
_HEIGHT_RE = re.compile(r"^(\d{3,4})p?$", re.IGNORECASE)


@dataclass(frozen=True)
class PlatformProfile:
    """Per-platform request shaping passed to the extraction tool."""

    headers: tuple[tuple[str, str], ...] = ()
    sleep_requests: float | None = None
    limit_rate: str | None = None
    retries: int = 3
    extractor_args: dict[str, dict[str, Any]] = field(default_factory=dict)


def platform_profile(platform: Platform) -> PlatformProfile:
    match platform:
        case Platform.YOUTUBE:
            return PlatformProfile(
                sleep_requests=1.0,
                retries=3,
                extractor_args={"youtube": {"player_client": ["web", "android"]}},
            )
        case Platform.INSTAGRAM:
            return PlatformProfile(
                headers=(("Referer", "https://www.instagram.com/"), ("X-IG-App-ID", "936619743392459")),
                sleep_requests=2.0,
                retries=2,
            )
        case Platform.TIKTOK:
            return PlatformProfile(
                headers=(("Referer", "https://www.tiktok.com/"),),
                sleep_requests=1.5,
                retries=3,
            )
        case Platform.FACEBOOK:
            return PlatformProfile(
                headers=(("Referer", "https://www.facebook.com/"),),
                sleep_requests=2.0,
                limit_rate="5M",
                retries=2,
            )
        case Platform.LINKEDIN:
            return PlatformProfile(
                headers=(("Referer", "https://www.linkedin.com/"),),
                sleep_requests=2.0,
                retries=2,
            )
        case Platform.UNKNOWN:
            return PlatformProfile()
        case _:
            assert_never(platform)


def pick_user_agent(rng: random.Random | None = None) -> str:
    return (rng or random).choice(USER_AGENT_POOL)


def quality_cascade(quality: str | None) -> tuple[str, ...]:
    """Ordered ``-f`` selectors to try for a video request.

    ``best`` walks down resolution caps to ``worst``; ``720p``/``720`` becomes a
    height cap; any other selector is tried verbatim first. Duplicates are dropped.
    """
    requested = (quality or "best").strip()
    if not requested or requested.lower() == "best":
        return _VIDEO_CASCADE_BEST
    if requested.lower() == "worst":
        return ("worst",)
    height_match = _HEIGHT_RE.match(requested)
    head = f"best[height<={height_match.group(1)}]" if height_match else requested
    ordered: list[str] = []
    for selector in (head, *_VIDEO_FALLBACK_TAIL):
        if selector not in ordered:
            ordered.append(selector)
    return tuple(ordered)


def build_ytdlp_opts(
    operation: Operation,
    *,
    output_template: str,
    platform: Platform,
    format_selector: str | None = None,
    language: str = "en",
    user_agent: str | None = None,
) -> dict[str, Any]:
    profile = platform_profile(platform)
    opts: dict[str, Any] = {
        "outtmpl": output_template,
        "noplaylist": True,
        "no_warnings": True,
        "nocheckcertificate": True,
        "prefer_free_formats": True,
        "retries": profile.retries,
        "user_agent": user_agent or pick_user_agent(),
        "http_headers": dict(_COMMON_HEADERS + profile.headers),
    }
    if profile.sleep_requests:
        opts["sleep_requests"] = profile.sleep_requests
    if profile.limit_rate:
        opts["ratelimit"] = profile.limit_rate
    if profile.extractor_args:
        opts["extractor_args"] = profile.extractor_args

    if operation is Operation.METADATA:
        opts["skip_download"] = True
        opts["dump_json"] = True
    elif operation is Operation.THUMBNAIL:
        opts["skip_download"] = True
        opts["writethumbnail"] = True
    elif operation is Operation.TRANSCRIPT:
        opts["skip_download"] = True
        opts["writesubtitles"] = True
        opts["writeautomaticsub"] = True
        opts["subtitleslangs"] = [language or "en"]
        opts["subtitlesformat"] = "vtt/srt/best"
        opts["convertsubtitles"] = "srt"
    elif operation is Operation.AUDIO:
        if format_selector:
            opts["format"] = format_selector
        opts["postprocessors"] = [
            {
                "key": "FFmpegExtractAudio",
                "preferredcodec": "mp3",
                "preferredquality": None if format_selector else "5",
            }
        ]
        opts["writeinfojson"] = True
    elif operation is Operation.VIDEO:
        opts["format"] = format_selector or _VIDEO_CASCADE_BEST[0]
        opts["writeinfojson"] = True
    else:
        assert_never(operation)
    return opts


def render_ytdlp_cli_argv(opts: dict[str, Any], url: str, *, executable: str | None = None) -> list[str]:
    """Return a yt-dlp argv list suitable for ``create_subprocess_exec`` (no shell)."""
    argv = [executable or YTDLP_BIN]

    if opts.get("format"):
        argv.extend(["-f", str(opts["format"])])
    if opts.get("outtmpl"):
        argv.extend(["-o", str(opts["outtmpl"])])
    if opts.get("noplaylist") is True:
        argv.append("--no-playlist")
    if opts.get("no_warnings"):
        argv.append("--no-warnings")
    if opts.get("nocheckcertificate"):
        argv.append("--no-check-certificates")
    if opts.get("prefer_free_formats"):
        argv.append("--prefer-free-formats")
    if opts.get("retries") is not None:
        argv.extend(["--retries", str(opts["retries"])])
    if opts.get("sleep_requests"):
        argv.extend(["--sleep-requests", str(opts["sleep_requests"])])
    if opts.get("ratelimit"):
        argv.extend(["--limit-rate", str(opts["ratelimit"])])

    if opts.get("user_agent"):
        argv.extend(["--user-agent", str(opts["user_agent"])])
    for name, value in (opts.get("http_headers") or {}).items():
        argv.extend(["--add-header", f"{name}:{value}"])

    # Extractor args: {"youtube":{"key":"value"}} -> --extractor-args youtube:key=value
    extractor_args = opts.get("extractor_args")
    if isinstance(extractor_args, dict):
        for extractor_name, extractor_cfg in extractor_args.items():
            if not isinstance(extractor_cfg, dict):
                continue
            pieces = []
            for arg_key, arg_value in extractor_cfg.items():
                if isinstance(arg_value, (list, tuple)):
                    value_text = ",".join(str(v).strip() for v in arg_value if str(v).strip())
                else:
                    value_text = str(arg_value or "").strip()
                if value_text:
                    pieces.append(f"{arg_key}={value_text}")
            if pieces:
                argv.extend(["--extractor-args", f"{extractor_name}:{';'.join(pieces)}"])

    if opts.get("skip_download"):
        argv.append("--skip-download")
    if opts.get("dump_json"):
        argv.append("--dump-json")
    if opts.get("writethumbnail"):
        argv.append("--write-thumbnail")
    if opts.get("writesubtitles"):
        argv.append("--write-subs")
    if opts.get("writeautomaticsub"):
        argv.append("--write-auto-subs")
    if opts.get("subtitleslangs"):
        argv.extend(["--sub-langs", ",".join(opts["subtitleslangs"])])
    if opts.get("subtitlesformat"):
        argv.extend(["--sub-format", str(opts["subtitlesformat"])])
    if opts.get("convertsubtitles"):
        argv.extend(["--convert-subs", str(opts["convertsubtitles"])])

    for pp in opts.get("postprocessors") or []:
        if pp.get("key") == "FFmpegExtractAudio":
            argv.append("-x")
            if pp.get("preferredcodec"):
                argv.extend(["--audio-format", str(pp["preferredcodec"])])
            if pp.get("preferredquality"):
                argv.extend(["--audio-quality", str(pp["preferredquality"])])

    # Sidecar metadata lets downloads report metadata without a second tool run.
    if opts.get("writeinfojson"):
        argv.append("--write-info-json")

    argv.append(str(url))
    return argv


def argv_to_redacted_cli(argv: Sequence[str]) -> str:
    """Render argv as one shell-escaped string with cookie paths and header values redacted."""
    redacted = []
    i = 0
    while i < len(argv):
        tok = argv[i]
        if tok == "--cookies" and i + 1 < len(argv):
            redacted.extend([tok, "<redacted>"])
            i += 2
            continue
        if tok == "--add-header" and i + 1 < len(argv):
            name = str(argv[i + 1]).split(":", 1)[0]
            redacted.extend([tok, f"{name}:<redacted>"])
            i += 2
            continue
        redacted.append(str(tok))
        i += 1
    return shlex.join(redacted)
