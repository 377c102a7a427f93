"""Instagram GraphQL shortcut used before falling back to the extraction tool."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any

import requests

from config.settings import HTTP_TIMEOUT_SECONDS
from engine.errors import AcquisitionError, ErrorKind
from engine.json_utils import log_event
from engine.models import AcquisitionRequest, ExtractionOutcome, Operation
from engine.ytdlp_args import pick_user_agent
from metadata.normalize import normalize_instagram_media

logger = logging.getLogger(__name__)

STRATEGY_NAME = "direct_api"

INSTAGRAM_GRAPHQL_URL = "https://www.instagram.com/graphql/query"
INSTAGRAM_APP_ID = "936619743392459"
INSTAGRAM_ASBD_ID = "129477"
INSTAGRAM_LSD = "AVqbxe3J_YA"
INSTAGRAM_DOC_ID = "8845758582119845"

_SHORTCODE_RE = re.compile(r"instagram\.com/(?:p|reel|reels|tv)/([0-9A-Za-z_-]+)", re.IGNORECASE)
_DOWNLOAD_CHUNK_BYTES = 256 * 1024

_STATUS_KINDS = {
    401: ErrorKind.AUTH_REQUIRED,
    403: ErrorKind.AUTH_REQUIRED,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.RATE_LIMITED,
}


def extract_shortcode(url: str) -> str | None:
    match = _SHORTCODE_RE.search(url or "")
    return match.group(1) if match else None


class InstagramDirectStrategy:
    """Resolve Instagram posts through the public GraphQL endpoint.

    Supports the video and metadata operations only. ``http`` is any object
    exposing ``post``/``get`` like ``requests.Session``; calls run in a worker
    thread so the event loop is never blocked.
    """

    name = STRATEGY_NAME

    def __init__(
        self,
        http: Any,
        scratch_dir: Path,
        *,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._http = http
        self._scratch_dir = Path(scratch_dir)
        self._timeout = timeout

    async def execute(self, request: AcquisitionRequest) -> ExtractionOutcome:
        if request.operation not in (Operation.VIDEO, Operation.METADATA):
            return ExtractionOutcome.failed(
                self.name,
                ErrorKind.INVALID_INPUT,
                f"direct API does not support {request.operation.value}",
            )
        shortcode = extract_shortcode(request.url)
        if not shortcode:
            return ExtractionOutcome.failed(
                self.name,
                ErrorKind.INVALID_INPUT,
                f"no instagram shortcode in url: {request.url}",
            )

        try:
            node = await self._fetch_media_node(shortcode)
            metadata = normalize_instagram_media(node, source_url=request.url)
            if request.operation is Operation.METADATA:
                return ExtractionOutcome(success=True, strategy=self.name, metadata=metadata)

            video_url = node.get("video_url")
            if not isinstance(video_url, str) or not video_url:
                raise AcquisitionError(ErrorKind.NOT_FOUND, f"instagram post {shortcode} has no video")
            destination = self._scratch_dir / f"{request.session_token}.mp4"
            await asyncio.to_thread(self._download, video_url, destination)
        except AcquisitionError as exc:
            log_event(
                logging.WARNING,
                "DIRECT_API_FAILED",
                session=request.session_token,
                shortcode=shortcode,
                kind=exc.kind.value,
                error=exc.message,
            )
            return ExtractionOutcome.failed(self.name, exc.kind, exc.message)

        log_event(
            logging.INFO,
            "DIRECT_API_DOWNLOADED",
            session=request.session_token,
            shortcode=shortcode,
            path=destination,
        )
        return ExtractionOutcome(
            success=True,
            strategy=self.name,
            artifact_path=destination,
            metadata=metadata,
        )

    async def _fetch_media_node(self, shortcode: str) -> dict[str, Any]:
        headers = {
            "User-Agent": pick_user_agent(),
            "Content-Type": "application/x-www-form-urlencoded",
            "X-IG-App-ID": INSTAGRAM_APP_ID,
            "X-FB-LSD": INSTAGRAM_LSD,
            "X-ASBD-ID": INSTAGRAM_ASBD_ID,
        }
        data = {
            "variables": json.dumps({"shortcode": shortcode}),
            "doc_id": INSTAGRAM_DOC_ID,
            "lsd": INSTAGRAM_LSD,
        }
        try:
            response = await asyncio.to_thread(
                self._http.post,
                INSTAGRAM_GRAPHQL_URL,
                data=data,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, f"instagram request failed: {exc}") from exc

        status = response.status_code
        if status in _STATUS_KINDS:
            raise AcquisitionError(_STATUS_KINDS[status], f"instagram request failed ({status})")
        if not 200 <= status < 300:
            raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, f"instagram request failed ({status})")
        try:
            payload = response.json()
        except ValueError as exc:
            raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, f"instagram returned invalid JSON: {exc}") from exc

        data_block = payload.get("data") if isinstance(payload, dict) else None
        node = data_block.get("xdt_shortcode_media") if isinstance(data_block, dict) else None
        if not isinstance(node, dict):
            raise AcquisitionError(ErrorKind.NOT_FOUND, f"instagram media not found for {shortcode}")
        return node

    def _download(self, video_url: str, destination: Path) -> None:
        headers = {"User-Agent": pick_user_agent(), "Referer": "https://www.instagram.com/"}
        written = 0
        try:
            with self._http.get(video_url, headers=headers, stream=True, timeout=self._timeout) as response:
                if not 200 <= response.status_code < 300:
                    raise AcquisitionError(
                        ErrorKind.UPSTREAM_OTHER,
                        f"instagram media fetch failed ({response.status_code})",
                    )
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_BYTES):
                        if chunk:
                            handle.write(chunk)
                            written += len(chunk)
            if written == 0:
                raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, "instagram media fetch returned no bytes")
        except requests.RequestException as exc:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, f"instagram media fetch failed: {exc}") from exc
        except AcquisitionError:
            destination.unlink(missing_ok=True)
            raise
        except OSError as exc:
            destination.unlink(missing_ok=True)
            raise AcquisitionError(ErrorKind.UPSTREAM_OTHER, f"could not write instagram media: {exc}") from exc
