"""Public acquisition operations.

Each operation validates the URL, opens a scratch session, runs the planned
strategies, publishes the artifact and returns a result record. Failures
are returned, never raised, and every scratch file carrying the session
token is removed before the result leaves the service.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import requests

from engine.direct_api import InstagramDirectStrategy
from engine.errors import AcquisitionError, ErrorKind
from engine.json_utils import log_event
from engine.models import (
    AcquisitionRequest,
    DownloadResult,
    ExtractionOutcome,
    MetadataResult,
    Operation,
    ThumbnailResult,
    TranscriptResult,
)
from engine.orchestrator import StrategyOrchestrator
from engine.paths import resolve_scratch_dir
from engine.process_runner import ProcessRunner
from engine.publisher import (
    AUDIO_PREFIX,
    THUMBNAIL_PREFIX,
    TRANSCRIPT_PREFIX,
    VIDEO_PREFIX,
    ArtifactPublisher,
    ObjectStore,
)
from engine.session import new_session_token, purge_session_files
from engine.ytdlp_strategy import CascadePolicy, ExternalToolStrategy
from input.platform_router import detect_platform, is_http_url
from media.transcript import sanitize_transcript
from metadata.normalize import placeholder_metadata

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")

_LANGUAGE_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class MediaAcquisitionService:
    def __init__(
        self,
        store: ObjectStore,
        *,
        runner: ProcessRunner | None = None,
        http: Any = None,
        scratch_dir: Path | str | None = None,
        policy: CascadePolicy | None = None,
        timeouts: Mapping[Operation, float] | None = None,
        executable: str | None = None,
        orchestrator: StrategyOrchestrator | None = None,
    ) -> None:
        self.scratch_dir = resolve_scratch_dir(scratch_dir)
        if orchestrator is None:
            direct = InstagramDirectStrategy(http if http is not None else requests.Session(), self.scratch_dir)
            external = ExternalToolStrategy(
                runner or ProcessRunner(),
                self.scratch_dir,
                policy=policy,
                timeouts=timeouts,
                executable=executable,
            )
            orchestrator = StrategyOrchestrator({direct.name: direct, external.name: external})
        self._orchestrator = orchestrator
        self._publisher = ArtifactPublisher(store)

    async def download_video(self, url: str, quality: str = "best") -> DownloadResult:
        async def handle(request: AcquisitionRequest, outcome: ExtractionOutcome) -> DownloadResult:
            return await self._publish_download(request, outcome, VIDEO_PREFIX)

        return await self._run(
            Operation.VIDEO, url, handle, DownloadResult, quality=quality or "best"
        )

    async def download_audio(self, url: str) -> DownloadResult:
        async def handle(request: AcquisitionRequest, outcome: ExtractionOutcome) -> DownloadResult:
            return await self._publish_download(request, outcome, AUDIO_PREFIX)

        return await self._run(Operation.AUDIO, url, handle, DownloadResult)

    async def extract_transcript(self, url: str, language: str = "en") -> TranscriptResult:
        async def handle(request: AcquisitionRequest, outcome: ExtractionOutcome) -> TranscriptResult:
            subtitle_path = outcome.artifact_path
            raw_text = await asyncio.to_thread(subtitle_path.read_text, encoding="utf-8", errors="replace")
            transcript = sanitize_transcript(raw_text)
            if not transcript:
                raise AcquisitionError(
                    ErrorKind.NORMALIZATION_FAILED,
                    f"subtitle file {subtitle_path.name} contains no spoken text",
                )
            text_path = self.scratch_dir / f"{request.session_token}.{request.language}.txt"
            await asyncio.to_thread(text_path.write_text, transcript, encoding="utf-8")
            artifact = await self._publisher.publish(text_path, TRANSCRIPT_PREFIX)
            return TranscriptResult(
                success=True,
                public_url=artifact.public_url,
                filename=artifact.filename,
                transcript=transcript,
                language=request.language,
            )

        return await self._run(
            Operation.TRANSCRIPT, url, handle, TranscriptResult, language=language or "en"
        )

    async def extract_thumbnail(self, url: str) -> ThumbnailResult:
        async def handle(request: AcquisitionRequest, outcome: ExtractionOutcome) -> ThumbnailResult:
            artifact = await self._publisher.publish(outcome.artifact_path, THUMBNAIL_PREFIX)
            return ThumbnailResult(success=True, public_url=artifact.public_url, filename=artifact.filename)

        return await self._run(Operation.THUMBNAIL, url, handle, ThumbnailResult)

    async def get_metadata(self, url: str) -> MetadataResult:
        async def handle(request: AcquisitionRequest, outcome: ExtractionOutcome) -> MetadataResult:
            if outcome.metadata is None:
                raise AcquisitionError(ErrorKind.NORMALIZATION_FAILED, "strategy returned no metadata")
            return MetadataResult(success=True, metadata=outcome.metadata)

        return await self._run(Operation.METADATA, url, handle, MetadataResult)

    async def _publish_download(
        self,
        request: AcquisitionRequest,
        outcome: ExtractionOutcome,
        key_prefix: str,
    ) -> DownloadResult:
        metadata = outcome.metadata or placeholder_metadata(request.url, request.platform.value)
        artifact = await self._publisher.publish(outcome.artifact_path, key_prefix)
        return DownloadResult(
            success=True,
            public_url=artifact.public_url,
            filename=artifact.filename,
            file_size=artifact.byte_size,
            content_type=artifact.content_type,
            metadata=metadata,
        )

    async def _run(
        self,
        operation: Operation,
        url: str,
        handle: Callable[[AcquisitionRequest, ExtractionOutcome], Awaitable[ResultT]],
        result_type: Callable[..., ResultT],
        **options: str,
    ) -> ResultT:
        token = new_session_token()
        try:
            request = self._build_request(operation, url, token, **options)
            outcome = await self._orchestrator.acquire(request)
            if not outcome.success:
                return self._failure(result_type, outcome)
            result = await handle(request, outcome)
            log_event(
                logging.INFO,
                "OPERATION_SUCCEEDED",
                session=token,
                operation=operation.value,
                url=url,
                strategy=outcome.strategy,
            )
            return result
        except AcquisitionError as exc:
            log_event(
                logging.WARNING,
                "OPERATION_FAILED",
                session=token,
                operation=operation.value,
                url=url,
                kind=exc.kind.value,
                error=exc.message,
            )
            return result_type(success=False, error=exc.message, error_kind=exc.kind)
        except Exception as exc:
            logger.exception("operation crashed operation=%s session=%s", operation.value, token)
            return result_type(success=False, error=str(exc) or repr(exc), error_kind=ErrorKind.UPSTREAM_OTHER)
        finally:
            purge_session_files(self.scratch_dir, token)

    @staticmethod
    def _build_request(operation: Operation, url: str, token: str, **options: str) -> AcquisitionRequest:
        cleaned = (url or "").strip()
        if not cleaned or not is_http_url(cleaned):
            raise AcquisitionError(ErrorKind.INVALID_INPUT, f"not an http(s) url: {url!r}")
        language = options.get("language")
        if language is not None and not _LANGUAGE_RE.match(language):
            raise AcquisitionError(ErrorKind.INVALID_INPUT, f"invalid subtitle language: {language!r}")
        return AcquisitionRequest(
            url=cleaned,
            operation=operation,
            platform=detect_platform(cleaned),
            session_token=token,
            **options,
        )

    @staticmethod
    def _failure(result_type: Callable[..., ResultT], outcome: ExtractionOutcome) -> ResultT:
        kind = outcome.error_kind or ErrorKind.UPSTREAM_OTHER
        message = outcome.error or "extraction failed"
        if result_type is MetadataResult:
            return result_type(success=False, error=message, error_kind=kind, attempts=list(outcome.attempts))
        return result_type(success=False, error=message, error_kind=kind)
