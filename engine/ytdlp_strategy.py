"""External tool strategy: runs yt-dlp through ``ProcessRunner`` with a quality cascade."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from config.settings import (
    AUX_TIMEOUT_SECONDS,
    CASCADE_ADVANCE_ON_RATE_LIMIT,
    MEDIA_TIMEOUT_SECONDS,
    METADATA_TIMEOUT_SECONDS,
)
from engine.errors import AcquisitionError, ErrorKind
from engine.json_utils import log_event
from engine.models import AcquisitionRequest, ExtractionOutcome, Operation
from engine.output_resolver import IMAGE_SUFFIXES, SUBTITLE_SUFFIXES, resolve_output
from engine.process_runner import ProcessRunner, ProcessResult, classify_result, describe_failure
from engine.session import output_template, purge_session_files
from engine.ytdlp_args import (
    AUDIO_CASCADE,
    argv_to_redacted_cli,
    build_ytdlp_opts,
    pick_user_agent,
    quality_cascade,
    render_ytdlp_cli_argv,
)
from metadata.normalize import metadata_or_placeholder, parse_ytdlp_json

logger = logging.getLogger(__name__)

STRATEGY_NAME = "ytdlp"

DEFAULT_TIMEOUTS: dict[Operation, float] = {
    Operation.METADATA: METADATA_TIMEOUT_SECONDS,
    Operation.THUMBNAIL: AUX_TIMEOUT_SECONDS,
    Operation.TRANSCRIPT: AUX_TIMEOUT_SECONDS,
    Operation.VIDEO: MEDIA_TIMEOUT_SECONDS,
    Operation.AUDIO: MEDIA_TIMEOUT_SECONDS,
}


@dataclass(frozen=True)
class CascadePolicy:
    """Decides whether a failed format candidate may fall through to the next one.

    Only bot checks are retried by default: other failures (missing video,
    login walls) would fail identically for every candidate.
    """

    advance_on_rate_limit: bool = CASCADE_ADVANCE_ON_RATE_LIMIT

    def should_advance(self, kind: ErrorKind) -> bool:
        if kind is ErrorKind.BOT_DETECTION:
            return True
        return self.advance_on_rate_limit and kind is ErrorKind.RATE_LIMITED


class ExternalToolStrategy:
    name = STRATEGY_NAME

    def __init__(
        self,
        runner: ProcessRunner,
        scratch_dir: Path,
        *,
        policy: CascadePolicy | None = None,
        timeouts: Mapping[Operation, float] | None = None,
        executable: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._runner = runner
        self._scratch_dir = Path(scratch_dir)
        self._policy = policy or CascadePolicy()
        self._timeouts = {**DEFAULT_TIMEOUTS, **(timeouts or {})}
        self._executable = executable
        self._rng = rng

    async def execute(self, request: AcquisitionRequest) -> ExtractionOutcome:
        try:
            if request.operation is Operation.METADATA:
                return await self._fetch_metadata(request)
            return await self._run_cascade(request, self._selectors(request))
        except AcquisitionError as exc:
            purge_session_files(self._scratch_dir, request.session_token)
            return ExtractionOutcome.failed(self.name, exc.kind, exc.message)

    def _selectors(self, request: AcquisitionRequest) -> tuple[str | None, ...]:
        if request.operation is Operation.VIDEO:
            return quality_cascade(request.quality)
        if request.operation is Operation.AUDIO:
            return AUDIO_CASCADE
        return (None,)

    async def _fetch_metadata(self, request: AcquisitionRequest) -> ExtractionOutcome:
        result = await self._invoke(request, None)
        kind = classify_result(result)
        if kind is not None:
            purge_session_files(self._scratch_dir, request.session_token)
            return ExtractionOutcome.failed(self.name, kind, describe_failure(result), raw_output=result.stderr)
        metadata = parse_ytdlp_json(result.stdout, source_url=request.url, platform=request.platform.value)
        return ExtractionOutcome(
            success=True,
            strategy=self.name,
            raw_output=result.stdout,
            metadata=metadata,
        )

    async def _run_cascade(self, request: AcquisitionRequest, selectors: tuple[str | None, ...]) -> ExtractionOutcome:
        last_failure: ExtractionOutcome | None = None
        for position, selector in enumerate(selectors, start=1):
            purge_session_files(self._scratch_dir, request.session_token)
            result = await self._invoke(request, selector)
            kind = classify_result(result)
            if kind is None:
                return self._collect_output(request, result)

            message = describe_failure(result)
            last_failure = ExtractionOutcome.failed(self.name, kind, message, raw_output=result.stderr)
            log_event(
                logging.WARNING,
                "YTDLP_CANDIDATE_FAILED",
                session=request.session_token,
                url=request.url,
                operation=request.operation.value,
                selector=selector,
                position=position,
                kind=kind.value,
                error=message,
            )
            if not self._policy.should_advance(kind):
                break

        purge_session_files(self._scratch_dir, request.session_token)
        if last_failure is None:
            return ExtractionOutcome.failed(self.name, ErrorKind.INVALID_INPUT, "no format candidates to try")
        return last_failure

    def _collect_output(self, request: AcquisitionRequest, result: ProcessResult) -> ExtractionOutcome:
        suffixes = None
        if request.operation is Operation.TRANSCRIPT:
            suffixes = SUBTITLE_SUFFIXES
        elif request.operation is Operation.THUMBNAIL:
            suffixes = IMAGE_SUFFIXES
        resolved = resolve_output(self._scratch_dir, request.session_token, suffixes=suffixes)

        metadata = None
        if request.operation in (Operation.VIDEO, Operation.AUDIO):
            metadata = metadata_or_placeholder(
                resolved.sidecar,
                source_url=request.url,
                platform=request.platform.value,
            )
        return ExtractionOutcome(
            success=True,
            strategy=self.name,
            artifact_path=resolved.primary,
            sidecar_path=resolved.sidecar,
            raw_output=result.stdout,
            metadata=metadata,
        )

    async def _invoke(self, request: AcquisitionRequest, selector: str | None) -> ProcessResult:
        opts = build_ytdlp_opts(
            request.operation,
            output_template=output_template(self._scratch_dir, request.session_token),
            platform=request.platform,
            format_selector=selector,
            language=request.language,
            user_agent=pick_user_agent(self._rng),
        )
        argv = render_ytdlp_cli_argv(opts, request.url, executable=self._executable)
        result = await self._runner.run(argv, timeout=self._timeouts[request.operation])
        log_event(
            logging.INFO,
            "YTDLP_CLI_EQUIVALENT",
            session=request.session_token,
            url=request.url,
            cli=argv_to_redacted_cli(argv),
            exit_code=result.exit_code,
            timed_out=result.timed_out,
        )
        return result
