from __future__ import annotations

import asyncio
import json
from pathlib import Path

from engine.errors import AcquisitionError, ErrorKind
from engine.models import AcquisitionRequest, Operation
from engine.process_runner import ProcessResult
from engine.ytdlp_strategy import CascadePolicy, ExternalToolStrategy
from input.platform_router import Platform

_URL = "https://www.youtube.com/watch?v=abc123xyz00"
_TOKEN = "mg_testtoken"


class _ScriptedRunner:
    """Replays one step per call; a step may write files before returning its result."""

    def __init__(self, scratch: Path, steps) -> None:
        self.scratch = scratch
        self.steps = list(steps)
        self.calls: list[list[str]] = []
        self.timeouts: list[float] = []

    async def run(self, argv, timeout):
        self.calls.append(list(argv))
        self.timeouts.append(timeout)
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        files, result = step
        for name, content in files.items():
            (self.scratch / name).write_text(content, encoding="utf-8")
        return result


def _fail(stderr: str, exit_code: int = 1):
    return {}, ProcessResult(exit_code=exit_code, stdout="", stderr=stderr)


def _ok(files: dict[str, str], stdout: str = ""):
    return files, ProcessResult(exit_code=0, stdout=stdout, stderr="")


def _request(operation: Operation, **kwargs) -> AcquisitionRequest:
    return AcquisitionRequest(
        url=_URL,
        operation=operation,
        platform=Platform.YOUTUBE,
        session_token=_TOKEN,
        **kwargs,
    )


def _selectors(runner: _ScriptedRunner) -> list[str | None]:
    return [argv[argv.index("-f") + 1] if "-f" in argv else None for argv in runner.calls]


def test_cascade_advances_on_bot_detection(tmp_path) -> None:
    sidecar = json.dumps({"id": "abc123xyz00", "title": "Clip", "view_count": 10})
    runner = _ScriptedRunner(
        tmp_path,
        [
            _fail("ERROR: Sign in to confirm you're not a bot"),
            _ok({f"{_TOKEN}.mp4": "video", f"{_TOKEN}.info.json": sidecar}),
        ],
    )
    strategy = ExternalToolStrategy(runner, tmp_path)

    outcome = asyncio.run(strategy.execute(_request(Operation.VIDEO)))

    assert outcome.success
    assert outcome.artifact_path == tmp_path / f"{_TOKEN}.mp4"
    assert outcome.metadata.title == "Clip"
    assert outcome.metadata.view_count == 10
    assert _selectors(runner) == ["best[height<=1080]", "best[height<=720]"]


def test_cascade_stops_on_auth_required(tmp_path) -> None:
    runner = _ScriptedRunner(
        tmp_path,
        [
            _fail("ERROR: [youtube] abc: Private video. Sign in if you've been granted access"),
            _ok({f"{_TOKEN}.mp4": "never reached"}),
        ],
    )
    strategy = ExternalToolStrategy(runner, tmp_path)

    outcome = asyncio.run(strategy.execute(_request(Operation.VIDEO)))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.AUTH_REQUIRED
    assert "Private video" in outcome.error
    assert len(runner.calls) == 1


def test_rate_limit_stops_cascade_by_default(tmp_path) -> None:
    runner = _ScriptedRunner(tmp_path, [_fail("ERROR: HTTP Error 429: Too Many Requests"), _ok({})])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.VIDEO)))

    assert outcome.error_kind is ErrorKind.RATE_LIMITED
    assert len(runner.calls) == 1


def test_rate_limit_advances_when_policy_allows(tmp_path) -> None:
    runner = _ScriptedRunner(
        tmp_path,
        [_fail("ERROR: HTTP Error 429: Too Many Requests"), _ok({f"{_TOKEN}.mp4": "video"})],
    )
    strategy = ExternalToolStrategy(runner, tmp_path, policy=CascadePolicy(advance_on_rate_limit=True))

    outcome = asyncio.run(strategy.execute(_request(Operation.VIDEO)))

    assert outcome.success
    assert outcome.metadata.is_placeholder
    assert len(runner.calls) == 2


def test_exhausted_cascade_reports_last_failure_and_purges(tmp_path) -> None:
    bot = "ERROR: Sign in to confirm you're not a bot"
    runner = _ScriptedRunner(tmp_path, [_fail(bot)] * 3 + [({f"{_TOKEN}.mp4.part": "partial"}, _fail(bot)[1])])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.VIDEO)))

    assert outcome.error_kind is ErrorKind.BOT_DETECTION
    assert len(runner.calls) == 4
    assert list(tmp_path.iterdir()) == []


def test_partial_files_from_failed_step_are_purged_before_next_step(tmp_path) -> None:
    seen_before_second_call: list[list[str]] = []

    class _Runner(_ScriptedRunner):
        async def run(self, argv, timeout):
            if self.calls:
                seen_before_second_call.append(sorted(p.name for p in self.scratch.iterdir()))
            return await super().run(argv, timeout)

    runner = _Runner(
        tmp_path,
        [
            ({f"{_TOKEN}.mp4.part": "partial"}, _fail("ERROR: captcha required")[1]),
            _ok({f"{_TOKEN}.mp4": "video"}),
        ],
    )

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.VIDEO)))

    assert outcome.success
    assert seen_before_second_call == [[]]


def test_audio_cascade_order(tmp_path) -> None:
    bot = _fail("ERROR: unusual traffic from your network")
    runner = _ScriptedRunner(tmp_path, [bot, bot, _ok({f"{_TOKEN}.mp3": "audio"})])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.AUDIO)))

    assert outcome.success
    assert _selectors(runner) == ["bestaudio[ext=m4a]/bestaudio[ext=mp3]/bestaudio", "worstaudio", None]
    assert "--audio-quality" in runner.calls[-1]


def test_metadata_parses_stdout_with_metadata_timeout(tmp_path) -> None:
    stdout = json.dumps({"id": "abc123xyz00", "title": "Clip", "upload_date": "20240115"})
    runner = _ScriptedRunner(tmp_path, [_ok({}, stdout=stdout)])
    strategy = ExternalToolStrategy(runner, tmp_path, timeouts={Operation.METADATA: 7.0})

    outcome = asyncio.run(strategy.execute(_request(Operation.METADATA)))

    assert outcome.success
    assert outcome.metadata.upload_date == "2024-01-15"
    assert runner.timeouts == [7.0]
    assert "--dump-json" in runner.calls[0]


def test_metadata_invalid_json_is_normalization_failed(tmp_path) -> None:
    runner = _ScriptedRunner(tmp_path, [_ok({}, stdout="not json at all")])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.METADATA)))

    assert outcome.error_kind is ErrorKind.NORMALIZATION_FAILED


def test_transcript_resolves_subtitle_file(tmp_path) -> None:
    runner = _ScriptedRunner(tmp_path, [_ok({f"{_TOKEN}.de.vtt": "WEBVTT\n"})])

    outcome = asyncio.run(
        ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.TRANSCRIPT, language="de"))
    )

    assert outcome.success
    assert outcome.artifact_path.name == f"{_TOKEN}.de.vtt"


def test_transcript_without_subtitles_is_output_not_found(tmp_path) -> None:
    runner = _ScriptedRunner(tmp_path, [_ok({})])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.TRANSCRIPT)))

    assert outcome.error_kind is ErrorKind.OUTPUT_NOT_FOUND


def test_timeout_is_reported(tmp_path) -> None:
    result = ProcessResult(exit_code=-9, stdout="", stderr="", timed_out=True, elapsed_seconds=1.0)
    runner = _ScriptedRunner(tmp_path, [({}, result)])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.THUMBNAIL)))

    assert outcome.error_kind is ErrorKind.TIMEOUT


def test_missing_tool_becomes_failure_outcome(tmp_path) -> None:
    runner = _ScriptedRunner(tmp_path, [AcquisitionError(ErrorKind.TOOL_UNAVAILABLE, "yt-dlp missing")])

    outcome = asyncio.run(ExternalToolStrategy(runner, tmp_path).execute(_request(Operation.VIDEO)))

    assert not outcome.success
    assert outcome.error_kind is ErrorKind.TOOL_UNAVAILABLE
