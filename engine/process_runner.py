"""Async subprocess runner for the external extraction tool."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from config.settings import STDERR_EXCERPT_CHARS
from engine.errors import AcquisitionError, ErrorKind

logger = logging.getLogger(__name__)

Spawner = Callable[..., Awaitable[Any]]

TIMEOUT_EXIT_CODE = -9
_READ_CHUNK_BYTES = 64 * 1024

# Ordered mapping of stderr signals to failure classes; first match wins.
# Missing postprocessing binaries come first so the generic "not found"
# marker cannot claim them. Age gates share the "sign in to confirm" prefix
# with bot checks, so AUTH_REQUIRED is consulted first for those phrases.
_STDERR_SIGNAL_MAP: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (
        ErrorKind.UPSTREAM_OTHER,
        (
            "ffprobe and ffmpeg",
            "ffmpeg not found",
            "ffprobe not found",
        ),
    ),
    (
        ErrorKind.AUTH_REQUIRED,
        (
            "sign in to confirm your age",
            "age-restricted",
            "age restricted",
        ),
    ),
    (
        ErrorKind.BOT_DETECTION,
        (
            "not a bot",
            "sign in to confirm",
            "captcha",
            "unusual traffic",
            " bot ",
            "bot detection",
        ),
    ),
    (
        ErrorKind.AUTH_REQUIRED,
        (
            "login required",
            "log in to",
            "login to",
            "private video",
            "this video is private",
            "members-only",
            "members only",
            "use --cookies",
            "cookies",
            "http error 401",
            "http error 403",
            "forbidden",
        ),
    ),
    (
        ErrorKind.RATE_LIMITED,
        (
            "http error 429",
            "too many requests",
            "rate limit",
            "rate-limit",
            "ratelimit",
        ),
    ),
    (
        ErrorKind.NOT_FOUND,
        (
            "http error 404",
            "video unavailable",
            "this video is unavailable",
            "has been removed",
            "not found",
            "does not exist",
            "no video formats found",
            "unsupported url",
            "is not a valid url",
        ),
    ),
)


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


class ProcessRunner:
    """Spawn one process, drain its pipes and enforce a hard timeout.

    The spawner is injectable (defaults to ``asyncio.create_subprocess_exec``)
    so tests can substitute fakes without touching the event loop.
    """

    def __init__(self, spawner: Spawner | None = None) -> None:
        self._spawner = spawner or asyncio.create_subprocess_exec

    async def run(self, argv: Sequence[str], timeout: float) -> ProcessResult:
        if not argv:
            raise ValueError("argv must not be empty")
        started = time.monotonic()
        try:
            proc = await self._spawner(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise AcquisitionError(
                ErrorKind.TOOL_UNAVAILABLE,
                f"{argv[0]} is not installed or not executable: {exc}",
            ) from exc

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        completion = asyncio.gather(
            _drain(proc.stdout, stdout_chunks),
            _drain(proc.stderr, stderr_chunks),
            proc.wait(),
        )
        timed_out = False
        try:
            await asyncio.wait_for(completion, timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            await _terminate(proc)
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        elapsed = time.monotonic() - started
        exit_code = TIMEOUT_EXIT_CODE if timed_out else (proc.returncode if proc.returncode is not None else -1)
        result = ProcessResult(
            exit_code=exit_code,
            stdout=b"".join(stdout_chunks).decode("utf-8", errors="replace"),
            stderr=b"".join(stderr_chunks).decode("utf-8", errors="replace"),
            timed_out=timed_out,
            elapsed_seconds=elapsed,
        )
        logger.debug(
            "process finished tool=%s exit_code=%s timed_out=%s elapsed=%.2fs",
            argv[0],
            result.exit_code,
            timed_out,
            elapsed,
        )
        return result


async def _drain(stream: Any, sink: list[bytes]) -> None:
    if stream is None:
        return
    while True:
        chunk = await stream.read(_READ_CHUNK_BYTES)
        if not chunk:
            return
        sink.append(chunk)


async def _terminate(proc: Any) -> None:
    """Kill ``proc`` with its whole process group and reap it.

    The tool runs helpers (ffmpeg) as children; killing only the leader
    would leave them writing into scratch after the session is purged.
    """
    if not _kill_process_group(proc) and proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    try:
        await asyncio.wait_for(proc.wait(), timeout=5)
    except asyncio.TimeoutError:
        logger.error("process did not exit after kill pid=%s", getattr(proc, "pid", None))


def _kill_process_group(proc: Any) -> bool:
    """SIGKILL the session started for ``proc``; ``False`` when no real group exists."""
    pid = getattr(proc, "pid", None)
    killpg = getattr(os, "killpg", None)
    if killpg is None or not isinstance(pid, int) or pid <= 0:
        return False
    try:
        killpg(pid, signal.SIGKILL)
    except ProcessLookupError:
        return proc.returncode is not None
    except PermissionError:
        logger.warning("cannot signal process group pgid=%s", pid)
        return False
    return True


def classify_stderr(stderr: str | None) -> ErrorKind:
    """Map tool diagnostics to a failure class by ordered substring matching."""
    if not stderr:
        return ErrorKind.UPSTREAM_OTHER
    lower_msg = f" {stderr.lower()} "
    for kind, markers in _STDERR_SIGNAL_MAP:
        if any(marker in lower_msg for marker in markers):
            return kind
    return ErrorKind.UPSTREAM_OTHER


def describe_failure(result: ProcessResult) -> str:
    if result.timed_out:
        return f"extraction tool timed out after {result.elapsed_seconds:.1f}s"
    stderr_text = (result.stderr or "").strip()
    if not stderr_text:
        return f"extraction tool exited with code {result.exit_code}"
    error_lines = [line.strip() for line in stderr_text.splitlines() if line.strip().startswith("ERROR:")]
    if error_lines:
        return error_lines[-1][:STDERR_EXCERPT_CHARS]
    return stderr_text[:STDERR_EXCERPT_CHARS]


def classify_result(result: ProcessResult) -> ErrorKind | None:
    """Return ``None`` for success, otherwise the failure class of ``result``."""
    if result.timed_out:
        return ErrorKind.TIMEOUT
    if result.exit_code == 0:
        return None
    return classify_stderr(result.stderr)
