"""Locate the artifact(s) a finished extraction left in the scratch directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from engine.errors import AcquisitionError, ErrorKind
from engine.paths import session_files

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".info.json"
_PARTIAL_SUFFIXES = (".part", ".ytdl", ".temp", ".tmp")

SUBTITLE_SUFFIXES = (".vtt", ".srt")
IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".webp")


@dataclass(frozen=True)
class ResolvedOutput:
    primary: Path
    sidecar: Path | None = None


def resolve_output(scratch_dir: Path, token: str, *, suffixes: Iterable[str] | None = None) -> ResolvedOutput:
    """Pick the single primary file and optional ``.info.json`` sidecar for ``token``.

    Matching is by session prefix because the real extension is only known
    once the tool has negotiated a format. Zero or several primaries raise
    ``OutputNotFound`` instead of guessing, since another session's files
    could otherwise be published.
    """
    allowed = tuple(suffix.lower() for suffix in suffixes) if suffixes else None
    primaries: list[Path] = []
    sidecars: list[Path] = []
    for path in session_files(scratch_dir, token):
        lower_name = path.name.lower()
        if lower_name.endswith(_PARTIAL_SUFFIXES):
            continue
        if lower_name.endswith(SIDECAR_SUFFIX):
            sidecars.append(path)
            continue
        if allowed and not lower_name.endswith(allowed):
            continue
        primaries.append(path)

    if not primaries:
        raise AcquisitionError(
            ErrorKind.OUTPUT_NOT_FOUND,
            f"no output file found for session {token}",
        )
    if len(primaries) > 1:
        names = ", ".join(path.name for path in primaries)
        raise AcquisitionError(
            ErrorKind.OUTPUT_NOT_FOUND,
            f"ambiguous output for session {token}: {names}",
        )
    if len(sidecars) > 1:
        names = ", ".join(path.name for path in sidecars)
        raise AcquisitionError(
            ErrorKind.OUTPUT_NOT_FOUND,
            f"ambiguous metadata sidecar for session {token}: {names}",
        )
    logger.debug("resolved output session=%s primary=%s sidecar=%s", token, primaries[0].name, bool(sidecars))

    return ResolvedOutput(primary=primaries[0], sidecar=sidecars[0] if sidecars else None)
