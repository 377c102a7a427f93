"""Upload finished artifacts to the object store and clear them from scratch."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Protocol

from engine.errors import AcquisitionError, ErrorKind
from engine.json_utils import log_event
from engine.models import PublishedArtifact

logger = logging.getLogger(__name__)

VIDEO_PREFIX = "videos/"
AUDIO_PREFIX = "audio/"
TRANSCRIPT_PREFIX = "transcripts/"
THUMBNAIL_PREFIX = "thumbnails/"

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ObjectStore(Protocol):
    async def upload(self, local_path: Path, key_prefix: str) -> str: ...


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type or DEFAULT_CONTENT_TYPE


class ArtifactPublisher:
    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    async def publish(self, path: Path, key_prefix: str) -> PublishedArtifact:
        """Upload ``path`` under ``key_prefix`` and return its public location.

        The local file is removed whether or not the upload succeeds.
        """
        path = Path(path)
        try:
            try:
                byte_size = path.stat().st_size
            except OSError as exc:
                raise AcquisitionError(ErrorKind.OUTPUT_NOT_FOUND, f"artifact missing: {path.name}") from exc
            content_type = guess_content_type(path)
            try:
                public_url = await self._store.upload(path, key_prefix)
            except Exception as exc:
                logger.error("artifact upload failed file=%s prefix=%s error=%s", path.name, key_prefix, exc)
                raise AcquisitionError(ErrorKind.STORAGE_UPLOAD_FAILED, str(exc)) from exc
        finally:
            _remove_local(path)

        log_event(
            logging.INFO,
            "ARTIFACT_PUBLISHED",
            filename=path.name,
            prefix=key_prefix,
            bytes=byte_size,
            content_type=content_type,
        )
        return PublishedArtifact(
            public_url=public_url,
            filename=path.name,
            byte_size=byte_size,
            content_type=content_type,
        )


def _remove_local(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("failed to remove local artifact path=%s", path, exc_info=True)
