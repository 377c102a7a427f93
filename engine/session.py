"""Session tokens and scratch-file bookkeeping for one acquisition request."""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import uuid4

from engine.paths import session_files

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "mg_"


def new_session_token() -> str:
    """Return a collision-resistant token safe to embed in filenames.

    uuid4 carries 122 random bits, so tokens stay unique across concurrent
    requests and across processes sharing one scratch directory.
    """
    return f"{TOKEN_PREFIX}{uuid4().hex}"


def output_template(scratch_dir: Path, token: str) -> str:
    """yt-dlp output template whose extension is filled in after format negotiation."""
    return str(Path(scratch_dir) / f"{token}.%(ext)s")


def purge_session_files(scratch_dir: Path, token: str) -> int:
    """Delete every scratch file carrying ``token``; return how many were removed."""
    removed = 0
    for path in session_files(scratch_dir, token):
        try:
            path.unlink()
            removed += 1
        except FileNotFoundError:
            continue
        except OSError:
            logger.warning("failed to remove scratch file path=%s", path, exc_info=True)
    return removed
