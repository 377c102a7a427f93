import os
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _default_scratch_dir():
    if os.path.exists("/.dockerenv") or os.path.isdir("/data"):
        return Path("/tmp/video-downloads")
    return PROJECT_ROOT / "data" / "scratch"


SCRATCH_DIR = Path(os.environ.get("MEDIAGRAB_SCRATCH_DIR", _default_scratch_dir())).resolve()


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)
    return path


def resolve_scratch_dir(path=None):
    """Return an absolute scratch directory, creating it when missing."""
    resolved = Path(path).resolve() if path else SCRATCH_DIR
    ensure_dir(resolved)
    return resolved


def session_files(scratch_dir, token):
    """List regular files in ``scratch_dir`` whose name carries the session token prefix."""
    if not token:
        raise ValueError("session token is required")
    directory = Path(scratch_dir)
    if not directory.is_dir():
        return []
    return sorted(
        entry for entry in directory.iterdir()
        if entry.name.startswith(token) and entry.is_file()
    )
