from .types import PLACEHOLDER_TITLE, MediaFormat, MediaMetadata

__all__ = ["MediaFormat", "MediaMetadata", "PLACEHOLDER_TITLE"]
