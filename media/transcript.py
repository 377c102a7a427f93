"""Subtitle (SRT/WebVTT) to plain-text conversion."""

from __future__ import annotations

import re

_INDEX_LINE_RE = re.compile(r"^\d+$")
_TIMESTAMP_LINE_RE = re.compile(
    r"^(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}\s*-->\s*(?:\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}(?:\s+.*)?$"
)
_VTT_HEADER_RE = re.compile(r"^WEBVTT(?:\s|$)")
_VTT_META_RE = re.compile(r"^(?:Kind|Language):", re.IGNORECASE)
_VTT_NOTE_RE = re.compile(r"^NOTE(?:\s|$)")
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

_ENTITIES = (("&lt;", "<"), ("&gt;", ">"), ("&quot;", '"'), ("&amp;", "&"))


def sanitize_transcript(text: str) -> str:
    """Return the spoken text of an SRT or WebVTT document on a single line.

    Cue indexes, timestamp ranges, the leading ``WEBVTT`` header (with its
    ``Kind:``/``Language:`` lines) and VTT ``NOTE`` blocks are dropped,
    inline markup is stripped, ``&lt; &gt; &amp; &quot;`` are decoded and
    whitespace is collapsed.

    A single pass can expose new markup (``&lt;i&gt;`` decodes to a tag), so
    passes repeat until the text stops changing. No pass lengthens the text,
    which bounds the loop and makes the function idempotent.
    """
    current = text or ""
    while True:
        updated = _sanitize_pass(current)
        if updated == current:
            return updated
        current = updated


def _sanitize_pass(text: str) -> str:
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    pieces: list[str] = []
    index = 0

    # Header block: optional BOM + WEBVTT line, then metadata lines up to the first blank.
    is_vtt = False
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index < len(lines) and _VTT_HEADER_RE.match(lines[index].strip().lstrip("\ufeff")):
        is_vtt = True
        index += 1
        while index < len(lines) and lines[index].strip():
            if not _VTT_META_RE.match(lines[index].strip()):
                break
            index += 1

    in_note = False
    for raw_line in lines[index:]:
        line = raw_line.strip().lstrip("\ufeff")
        if not line:
            in_note = False
            continue
        if in_note:
            continue
        if is_vtt and _VTT_NOTE_RE.match(line):
            in_note = True
            continue
        if _INDEX_LINE_RE.match(line) or _TIMESTAMP_LINE_RE.match(line):
            continue
        cleaned = _TAG_RE.sub("", line)
        cleaned = _decode_entities(cleaned)
        cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
        if cleaned:
            pieces.append(cleaned)

    return " ".join(pieces).strip()


def _decode_entities(value: str) -> str:
    # &amp; last so "&amp;lt;" yields "&lt;" in this pass rather than "<".
    for entity, char in _ENTITIES:
        value = value.replace(entity, char)
    return value
