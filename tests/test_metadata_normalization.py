from __future__ import annotations

import json

import pytest

from engine.errors import AcquisitionError, ErrorKind
from metadata.normalize import (
    metadata_or_placeholder,
    normalize_instagram_media,
    normalize_upload_date,
    normalize_ytdlp_info,
    parse_ytdlp_json,
)
from metadata.types import PLACEHOLDER_TITLE


def _info(**overrides) -> dict:
    base = {
        "id": "dQw4w9WgXcQ",
        "title": "  Never   Gonna Give You Up ",
        "webpage_url": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "description": "Line one\nLine two",
        "duration": 213,
        "channel": "Rick Astley",
        "upload_date": "20091025",
        "view_count": 1500000000,
        "like_count": 16000000,
        "thumbnails": [{"url": "https://i.ytimg.com/small.jpg"}, {"url": "https://i.ytimg.com/max.jpg"}],
        "extractor_key": "Youtube",
        "formats": [
            {"format_id": "18", "ext": "mp4", "resolution": "640x360", "filesize": 1234},
            {"ext": "webm"},
        ],
    }
    base.update(overrides)
    return base


def test_ytdlp_info_maps_aliases_and_formats() -> None:
    metadata = normalize_ytdlp_info(_info(), source_url="https://youtu.be/dQw4w9WgXcQ", platform="youtube")

    assert metadata.id == "dQw4w9WgXcQ"
    assert metadata.title == "Never Gonna Give You Up"
    assert metadata.source_url == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
    assert metadata.description == "Line one\nLine two"
    assert metadata.duration == 213.0
    assert metadata.uploader == "Rick Astley"
    assert metadata.upload_date == "2009-10-25"
    assert metadata.view_count == 1500000000
    assert metadata.thumbnail_url == "https://i.ytimg.com/max.jpg"
    assert metadata.extractor == "Youtube"
    assert [fmt.format_id for fmt in metadata.formats] == ["18"]
    assert metadata.formats[0].filesize == 1234


def test_missing_and_invalid_numbers_stay_none() -> None:
    info = _info(view_count=None, like_count=-5, duration="n/a")
    del info["thumbnails"]

    metadata = normalize_ytdlp_info(info, source_url="u", platform="youtube")

    assert metadata.view_count is None
    assert metadata.like_count is None
    assert metadata.duration is None
    assert metadata.thumbnail_url is None


def test_view_count_alias_play_count() -> None:
    info = _info(view_count=None, play_count="42")

    metadata = normalize_ytdlp_info(info, source_url="u", platform="tiktok")

    assert metadata.view_count == 42


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("20240115", "2024-01-15"),
        ("2024-01-15T10:20:30Z", "2024-01-15"),
        (1705276800, "2024-01-15"),
        ("1705276800", "2024-01-15"),
        ("last tuesday", "last tuesday"),
        (None, None),
        ("", None),
    ],
)
def test_upload_date_normalization(raw, expected) -> None:
    assert normalize_upload_date(raw) == expected


def test_parse_ytdlp_json_uses_first_object_line() -> None:
    text = "[debug] noise\n" + json.dumps({"id": "a", "title": "First"}) + "\n" + json.dumps({"id": "b"}) + "\n"

    metadata = parse_ytdlp_json(text, source_url="u", platform="youtube")

    assert metadata.id == "a"
    assert metadata.title == "First"


@pytest.mark.parametrize("text", ["", "not json", "{broken", json.dumps({"description": "no id"})])
def test_parse_ytdlp_json_failures_are_normalization_failed(text: str) -> None:
    with pytest.raises(AcquisitionError) as excinfo:
        parse_ytdlp_json(text, source_url="u", platform="youtube")

    assert excinfo.value.kind is ErrorKind.NORMALIZATION_FAILED


def test_metadata_or_placeholder_degrades_on_bad_sidecar(tmp_path) -> None:
    sidecar = tmp_path / "mg_abc.info.json"
    sidecar.write_text("{not json", encoding="utf-8")

    metadata = metadata_or_placeholder(sidecar, source_url="https://x.test/v", platform="unknown")

    assert metadata.title == PLACEHOLDER_TITLE
    assert metadata.is_placeholder
    assert metadata.view_count is None
    assert metadata.source_url == "https://x.test/v"


def test_metadata_or_placeholder_reads_valid_sidecar(tmp_path) -> None:
    sidecar = tmp_path / "mg_abc.info.json"
    sidecar.write_text(json.dumps(_info()), encoding="utf-8")

    metadata = metadata_or_placeholder(sidecar, source_url="u", platform="youtube")

    assert metadata.title == "Never Gonna Give You Up"
    assert not metadata.is_placeholder


def test_instagram_node_normalization() -> None:
    node = {
        "shortcode": "Cxyz123AbC",
        "video_url": "https://scontent.cdninstagram.com/v.mp4",
        "display_url": "https://scontent.cdninstagram.com/t.jpg",
        "dimensions": {"width": 1080, "height": 1920},
        "video_view_count": 321,
        "video_duration": 12.5,
        "taken_at_timestamp": 1705276800,
        "owner": {"username": "creator"},
        "edge_media_preview_like": {"count": 77},
        "edge_media_to_caption": {"edges": [{"node": {"text": "Sunset run\n#fitness"}}]},
    }

    metadata = normalize_instagram_media(node, source_url="https://www.instagram.com/reel/Cxyz123AbC/")

    assert metadata.id == "Cxyz123AbC"
    assert metadata.title == "Sunset run"
    assert metadata.description == "Sunset run\n#fitness"
    assert metadata.uploader == "creator"
    assert metadata.view_count == 321
    assert metadata.like_count == 77
    assert metadata.duration == 12.5
    assert metadata.upload_date == "2024-01-15"
    assert metadata.thumbnail_url == "https://scontent.cdninstagram.com/t.jpg"
    assert metadata.platform == "instagram"
    assert metadata.formats[0].resolution == "1080x1920"


def test_instagram_node_without_caption_gets_placeholder_title() -> None:
    metadata = normalize_instagram_media({"shortcode": "abc"}, source_url="u")

    assert metadata.title == PLACEHOLDER_TITLE
    assert metadata.like_count is None
    assert metadata.formats == ()
