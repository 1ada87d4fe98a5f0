import pytest

from renditions.utils import guess_content_type, rendition_name


def test_rendition_name_sums_bitrates():
    profile = {"width": 1280, "height": 720, "video_bitrate": 2000, "audio_bitrate": 128}
    assert rendition_name(profile) == "1280X720@2128"


def test_rendition_name_accepts_numeric_strings():
    profile = {"width": 854, "height": 480, "video_bitrate": "1000", "audio_bitrate": "96"}
    assert rendition_name(profile) == "854X480@1096"


@pytest.mark.parametrize(
    "name, expected",
    [
        ("vid1.m3u8", "application/vnd.apple.mpegurl"),
        ("vid1_720p_0001.ts", "video/MP2T"),
        ("vid1.mpd", "application/dash+xml"),
        ("vid1_chunk_0_00001.m4s", "video/iso.segment"),
        ("poster.jpg", "image/jpeg"),
        ("mystery.blob", "application/octet-stream"),
    ],
)
def test_guess_content_type(name, expected):
    assert guess_content_type(name) == expected
