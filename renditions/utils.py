import mimetypes

# Minimal content-type hints for streaming assets
STREAMING_CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/MP2T",
    ".m2ts": "video/MP2T",
    ".mpd": "application/dash+xml",
    ".m4s": "video/iso.segment",
}


def guess_content_type(name: str) -> str:
    """Content-Type for an output file, falling back to octet-stream."""
    lowered = name.lower()
    for suffix, content_type in STREAMING_CONTENT_TYPES.items():
        if lowered.endswith(suffix):
            return content_type
    mime, _ = mimetypes.guess_type(name)
    return mime or "application/octet-stream"


def rendition_name(profile: dict) -> str:
    """
    Deterministic rendition name: ``{width}X{height}@{video_bitrate + audio_bitrate}``.

    >>> rendition_name({"width": 1280, "height": 720, "video_bitrate": 2000, "audio_bitrate": 128})
    '1280X720@2128'
    """
    total = int(profile["video_bitrate"]) + int(profile["audio_bitrate"])
    return f"{profile['width']}X{profile['height']}@{total}"
