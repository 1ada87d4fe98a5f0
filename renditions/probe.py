from .errors import ProbeError


def _as_int(value) -> int:
    """ffprobe reports numbers as strings; coerce like a lenient int cast."""
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _as_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _first(streams, codec_type: str) -> dict:
    for stream in streams:
        if stream.get("codec_type") == codec_type:
            return stream
    raise ProbeError(f"No {codec_type} stream found")


def describe_streams(streams) -> dict:
    """
    Flatten the first video and first audio stream of an ffprobe stream list
    into the technical metadata stored on videos and renditions.

    Raises:
        ProbeError: if either stream is missing
    """
    video = _first(streams, "video")
    audio = _first(streams, "audio")
    return {
        "duration": _as_float(video.get("duration")),
        "width": _as_int(video.get("width")),
        "height": _as_int(video.get("height")),
        "video_codec": f"{video.get('codec_name', '')},{video.get('codec_tag_string', '')}",
        "video_framerate": video.get("avg_frame_rate", ""),
        "video_bitrate": _as_int(video.get("bit_rate")),
        "audio_codec": f"{audio.get('codec_name', '')},{audio.get('codec_tag_string', '')}",
        "audio_samplerate": _as_int(audio.get("sample_rate")),
        "audio_bitrate": _as_int(audio.get("bit_rate")),
    }


class MediaProber:
    """Runs the engine's probe and normalizes the result."""

    def __init__(self, engine):
        self.engine = engine

    def source(self, path) -> dict:
        return describe_streams(self.engine.probe(path))

    def output(self, path, representation) -> dict:
        # Report the requested dimensions, not whatever the encoder rounded to.
        info = describe_streams(self.engine.probe(path))
        info["width"] = representation.width
        info["height"] = representation.height
        return info
