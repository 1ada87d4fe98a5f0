import logging
import xml.etree.ElementTree as ET

from .engine import DASH, HLS, Packaging, Representation
from .errors import EncodeError

logger = logging.getLogger(__name__)

SEGMENT_DURATION = 10  # seconds, both packaging modes
DASH_STREAMS = frozenset({"dash", "mpeg-dash"})
PROGRESS_STEP = 3


def build_representation(profile: dict) -> Representation:
    return Representation(
        video_kbps=int(profile["video_bitrate"]),
        audio_kbps=int(profile["audio_bitrate"]),
        width=int(profile["width"]),
        height=int(profile["height"]),
    )


def additional_params(representation: Representation) -> tuple:
    # no data/subtitle streams; target width, even height, square pixels
    return (
        "-dn",
        "-sn",
        "-vf", f"scale={representation.width}:-2:force_original_aspect_ratio=increase,setsar=1:1",
    )


def packaging_mode(profile: dict) -> str:
    return DASH if str(profile.get("stream", "")).lower() in DASH_STREAMS else HLS


def hls_base_url(public_base_url: str, video_id: str, name: str) -> str:
    return f"{public_base_url}/v1/video/{video_id}/{HLS}/{name}/"


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def element_to_dict(element) -> dict | str:
    """
    Convert an XML element the way SimpleXML -> JSON does: attributes under
    ``@attributes``, children by tag name (lists when repeated), and leaf text
    as a plain string.
    """
    result: dict = {}
    if element.attrib:
        result["@attributes"] = {_local(k): v for k, v in element.attrib.items()}
    for child in element:
        key = _local(child.tag)
        value = element_to_dict(child)
        if key in result:
            if not isinstance(result[key], list):
                result[key] = [result[key]]
            result[key].append(value)
        else:
            result[key] = value
    text = (element.text or "").strip()
    if text and not result:
        return text
    return result


def parse_manifest(path) -> dict:
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise EncodeError(f"Could not parse DASH manifest {path}: {e}") from e
    parsed = element_to_dict(root)
    return parsed if isinstance(parsed, dict) else {}


class ProgressRelay:
    """Engine progress sink: forwards every third percent to the status record."""

    def __init__(self, status, step: int = PROGRESS_STEP):
        self.status = status
        self.step = step

    def __call__(self, percentage: int) -> None:
        if int(percentage) % self.step == 0:
            self.status.progress(percentage)


class EncodeOrchestrator:
    def __init__(self, engine, prober, status, public_base_url: str):
        self.engine = engine
        self.prober = prober
        self.status = status
        self.public_base_url = public_base_url

    def packaging(self, profile: dict, representation: Representation, video_id: str, name: str, workspace) -> Packaging:
        mode = packaging_mode(profile)
        return Packaging(
            mode=mode,
            output_prefix=workspace.output_prefix,
            segment_duration=SEGMENT_DURATION,
            additional_params=additional_params(representation),
            base_url=hls_base_url(self.public_base_url, video_id, name) if mode == HLS else None,
        )

    def encode(self, source_path, video_id: str, profile: dict, name: str, workspace, cancel=None):
        representation = build_representation(profile)
        packaging = self.packaging(profile, representation, video_id, name, workspace)

        output = self.engine.encode(
            source_path,
            representation,
            packaging,
            progress=ProgressRelay(self.status),
            cancel=cancel,
        )

        metadata = {}
        if packaging.mode == DASH:
            metadata["mpeg-dash"] = parse_manifest(output.manifest)

        general = self.prober.output(output.probe_path, representation)
        self.status.mark_ended(general, metadata)
        logger.info(f"Encoded rendition {name} of video {video_id} ({packaging.mode}, {len(output.files)} files)")
        return output
