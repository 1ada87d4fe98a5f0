import xml.etree.ElementTree as ET

import pytest

from renditions.documents import RENDITIONS
from renditions.encode import (
    SEGMENT_DURATION,
    EncodeOrchestrator,
    ProgressRelay,
    additional_params,
    build_representation,
    element_to_dict,
    hls_base_url,
    packaging_mode,
    parse_manifest,
)
from renditions.engine import DASH, HLS, Representation
from renditions.errors import EncodeError
from renditions.probe import MediaProber
from renditions.status import ENDED, RenditionStatus
from renditions.workspace import Workspace

from .conftest import SAMPLE_MPD, FakeEngine, MemoryStore

PROFILE = {"width": 1280, "height": 720, "video_bitrate": 2000, "audio_bitrate": 128, "stream": "hls"}


def test_build_representation():
    assert build_representation(PROFILE) == Representation(2000, 128, 1280, 720)


@pytest.mark.parametrize(
    "stream, mode",
    [("hls", HLS), ("mpeg-dash", DASH), ("dash", DASH), ("DASH", DASH), ("", HLS), ("other", HLS)],
)
def test_packaging_mode(stream, mode):
    assert packaging_mode({"stream": stream}) == mode


def test_additional_params_scale_to_target_width():
    params = additional_params(Representation(2000, 128, 1280, 720))
    assert params[:2] == ("-dn", "-sn")
    assert params[3] == "scale=1280:-2:force_original_aspect_ratio=increase,setsar=1:1"


def test_hls_base_url():
    assert hls_base_url("http://media.test", "vid1", "1280X720@2128") == \
        "http://media.test/v1/video/vid1/hls/1280X720@2128/"


def test_progress_relay_forwards_multiples_of_three():
    seen = []

    class Sink:
        def progress(self, pct):
            seen.append(pct)

    relay = ProgressRelay(Sink())
    for pct in range(0, 101):
        relay(pct)
    assert seen == list(range(0, 100, 3))


def test_parse_manifest(tmp_path):
    mpd = tmp_path / "vid1.mpd"
    mpd.write_text(SAMPLE_MPD)
    parsed = parse_manifest(mpd)
    assert parsed["@attributes"]["mediaPresentationDuration"] == "PT12.5S"
    sets = parsed["Period"]["AdaptationSet"]
    assert isinstance(sets, list) and len(sets) == 2
    assert sets[0]["Representation"]["@attributes"]["width"] == "1280"


def test_parse_manifest_rejects_garbage(tmp_path):
    mpd = tmp_path / "vid1.mpd"
    mpd.write_text("<MPD><Period>")
    with pytest.raises(EncodeError):
        parse_manifest(mpd)


def test_element_to_dict_leaf_text():
    root = ET.fromstring("<a><BaseURL>seg/</BaseURL><b x='1'/></a>")
    assert element_to_dict(root) == {"BaseURL": "seg/", "b": {"@attributes": {"x": "1"}}}


@pytest.fixture
def orchestrated(tmp_path):
    def run(profile, engine=None):
        engine = engine or FakeEngine()
        status = RenditionStatus(MemoryStore())
        status.open("vid1", "prof1", "name", profile["stream"])
        ws = Workspace(tmp_path, "proj1", "vid1", "prof1").create()
        source = ws.in_dir / "clip.mp4"
        source.write_bytes(b"x")
        orch = EncodeOrchestrator(engine, MediaProber(engine), status, "http://media.test")
        output = orch.encode(source, "vid1", profile, "1280X720@2128", ws)
        return engine, status, output

    return run


def test_hls_encode(orchestrated):
    engine, status, output = orchestrated(PROFILE)
    _, representation, packaging = engine.encodes[0]
    assert packaging.mode == HLS
    assert packaging.segment_duration == SEGMENT_DURATION == 10
    assert packaging.base_url == "http://media.test/v1/video/vid1/hls/1280X720@2128/"
    assert packaging.output_prefix.name == "vid1"

    record = status.record
    assert record["status"] == ENDED
    assert (record["width"], record["height"]) == (1280, 720)
    assert record["video_codec"] == "h264,[27][0][0][0]"
    assert "metadata" not in record
    assert record["ended_at"] >= record["started_at"]


def test_dash_encode_stores_manifest(orchestrated):
    profile = {**PROFILE, "stream": "mpeg-dash"}
    engine, status, output = orchestrated(profile)
    _, _, packaging = engine.encodes[0]
    assert packaging.mode == DASH
    assert packaging.base_url is None
    assert status.record["metadata"]["mpeg-dash"]["@attributes"]["type"] == "static"


def test_progress_is_written_in_steps_of_three(orchestrated):
    _, status, _ = orchestrated(PROFILE)
    progress = [u["progress"] for u in status.store.updates_of(RENDITIONS, status.id) if "progress" in u]
    assert progress == list(range(3, 100, 3))


def test_engine_failure_propagates_without_ending(orchestrated):
    with pytest.raises(EncodeError):
        orchestrated(PROFILE, FakeEngine(fail_at=40))
