import copy
import logging
import threading
import uuid
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path

import pytest

from renditions.documents import ANONYMOUS, BUCKETS, PROFILES, VIDEOS, DocumentStore
from renditions.engine import DASH, EncodeOutput
from renditions.errors import EncodeCancelled, EncodeError, NotFoundError, RenditionLocked, StorageError
from renditions.pipeline import TranscodingJob
from renditions.storage import Device

PROJECT_ID = "proj1"
VIDEO_ID = "vid1"
PROFILE_ID = "prof720"
SOURCE_BYTES = b"\x00\x00\x00\x18ftypmp42 fake source media"

SOURCE_STREAMS = [
    {
        "index": 0,
        "codec_type": "video",
        "codec_name": "h264",
        "codec_tag_string": "avc1",
        "width": 1920,
        "height": 1080,
        "avg_frame_rate": "30/1",
        "bit_rate": "5000000",
        "duration": "12.500000",
    },
    {
        "index": 1,
        "codec_type": "audio",
        "codec_name": "aac",
        "codec_tag_string": "mp4a",
        "sample_rate": "48000",
        "bit_rate": "128000",
        "duration": "12.480000",
    },
]

OUTPUT_STREAMS = [
    {
        "codec_type": "video",
        "codec_name": "h264",
        "codec_tag_string": "[27][0][0][0]",
        "width": 1282,
        "height": 722,
        "avg_frame_rate": "30/1",
        "bit_rate": "1998000",
        "duration": "12.500000",
    },
    {
        "codec_type": "audio",
        "codec_name": "aac",
        "codec_tag_string": "[15][0][0][0]",
        "sample_rate": "48000",
        "bit_rate": "127000",
    },
]

SAMPLE_MPD = """<?xml version="1.0" encoding="utf-8"?>
<MPD xmlns="urn:mpeg:dash:schema:mpd:2011" type="static" mediaPresentationDuration="PT12.5S" minBufferTime="PT10.0S">
  <Period id="0" start="PT0.0S">
    <AdaptationSet id="0" contentType="video">
      <Representation id="0" bandwidth="2000000" width="1280" height="720"/>
    </AdaptationSet>
    <AdaptationSet id="1" contentType="audio">
      <Representation id="1" bandwidth="128000"/>
    </AdaptationSet>
  </Period>
</MPD>
"""


class MemoryStore(DocumentStore):
    """In-memory document store honoring the same access rules as the Django one."""

    def __init__(self):
        self.collections = defaultdict(dict)
        self.permissions = {}
        self.writes = []  # (op, collection, uid, changes)

    def seed(self, collection, data, permissions=None):
        data = dict(data)
        uid = data.pop("id", None) or uuid.uuid4().hex
        self.collections[collection][uid] = data
        self.permissions[(collection, uid)] = list(permissions or [])
        return {**data, "id": uid}

    def _visible(self, collection, uid, context):
        return self.can_read(context, self.permissions.get((collection, uid)))

    def get(self, collection, uid, *, context=ANONYMOUS):
        doc = self.collections[collection].get(uid)
        if doc is None or not self._visible(collection, uid, context):
            return None
        return {**copy.deepcopy(doc), "id": uid}

    def find(self, collection, filters, *, context=ANONYMOUS):
        found = []
        for uid, doc in self.collections[collection].items():
            if all(doc.get(k) == v for k, v in filters.items()) and self._visible(collection, uid, context):
                found.append({**copy.deepcopy(doc), "id": uid})
        return found

    def create(self, collection, data, *, context, permissions=None):
        self.require_write(context, collection)
        record = self.seed(collection, data, permissions)
        self.writes.append(("create", collection, record["id"], dict(data)))
        return record

    def update(self, collection, uid, changes, *, context):
        self.require_write(context, collection)
        if uid not in self.collections[collection]:
            raise NotFoundError(collection, uid)
        changes = {k: v for k, v in changes.items() if k != "id"}
        self.collections[collection][uid].update(copy.deepcopy(changes))
        self.writes.append(("update", collection, uid, dict(changes)))
        return {**copy.deepcopy(self.collections[collection][uid]), "id": uid}

    def delete(self, collection, uid, *, context):
        self.require_write(context, collection)
        existed = self.collections[collection].pop(uid, None) is not None
        self.writes.append(("delete", collection, uid, {}))
        return existed

    def updates_of(self, collection, uid):
        return [changes for op, coll, doc_id, changes in self.writes
                if op == "update" and coll == collection and doc_id == uid]


class MemoryDevice(Device):
    def __init__(self, root="videos/app-proj1"):
        super().__init__(root)
        self.objects = {}  # path -> (bytes, content_type)

    def read(self, path):
        if path not in self.objects:
            raise StorageError("read", path, "no such object")
        return self.objects[path][0]

    def write(self, path, data, content_type=None):
        self.objects[path] = (data, content_type)

    def delete_path(self, path):
        prefix = path.rstrip("/")
        for key in [k for k in self.objects if k == prefix or k.startswith(prefix + "/")]:
            del self.objects[key]


class FakeEngine:
    """
    Stands in for ffmpeg: writes plausible HLS/DASH outputs and reports
    every percentage from 0 to 100 (optionally from a separate thread).
    """

    def __init__(self, source_streams=None, output_streams=None, valid=True, fail_at=None, threaded=False):
        self.source_streams = source_streams if source_streams is not None else SOURCE_STREAMS
        self.output_streams = output_streams if output_streams is not None else OUTPUT_STREAMS
        self.valid = valid
        self.fail_at = fail_at
        self.threaded = threaded
        self.encodes = []
        self.probed = []

    def is_valid(self, path):
        return self.valid

    def probe(self, path):
        self.probed.append(Path(path))
        if Path(path).parent.name == "out":
            return copy.deepcopy(self.output_streams)
        return copy.deepcopy(self.source_streams)

    def _report(self, progress, cancel):
        for pct in range(0, 101):
            if cancel is not None and cancel.is_set():
                raise EncodeCancelled("Encoding was cancelled")
            if self.fail_at is not None and pct >= self.fail_at:
                raise EncodeError("ffmpeg exited with status 1: Conversion failed!")
            if progress is not None:
                progress(pct)

    def encode(self, source, representation, packaging, progress=None, cancel=None):
        self.encodes.append((Path(source), representation, packaging))
        if self.threaded:
            errors = []

            def target():
                try:
                    self._report(progress, cancel)
                except Exception as e:
                    errors.append(e)

            t = threading.Thread(target=target)
            t.start()
            t.join()
            if errors:
                raise errors[0]
        else:
            self._report(progress, cancel)

        prefix = packaging.output_prefix
        if packaging.mode == DASH:
            manifest = prefix.with_name(f"{prefix.name}.mpd")
            manifest.write_text(SAMPLE_MPD)
            segments = [prefix.with_name(f"{prefix.name}_init_0.m4s"),
                        prefix.with_name(f"{prefix.name}_chunk_0_00001.m4s")]
            probe_path = manifest
        else:
            manifest = prefix.with_name(f"{prefix.name}.m3u8")
            probe_path = prefix.with_name(f"{prefix.name}_{representation.height}p.m3u8")
            manifest.write_text("#EXTM3U\n")
            probe_path.write_text("#EXTM3U\n#EXTINF:10.0,\n")
            segments = [prefix.with_name(f"{prefix.name}_{representation.height}p_{i:04d}.ts") for i in range(2)]
        for seg in segments:
            seg.write_bytes(b"segment")
        prefix.with_name(f"{prefix.name}.json").write_text("{}")
        files = sorted(p for p in prefix.parent.iterdir() if p.suffix != ".json")
        return EncodeOutput(manifest=manifest, probe_path=probe_path, files=files)


class FakeLock:
    def __init__(self, held=False):
        self.held = held
        self.acquired = []

    @contextmanager
    def __call__(self, video_id, profile_id):
        if self.held:
            raise RenditionLocked(video_id, profile_id)
        self.acquired.append((video_id, profile_id))
        yield None


@pytest.fixture(autouse=True)
def propagate_app_logs(monkeypatch):
    # LOGGING routes "renditions" to its own handler; caplog listens on the root logger
    monkeypatch.setattr(logging.getLogger("renditions"), "propagate", True)


@pytest.fixture
def store():
    s = MemoryStore()
    s.seed(VIDEOS, {"id": VIDEO_ID, "bucket_id": "uploads", "file_id": "file1", "name": "clip.mp4"})
    s.seed(PROFILES, {
        "id": PROFILE_ID,
        "name": "720p",
        "width": 1280,
        "height": 720,
        "video_bitrate": 2000,
        "audio_bitrate": 128,
        "stream": "hls",
    })
    s.seed(PROFILES, {
        "id": "prof-dash",
        "name": "480p dash",
        "width": 854,
        "height": 480,
        "video_bitrate": 1000,
        "audio_bitrate": 96,
        "stream": "mpeg-dash",
    })
    s.seed(BUCKETS, {"id": "uploads", "internal_id": 7, "permission": "bucket"})
    s.seed("bucket_7", {
        "id": "file1",
        "path": "uploads/app-proj1/ab/cd/clip.mp4",
        "mime_type": "video/mp4",
    })
    return s


@pytest.fixture
def files_device():
    device = MemoryDevice("uploads/app-proj1")
    device.write("uploads/app-proj1/ab/cd/clip.mp4", SOURCE_BYTES, "video/mp4")
    return device


@pytest.fixture
def video_device():
    return MemoryDevice("videos/app-proj1")


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def make_job(tmp_path, store, files_device, video_device, engine):
    def factory(profile_id=PROFILE_ID, **overrides):
        kwargs = dict(
            store=store,
            files_device=files_device,
            video_device=video_device,
            engine=engine,
            workspace_root=tmp_path / "work",
            public_base_url="http://media.test",
            keys={"1": "secret-key-v1"},
            lock=FakeLock(),
        )
        kwargs.update(overrides)
        job = TranscodingJob(PROJECT_ID, VIDEO_ID, profile_id, **kwargs)
        job.init()
        return job

    return factory
