"""
One transcode job: source video + encoding profile -> published rendition.

Lifecycle hooks mirror the worker host: ``init()`` prepares the workspace,
``run()`` executes the pipeline, ``shutdown()`` releases the workspace.

Failures before the rendition record exists (missing video/profile, bad
source, lock held elsewhere) propagate to the caller. Failures after it are
recorded on the rendition (status ``error``, ``metadata = {code, message}``)
and reported through the returned ``JobOutcome`` instead of being raised.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from .documents import ADMIN, PROFILES, VIDEOS
from .encode import EncodeOrchestrator
from .errors import NotFoundError
from .locks import no_lock
from .probe import MediaProber
from .publish import ArtifactPublisher
from .reconcile import reconcile_prior_renditions
from .source import SourceResolver
from .status import READY, RenditionStatus
from .utils import rendition_name
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class JobOutcome:
    rendition_id: str
    name: str
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == READY

    def as_dict(self) -> dict:
        return asdict(self)


class TranscodingJob:
    def __init__(
        self,
        project_id: str,
        video_id: str,
        profile_id: str,
        *,
        store,
        files_device,
        video_device,
        engine,
        workspace_root,
        public_base_url: str,
        keys: Optional[dict] = None,
        lock=no_lock,
        keep_workspace: bool = False,
        context=ADMIN,
        cancel=None,
    ):
        self.project_id = project_id
        self.video_id = video_id
        self.profile_id = profile_id
        self.store = store
        self.files_device = files_device
        self.video_device = video_device
        self.engine = engine
        self.public_base_url = public_base_url
        self.keys = keys or {}
        self.lock = lock
        self.context = context
        self.cancel = cancel
        self.workspace = Workspace(workspace_root, project_id, video_id, profile_id, keep=keep_workspace)
        self.status = RenditionStatus(store, context)

    @classmethod
    def from_settings(cls, project_id: str, video_id: str, profile_id: str, *, cancel=None) -> "TranscodingJob":
        from django.conf import settings

        from .documents import DjangoDocumentStore
        from .engine import FFmpegEngine
        from .locks import RenditionLock
        from .storage import get_files_device, get_video_device

        lock = no_lock
        if settings.TRANSCODING_LOCK_URL:
            lock = RenditionLock.from_url(
                settings.TRANSCODING_LOCK_URL,
                timeout=settings.TRANSCODING_LOCK_TIMEOUT,
                wait=settings.TRANSCODING_LOCK_WAIT,
            )
        return cls(
            project_id,
            video_id,
            profile_id,
            store=DjangoDocumentStore(project_id),
            files_device=get_files_device(project_id),
            video_device=get_video_device(project_id),
            engine=FFmpegEngine(settings.FFMPEG_BINARY, settings.FFPROBE_BINARY),
            workspace_root=settings.TRANSCODING_WORKSPACE_ROOT,
            public_base_url=settings.TRANSCODING_PUBLIC_BASE_URL,
            keys=settings.OPENSSL_KEYS,
            lock=lock,
            keep_workspace=settings.TRANSCODING_KEEP_WORKSPACE,
            cancel=cancel,
        )

    def init(self) -> None:
        self.workspace.create()

    def shutdown(self) -> None:
        self.workspace.release()

    def _load(self, collection: str, uid: str, kind: str) -> dict:
        doc = self.store.get(collection, uid, context=self.context)
        if doc is None:
            raise NotFoundError(kind, uid)
        return doc

    def run(self) -> JobOutcome:
        with self.lock(self.video_id, self.profile_id):
            return self._run()

    def _run(self) -> JobOutcome:
        video = self._load(VIDEOS, self.video_id, "Video")
        profile = self._load(PROFILES, self.profile_id, "Profile")

        resolver = SourceResolver(self.store, self.files_device, self.engine, self.keys, self.context)
        source_path = resolver.resolve(video, self.workspace)

        prober = MediaProber(self.engine)
        general = prober.source(source_path)
        self.store.update(VIDEOS, video["id"], general, context=self.context)

        reconcile_prior_renditions(
            self.store, self.video_device, video["id"], profile["id"], context=self.context
        )

        name = rendition_name(profile)
        self.status.open(video["id"], profile["id"], name, profile.get("stream", ""))

        try:
            orchestrator = EncodeOrchestrator(self.engine, prober, self.status, self.public_base_url)
            orchestrator.encode(source_path, video["id"], profile, name, self.workspace, cancel=self.cancel)
            ArtifactPublisher(self.video_device, self.status).publish(self.workspace.out_dir, video["id"], name)
        except Exception as e:
            details = self.status.mark_error(e)
            logger.debug("Rendition failure traceback", exc_info=True)
            return JobOutcome(self.status.id, name, self.status.status, details["code"], details["message"])

        return JobOutcome(self.status.id, name, self.status.status)
