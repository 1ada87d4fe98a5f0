"""
Rendition status record lifecycle.

Lifecycle: started -> ended -> uploading -> ready, with error reachable from
any non-terminal state. ready and error are terminal. Every write goes through
this class so the record has a single writer per job, even when the encode
engine reports progress from another thread.
"""

import logging
import threading
import time

from .documents import ADMIN, RENDITIONS
from .errors import InvalidTransitionError, describe_error

logger = logging.getLogger(__name__)

STARTED = "started"
ENDED = "ended"
UPLOADING = "uploading"
READY = "ready"
ERROR = "error"

_ORDER = {STARTED: 0, ENDED: 1, UPLOADING: 2, READY: 3}
TERMINAL = frozenset({READY, ERROR})


def can_transition(current: str, target: str) -> bool:
    if current in TERMINAL:
        return False
    if target == ERROR:
        return True
    return _ORDER[target] > _ORDER[current]


class RenditionStatus:
    def __init__(self, store, context=ADMIN):
        self.store = store
        self.context = context
        self.record = None
        self._lock = threading.Lock()

    @property
    def id(self) -> str | None:
        return self.record["id"] if self.record else None

    @property
    def status(self) -> str | None:
        return self.record["status"] if self.record else None

    def open(self, video_id: str, profile_id: str, name: str, stream: str) -> dict:
        with self._lock:
            self.record = self.store.create(RENDITIONS, {
                "video_id": video_id,
                "profile_id": profile_id,
                "name": name,
                "stream": stream,
                "status": STARTED,
                "progress": 0,
                "started_at": int(time.time()),
            }, context=self.context)
        logger.info(f"Rendition {name} ({self.id}) started for video {video_id}")
        return dict(self.record)

    def _write(self, changes: dict) -> None:
        # caller holds self._lock
        self.record = self.store.update(RENDITIONS, self.id, changes, context=self.context)

    def _transition(self, target: str, changes: dict | None = None) -> None:
        with self._lock:
            current = self.record["status"]
            if not can_transition(current, target):
                raise InvalidTransitionError(current, target)
            self._write({**(changes or {}), "status": target})
        logger.info(f"Rendition {self.record['name']} ({self.id}): {current} -> {target}")

    def progress(self, percentage: int) -> bool:
        """Record encode progress; stale or repeated values are ignored."""
        percentage = int(percentage)
        with self._lock:
            if self.record is None or self.record["status"] != STARTED:
                return False
            if percentage <= int(self.record.get("progress") or 0):
                return False
            self._write({"progress": percentage})
        return True

    def mark_ended(self, general: dict, metadata: dict) -> None:
        changes = dict(general)
        if metadata:
            changes["metadata"] = metadata
        changes["ended_at"] = int(time.time())
        self._transition(ENDED, changes)

    def mark_uploading(self, path: str) -> None:
        self._transition(UPLOADING, {"path": path})

    def mark_ready(self) -> None:
        self._transition(READY, {"progress": 100})

    def mark_error(self, exc: BaseException) -> dict:
        details = describe_error(exc)
        with self._lock:
            if self.record["status"] in TERMINAL:
                logger.warning(
                    f"Rendition {self.id} already {self.record['status']}; "
                    f"not recording error {details['code']}"
                )
                return details
            self._write({"status": ERROR, "metadata": details, "ended_at": int(time.time())})
        logger.error(f"Rendition {self.record['name']} ({self.id}) failed [{details['code']}]: {details['message']}")
        return details
