"""
Narrow per-tenant document store contract used by the pipeline.

The worker only needs get / find / create / update / delete over named
collections. ``DjangoDocumentStore`` implements it on top of the generic
``Document`` model; tests use an in-memory implementation of the same
contract.

Write authority is explicit: callers pass an ``AccessContext``. System
level writes (rendition records, probe results) use ``ADMIN``; reads of
permission-scoped files use it too. Without it, only public documents are
visible and every write is refused.
"""

import uuid
from dataclasses import dataclass

from django.db import transaction

from .errors import AuthorizationError, NotFoundError
from .models import Document

PUBLIC_READ = "read(any)"

VIDEOS = "videos"
PROFILES = "video_profiles"
RENDITIONS = "video_renditions"
BUCKETS = "buckets"


def bucket_collection(bucket: dict) -> str:
    """Name of the file collection that belongs to ``bucket``."""
    return f"bucket_{bucket['internal_id']}"


@dataclass(frozen=True)
class AccessContext:
    actor: str
    elevated: bool = False


ADMIN = AccessContext(actor="system", elevated=True)
ANONYMOUS = AccessContext(actor="anonymous")


class DocumentStore:
    """Contract shared by every store the pipeline talks to."""

    def get(self, collection: str, uid: str, *, context: AccessContext = ANONYMOUS) -> dict | None:
        raise NotImplementedError

    def find(self, collection: str, filters: dict, *, context: AccessContext = ANONYMOUS) -> list[dict]:
        raise NotImplementedError

    def find_one(self, collection: str, filters: dict, *, context: AccessContext = ANONYMOUS) -> dict | None:
        found = self.find(collection, filters, context=context)
        return found[0] if found else None

    def create(self, collection: str, data: dict, *, context: AccessContext, permissions=None) -> dict:
        raise NotImplementedError

    def update(self, collection: str, uid: str, changes: dict, *, context: AccessContext) -> dict:
        raise NotImplementedError

    def delete(self, collection: str, uid: str, *, context: AccessContext) -> bool:
        raise NotImplementedError

    @staticmethod
    def require_write(context: AccessContext, collection: str) -> None:
        if not context.elevated:
            raise AuthorizationError(f"{context.actor} may not write to {collection}")

    @staticmethod
    def can_read(context: AccessContext, permissions) -> bool:
        return context.elevated or PUBLIC_READ in (permissions or [])


class DjangoDocumentStore(DocumentStore):
    def __init__(self, project_id: str):
        self.project_id = project_id

    def _rows(self, collection: str):
        return Document.objects.filter(project_id=self.project_id, collection=collection)

    def get(self, collection, uid, *, context=ANONYMOUS):
        row = self._rows(collection).filter(uid=uid).first()
        if row is None or not self.can_read(context, row.permissions):
            return None
        return row.as_dict()

    def find(self, collection, filters, *, context=ANONYMOUS):
        lookups = {f"data__{key}": value for key, value in filters.items()}
        rows = self._rows(collection).filter(**lookups).order_by("created_at")
        return [row.as_dict() for row in rows if self.can_read(context, row.permissions)]

    def create(self, collection, data, *, context, permissions=None):
        self.require_write(context, collection)
        data = dict(data)
        uid = str(data.pop("id", None) or uuid.uuid4().hex)
        row = Document.objects.create(
            project_id=self.project_id,
            collection=collection,
            uid=uid,
            data=data,
            permissions=list(permissions or []),
        )
        return row.as_dict()

    def update(self, collection, uid, changes, *, context):
        self.require_write(context, collection)
        changes = {k: v for k, v in changes.items() if k != "id"}
        with transaction.atomic():
            row = self._rows(collection).select_for_update().filter(uid=uid).first()
            if row is None:
                raise NotFoundError(collection, uid)
            row.data = {**row.data, **changes}
            row.save(update_fields=["data", "updated_at"])
        return row.as_dict()

    def delete(self, collection, uid, *, context):
        self.require_write(context, collection)
        deleted, _ = self._rows(collection).filter(uid=uid).delete()
        return deleted > 0
