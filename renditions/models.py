import uuid
from django.db import models


class Document(models.Model):
    """One document of a per-tenant collection (videos, video_profiles, buckets, ...)."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    project_id = models.CharField(max_length=64)
    collection = models.CharField(max_length=128)
    uid = models.CharField(max_length=255)                  # document id within the collection
    data = models.JSONField(default=dict, blank=True)
    permissions = models.JSONField(default=list, blank=True)  # e.g. ["read(any)"]

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["project_id", "collection", "uid"],
                name="renditions_document_uid_unique",
            ),
        ]
        indexes = [
            models.Index(fields=["project_id", "collection"], name="renditions_doc_coll_idx"),
        ]

    def as_dict(self) -> dict:
        return {**self.data, "id": self.uid}
