import logging
import shutil
from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import StorageError

logger = logging.getLogger(__name__)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


class Device:
    """
    Storage contract consumed by the worker: read / write / delete_path / get_path.
    Paths handed to a device are absolute within that device (they include its root).
    """

    def __init__(self, root: str):
        self.root = root.rstrip("/")

    def get_path(self, identifier: str) -> str:
        return f"{self.root}/{identifier}"

    def read(self, path: str) -> bytes:
        raise NotImplementedError

    def write(self, path: str, data: bytes, content_type: str | None = None) -> None:
        raise NotImplementedError

    def delete_path(self, path: str) -> None:
        raise NotImplementedError


class LocalDevice(Device):
    """Device backed by a directory tree on this host (dev setups, tests)."""

    def __init__(self, base_dir, root: str):
        super().__init__(root)
        self.base_dir = Path(base_dir)

    def _abs(self, path: str) -> Path:
        return self.base_dir / path.lstrip("/")

    def read(self, path):
        try:
            return self._abs(path).read_bytes()
        except OSError as e:
            raise StorageError("read", path, str(e)) from e

    def write(self, path, data, content_type=None):
        target = self._abs(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError("write", path, str(e)) from e

    def delete_path(self, path):
        target = self._abs(path)
        try:
            if target.is_dir():
                shutil.rmtree(target)
            else:
                target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError("delete", path, str(e)) from e


class S3Device(Device):
    """Device backed by one S3/MinIO bucket; ``root`` is a key prefix."""

    def __init__(self, root: str, bucket: str | None = None, client=None):
        super().__init__(root)
        self.bucket = bucket or settings.S3_BUCKET
        self.client = client or get_s3_client()

    def read(self, path):
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=path)
            return resp["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise StorageError("read", path, str(e)) from e

    def write(self, path, data, content_type=None):
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.put_object(Bucket=self.bucket, Key=path, Body=data, **extra)
        except (ClientError, BotoCoreError) as e:
            raise StorageError("write", path, str(e)) from e

    def delete_path(self, path):
        """
        Recursively delete every object under ``path`` (treated as a prefix),
        plus the object at ``path`` itself if it is a plain key.
        """
        prefix = path.rstrip("/")
        keys = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"]
                    # "videos/a/720" must not sweep up "videos/a/7200/..."
                    if key == prefix or key.startswith(prefix + "/"):
                        keys.append(key)

            for i in range(0, len(keys), DELETE_BATCH_SIZE):
                batch = keys[i:i + DELETE_BATCH_SIZE]
                self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
        except (ClientError, BotoCoreError) as e:
            raise StorageError("delete", path, str(e)) from e
        logger.info(f"Deleted {len(keys)} object(s) under '{self.bucket}/{prefix}'")


def _device(root: str) -> Device:
    if settings.TRANSCODING_STORAGE_DEVICE == "local":
        return LocalDevice(settings.TRANSCODING_LOCAL_STORAGE_ROOT, root)
    return S3Device(root)


def get_files_device(project_id: str) -> Device:
    """Tenant upload storage (source files)."""
    return _device(f"uploads/app-{project_id}")


def get_video_device(project_id: str) -> Device:
    """Tenant video storage (published renditions)."""
    return _device(f"videos/app-{project_id}")
