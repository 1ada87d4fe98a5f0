"""
Error types raised by the transcoding pipeline.

Every error carries a short string ``code`` that ends up in the rendition
status record (``metadata = {code, message}``) when a job fails after the
record was created, or in the Celery failure when it fails before.
"""

INTERNAL_ERROR = "internal_error"
MAX_MESSAGE_LENGTH = 4000


class TranscodingError(Exception):
    """Base exception for all transcoding failures."""

    code = "transcode_failed"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        if code is not None:
            self.code = code


class NotFoundError(TranscodingError):
    code = "not_found"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class AuthorizationError(TranscodingError):
    code = "unauthorized"


class InvalidSourceError(TranscodingError):
    code = "invalid_source"


class DecryptionError(InvalidSourceError):
    code = "decryption_failed"


class DecompressionError(InvalidSourceError):
    code = "decompression_failed"


class ProbeError(TranscodingError):
    code = "probe_failed"


class StorageError(TranscodingError):
    code = "storage_error"

    def __init__(self, operation: str, path: str, reason: str):
        self.operation = operation
        self.path = path
        super().__init__(f"Storage {operation} failed for {path}: {reason}")


class EncodeError(TranscodingError):
    code = "encode_failed"


class EncodeCancelled(EncodeError):
    code = "encode_cancelled"


class PublishError(TranscodingError):
    code = "publish_failed"


class InvalidTransitionError(TranscodingError):
    code = "invalid_transition"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid rendition status transition: {current} -> {target}")


class WorkspaceError(TranscodingError):
    code = "invalid_workspace"


class RenditionLocked(TranscodingError):
    code = "rendition_locked"

    def __init__(self, video_id: str, profile_id: str):
        self.video_id = video_id
        self.profile_id = profile_id
        super().__init__(f"Another job holds the rendition lock for video {video_id} / profile {profile_id}")


def describe_error(exc: BaseException) -> dict:
    """Return the ``{code, message}`` pair stored on a failed rendition."""
    code = exc.code if isinstance(exc, TranscodingError) else INTERNAL_ERROR
    message = str(exc) or exc.__class__.__name__
    return {"code": code, "message": message[:MAX_MESSAGE_LENGTH]}
