"""
Materialize a source video's bytes into the job workspace.

Stored files may be encrypted (AES-GCM, base64 payload, hex IV and tag) and/or
gzip-compressed. Decryption is applied first, then decompression.
"""

import base64
import binascii
import gzip
import logging
import zlib
from pathlib import PurePosixPath

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .documents import ADMIN, ANONYMOUS, BUCKETS, bucket_collection
from .errors import DecompressionError, DecryptionError, InvalidSourceError, NotFoundError

logger = logging.getLogger(__name__)

# cipher name -> key length in bytes
GCM_CIPHERS = {
    "aes-128-gcm": 16,
    "aes-192-gcm": 24,
    "aes-256-gcm": 32,
}

GZIP = "gzip"


def _openssl_key(secret: str, length: int) -> bytes:
    # OpenSSL pads short keys with NUL bytes and ignores the excess of long ones.
    return secret.encode("utf-8")[:length].ljust(length, b"\0")


def decrypt_payload(data: bytes, cipher: str, secret: str | None, iv_hex: str, tag_hex: str) -> bytes:
    """Reverse an ``openssl_encrypt(..., options=0)`` AES-GCM payload."""
    key_length = GCM_CIPHERS.get((cipher or "").lower())
    if key_length is None:
        raise DecryptionError(f"Unsupported cipher: {cipher}")
    if not secret:
        raise DecryptionError("Unknown encryption key version")
    try:
        iv = binascii.unhexlify(iv_hex or "")
        tag = binascii.unhexlify(tag_hex or "")
        ciphertext = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError(f"Malformed encrypted payload: {e}") from e
    if not 8 <= len(iv) <= 128 or len(tag) != 16:
        raise DecryptionError("Malformed initialization vector or authentication tag")

    try:
        return AESGCM(_openssl_key(secret, key_length)).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError("Decryption failed: authentication tag mismatch") from e
    except ValueError as e:
        raise DecryptionError(f"Decryption failed: {e}") from e


def decompress_payload(data: bytes, algorithm: str) -> bytes:
    if (algorithm or "").lower() != GZIP:
        raise DecompressionError(f"Unsupported compression algorithm: {algorithm}")
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise DecompressionError(f"Corrupt compressed payload: {e}") from e


class SourceResolver:
    def __init__(self, store, files_device, engine, keys: dict, context=ADMIN):
        self.store = store
        self.files_device = files_device
        self.engine = engine
        self.keys = keys
        self.context = context

    def locate(self, video: dict) -> dict:
        """Storage record of the video's source file."""
        bucket = self.store.get(BUCKETS, video.get("bucket_id", ""), context=self.context)
        if bucket is None:
            raise NotFoundError("Bucket", video.get("bucket_id", ""))

        # Bucket-level permissions skip per-file checks; otherwise the file's own apply.
        context = self.context if bucket.get("permission") == "bucket" else ANONYMOUS
        file = self.store.get(bucket_collection(bucket), video.get("file_id", ""), context=context)
        if file is None:
            raise NotFoundError("File", video.get("file_id", ""))
        return file

    def read(self, file: dict) -> bytes:
        data = self.files_device.read(file["path"])

        if file.get("openssl_cipher"):
            version = str(file.get("openssl_version", ""))
            data = decrypt_payload(
                data,
                file["openssl_cipher"],
                self.keys.get(version),
                file.get("openssl_iv", ""),
                file.get("openssl_tag", ""),
            )

        if file.get("algorithm"):
            data = decompress_payload(data, file["algorithm"])
        return data

    def resolve(self, video: dict, workspace):
        file = self.locate(video)
        data = self.read(file)

        in_path = workspace.in_dir / PurePosixPath(file["path"]).name
        in_path.write_bytes(data)
        logger.info(f"Materialized source of video {video['id']} at {in_path} ({len(data)} bytes)")

        if not self.engine.is_valid(in_path):
            raise InvalidSourceError(f'Not a valid media file "{in_path}"')
        return in_path
