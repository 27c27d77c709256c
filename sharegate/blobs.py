from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings, get_settings, on_reload
from .errors import InfrastructureFault, ValidationFault

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class BlobNotFound(LookupError):
    """The storage reference does not name an existing object."""


class LocalBlobStore:
    """Blob store backed by a directory on the local filesystem."""

    backend = "local"

    def __init__(self, base_path: str):
        self.base_path = Path(base_path).expanduser().resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _object_path(self, key: str) -> Path:
        path = (self.base_path / key.lstrip("/")).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise ValidationFault(f"Storage path escapes blob root: {key!r}", field="storage_path")
        return path

    def read_bytes(self, key: str) -> Iterator[bytes]:
        path = self._object_path(key)
        if not path.is_file():
            raise BlobNotFound(key)

        def _iter() -> Iterator[bytes]:
            with path.open("rb") as fh:
                while chunk := fh.read(CHUNK_SIZE):
                    yield chunk

        return _iter()

    def exists(self, key: str) -> bool:
        return self._object_path(key).is_file()

    def size(self, key: str) -> int:
        path = self._object_path(key)
        if not path.is_file():
            raise BlobNotFound(key)
        return path.stat().st_size

    def delete(self, key: str) -> None:
        path = self._object_path(key)
        if path.exists():
            path.unlink()

    def write_bytes(self, key: str, data: bytes) -> None:
        path = self._object_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def ping(self) -> None:
        if not self.base_path.is_dir():
            raise InfrastructureFault(f"{self.base_path} is not a directory", component="blobs")


class S3BlobStore:
    """Blob store backed by an S3-compatible bucket."""

    backend = "s3"

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3BlobStore":
        if not settings.s3_bucket:
            raise ValueError("No S3 bucket configured. Set 's3_bucket' or use blob_backend = 'local'.")
        client = boto3.client(
            "s3",
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
            endpoint_url=settings.s3_endpoint_url,
            region_name=settings.s3_region,
            config=BotoConfig(
                signature_version="s3v4",
                s3={"addressing_style": "path" if settings.s3_use_path_style else "virtual"},
            ),
        )
        return cls(client, settings.s3_bucket)

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in ("404", "NoSuchKey", "NotFound")

    def read_bytes(self, key: str) -> Iterator[bytes]:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise BlobNotFound(key) from exc
            raise InfrastructureFault(f"get_object failed for {key}", component="blobs") from exc
        except BotoCoreError as exc:
            raise InfrastructureFault(f"get_object failed for {key}", component="blobs") from exc
        body = obj["Body"]

        def _iter() -> Iterator[bytes]:
            try:
                while chunk := body.read(CHUNK_SIZE):
                    yield chunk
            finally:
                body.close()

        return _iter()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise InfrastructureFault(f"head_object failed for {key}", component="blobs") from exc
        except BotoCoreError as exc:
            raise InfrastructureFault(f"head_object failed for {key}", component="blobs") from exc

    def size(self, key: str) -> int:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise BlobNotFound(key) from exc
            raise InfrastructureFault(f"head_object failed for {key}", component="blobs") from exc
        except BotoCoreError as exc:
            raise InfrastructureFault(f"head_object failed for {key}", component="blobs") from exc
        return int(head["ContentLength"])

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureFault(f"delete_object failed for {key}", component="blobs") from exc

    def ping(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as exc:
            raise InfrastructureFault(f"bucket {self.bucket} unreachable", component="blobs") from exc


_blob_store = None


def build_blob_store(settings: Settings):
    backend = (settings.blob_backend or "local").lower()
    if backend == "local":
        return LocalBlobStore(settings.blob_base_path)
    if backend == "s3":
        return S3BlobStore.from_settings(settings)
    raise ValueError(f"Unknown blob backend '{settings.blob_backend}'")


def get_blob_store():
    global _blob_store
    if _blob_store is None:
        _blob_store = build_blob_store(get_settings())
        logger.info(f"Using {_blob_store.backend} blob store")
    return _blob_store


@on_reload
def _reset_blob_store(_settings) -> None:
    global _blob_store
    _blob_store = None
