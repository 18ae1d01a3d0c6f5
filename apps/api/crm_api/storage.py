"""Blob storage backends for entity attachments."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import boto3
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from crm_api.core.config import Settings, get_settings
from crm_api.core.errors import DependencyError

logger = logging.getLogger("crm_api.storage")


@dataclass(frozen=True)
class StoredBlob:
    storage_id: str
    url: str


class BlobStore(Protocol):
    def put(self, key: str, content: bytes, content_type: str | None) -> StoredBlob: ...

    def delete(self, storage_id: str) -> None: ...

    def url_for(self, storage_id: str) -> str: ...


class LocalBlobStore:
    def __init__(self, root: str | Path, base_url: str = "/files") -> None:
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _path(self, storage_id: str) -> Path:
        path = (self.root / storage_id).resolve()
        if self.root.resolve() not in path.parents:
            raise DependencyError(f"storage id escapes storage root: {storage_id}")
        return path

    def put(self, key: str, content: bytes, content_type: str | None) -> StoredBlob:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as exc:
            raise DependencyError(f"failed to store blob {key}: {exc}") from exc
        return StoredBlob(storage_id=key, url=self.url_for(key))

    def delete(self, storage_id: str) -> None:
        path = self._path(storage_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise DependencyError(f"failed to delete blob {storage_id}: {exc}") from exc

    def url_for(self, storage_id: str) -> str:
        return f"{self.base_url}/{storage_id}"

    def exists(self, storage_id: str) -> bool:
        return self._path(storage_id).exists()


def get_s3_client(settings: Settings) -> BaseClient:
    endpoint_url = settings.s3_endpoint_url.rstrip("/") if settings.s3_endpoint_url else None
    return boto3.client(
        "s3",
        region_name=settings.s3_region or None,
        aws_access_key_id=settings.aws_access_key_id or None,
        aws_secret_access_key=settings.aws_secret_access_key or None,
        endpoint_url=endpoint_url,
    )


class S3BlobStore:
    def __init__(self, client: BaseClient, bucket: str, *, url_expires_seconds: int = 3600) -> None:
        self.client = client
        self.bucket = bucket
        self.url_expires_seconds = url_expires_seconds

    def put(self, key: str, content: bytes, content_type: str | None) -> StoredBlob:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=content, **extra)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"failed to upload {key} to s3: {exc}") from exc
        return StoredBlob(storage_id=key, url=self.url_for(key))

    def delete(self, storage_id: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=storage_id)
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"failed to delete {storage_id} from s3: {exc}") from exc

    def url_for(self, storage_id: str) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": storage_id},
                ExpiresIn=self.url_expires_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise DependencyError(f"failed to sign url for {storage_id}: {exc}") from exc


@lru_cache
def _build_blob_store(backend: str) -> BlobStore:
    settings = get_settings()
    if backend == "s3":
        logger.info("storage.backend_selected", extra={"status": "s3"})
        return S3BlobStore(get_s3_client(settings), settings.s3_bucket)
    logger.info("storage.backend_selected", extra={"status": "local"})
    return LocalBlobStore(settings.local_storage_path, settings.local_storage_base_url)


def get_blob_store() -> BlobStore:
    return _build_blob_store(get_settings().storage_backend.lower())
