"""Object store adapter.

The rest of the application only talks to the :class:`ObjectStore` protocol.
:class:`S3Store` implements it on top of a boto3 S3 client, which covers AWS S3
as well as S3-compatible services (Cloudflare R2, MinIO) through
``endpoint_url``.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from typing import Iterator, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from bucket_manager.errors import InternalError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
DELETE_BATCH = 1000
_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


class StoreError(InternalError):
    pass


@dataclass
class ObjectInfo:
    key: str
    size: int
    uploaded: datetime.datetime | None = None
    etag: str | None = None
    content_type: str | None = None

    def to_json(self) -> dict:
        return {
            "key": self.key,
            "size": self.size,
            "uploaded": self.uploaded.isoformat() if self.uploaded else None,
            "etag": self.etag,
            "httpMetadata": {"contentType": self.content_type} if self.content_type else {},
        }


@dataclass
class StoredObject:
    key: str
    body: bytes
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    etag: str | None = None
    uploaded: datetime.datetime | None = None

    @property
    def size(self) -> int:
        return len(self.body)


class ObjectStore(Protocol):
    def list(self, prefix: str = "", limit: int | None = None) -> list[ObjectInfo]:
        """Return every object whose key starts with ``prefix``, in key order."""

    def head(self, key: str) -> ObjectInfo | None:
        """Return object info, or None when the key does not exist."""

    def get(self, key: str) -> StoredObject | None:
        """Read a whole object, or None when the key does not exist."""

    def open(self, key: str) -> tuple[ObjectInfo, Iterator[bytes]] | None:
        """Stream an object as chunks, or None when the key does not exist."""

    def put(self, key: str, body: bytes, content_type: str | None = None, metadata: dict[str, str] | None = None) -> None:
        """Create or overwrite ``key``."""

    def delete(self, keys: list[str]) -> None:
        """Delete ``keys``; missing keys are ignored."""

    def copy(self, src_key: str, dst_key: str) -> bool:
        """Copy content and metadata; False when ``src_key`` does not exist."""


def _is_missing(exc: ClientError) -> bool:
    error = (exc.response or {}).get("Error") or {}
    return str(error.get("Code") or "") in _MISSING_CODES


def _clean_etag(raw: str | None) -> str | None:
    return raw.strip('"') if raw else raw


def build_s3_client(settings):
    config = Config(
        connect_timeout=settings.store_timeout,
        read_timeout=settings.store_timeout,
        retries={"max_attempts": 3, "mode": "standard"},
        s3={"addressing_style": "path" if settings.endpoint_url else "auto"},
    )
    return boto3.client(
        "s3",
        endpoint_url=settings.endpoint_url or None,
        region_name=settings.region or None,
        aws_access_key_id=settings.access_key or None,
        aws_secret_access_key=settings.secret_key or None,
        config=config,
    )


class S3Store:
    def __init__(self, client, bucket: str, page_size: int = 1000) -> None:
        self._client = client
        self.bucket = bucket
        self.page_size = page_size

    def list(self, prefix: str = "", limit: int | None = None) -> list[ObjectInfo]:
        objects: list[ObjectInfo] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(
                Bucket=self.bucket,
                Prefix=prefix or "",
                PaginationConfig={"PageSize": self.page_size},
            ):
                for obj in page.get("Contents", []) or []:
                    objects.append(
                        ObjectInfo(
                            key=obj["Key"],
                            size=obj.get("Size", 0),
                            uploaded=obj.get("LastModified"),
                            etag=_clean_etag(obj.get("ETag")),
                        )
                    )
                    if limit is not None and len(objects) >= limit:
                        return objects
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"List failed for prefix {prefix!r}: {exc}") from exc
        return objects

    def head(self, key: str) -> ObjectInfo | None:
        try:
            resp = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise StoreError(f"Head failed for {key!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Head failed for {key!r}: {exc}") from exc
        return ObjectInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            uploaded=resp.get("LastModified"),
            etag=_clean_etag(resp.get("ETag")),
            content_type=resp.get("ContentType"),
        )

    def _get_object(self, key: str):
        try:
            return self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                return None
            raise StoreError(f"Get failed for {key!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Get failed for {key!r}: {exc}") from exc

    def get(self, key: str) -> StoredObject | None:
        resp = self._get_object(key)
        if resp is None:
            return None
        return StoredObject(
            key=key,
            body=resp["Body"].read(),
            content_type=resp.get("ContentType"),
            metadata=dict(resp.get("Metadata") or {}),
            etag=_clean_etag(resp.get("ETag")),
            uploaded=resp.get("LastModified"),
        )

    def open(self, key: str) -> tuple[ObjectInfo, Iterator[bytes]] | None:
        resp = self._get_object(key)
        if resp is None:
            return None
        info = ObjectInfo(
            key=key,
            size=resp.get("ContentLength", 0),
            uploaded=resp.get("LastModified"),
            etag=_clean_etag(resp.get("ETag")),
            content_type=resp.get("ContentType"),
        )
        body = resp["Body"]

        def chunks():
            try:
                while True:
                    chunk = body.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    yield chunk
            finally:
                body.close()

        return info, chunks()

    def put(self, key: str, body: bytes, content_type: str | None = None, metadata: dict[str, str] | None = None) -> None:
        args = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            args["ContentType"] = content_type
        if metadata:
            args["Metadata"] = dict(metadata)
        try:
            self._client.put_object(**args)
        except (ClientError, BotoCoreError) as exc:
            raise StoreError(f"Put failed for {key!r}: {exc}") from exc

    def delete(self, keys: list[str]) -> None:
        keys = [k for k in keys if k]
        for start in range(0, len(keys), DELETE_BATCH):
            chunk = keys[start : start + DELETE_BATCH]
            try:
                resp = self._client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in chunk], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as exc:
                raise StoreError(f"Delete failed for {len(chunk)} keys: {exc}") from exc
            errors = resp.get("Errors") or []
            if errors:
                failed = [e.get("Key") for e in errors]
                raise StoreError(f"Delete failed for keys {failed}", failed=failed)

    def copy(self, src_key: str, dst_key: str) -> bool:
        try:
            self._client.copy_object(
                Bucket=self.bucket,
                CopySource={"Bucket": self.bucket, "Key": src_key},
                Key=dst_key,
                MetadataDirective="COPY",
            )
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise StoreError(f"Copy failed {src_key!r} -> {dst_key!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise StoreError(f"Copy failed {src_key!r} -> {dst_key!r}: {exc}") from exc
        return True
