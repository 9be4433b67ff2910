"""Object storage client interface for Strata.

``ObjectStorageProvider`` talks to buckets only through ``ObjectClient``:

- Boto3ObjectClient: AWS S3 and S3-compatible services (MinIO etc.)
- InMemoryObjectClient: versioned in-process fake for tests and local use

Clients raise ``ObjectNotFoundError`` for missing buckets, keys and
versions, and ``StorageBackendError`` for everything else. Operation and
scope context is filled in by the provider.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from strata.storage.config import StorageConfig
from strata.storage.errors import ObjectNotFoundError, StorageBackendError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchVersion", "NoSuchBucket"})

_PRESIGN_ACTIONS = {"get": "get_object", "put": "put_object"}


@dataclass(frozen=True)
class PutResult:
    """Result of an upload."""

    etag: str | None
    version_id: str | None


@dataclass(frozen=True)
class ObjectHead:
    """Object attributes returned by a lightweight existence probe."""

    key: str
    size: int
    content_type: str | None
    etag: str | None
    last_modified: datetime | None
    version_id: str | None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectBody:
    """Object content plus its attributes."""

    content: bytes
    head: ObjectHead


@dataclass(frozen=True)
class ObjectSummary:
    """One entry of a prefix listing."""

    key: str
    size: int
    etag: str | None
    last_modified: datetime | None


@dataclass(frozen=True)
class ObjectVersion:
    """One stored version of a key (delete markers are not reported)."""

    key: str
    version_id: str
    is_latest: bool
    last_modified: datetime | None
    size: int
    etag: str | None


class ObjectClient(ABC):
    """Minimal S3 operation set used by the object provider."""

    @abstractmethod
    def ensure_bucket(self, bucket: str, *, versioning: bool = True) -> None:
        """Create the bucket if missing, enabling versioning on creation."""
        ...

    @abstractmethod
    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        """Upload an object and return its etag and version id."""
        ...

    @abstractmethod
    def get_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectBody:
        """Download the latest (or a specific) version of an object."""
        ...

    @abstractmethod
    def head_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectHead:
        """Return object attributes without downloading content."""
        ...

    @abstractmethod
    def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object. Deleting a missing key succeeds."""
        ...

    @abstractmethod
    def list_objects(self, bucket: str, prefix: str, *, max_keys: int) -> list[ObjectSummary]:
        """List up to ``max_keys`` objects under ``prefix``, ordered by key."""
        ...

    @abstractmethod
    def list_object_versions(self, bucket: str, key: str) -> list[ObjectVersion]:
        """List versions of exactly ``key``, newest first."""
        ...

    @abstractmethod
    def copy_object(
        self,
        bucket: str,
        source_key: str,
        dest_key: str,
        *,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        """Copy the latest version of ``source_key`` to ``dest_key`` in the same bucket."""
        ...

    @abstractmethod
    def presigned_url(self, bucket: str, key: str, *, method: str, expires_in: int) -> str:
        """Return a URL granting ``method`` ("get" or "put") on the key for ``expires_in`` seconds."""
        ...


def _strip_etag(etag: str | None) -> str | None:
    return etag.strip('"') if etag else etag


class Boto3ObjectClient(ObjectClient):
    """S3 client backed by boto3.

    Compatible with AWS S3, MinIO and other S3-compatible services.
    """

    def __init__(self, config: StorageConfig, client: Any | None = None) -> None:
        """Initialize the client.

        Args:
            config: Storage configuration (region, endpoint, credentials,
                retry and timeout settings).
            client: Pre-built boto3 S3 client. Built from ``config`` when None.
        """
        self._region = config.s3_region
        if client is None:
            botocore_config = Config(
                region_name=config.s3_region,
                signature_version="s3v4",
                retries={"max_attempts": config.s3_max_attempts, "mode": "standard"},
                connect_timeout=config.s3_timeout_seconds,
                read_timeout=config.s3_timeout_seconds,
            )
            client = boto3.client(
                "s3",
                endpoint_url=config.s3_endpoint_url,
                aws_access_key_id=config.s3_access_key,
                aws_secret_access_key=config.s3_secret_key,
                config=botocore_config,
            )
        self._client = client

    @property
    def client(self) -> Any:
        """Return the underlying boto3 client."""
        return self._client

    def _translate(
        self,
        error: Exception,
        *,
        action: str,
        bucket: str,
        key: str | None = None,
        version_id: str | None = None,
    ) -> Exception:
        """Map a botocore exception to a storage exception."""
        if isinstance(error, ClientError):
            code = str(error.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES or (code == "InvalidArgument" and version_id):
                return ObjectNotFoundError(
                    message=f"Object not found: s3://{bucket}/{key or ''}",
                    path=key,
                    version=version_id,
                )
            logger.error("S3 %s failed for s3://%s/%s: %s", action, bucket, key or "", code)
            return StorageBackendError(
                message=f"S3 {action} failed ({code}): {error}",
                path=key,
                cause=error,
            )
        logger.error("S3 %s failed for s3://%s/%s: %s", action, bucket, key or "", error)
        return StorageBackendError(message=f"S3 {action} failed: {error}", path=key, cause=error)

    def ensure_bucket(self, bucket: str, *, versioning: bool = True) -> None:
        try:
            self._client.head_bucket(Bucket=bucket)
            return
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code not in _NOT_FOUND_CODES:
                raise self._translate(e, action="head_bucket", bucket=bucket) from e
        except BotoCoreError as e:
            raise self._translate(e, action="head_bucket", bucket=bucket) from e

        try:
            if self._region == "us-east-1":
                self._client.create_bucket(Bucket=bucket)
            else:
                self._client.create_bucket(
                    Bucket=bucket,
                    CreateBucketConfiguration={"LocationConstraint": self._region},
                )
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code != "BucketAlreadyOwnedByYou":
                raise self._translate(e, action="create_bucket", bucket=bucket) from e
        except BotoCoreError as e:
            raise self._translate(e, action="create_bucket", bucket=bucket) from e
        logger.info("Created bucket: %s", bucket)

        if versioning:
            try:
                self._client.put_bucket_versioning(
                    Bucket=bucket,
                    VersioningConfiguration={"Status": "Enabled"},
                )
                logger.info("Versioning enabled: %s", bucket)
            except (ClientError, BotoCoreError) as e:
                logger.warning("Failed to enable versioning on %s: %s", bucket, e)

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "Body": data,
            "ContentType": content_type,
        }
        if metadata:
            params["Metadata"] = dict(metadata)
        if encryption:
            params["ServerSideEncryption"] = encryption
            if kms_key_id:
                params["SSEKMSKeyId"] = kms_key_id

        try:
            response = self._client.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="put_object", bucket=bucket, key=key) from e
        return PutResult(etag=_strip_etag(response.get("ETag")), version_id=response.get("VersionId"))

    def _head_from_response(self, key: str, response: Mapping[str, Any]) -> ObjectHead:
        return ObjectHead(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            etag=_strip_etag(response.get("ETag")),
            last_modified=response.get("LastModified"),
            version_id=response.get("VersionId"),
            metadata=dict(response.get("Metadata") or {}),
        )

    def get_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectBody:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        try:
            response = self._client.get_object(**params)
            content = response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(
                e, action="get_object", bucket=bucket, key=key, version_id=version_id
            ) from e
        return ObjectBody(content=content, head=self._head_from_response(key, response))

    def head_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectHead:
        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        try:
            response = self._client.head_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(
                e, action="head_object", bucket=bucket, key=key, version_id=version_id
            ) from e
        return self._head_from_response(key, response)

    def delete_object(self, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="delete_object", bucket=bucket, key=key) from e

    def list_objects(self, bucket: str, prefix: str, *, max_keys: int) -> list[ObjectSummary]:
        summaries: list[ObjectSummary] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            pages = paginator.paginate(
                Bucket=bucket,
                Prefix=prefix,
                PaginationConfig={"MaxItems": max_keys},
            )
            for page in pages:
                for obj in page.get("Contents", []):
                    summaries.append(
                        ObjectSummary(
                            key=obj["Key"],
                            size=int(obj.get("Size", 0)),
                            etag=_strip_etag(obj.get("ETag")),
                            last_modified=obj.get("LastModified"),
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="list_objects", bucket=bucket, key=prefix) from e

        summaries.sort(key=lambda s: s.key)
        return summaries[:max_keys]

    def list_object_versions(self, bucket: str, key: str) -> list[ObjectVersion]:
        versions: list[ObjectVersion] = []
        try:
            paginator = self._client.get_paginator("list_object_versions")
            for page in paginator.paginate(Bucket=bucket, Prefix=key):
                for version in page.get("Versions", []):
                    if version["Key"] != key:
                        continue
                    versions.append(
                        ObjectVersion(
                            key=key,
                            version_id=version["VersionId"],
                            is_latest=bool(version.get("IsLatest", False)),
                            last_modified=version.get("LastModified"),
                            size=int(version.get("Size", 0)),
                            etag=_strip_etag(version.get("ETag")),
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="list_object_versions", bucket=bucket, key=key) from e

        # Newest first; the latest version wins timestamp ties.
        versions.sort(
            key=lambda v: (v.last_modified or datetime.min.replace(tzinfo=UTC), v.is_latest),
            reverse=True,
        )
        return versions

    def copy_object(
        self,
        bucket: str,
        source_key: str,
        dest_key: str,
        *,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": dest_key,
            "CopySource": {"Bucket": bucket, "Key": source_key},
        }
        if encryption:
            params["ServerSideEncryption"] = encryption
            if kms_key_id:
                params["SSEKMSKeyId"] = kms_key_id

        try:
            response = self._client.copy_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="copy_object", bucket=bucket, key=source_key) from e
        copied = response.get("CopyObjectResult") or {}
        return PutResult(etag=_strip_etag(copied.get("ETag")), version_id=response.get("VersionId"))

    def presigned_url(self, bucket: str, key: str, *, method: str, expires_in: int) -> str:
        try:
            return self._client.generate_presigned_url(
                _PRESIGN_ACTIONS[method],
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, action="generate_presigned_url", bucket=bucket, key=key) from e


@dataclass
class _MemoryVersion:
    version_id: str
    content: bytes
    content_type: str
    metadata: dict[str, str]
    last_modified: datetime
    etag: str
    delete_marker: bool = False


class InMemoryObjectClient(ObjectClient):
    """Versioned in-memory object store.

    Mirrors S3 semantics: versioned buckets keep every upload and turn
    deletes into delete markers; unversioned buckets keep one object per
    key. Thread-safe. Operations listed in ``failing_operations`` raise
    ``StorageBackendError``, to exercise failure paths.
    """

    def __init__(self, *, auto_create_buckets: bool = False) -> None:
        self._buckets: dict[str, dict[str, list[_MemoryVersion]]] = {}
        self._versioned: dict[str, bool] = {}
        self._lock = threading.Lock()
        self._auto_create = auto_create_buckets
        self.failing_operations: set[str] = set()
        self.calls: list[tuple[str, str, str | None]] = []

    def fail_on(self, *operations: str) -> None:
        """Make the named client operations raise StorageBackendError."""
        self.failing_operations.update(operations)

    def recover(self) -> None:
        """Clear all injected failures."""
        self.failing_operations.clear()

    @property
    def buckets(self) -> list[str]:
        """Return the names of existing buckets."""
        with self._lock:
            return sorted(self._buckets)

    def _enter(self, operation: str, bucket: str, key: str | None = None) -> None:
        self.calls.append((operation, bucket, key))
        if operation in self.failing_operations:
            raise StorageBackendError(message=f"Injected failure: {operation}", path=key)

    def _bucket(self, bucket: str, key: str | None = None) -> dict[str, list[_MemoryVersion]]:
        objects = self._buckets.get(bucket)
        if objects is None:
            if not self._auto_create:
                raise ObjectNotFoundError(message=f"Bucket not found: {bucket}", path=key)
            objects = self._buckets[bucket] = {}
            self._versioned[bucket] = True
        return objects

    def _latest(self, bucket: str, key: str) -> _MemoryVersion:
        history = self._bucket(bucket, key).get(key)
        if not history or history[-1].delete_marker:
            raise ObjectNotFoundError(message=f"Object not found: s3://{bucket}/{key}", path=key)
        return history[-1]

    def _find(self, bucket: str, key: str, version_id: str | None) -> _MemoryVersion:
        if version_id is None:
            return self._latest(bucket, key)
        for version in self._bucket(bucket, key).get(key, []):
            if version.version_id == version_id and not version.delete_marker:
                return version
        raise ObjectNotFoundError(
            message=f"Version not found: s3://{bucket}/{key}?versionId={version_id}",
            path=key,
            version=version_id,
        )

    @staticmethod
    def _head(key: str, version: _MemoryVersion, versioned: bool) -> ObjectHead:
        return ObjectHead(
            key=key,
            size=len(version.content),
            content_type=version.content_type,
            etag=version.etag,
            last_modified=version.last_modified,
            version_id=version.version_id if versioned else None,
            metadata=dict(version.metadata),
        )

    def ensure_bucket(self, bucket: str, *, versioning: bool = True) -> None:
        with self._lock:
            self._enter("ensure_bucket", bucket)
            if bucket not in self._buckets:
                self._buckets[bucket] = {}
                self._versioned[bucket] = versioning
                logger.debug("Created in-memory bucket %s (versioning=%s)", bucket, versioning)

    def put_object(
        self,
        bucket: str,
        key: str,
        data: bytes,
        *,
        content_type: str,
        metadata: Mapping[str, str] | None = None,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        with self._lock:
            self._enter("put_object", bucket, key)
            objects = self._buckets.get(bucket)
            if objects is None and not self._auto_create:
                raise StorageBackendError(message=f"NoSuchBucket: {bucket}", path=key)
            objects = self._bucket(bucket, key)
            versioned = self._versioned.get(bucket, True)
            version = _MemoryVersion(
                version_id=uuid.uuid4().hex if versioned else "null",
                content=bytes(data),
                content_type=content_type,
                metadata=dict(metadata or {}),
                last_modified=datetime.now(UTC),
                etag=hashlib.md5(data, usedforsecurity=False).hexdigest(),
            )
            if versioned:
                objects.setdefault(key, []).append(version)
            else:
                objects[key] = [version]
            return PutResult(etag=version.etag, version_id=version.version_id if versioned else None)

    def get_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectBody:
        with self._lock:
            self._enter("get_object", bucket, key)
            version = self._find(bucket, key, version_id)
            head = self._head(key, version, self._versioned.get(bucket, True))
            return ObjectBody(content=version.content, head=head)

    def head_object(self, bucket: str, key: str, *, version_id: str | None = None) -> ObjectHead:
        with self._lock:
            self._enter("head_object", bucket, key)
            version = self._find(bucket, key, version_id)
            return self._head(key, version, self._versioned.get(bucket, True))

    def delete_object(self, bucket: str, key: str) -> None:
        with self._lock:
            self._enter("delete_object", bucket, key)
            objects = self._buckets.get(bucket)
            if objects is None:
                return
            history = objects.get(key)
            if not history or history[-1].delete_marker:
                return
            if self._versioned.get(bucket, True):
                history.append(
                    _MemoryVersion(
                        version_id=uuid.uuid4().hex,
                        content=b"",
                        content_type="",
                        metadata={},
                        last_modified=datetime.now(UTC),
                        etag="",
                        delete_marker=True,
                    )
                )
            else:
                del objects[key]

    def list_objects(self, bucket: str, prefix: str, *, max_keys: int) -> list[ObjectSummary]:
        with self._lock:
            self._enter("list_objects", bucket, prefix)
            objects = self._buckets.get(bucket, {})
            summaries = [
                ObjectSummary(
                    key=key,
                    size=len(history[-1].content),
                    etag=history[-1].etag,
                    last_modified=history[-1].last_modified,
                )
                for key, history in objects.items()
                if key.startswith(prefix) and history and not history[-1].delete_marker
            ]
        summaries.sort(key=lambda s: s.key)
        return summaries[:max_keys]

    def list_object_versions(self, bucket: str, key: str) -> list[ObjectVersion]:
        with self._lock:
            self._enter("list_object_versions", bucket, key)
            history = self._buckets.get(bucket, {}).get(key, [])
            newest = len(history) - 1
            return [
                ObjectVersion(
                    key=key,
                    version_id=version.version_id,
                    is_latest=index == newest,
                    last_modified=version.last_modified,
                    size=len(version.content),
                    etag=version.etag,
                )
                for index, version in reversed(list(enumerate(history)))
                if not version.delete_marker
            ]

    def copy_object(
        self,
        bucket: str,
        source_key: str,
        dest_key: str,
        *,
        encryption: str | None = None,
        kms_key_id: str | None = None,
    ) -> PutResult:
        with self._lock:
            self._enter("copy_object", bucket, dest_key)
            source = self._latest(bucket, source_key)
            versioned = self._versioned.get(bucket, True)
            copy = _MemoryVersion(
                version_id=uuid.uuid4().hex if versioned else "null",
                content=source.content,
                content_type=source.content_type,
                metadata=dict(source.metadata),
                last_modified=datetime.now(UTC),
                etag=source.etag,
            )
            objects = self._bucket(bucket, dest_key)
            if versioned:
                objects.setdefault(dest_key, []).append(copy)
            else:
                objects[dest_key] = [copy]
            return PutResult(etag=copy.etag, version_id=copy.version_id if versioned else None)

    def presigned_url(self, bucket: str, key: str, *, method: str, expires_in: int) -> str:
        with self._lock:
            self._enter("presigned_url", bucket, key)
        return f"memory://{bucket}/{key}?method={method}&expires_in={expires_in}"
