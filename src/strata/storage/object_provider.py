"""Object storage provider for Strata.

One bucket per team (``"<bucket_prefix>-<team_id>"`` unless the caller
names one), with deterministic keys:

    teams/{team_id}/workspaces/{workspace_id}/{logical_path}

Native bucket versioning is authoritative for version history. When the
bucket does not version, a generated version id is returned instead.
"""

from __future__ import annotations

import builtins
import logging
import uuid
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote, unquote

from strata.storage.config import StorageConfig
from strata.storage.contract import (
    OptionsLike,
    WorkspaceStorage,
    build_metadata,
    compute_checksum,
    ensure_bytes,
    infer_mime_type,
    validate_options,
    validate_path,
)
from strata.storage.errors import (
    ObjectNotFoundError,
    StorageError,
    StorageValidationError,
    UnsupportedSyncError,
)
from strata.storage.models import (
    Backend,
    StorageOptions,
    StoredObject,
    StoredObjectMetadata,
    SyncResult,
    VersionEntry,
)
from strata.storage.object_client import Boto3ObjectClient, ObjectBody, ObjectClient, ObjectHead
from strata.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

META_AUTHOR = "author"
META_WORKSPACE_ID = "workspace-id"
META_TEAM_ID = "team-id"
META_UPLOADED_AT = "uploaded-at"
META_SHA256 = "sha256"
META_MESSAGE = "message"

PRESIGN_METHODS = ("get", "put")
DEFAULT_PRESIGN_EXPIRY_SECONDS = 3600

# S3 user metadata must be ASCII.
_META_SAFE_CHARS = " /:@-_.~,;=+()"


def _encode_meta(value: str) -> str:
    return quote(value, safe=_META_SAFE_CHARS)


def _decode_meta(metadata: Mapping[str, str], name: str) -> str | None:
    value = metadata.get(name)
    return unquote(value) if value is not None else None


def object_key(team_id: str, workspace_id: str, path: str) -> str:
    """Return the object key of a logical path."""
    return f"{workspace_prefix(team_id, workspace_id)}{path}"


def workspace_prefix(team_id: str, workspace_id: str) -> str:
    """Return the key prefix shared by every object of a workspace."""
    return f"teams/{team_id}/workspaces/{workspace_id}/"


class ObjectStorageProvider(WorkspaceStorage):
    """S3-compatible workspace storage.

    Suited to large and binary artifacts. All bucket access goes through an
    ``ObjectClient``, so tests can run against ``InMemoryObjectClient``.
    """

    def __init__(self, config: StorageConfig, client: ObjectClient | None = None) -> None:
        """Initialize the object provider.

        Args:
            config: Storage configuration (bucket prefix, encryption, listing bound).
            client: Object client. Defaults to a Boto3ObjectClient built from ``config``.
        """
        self._config = config
        self._client = client or Boto3ObjectClient(config)

    @property
    def backend(self) -> Backend:
        return Backend.OBJECT

    @property
    def client(self) -> ObjectClient:
        """Return the underlying object client."""
        return self._client

    def bucket_for(self, opts: StorageOptions) -> str:
        """Return the bucket for an operation: explicit override or the team default."""
        return opts.bucket or self._config.bucket_for_team(str(opts.team_id))

    @contextmanager
    def _error_context(self, operation: str, opts: StorageOptions, path: str) -> Iterator[None]:
        """Attach operation and scope context to client errors."""
        try:
            yield
        except StorageError as e:
            e.operation = e.operation or operation
            e.path = path
            e.team_id = e.team_id or opts.team_id
            e.workspace_id = e.workspace_id or opts.workspace_id
            raise

    # ------------------------------------------------------------------
    # building blocks
    # ------------------------------------------------------------------

    def _put(
        self,
        opts: StorageOptions,
        path: str,
        data: bytes,
        *,
        bucket: str,
        operation: str,
        message: str | None = None,
    ) -> StoredObjectMetadata:
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)
        author = opts.author or self._config.default_author
        now = datetime.now(UTC)
        content_type = opts.content_type or infer_mime_type(path)

        user_metadata = {
            META_AUTHOR: _encode_meta(author),
            META_WORKSPACE_ID: str(opts.workspace_id),
            META_TEAM_ID: str(opts.team_id),
            META_UPLOADED_AT: now.isoformat(),
            META_SHA256: compute_checksum(data),
        }
        if message:
            user_metadata[META_MESSAGE] = _encode_meta(message)

        with self._error_context(operation, opts, path):
            self._client.ensure_bucket(bucket, versioning=opts.enable_versioning)
            result = self._client.put_object(
                bucket,
                key,
                data,
                content_type=content_type,
                metadata=user_metadata,
                encryption=self._config.s3_encryption,
                kms_key_id=self._config.s3_kms_key_id,
            )

        backend_specific: dict[str, Any] = {
            "bucket": bucket,
            "key": key,
            "etag": result.etag,
            "is_latest": True,
        }
        version = result.version_id
        if not version:
            version = uuid.uuid4().hex
            backend_specific["generated_version"] = True
            logger.debug("Bucket %s returned no version id; generated %s", bucket, version)

        logger.info("Uploaded %s to s3://%s/%s (%d bytes)", path, bucket, key, len(data))
        return build_metadata(
            path,
            data,
            backend=Backend.OBJECT,
            version=version,
            author=author,
            last_modified=now,
            content_type=content_type,
            backend_specific=backend_specific,
        )

    def _metadata_from_head(
        self,
        path: str,
        bucket: str,
        head: ObjectHead,
        *,
        content: bytes | None = None,
        requested_version: str | None = None,
    ) -> StoredObjectMetadata:
        backend_specific: dict[str, Any] = {"bucket": bucket, "key": head.key, "etag": head.etag}
        if requested_version is None:
            backend_specific["is_latest"] = True
        message = _decode_meta(head.metadata, META_MESSAGE)
        if message:
            backend_specific["message"] = message

        if content is not None:
            checksum: str | None = compute_checksum(content)
            size = len(content)
        else:
            checksum = head.metadata.get(META_SHA256)
            size = head.size

        return StoredObjectMetadata(
            path=path,
            mime_type=head.content_type or infer_mime_type(path),
            size=size,
            checksum=checksum,
            version=head.version_id or requested_version,
            last_modified=head.last_modified,
            author=_decode_meta(head.metadata, META_AUTHOR),
            backend=Backend.OBJECT,
            backend_specific=backend_specific,
        )

    def _get(
        self,
        opts: StorageOptions,
        path: str,
        *,
        bucket: str,
        version: str | None,
        operation: str,
    ) -> StoredObject:
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)
        with self._error_context(operation, opts, path):
            body: ObjectBody = self._client.get_object(bucket, key, version_id=version)
        metadata = self._metadata_from_head(
            path, bucket, body.head, content=body.content, requested_version=version
        )
        return StoredObject(content=body.content, metadata=metadata)

    # ------------------------------------------------------------------
    # contract operations
    # ------------------------------------------------------------------

    @traced_storage_operation("store")
    def store(
        self,
        path: str,
        content: bytes,
        options: OptionsLike = None,
    ) -> StoredObjectMetadata:
        """Upload content under the workspace key of ``path``.

        Raises:
            StorageValidationError: If options or path are invalid.
            StorageBackendError: If the bucket or upload fails.
        """
        path = validate_path(path, operation="store")
        opts = validate_options(options, operation="store", path=path)
        return self._put(
            opts, path, ensure_bytes(content), bucket=self.bucket_for(opts), operation="store"
        )

    @traced_storage_operation("retrieve")
    def retrieve(self, path: str, options: OptionsLike = None) -> StoredObject:
        """Download the latest object, or ``options.version`` when set."""
        path = validate_path(path, operation="retrieve")
        opts = validate_options(options, operation="retrieve", path=path)
        return self._get(
            opts, path, bucket=self.bucket_for(opts), version=opts.version, operation="retrieve"
        )

    @traced_storage_operation("delete")
    def delete(self, path: str, options: OptionsLike = None) -> None:
        """Delete the object. Missing objects and buckets are a no-op."""
        path = validate_path(path, operation="delete")
        opts = validate_options(options, operation="delete", path=path)
        bucket = self.bucket_for(opts)
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)

        try:
            with self._error_context("delete", opts, path):
                self._client.delete_object(bucket, key)
        except ObjectNotFoundError:
            logger.debug("Delete of missing s3://%s/%s is a no-op", bucket, key)
            return
        logger.info("Deleted s3://%s/%s", bucket, key)

    @traced_storage_operation("list")
    def list(
        self,
        dir_path: str,
        options: OptionsLike = None,
    ) -> builtins.list[StoredObjectMetadata]:
        """List objects under a directory by key prefix, ordered by path.

        Listings do not download content, so ``checksum`` is None.
        """
        dir_path = validate_path(dir_path, operation="list", allow_empty=True)
        opts = validate_options(options, operation="list", path=dir_path)
        bucket = self.bucket_for(opts)
        base = workspace_prefix(str(opts.team_id), str(opts.workspace_id))
        prefix = f"{base}{dir_path}/" if dir_path else base
        max_keys = opts.max_keys or self._config.default_max_keys

        try:
            with self._error_context("list", opts, dir_path):
                summaries = self._client.list_objects(bucket, prefix, max_keys=max_keys)
        except ObjectNotFoundError:
            return []

        results = [
            StoredObjectMetadata(
                path=summary.key[len(base):],
                mime_type=infer_mime_type(summary.key),
                size=summary.size,
                checksum=None,
                version=None,
                last_modified=summary.last_modified,
                author=None,
                backend=Backend.OBJECT,
                backend_specific={"bucket": bucket, "key": summary.key, "etag": summary.etag},
            )
            for summary in summaries
        ]
        results.sort(key=lambda m: m.path)
        return results

    @traced_storage_operation("exists")
    def exists(self, path: str, options: OptionsLike = None) -> bool:
        """Probe the object with a HEAD request. Never raises."""
        try:
            path = validate_path(path, operation="exists")
            opts = validate_options(options, operation="exists", path=path)
            key = object_key(str(opts.team_id), str(opts.workspace_id), path)
            self._client.head_object(self.bucket_for(opts), key, version_id=opts.version)
            return True
        except StorageError as e:
            logger.debug("exists() treating error as absent: %s", e)
            return False

    @traced_storage_operation("get_metadata")
    def get_metadata(self, path: str, options: OptionsLike = None) -> StoredObjectMetadata:
        """Return object metadata from a HEAD request (no download).

        The checksum is the sha256 recorded at upload time.
        """
        path = validate_path(path, operation="get_metadata")
        opts = validate_options(options, operation="get_metadata", path=path)
        bucket = self.bucket_for(opts)
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)
        with self._error_context("get_metadata", opts, path):
            head = self._client.head_object(bucket, key, version_id=opts.version)
        return self._metadata_from_head(path, bucket, head, requested_version=opts.version)

    @traced_storage_operation("create_version")
    def create_version(
        self,
        path: str,
        content: bytes,
        message: str,
        options: OptionsLike = None,
    ) -> tuple[str, StoredObjectMetadata]:
        """Upload a new version carrying ``message`` in its user metadata."""
        path = validate_path(path, operation="create_version")
        opts = validate_options(options, operation="create_version", path=path)
        metadata = self._put(
            opts,
            path,
            ensure_bytes(content),
            bucket=self.bucket_for(opts),
            operation="create_version",
            message=message or opts.commit_message,
        )
        return str(metadata.version), metadata

    @traced_storage_operation("list_versions")
    def list_versions(
        self,
        path: str,
        options: OptionsLike = None,
    ) -> builtins.list[VersionEntry]:
        """Return native object versions, newest first.

        Each version is probed once for its recorded author and message.
        """
        path = validate_path(path, operation="list_versions")
        opts = validate_options(options, operation="list_versions", path=path)
        bucket = self.bucket_for(opts)
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)

        try:
            with self._error_context("list_versions", opts, path):
                versions = self._client.list_object_versions(bucket, key)
        except ObjectNotFoundError:
            return []

        entries: builtins.list[VersionEntry] = []
        for version in versions:
            author: str | None = None
            message: str | None = None
            try:
                head = self._client.head_object(bucket, key, version_id=version.version_id)
                author = _decode_meta(head.metadata, META_AUTHOR)
                message = _decode_meta(head.metadata, META_MESSAGE)
            except ObjectNotFoundError:
                logger.debug("Version %s of %s vanished while listing", version.version_id, key)
            entries.append(
                VersionEntry(
                    version=version.version_id,
                    author=author,
                    message=message,
                    timestamp=version.last_modified,
                    backend=Backend.OBJECT,
                    size=version.size,
                    is_latest=version.is_latest,
                )
            )
        return entries

    @traced_storage_operation("retrieve_version")
    def retrieve_version(
        self,
        path: str,
        version: str,
        options: OptionsLike = None,
    ) -> StoredObject:
        """Download one explicit native object version."""
        path = validate_path(path, operation="retrieve_version")
        opts = validate_options(options, operation="retrieve_version", path=path)
        if not version:
            raise StorageValidationError(
                "Version id must not be empty", operation="retrieve_version", path=path
            )
        return self._get(
            opts, path, bucket=self.bucket_for(opts), version=version, operation="retrieve_version"
        )

    @traced_storage_operation("copy")
    def copy(
        self,
        source_path: str,
        target_path: str,
        options: OptionsLike = None,
    ) -> StoredObjectMetadata:
        """Copy an object to another path of the same workspace, server side.

        The copy keeps the source's content type and user metadata and
        becomes a new version of ``target_path``.

        Raises:
            StorageValidationError: If a path is invalid or both paths are equal.
            ObjectNotFoundError: If the source object does not exist.
        """
        source_path = validate_path(source_path, operation="copy")
        target_path = validate_path(target_path, operation="copy")
        opts = validate_options(options, operation="copy", path=source_path)
        if source_path == target_path:
            raise StorageValidationError(
                "Source and target path must differ", operation="copy", path=source_path
            )

        bucket = self.bucket_for(opts)
        source_key = object_key(str(opts.team_id), str(opts.workspace_id), source_path)
        target_key = object_key(str(opts.team_id), str(opts.workspace_id), target_path)
        with self._error_context("copy", opts, source_path):
            result = self._client.copy_object(
                bucket,
                source_key,
                target_key,
                encryption=self._config.s3_encryption,
                kms_key_id=self._config.s3_kms_key_id,
            )
        with self._error_context("copy", opts, target_path):
            head = self._client.head_object(bucket, target_key, version_id=result.version_id)

        logger.info("Copied s3://%s/%s to %s", bucket, source_key, target_key)
        return self._metadata_from_head(target_path, bucket, head)

    @traced_storage_operation("generate_presigned_url")
    def generate_presigned_url(
        self,
        path: str,
        options: OptionsLike = None,
        *,
        method: str = "get",
        expires_in: int = DEFAULT_PRESIGN_EXPIRY_SECONDS,
    ) -> str:
        """Return a time-limited URL for direct download ("get") or upload ("put").

        The URL is a bearer credential and is never logged.

        Raises:
            StorageValidationError: If the method is unsupported or the expiry is not positive.
        """
        path = validate_path(path, operation="generate_presigned_url")
        opts = validate_options(options, operation="generate_presigned_url", path=path)
        normalized = method.strip().lower()
        if normalized not in PRESIGN_METHODS:
            raise StorageValidationError(
                f"Unsupported presigned URL method: {method!r}",
                operation="generate_presigned_url",
                path=path,
            )
        if expires_in <= 0:
            raise StorageValidationError(
                f"expires_in must be a positive number of seconds, got {expires_in}",
                operation="generate_presigned_url",
                path=path,
            )

        bucket = self.bucket_for(opts)
        key = object_key(str(opts.team_id), str(opts.workspace_id), path)
        with self._error_context("generate_presigned_url", opts, path):
            url = self._client.presigned_url(bucket, key, method=normalized, expires_in=expires_in)
        logger.debug("Presigned %s for s3://%s/%s, valid %ds", normalized, bucket, key, expires_in)
        return url

    @traced_storage_operation("sync")
    def sync(
        self,
        from_backend: Backend | str,
        to_backend: Backend | str,
        path: str,
        options: OptionsLike = None,
    ) -> SyncResult:
        """Copy an object between buckets.

        Reads from ``options.source_bucket`` (default: the team bucket) and
        writes to ``options.target_bucket``.

        Raises:
            UnsupportedSyncError: Unless both backends are object.
            StorageValidationError: If ``target_bucket`` is missing or equals the source.
            ObjectNotFoundError: If the source object does not exist.
        """
        source_backend = Backend.parse(from_backend)
        target_backend = Backend.parse(to_backend)
        if not (source_backend is Backend.OBJECT and target_backend is Backend.OBJECT):
            raise UnsupportedSyncError(source_backend.value, target_backend.value, path=path)

        path = validate_path(path, operation="sync")
        opts = validate_options(options, operation="sync", path=path)
        source_bucket = opts.source_bucket or self.bucket_for(opts)
        if not opts.target_bucket:
            raise StorageValidationError(
                "Missing required option: target_bucket", operation="sync", path=path
            )
        if opts.target_bucket == source_bucket:
            raise StorageValidationError(
                "Source and target bucket must differ", operation="sync", path=path
            )

        source = self._get(opts, path, bucket=source_bucket, version=opts.version, operation="sync")
        target_metadata = self._put(
            opts.with_changes(author=opts.author or source.metadata.author),
            path,
            source.content,
            bucket=opts.target_bucket,
            operation="sync",
            message=opts.commit_message or f"Sync from {source_bucket}",
        )

        logger.info("Synced %s from bucket %s to %s", path, source_bucket, opts.target_bucket)
        return SyncResult(
            from_backend=Backend.OBJECT,
            to_backend=Backend.OBJECT,
            path=path,
            source_metadata=source.metadata,
            target_metadata=target_metadata,
            synced_at=datetime.now(UTC),
        )
