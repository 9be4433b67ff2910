"""Hybrid storage router for Strata.

Composes a git provider and an object provider behind the same contract:

- Writes go to one backend chosen by ``routing.select_write_backend`` and
  never fall back; a failed write is surfaced as-is.
- Reads start at the backend implied by the path and fall back to the
  other backend on any storage error, tagging the result
  ``retrieved_via_fallback``.
- Git writes of large or important documents are also copied into the
  object backend under ``backups/git/``. Backup failures never fail the
  write; they are counted in ``BackupStats`` and published as events.
- Listings merge both backends, preferring the git entry for a path.
"""

from __future__ import annotations

import builtins
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from strata.storage.config import StorageConfig
from strata.storage.contract import (
    OptionsLike,
    WorkspaceStorage,
    ensure_bytes,
    validate_options,
    validate_path,
)
from strata.storage.errors import (
    ObjectNotFoundError,
    StorageBackendError,
    StorageError,
    StorageValidationError,
    UnsupportedSyncError,
)
from strata.storage.events import (
    EVENT_BACKUP_FAILED,
    EVENT_BACKUP_SUCCEEDED,
    BackupStats,
    LoggingEventSink,
    StorageEventSink,
    build_event,
)
from strata.storage.models import (
    Backend,
    StorageOptions,
    StoredObject,
    StoredObjectMetadata,
    SyncResult,
    VersionEntry,
)
from strata.storage.routing import (
    backup_path,
    is_backup_path,
    other_backend,
    select_read_backend,
    select_write_backend,
    should_backup,
)
from strata.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _tag_fallback(metadata: StoredObjectMetadata, primary: Backend, error: StorageError) -> StoredObjectMetadata:
    return metadata.with_backend_specific(
        retrieved_via_fallback=True,
        primary_backend=primary.value,
        primary_error=error.code,
    )


class HybridStorageRouter(WorkspaceStorage):
    """Routes contract operations between git and object storage."""

    def __init__(
        self,
        config: StorageConfig,
        git: WorkspaceStorage,
        objects: WorkspaceStorage,
        event_sink: StorageEventSink | None = None,
        backup_stats: BackupStats | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            config: Storage configuration (routing and backup thresholds).
            git: Version-control provider.
            objects: Object-storage provider.
            event_sink: Receives backup outcome events. Defaults to a
                LoggingEventSink.
            backup_stats: Backup counters. A fresh instance when None.
        """
        self._config = config
        self._git = git
        self._objects = objects
        self._event_sink: StorageEventSink = event_sink or LoggingEventSink()
        self._backup_stats = backup_stats or BackupStats()

    @property
    def backend(self) -> Backend:
        return Backend.HYBRID

    @property
    def git(self) -> WorkspaceStorage:
        """Return the version-control provider."""
        return self._git

    @property
    def objects(self) -> WorkspaceStorage:
        """Return the object-storage provider."""
        return self._objects

    @property
    def backup_stats(self) -> BackupStats:
        """Return the backup counters."""
        return self._backup_stats

    @property
    def event_sink(self) -> StorageEventSink:
        """Return the event sink receiving backup outcomes."""
        return self._event_sink

    def provider_for(self, backend: Backend) -> WorkspaceStorage:
        """Return the concrete provider for a backend tag."""
        if backend is Backend.GIT:
            return self._git
        if backend is Backend.OBJECT:
            return self._objects
        raise StorageValidationError(f"No concrete provider for backend: {backend.value}")

    def _forced(self, opts: StorageOptions) -> Backend | None:
        if opts.force_backend is None or opts.force_backend is Backend.HYBRID:
            return None
        return opts.force_backend

    # ------------------------------------------------------------------
    # backups
    # ------------------------------------------------------------------

    def _emit(self, event: dict[str, Any]) -> None:
        try:
            self._event_sink.emit(event)
        except Exception as e:
            logger.warning("Failed to emit storage event %s: %s", event.get("event_type"), e)

    def _backup(self, path: str, data: bytes, opts: StorageOptions, source_version: str | None) -> dict[str, Any]:
        """Copy a git-stored artifact into the object backend. Never raises."""
        target = backup_path(path)
        backup_opts = opts.with_changes(force_backend=None, version=None)
        try:
            metadata = self._objects.store(target, data, backup_opts)
        except Exception as e:
            self._backup_stats.record_failure()
            self._emit(
                build_event(
                    EVENT_BACKUP_FAILED,
                    team_id=opts.team_id,
                    workspace_id=opts.workspace_id,
                    path=path,
                    backup_path=target,
                    source_version=source_version,
                    error_code=getattr(e, "code", type(e).__name__),
                    error=str(e),
                )
            )
            return {"status": "failed", "path": target, "error_code": getattr(e, "code", None)}

        self._backup_stats.record_success()
        self._emit(
            build_event(
                EVENT_BACKUP_SUCCEEDED,
                team_id=opts.team_id,
                workspace_id=opts.workspace_id,
                path=path,
                backup_path=target,
                source_version=source_version,
                backup_version=metadata.version,
            )
        )
        return {
            "status": "succeeded",
            "path": target,
            "version": metadata.version,
            "checksum": metadata.checksum,
        }

    def _after_write(
        self, metadata: StoredObjectMetadata, path: str, data: bytes, opts: StorageOptions
    ) -> StoredObjectMetadata:
        if metadata.backend is Backend.GIT and should_backup(path, data, self._config):
            return metadata.with_backend_specific(
                backup=self._backup(path, data, opts, metadata.version)
            )
        return metadata

    # ------------------------------------------------------------------
    # fallback reads
    # ------------------------------------------------------------------

    def _read_with_fallback(
        self,
        path: str,
        opts: StorageOptions,
        *,
        operation: str,
        call: Callable[[WorkspaceStorage], T],
        tag: Callable[[T, Backend, StorageError], T],
    ) -> T:
        forced = self._forced(opts)
        if forced is not None:
            return call(self.provider_for(forced))

        primary = select_read_backend(path, opts)
        secondary = other_backend(primary)
        try:
            return call(self.provider_for(primary))
        except StorageError as primary_error:
            logger.warning(
                "%s of %s failed on %s (%s); falling back to %s",
                operation,
                path,
                primary.value,
                primary_error.code,
                secondary.value,
            )
            try:
                result = call(self.provider_for(secondary))
            except StorageError as secondary_error:
                if isinstance(primary_error, StorageBackendError) or isinstance(
                    secondary_error, StorageBackendError
                ):
                    raise StorageBackendError(
                        message=f"{operation} failed on both backends: "
                        f"{primary.value}={primary_error.code}, "
                        f"{secondary.value}={secondary_error.code}",
                        operation=operation,
                        path=path,
                        team_id=opts.team_id,
                        workspace_id=opts.workspace_id,
                        cause=secondary_error,
                    ) from secondary_error
                raise ObjectNotFoundError(
                    operation=operation,
                    path=path,
                    team_id=opts.team_id,
                    workspace_id=opts.workspace_id,
                    version=opts.version,
                ) from secondary_error
            return tag(result, primary, primary_error)

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
        """Store content on the selected backend, then back it up if needed.

        Raises:
            StorageValidationError: If options or path are invalid.
            StorageBackendError: If the selected backend fails (no fallback).
        """
        path = validate_path(path, operation="store")
        opts = validate_options(options, operation="store", path=path)
        data = ensure_bytes(content)

        backend = select_write_backend(path, data, opts, self._config)
        logger.info("Routing store of %s (%d bytes) to %s", path, len(data), backend.value)
        metadata = self.provider_for(backend).store(path, data, opts)
        return self._after_write(metadata, path, data, opts)

    @traced_storage_operation("retrieve")
    def retrieve(self, path: str, options: OptionsLike = None) -> StoredObject:
        """Retrieve from the likely backend, falling back to the other one."""
        path = validate_path(path, operation="retrieve")
        opts = validate_options(options, operation="retrieve", path=path)

        def tag(result: StoredObject, primary: Backend, error: StorageError) -> StoredObject:
            return StoredObject(
                content=result.content, metadata=_tag_fallback(result.metadata, primary, error)
            )

        return self._read_with_fallback(
            path,
            opts,
            operation="retrieve",
            call=lambda provider: provider.retrieve(path, opts),
            tag=tag,
        )

    @traced_storage_operation("delete")
    def delete(self, path: str, options: OptionsLike = None) -> None:
        """Delete from both backends; success on either is success.

        Backup copies under ``backups/git/`` are kept.

        Raises:
            StorageBackendError: If both backends fail.
        """
        path = validate_path(path, operation="delete")
        opts = validate_options(options, operation="delete", path=path)

        forced = self._forced(opts)
        if forced is not None:
            self.provider_for(forced).delete(path, opts)
            return

        errors: dict[Backend, StorageError] = {}
        for backend in (Backend.GIT, Backend.OBJECT):
            try:
                self.provider_for(backend).delete(path, opts)
            except StorageError as e:
                logger.warning("Delete of %s failed on %s: %s", path, backend.value, e)
                errors[backend] = e

        if len(errors) == 2:
            raise StorageBackendError(
                message="Delete failed on both backends",
                operation="delete",
                path=path,
                team_id=opts.team_id,
                workspace_id=opts.workspace_id,
                cause=errors[Backend.OBJECT],
            ) from errors[Backend.OBJECT]

    @traced_storage_operation("list")
    def list(
        self,
        dir_path: str,
        options: OptionsLike = None,
    ) -> builtins.list[StoredObjectMetadata]:
        """List both backends and merge by path, preferring git entries.

        A failing backend contributes an empty listing. Entries under the
        internal backup prefix are hidden unless the listing is inside it.
        """
        dir_path = validate_path(dir_path, operation="list", allow_empty=True)
        opts = validate_options(options, operation="list", path=dir_path)

        def safe_list(backend: Backend) -> builtins.list[StoredObjectMetadata]:
            try:
                return self.provider_for(backend).list(dir_path, opts)
            except StorageError as e:
                logger.warning("List of %r failed on %s: %s", dir_path, backend.value, e)
                return []

        merged: dict[str, StoredObjectMetadata] = {}
        for entry in safe_list(Backend.GIT):
            merged[entry.path] = entry
        for entry in safe_list(Backend.OBJECT):
            merged.setdefault(entry.path, entry)

        show_backups = is_backup_path(dir_path)
        results = sorted(
            (m for m in merged.values() if show_backups or not is_backup_path(m.path)),
            key=lambda m: m.path,
        )
        if opts.max_keys is not None:
            results = results[: opts.max_keys]
        return results

    @traced_storage_operation("exists")
    def exists(self, path: str, options: OptionsLike = None) -> bool:
        """Return True if either backend has the path. Never raises."""
        try:
            path = validate_path(path, operation="exists")
            opts = validate_options(options, operation="exists", path=path)
        except StorageError:
            return False
        forced = self._forced(opts)
        if forced is not None:
            return self.provider_for(forced).exists(path, opts)
        return self._git.exists(path, opts) or self._objects.exists(path, opts)

    @traced_storage_operation("get_metadata")
    def get_metadata(self, path: str, options: OptionsLike = None) -> StoredObjectMetadata:
        """Return metadata from the likely backend, falling back to the other one."""
        path = validate_path(path, operation="get_metadata")
        opts = validate_options(options, operation="get_metadata", path=path)
        return self._read_with_fallback(
            path,
            opts,
            operation="get_metadata",
            call=lambda provider: provider.get_metadata(path, opts),
            tag=_tag_fallback,
        )

    @traced_storage_operation("create_version")
    def create_version(
        self,
        path: str,
        content: bytes,
        message: str,
        options: OptionsLike = None,
    ) -> tuple[str, StoredObjectMetadata]:
        """Create a version on the selected backend, then back it up if needed."""
        path = validate_path(path, operation="create_version")
        opts = validate_options(options, operation="create_version", path=path)
        data = ensure_bytes(content)

        backend = select_write_backend(path, data, opts, self._config)
        logger.info("Routing create_version of %s to %s", path, backend.value)
        version, metadata = self.provider_for(backend).create_version(path, data, message, opts)
        return version, self._after_write(metadata, path, data, opts)

    @traced_storage_operation("list_versions")
    def list_versions(
        self,
        path: str,
        options: OptionsLike = None,
    ) -> builtins.list[VersionEntry]:
        """Return history from the likely backend, or the other one if it has none.

        Raises:
            StorageBackendError: If both backends fail.
        """
        path = validate_path(path, operation="list_versions")
        opts = validate_options(options, operation="list_versions", path=path)

        forced = self._forced(opts)
        if forced is not None:
            return self.provider_for(forced).list_versions(path, opts)

        primary = select_read_backend(path, opts)
        primary_error: StorageError | None = None
        try:
            entries = self.provider_for(primary).list_versions(path, opts)
            if entries:
                return entries
        except StorageError as e:
            logger.warning("list_versions of %s failed on %s: %s", path, primary.value, e)
            primary_error = e

        secondary = other_backend(primary)
        try:
            return self.provider_for(secondary).list_versions(path, opts)
        except StorageError as e:
            if primary_error is None:
                logger.warning("list_versions of %s failed on %s: %s", path, secondary.value, e)
                return []
            raise StorageBackendError(
                message="list_versions failed on both backends",
                operation="list_versions",
                path=path,
                team_id=opts.team_id,
                workspace_id=opts.workspace_id,
                cause=e,
            ) from e

    @traced_storage_operation("retrieve_version")
    def retrieve_version(
        self,
        path: str,
        version: str,
        options: OptionsLike = None,
    ) -> StoredObject:
        """Retrieve an explicit version, trying the other backend on failure."""
        path = validate_path(path, operation="retrieve_version")
        opts = validate_options(options, operation="retrieve_version", path=path)
        opts = opts.with_changes(version=version)

        def tag(result: StoredObject, primary: Backend, error: StorageError) -> StoredObject:
            return StoredObject(
                content=result.content, metadata=_tag_fallback(result.metadata, primary, error)
            )

        return self._read_with_fallback(
            path,
            opts,
            operation="retrieve_version",
            call=lambda provider: provider.retrieve_version(path, version, opts),
            tag=tag,
        )

    @traced_storage_operation("sync")
    def sync(
        self,
        from_backend: Backend | str,
        to_backend: Backend | str,
        path: str,
        options: OptionsLike = None,
    ) -> SyncResult:
        """Replicate a path between backends.

        - git -> object and object -> git: retrieve from the source, store
          into the destination
        - git -> git: repository to repository (``source_repo``/``target_repo``)
        - object -> object: bucket to bucket (``source_bucket``/``target_bucket``)

        Raises:
            UnsupportedSyncError: If either side is ``hybrid``.
        """
        source_backend = Backend.parse(from_backend)
        target_backend = Backend.parse(to_backend)
        if Backend.HYBRID in (source_backend, target_backend):
            raise UnsupportedSyncError(source_backend.value, target_backend.value, path=path)

        path = validate_path(path, operation="sync")
        opts = validate_options(options, operation="sync", path=path)

        if source_backend is target_backend:
            return self.provider_for(source_backend).sync(source_backend, target_backend, path, opts)

        source = self.provider_for(source_backend).retrieve(path, opts)
        target_opts = opts.with_changes(
            version=None,
            force_backend=None,
            author=opts.author or source.metadata.author,
            commit_message=opts.commit_message or f"Sync from {source_backend.value}",
        )
        target_metadata = self.provider_for(target_backend).store(path, source.content, target_opts)

        logger.info("Synced %s from %s to %s", path, source_backend.value, target_backend.value)
        return SyncResult(
            from_backend=source_backend,
            to_backend=target_backend,
            path=path,
            source_metadata=source.metadata,
            target_metadata=target_metadata,
            synced_at=datetime.now(UTC),
        )
