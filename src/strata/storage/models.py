"""Strata storage data models.

Provides typed dataclasses for storage options, metadata records,
version history entries and sync results.
"""

from __future__ import annotations

import posixpath
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from strata.storage.errors import StorageValidationError


class Backend(str, Enum):
    """Physical storage technology behind the contract."""

    GIT = "git"
    OBJECT = "object"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Backend | str) -> Backend:
        """Parse a backend tag, accepting ``s3`` as an alias of ``object``.

        Raises:
            StorageValidationError: If the tag is not a known backend.
        """
        if isinstance(value, Backend):
            return value
        normalized = str(value).strip().lower()
        if normalized == "s3":
            return cls.OBJECT
        try:
            return cls(normalized)
        except ValueError as e:
            raise StorageValidationError(f"Unknown storage backend: {value}") from e


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies one version-control repository by (team, workspace)."""

    team_id: str
    workspace_id: str

    @classmethod
    def parse(cls, value: RepositoryRef | str | tuple[str, str] | Mapping[str, str]) -> RepositoryRef:
        """Parse ``"team/workspace"``, a 2-tuple or a mapping into a reference."""
        if isinstance(value, RepositoryRef):
            return value
        if isinstance(value, str):
            team_id, sep, workspace_id = value.strip().partition("/")
            if not sep or not team_id or not workspace_id:
                raise StorageValidationError(
                    f"Repository reference must look like 'team/workspace', got {value!r}"
                )
            return cls(team_id=team_id, workspace_id=workspace_id)
        if isinstance(value, Mapping):
            try:
                return cls(team_id=str(value["team_id"]), workspace_id=str(value["workspace_id"]))
            except KeyError as e:
                raise StorageValidationError(
                    f"Repository reference is missing {e.args[0]}"
                ) from e
        team_id, workspace_id = value
        return cls(team_id=str(team_id), workspace_id=str(workspace_id))

    def __str__(self) -> str:
        return f"{self.team_id}/{self.workspace_id}"


_OPTION_ALIASES = {"version_id": "version", "s3_bucket": "bucket"}


@dataclass(frozen=True)
class StorageOptions:
    """Options accepted by every contract operation.

    Attributes:
        team_id: Team scope (required).
        workspace_id: Workspace scope (required).
        author: Author recorded on commits and object metadata.
        commit_message: Commit message for the git backend.
        version: Pins a read to a historical version.
        branch: Git branch; the configured default branch when None.
        force_backend: Bypasses the router's selection heuristics.
        preferred_backend: Hints read-path backend selection.
        enable_versioning: Advisory flag for object-backend native versioning.
        bucket: Explicit object bucket instead of the derived default.
        max_keys: Page size bound for listings.
        content_type: Overrides mime type inference.
        source_repo: Source repository for git-to-git sync.
        target_repo: Target repository for git-to-git sync.
        source_bucket: Source bucket for object-to-object sync.
        target_bucket: Target bucket for object-to-object sync.
        extra: Unrecognized keys, preserved for callers.
    """

    team_id: str | None = None
    workspace_id: str | None = None
    author: str | None = None
    commit_message: str | None = None
    version: str | None = None
    branch: str | None = None
    force_backend: Backend | None = None
    preferred_backend: Backend | None = None
    enable_versioning: bool = True
    bucket: str | None = None
    max_keys: int | None = None
    content_type: str | None = None
    source_repo: RepositoryRef | None = None
    target_repo: RepositoryRef | None = None
    source_bucket: str | None = None
    target_bucket: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> StorageOptions:
        """Build options from a plain mapping, normalizing known keys."""
        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        values: dict[str, Any] = {}
        extra: dict[str, Any] = {}

        for raw_key, value in data.items():
            key = _OPTION_ALIASES.get(raw_key, raw_key)
            if key not in known:
                extra[raw_key] = value
                continue
            if value is None:
                continue
            if key in ("force_backend", "preferred_backend"):
                value = Backend.parse(value)
            elif key in ("source_repo", "target_repo"):
                value = RepositoryRef.parse(value)
            elif key == "max_keys":
                value = _parse_max_keys(value)
            elif key == "enable_versioning":
                value = _parse_flag(key, value)
            elif key in ("team_id", "workspace_id", "version", "branch"):
                value = str(value)
            values[key] = value

        return cls(**values, extra=extra)

    @classmethod
    def coerce(cls, options: StorageOptions | Mapping[str, Any] | None) -> StorageOptions:
        """Return ``options`` as a StorageOptions instance."""
        if isinstance(options, StorageOptions):
            return options
        return cls.from_mapping(options or {})

    def with_changes(self, **changes: Any) -> StorageOptions:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)

    @property
    def repository(self) -> RepositoryRef:
        """Repository reference for the (team, workspace) scope."""
        return RepositoryRef(team_id=str(self.team_id), workspace_id=str(self.workspace_id))


def _parse_max_keys(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError) as e:
        raise StorageValidationError(f"max_keys must be a positive integer, got {value!r}") from e
    if parsed <= 0:
        raise StorageValidationError(f"max_keys must be a positive integer, got {parsed}")
    return parsed


_TRUE_STRINGS = ("1", "true", "yes")
_FALSE_STRINGS = ("0", "false", "no")


def _parse_flag(key: str, value: Any) -> bool:
    """Parse a boolean option; strings use the same spellings as env flags."""
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUE_STRINGS:
            return True
        if normalized in _FALSE_STRINGS:
            return False
        raise StorageValidationError(f"{key} must be a boolean, got {value!r}")
    return bool(value)


@dataclass(frozen=True)
class StoredObjectMetadata:
    """Normalized metadata record returned by every backend.

    Attributes:
        path: Logical path of the artifact within its workspace.
        mime_type: MIME type inferred from the path (or overridden).
        size: Size of the content in bytes.
        checksum: SHA256 hex digest of exactly the stored/returned bytes.
            None only in listings where the backend does not expose it.
        version: Backend-specific version id (commit sha or object version).
        last_modified: Timestamp of the version.
        author: Author recorded for the version.
        backend: Backend that holds the artifact.
        backend_specific: Backend details (repository, bucket, key, etag,
            backup information, fallback marker).
    """

    path: str
    mime_type: str
    size: int
    checksum: str | None
    version: str | None
    last_modified: datetime | None
    author: str | None
    backend: Backend
    backend_specific: Mapping[str, Any] = field(default_factory=dict)

    @property
    def file_name(self) -> str:
        """Base name of the logical path."""
        return posixpath.basename(self.path)

    @property
    def directory(self) -> str:
        """Directory part of the logical path ("" for top-level files)."""
        return posixpath.dirname(self.path)

    @property
    def file_extension(self) -> str:
        """Lower-cased extension including the dot, or ""."""
        return posixpath.splitext(self.path)[1].lower()

    @property
    def retrieved_via_fallback(self) -> bool:
        """True when the router served this record from its secondary backend."""
        return bool(self.backend_specific.get("retrieved_via_fallback", False))

    def with_backend_specific(self, **entries: Any) -> StoredObjectMetadata:
        """Return a copy with extra backend-specific entries merged in."""
        merged = dict(self.backend_specific)
        merged.update(entries)
        return replace(self, backend_specific=merged)

    def to_dict(self) -> dict[str, Any]:
        """Convert metadata to a flat dictionary for JSON serialization."""
        return {
            "path": self.path,
            "file_name": self.file_name,
            "directory": self.directory,
            "file_extension": self.file_extension,
            "mime_type": self.mime_type,
            "size": self.size,
            "checksum": self.checksum,
            "version": self.version,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
            "author": self.author,
            "backend": self.backend.value,
            "backend_specific": _jsonable(self.backend_specific),
        }


@dataclass(frozen=True)
class StoredObject:
    """Content plus its metadata, as returned by retrieve operations."""

    content: bytes
    metadata: StoredObjectMetadata


@dataclass(frozen=True)
class VersionEntry:
    """One entry of a path's version history.

    Attributes:
        version: Backend-specific version id.
        author: Author of the version, when the backend records one.
        message: Commit message (git) or version message (object), if any.
        timestamp: When the version was created.
        backend: Backend holding the version.
        size: Size in bytes, when cheaply known.
        is_latest: True for the newest version.
    """

    version: str
    author: str | None
    message: str | None
    timestamp: datetime | None
    backend: Backend
    size: int | None = None
    is_latest: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert the entry to a dictionary for JSON serialization."""
        return {
            "version": self.version,
            "author": self.author,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "backend": self.backend.value,
            "size": self.size,
            "is_latest": self.is_latest,
        }


@dataclass(frozen=True)
class SyncResult:
    """Outcome of replicating one path between backends or repositories."""

    from_backend: Backend
    to_backend: Backend
    path: str
    source_metadata: StoredObjectMetadata
    target_metadata: StoredObjectMetadata
    synced_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a dictionary for JSON serialization."""
        return {
            "from_backend": self.from_backend.value,
            "to_backend": self.to_backend.value,
            "path": self.path,
            "source_metadata": self.source_metadata.to_dict(),
            "target_metadata": self.target_metadata.to_dict(),
            "synced_at": self.synced_at.isoformat(),
        }


def _jsonable(value: Any) -> Any:
    """Recursively convert nested metadata into JSON-compatible values."""
    if isinstance(value, StoredObjectMetadata):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
