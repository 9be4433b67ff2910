"""Strata storage contract.

Defines the operation set every backend implements with identical caller
visible semantics, and the helpers shared by all providers: path and
option validation, mime type inference, checksums and metadata
construction.

Implementations:
- GitStorageProvider: version-control repository per (team, workspace)
- ObjectStorageProvider: S3-compatible bucket per team
- HybridStorageRouter: routes between the two with fallback and backup
"""

from __future__ import annotations

import builtins
import hashlib
import mimetypes
import posixpath
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from strata.storage.errors import PathTraversalError, StorageValidationError
from strata.storage.models import (
    Backend,
    RepositoryRef,
    StorageOptions,
    StoredObject,
    StoredObjectMetadata,
    SyncResult,
    VersionEntry,
)

OptionsLike = StorageOptions | Mapping[str, Any] | None

_SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.\-]*$")

_RESERVED_SEGMENTS = frozenset({".git"})
_DRIVE_LETTER = re.compile(r"^[A-Za-z]:(/|$)")

_EXTRA_MIME_TYPES = {
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".ipynb": "application/x-ipynb+json",
    ".yaml": "application/yaml",
    ".yml": "application/yaml",
    ".toml": "application/toml",
    ".ts": "text/x-typescript",
    ".tsx": "text/x-typescript",
    ".jsx": "text/javascript",
    ".ex": "text/x-elixir",
    ".exs": "text/x-elixir",
    ".rs": "text/x-rust",
    ".go": "text/x-go",
    ".jl": "text/x-julia",
    ".r": "text/x-r",
    ".sql": "application/sql",
    ".webp": "image/webp",
    ".woff2": "font/woff2",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


def _is_path_traversal(path: str) -> bool:
    """Check if a logical path could escape its workspace.

    Detects:
    - NUL bytes
    - Backslashes (Windows path separators)
    - Absolute paths (leading "/" or "~")
    - Windows drive letters ("C:" or "C:/...")
    - ".." segments
    - Segments reaching into repository internals (".git")
    """
    if "\x00" in path or "\\" in path:
        return True
    if path.startswith("/") or path.startswith("~"):
        return True
    if _DRIVE_LETTER.match(path):
        return True
    segments = path.split("/")
    return any(segment == ".." or segment in _RESERVED_SEGMENTS for segment in segments)


def validate_path(
    path: str,
    *,
    operation: str | None = None,
    allow_empty: bool = False,
) -> str:
    """Validate a logical path and return its normalized form.

    Empty and "." segments are dropped, so "docs//./a.md" becomes
    "docs/a.md".

    Args:
        path: Caller supplied logical path.
        operation: Operation name for error context.
        allow_empty: Accept "" (the workspace root), used for listings.

    Returns:
        Normalized slash-separated relative path.

    Raises:
        PathTraversalError: If the path is absolute or traversal-bearing.
        StorageValidationError: If the path is empty and not allowed.
    """
    if not isinstance(path, str):
        raise StorageValidationError(
            f"Path must be a string, got {type(path).__name__}", operation=operation
        )
    if _is_path_traversal(path):
        raise PathTraversalError(operation=operation, path=path)

    normalized = "/".join(segment for segment in path.split("/") if segment not in ("", "."))
    if not normalized and not allow_empty:
        raise StorageValidationError("Path must not be empty", operation=operation, path=path)
    return normalized


def _validate_identifier(name: str, value: str | None, operation: str | None) -> str:
    if value is None or value == "":
        raise StorageValidationError(f"Missing required option: {name}", operation=operation)
    if not _SAFE_ID_PATTERN.match(value) or value in (".", ".."):
        raise StorageValidationError(
            f"Invalid {name}: only letters, digits, '.', '_' and '-' are allowed",
            operation=operation,
        )
    return value


def validate_options(
    options: OptionsLike,
    *,
    operation: str | None = None,
    path: str | None = None,
) -> StorageOptions:
    """Coerce and validate options.

    Options must carry a team identifier and a workspace identifier; both
    become directory names and object key segments, so they are restricted
    to a safe character set.

    Raises:
        StorageValidationError: If a required option is missing or unsafe.
    """
    try:
        opts = StorageOptions.coerce(options)
    except StorageValidationError as e:
        e.operation = e.operation or operation
        e.path = e.path or path
        raise

    try:
        _validate_identifier("team_id", opts.team_id, operation)
        _validate_identifier("workspace_id", opts.workspace_id, operation)
    except StorageValidationError as e:
        e.path = path
        raise

    if opts.branch is not None and (opts.branch.startswith("-") or ".." in opts.branch):
        raise StorageValidationError(
            f"Invalid branch name: {opts.branch!r}",
            operation=operation,
            path=path,
            team_id=opts.team_id,
            workspace_id=opts.workspace_id,
        )
    return opts


def validate_repository(
    ref: RepositoryRef,
    *,
    operation: str | None = None,
    path: str | None = None,
) -> RepositoryRef:
    """Validate both identifiers of a repository reference.

    Raises:
        StorageValidationError: If either identifier is missing or unsafe.
    """
    try:
        _validate_identifier("team_id", ref.team_id, operation)
        _validate_identifier("workspace_id", ref.workspace_id, operation)
    except StorageValidationError as e:
        e.path = path
        raise
    return ref


def infer_mime_type(path: str) -> str:
    """Infer a MIME type from the path extension."""
    extension = posixpath.splitext(path)[1].lower()
    if extension in _EXTRA_MIME_TYPES:
        return _EXTRA_MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(path, strict=False)
    return guessed or DEFAULT_MIME_TYPE


def compute_checksum(content: bytes) -> str:
    """Compute SHA256 hash of content and return it as a hex string."""
    return hashlib.sha256(content).hexdigest()


def ensure_bytes(content: bytes | bytearray | memoryview | str) -> bytes:
    """Return content as bytes; text is encoded as UTF-8."""
    if isinstance(content, bytes):
        return content
    if isinstance(content, (bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        return content.encode("utf-8")
    raise StorageValidationError(f"Content must be bytes, got {type(content).__name__}")


def build_metadata(
    path: str,
    content: bytes,
    *,
    backend: Backend,
    version: str | None,
    author: str | None,
    last_modified: datetime | None = None,
    content_type: str | None = None,
    backend_specific: Mapping[str, Any] | None = None,
) -> StoredObjectMetadata:
    """Build a metadata record whose checksum and size describe ``content``."""
    return StoredObjectMetadata(
        path=path,
        mime_type=content_type or infer_mime_type(path),
        size=len(content),
        checksum=compute_checksum(content),
        version=version,
        last_modified=last_modified or datetime.now(UTC),
        author=author,
        backend=backend,
        backend_specific=dict(backend_specific or {}),
    )


class WorkspaceStorage(ABC):
    """Abstract base class for workspace storage backends.

    All implementations must:
    - Reject invalid options and unsafe paths before touching a backend
    - Return checksums computed over exactly the stored/returned bytes
    - Treat deletion of a missing path as success
    - Never raise from ``exists``
    """

    @property
    @abstractmethod
    def backend(self) -> Backend:
        """Return the backend tag for this implementation."""
        ...

    @property
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        return self.backend.value

    @abstractmethod
    def store(
        self,
        path: str,
        content: bytes,
        options: OptionsLike = None,
    ) -> StoredObjectMetadata:
        """Store content at a logical path.

        Raises:
            StorageValidationError: If required options are missing or the path is unsafe.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def retrieve(self, path: str, options: OptionsLike = None) -> StoredObject:
        """Retrieve content and metadata, optionally at ``options.version``.

        Raises:
            ObjectNotFoundError: If the path or version does not exist.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def delete(self, path: str, options: OptionsLike = None) -> None:
        """Delete a path. Deleting a missing path succeeds.

        Raises:
            StorageBackendError: If the backend cannot complete the deletion.
        """
        ...

    @abstractmethod
    def list(
        self,
        dir_path: str,
        options: OptionsLike = None,
    ) -> builtins.list[StoredObjectMetadata]:
        """List metadata (no content) for files under a directory, ordered by path.

        Raises:
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    def exists(self, path: str, options: OptionsLike = None) -> bool:
        """Return True if the path exists. Never raises."""
        ...

    @abstractmethod
    def get_metadata(self, path: str, options: OptionsLike = None) -> StoredObjectMetadata:
        """Return metadata without returning content.

        Raises:
            ObjectNotFoundError: If the path does not exist.
        """
        ...

    @abstractmethod
    def create_version(
        self,
        path: str,
        content: bytes,
        message: str,
        options: OptionsLike = None,
    ) -> tuple[str, StoredObjectMetadata]:
        """Store content as a new version with a human readable message.

        Returns:
            Tuple of (version_id, metadata).
        """
        ...

    @abstractmethod
    def list_versions(
        self,
        path: str,
        options: OptionsLike = None,
    ) -> builtins.list[VersionEntry]:
        """List versions of a path, newest first.

        Raises:
            StorageBackendError: If the backend cannot read the history.
        """
        ...

    @abstractmethod
    def retrieve_version(
        self,
        path: str,
        version: str,
        options: OptionsLike = None,
    ) -> StoredObject:
        """Retrieve the exact bytes of an explicit historical version.

        Raises:
            ObjectNotFoundError: If the version is unknown.
        """
        ...

    @abstractmethod
    def sync(
        self,
        from_backend: Backend | str,
        to_backend: Backend | str,
        path: str,
        options: OptionsLike = None,
    ) -> SyncResult:
        """Replicate a path from one backend (or repository/bucket) to another.

        Raises:
            UnsupportedSyncError: If the backend pair has no defined semantics.
            StorageBackendError: If either side fails.
        """
        ...
