"""Strata storage error types.

Provides typed exceptions for storage operations. Every error carries a
stable ``code`` so callers can branch on the failure class without
matching on exception types:

- ``validation_error``: request rejected before any backend was contacted
- ``not_found``: the file, object or version does not exist
- ``backend_error``: transport or tooling failure (git, S3, filesystem)
- ``unsupported_combination``: sync between backends with no defined semantics
"""

from __future__ import annotations


class StorageError(Exception):
    """Base exception for workspace storage operations.

    Attributes:
        message: Human-readable error message.
        operation: Contract operation that failed (e.g. "store").
        path: Logical path associated with the operation (if applicable).
        team_id: Team identifier associated with the operation.
        workspace_id: Workspace identifier associated with the operation.
    """

    code = "storage_error"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        path: str | None = None,
        team_id: str | None = None,
        workspace_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.path = path
        self.team_id = team_id
        self.workspace_id = workspace_id

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.team_id:
            parts.append(f"team_id={self.team_id}")
        if self.workspace_id:
            parts.append(f"workspace_id={self.workspace_id}")
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)

    def to_dict(self) -> dict[str, str | None]:
        """Convert the error to a dictionary for structured logging."""
        return {
            "code": self.code,
            "message": self.message,
            "operation": self.operation,
            "path": self.path,
            "team_id": self.team_id,
            "workspace_id": self.workspace_id,
        }


class StorageValidationError(StorageError):
    """Raised when a request is malformed.

    Covers missing team/workspace identifiers, unsafe identifiers, unknown
    backend tags and malformed version ids. Never raised after a backend
    has been contacted.
    """

    code = "validation_error"


class PathTraversalError(StorageValidationError):
    """Raised when a logical path could escape the workspace sandbox.

    Absolute paths, ``..`` segments, backslashes, NUL bytes, drive letters
    and paths reaching into repository internals are all rejected.
    """

    def __init__(
        self,
        message: str = "Invalid path: path traversal detected",
        *,
        operation: str | None = None,
        path: str | None = None,
        team_id: str | None = None,
        workspace_id: str | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            path=path,
            team_id=team_id,
            workspace_id=workspace_id,
        )


class ObjectNotFoundError(StorageError):
    """Raised when a file, object or specific version does not exist.

    Kept distinct from ``StorageBackendError`` so callers can treat a
    missing artifact as an expected outcome.
    """

    code = "not_found"

    def __init__(
        self,
        message: str = "Object not found",
        *,
        operation: str | None = None,
        path: str | None = None,
        team_id: str | None = None,
        workspace_id: str | None = None,
        version: str | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            path=path,
            team_id=team_id,
            workspace_id=workspace_id,
        )
        self.version = version


class StorageBackendError(StorageError):
    """Raised when a backend cannot complete an operation.

    Wraps subprocess failures, S3 client errors and filesystem errors. The
    original exception is kept in ``cause``. Not retried by this package.
    """

    code = "backend_error"

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        operation: str | None = None,
        path: str | None = None,
        team_id: str | None = None,
        workspace_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            operation=operation,
            path=path,
            team_id=team_id,
            workspace_id=workspace_id,
        )
        self.cause = cause


class UnsupportedSyncError(StorageError):
    """Raised when a sync is requested between backends it cannot bridge."""

    code = "unsupported_combination"

    def __init__(
        self,
        from_backend: str,
        to_backend: str,
        *,
        path: str | None = None,
    ) -> None:
        super().__init__(
            f"Unsupported sync combination: {from_backend} -> {to_backend}",
            operation="sync",
            path=path,
        )
        self.from_backend = from_backend
        self.to_backend = to_backend


class StorageConfigError(Exception):
    """Raised when storage configuration values are invalid."""

    code = "config_error"
