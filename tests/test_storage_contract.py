"""Tests for the storage contract helpers and error types.

Covers:
- Logical path validation and normalization
- Option validation (team/workspace scope, branch names)
- MIME inference, checksums and metadata construction
- Error codes and structured error output
"""

from __future__ import annotations

import hashlib

import pytest

from strata.storage.contract import (
    DEFAULT_MIME_TYPE,
    build_metadata,
    compute_checksum,
    ensure_bytes,
    infer_mime_type,
    validate_options,
    validate_path,
    validate_repository,
)
from strata.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
    StorageError,
    StorageValidationError,
    UnsupportedSyncError,
)
from strata.storage.models import Backend, RepositoryRef, StorageOptions


class TestValidatePath:
    """Tests for logical path validation."""

    @pytest.mark.parametrize(
        "path",
        [
            "../etc/passwd",
            "docs/../../secret",
            "/etc/passwd",
            "~/notes.md",
            "C:/windows/system32",
            "c:",
            "docs\\notes.md",
            "notes\x00.md",
            ".git/config",
            "nested/.git/HEAD",
        ],
    )
    def test_rejects_traversal(self, path: str) -> None:
        """Paths that could escape the workspace are rejected."""
        with pytest.raises(PathTraversalError) as exc_info:
            validate_path(path, operation="store")

        assert exc_info.value.code == "validation_error"
        assert exc_info.value.operation == "store"

    def test_normalizes_redundant_segments(self) -> None:
        """Empty and '.' segments are dropped."""
        assert validate_path("docs//./notes.md") == "docs/notes.md"
        assert validate_path("./README.md") == "README.md"

    def test_empty_path_rejected_by_default(self) -> None:
        """An empty path is not a file."""
        with pytest.raises(StorageValidationError):
            validate_path("")

    def test_empty_path_allowed_for_listing(self) -> None:
        """The workspace root is addressed by the empty path."""
        assert validate_path("", allow_empty=True) == ""

    def test_non_string_rejected(self) -> None:
        """Only strings are paths."""
        with pytest.raises(StorageValidationError):
            validate_path(42)  # type: ignore[arg-type]

    def test_dotfile_names_are_allowed(self) -> None:
        """Leading dots in names other than '..' and '.git' are fine."""
        assert validate_path("config/.env.example") == "config/.env.example"
        assert validate_path(".gitignore") == ".gitignore"

    def test_colon_names_are_allowed(self) -> None:
        """A colon only marks a drive when it follows a single leading letter."""
        assert validate_path("a:b.md") == "a:b.md"
        assert validate_path("notes/c:d.txt") == "notes/c:d.txt"
        assert validate_path("ab:/x.md") == "ab:/x.md"


class TestValidateOptions:
    """Tests for option validation."""

    def test_requires_team_id(self) -> None:
        """team_id is mandatory."""
        with pytest.raises(StorageValidationError) as exc_info:
            validate_options({"workspace_id": "w1"}, operation="store", path="a.md")

        assert "team_id" in exc_info.value.message
        assert exc_info.value.path == "a.md"

    def test_requires_workspace_id(self) -> None:
        """workspace_id is mandatory."""
        with pytest.raises(StorageValidationError) as exc_info:
            validate_options({"team_id": "t1"})

        assert "workspace_id" in exc_info.value.message

    def test_none_options_rejected(self) -> None:
        """Omitting options entirely is a validation failure."""
        with pytest.raises(StorageValidationError):
            validate_options(None)

    @pytest.mark.parametrize("team_id", ["team one", "../t", "..", "t/1", "-t"])
    def test_unsafe_identifiers_rejected(self, team_id: str) -> None:
        """Identifiers become path segments, so they are restricted."""
        with pytest.raises(StorageValidationError):
            validate_options({"team_id": team_id, "workspace_id": "w1"})

    @pytest.mark.parametrize("branch", ["--orphan", "feature/../main"])
    def test_unsafe_branch_rejected(self, branch: str) -> None:
        """Branch names that could be read as flags or traverse are rejected."""
        with pytest.raises(StorageValidationError):
            validate_options({"team_id": "t1", "workspace_id": "w1", "branch": branch})

    def test_unknown_backend_tag_rejected(self) -> None:
        """force_backend must name a backend."""
        with pytest.raises(StorageValidationError) as exc_info:
            validate_options(
                {"team_id": "t1", "workspace_id": "w1", "force_backend": "ftp"},
                operation="retrieve",
            )

        assert exc_info.value.operation == "retrieve"

    def test_returns_storage_options(self) -> None:
        """A valid mapping is coerced into StorageOptions."""
        opts = validate_options({"team_id": "t1", "workspace_id": "w1", "author": "alice"})

        assert isinstance(opts, StorageOptions)
        assert opts.author == "alice"
        assert opts.repository == RepositoryRef("t1", "w1")

    def test_validate_repository(self) -> None:
        """Repository references are held to the same identifier rules."""
        assert validate_repository(RepositoryRef("t1", "w2")) == RepositoryRef("t1", "w2")
        with pytest.raises(StorageValidationError):
            validate_repository(RepositoryRef("t1", "bad workspace"), path="a.md")


class TestContentHelpers:
    """Tests for MIME inference, checksums and metadata construction."""

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("notes.md", "text/markdown"),
            ("analysis.ipynb", "application/x-ipynb+json"),
            ("image.png", "image/png"),
            ("data.json", "application/json"),
            ("blob", DEFAULT_MIME_TYPE),
        ],
    )
    def test_infer_mime_type(self, path: str, expected: str) -> None:
        """MIME types are inferred from the extension."""
        assert infer_mime_type(path) == expected

    def test_checksum_is_sha256_hex(self) -> None:
        """compute_checksum returns the SHA256 hex digest."""
        assert compute_checksum(b"hello") == hashlib.sha256(b"hello").hexdigest()

    def test_ensure_bytes_accepts_text(self) -> None:
        """Text is encoded as UTF-8; buffers become bytes."""
        assert ensure_bytes("héllo") == "héllo".encode()
        assert ensure_bytes(bytearray(b"ab")) == b"ab"
        assert ensure_bytes(memoryview(b"cd")) == b"cd"

    def test_ensure_bytes_rejects_other_types(self) -> None:
        """Non-content values are a validation error."""
        with pytest.raises(StorageValidationError):
            ensure_bytes(123)  # type: ignore[arg-type]

    def test_build_metadata_describes_content(self) -> None:
        """Size and checksum describe exactly the given bytes."""
        metadata = build_metadata(
            "docs/notes.md",
            b"# Hi",
            backend=Backend.GIT,
            version="abc123",
            author="alice",
        )

        assert metadata.size == 4
        assert metadata.checksum == compute_checksum(b"# Hi")
        assert metadata.mime_type == "text/markdown"
        assert metadata.last_modified is not None
        assert metadata.file_name == "notes.md"
        assert metadata.directory == "docs"


class TestErrors:
    """Tests for the error hierarchy."""

    def test_error_codes(self) -> None:
        """Each failure class carries a stable code."""
        assert StorageValidationError("x").code == "validation_error"
        assert PathTraversalError().code == "validation_error"
        assert ObjectNotFoundError().code == "not_found"
        assert StorageBackendError().code == "backend_error"
        assert UnsupportedSyncError("hybrid", "git").code == "unsupported_combination"

    def test_hierarchy(self) -> None:
        """All storage errors share one base class."""
        for error in (
            StorageValidationError("x"),
            PathTraversalError(),
            ObjectNotFoundError(),
            StorageBackendError(),
            UnsupportedSyncError("git", "hybrid"),
        ):
            assert isinstance(error, StorageError)
        assert isinstance(PathTraversalError(), StorageValidationError)

    def test_to_dict(self) -> None:
        """Errors serialize their context for structured logging."""
        error = ObjectNotFoundError(
            operation="retrieve", path="a.md", team_id="t1", workspace_id="w1", version="abc"
        )

        assert error.to_dict() == {
            "code": "not_found",
            "message": "Object not found",
            "operation": "retrieve",
            "path": "a.md",
            "team_id": "t1",
            "workspace_id": "w1",
        }
        assert error.version == "abc"

    def test_str_includes_context(self) -> None:
        """The string form carries operation and scope."""
        text = str(StorageBackendError("boom", operation="store", team_id="t1", path="a.md"))

        assert "boom" in text
        assert "operation=store" in text
        assert "team_id=t1" in text
        assert "path=a.md" in text

    def test_backend_error_keeps_cause(self) -> None:
        """The wrapped exception is preserved."""
        cause = OSError("disk full")
        assert StorageBackendError(cause=cause).cause is cause

    def test_unsupported_sync_message(self) -> None:
        """Unsupported sync names both backends."""
        error = UnsupportedSyncError("hybrid", "object", path="a.md")

        assert error.from_backend == "hybrid"
        assert error.to_backend == "object"
        assert error.operation == "sync"
        assert "hybrid -> object" in error.message
