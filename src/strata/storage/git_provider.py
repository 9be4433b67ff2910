"""Version-control storage provider for Strata.

One git repository per (team, workspace) under ``StorageConfig.git_root``:

    <git_root>/<team_id>/<workspace_id>/

Repositories are created lazily on the first write with a fixed committer
identity and a seed README commit, so history is never empty. Every write
is exactly one commit whose id becomes the ``version``. Historical reads
use ``git cat-file`` and never touch the working tree.

All operations on one repository run under a per-repository lock; the
working tree is shared state.
"""

from __future__ import annotations

import builtins
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from strata.storage.config import StorageConfig
from strata.storage.contract import (
    OptionsLike,
    WorkspaceStorage,
    build_metadata,
    ensure_bytes,
    validate_options,
    validate_path,
    validate_repository,
)
from strata.storage.errors import (
    ObjectNotFoundError,
    StorageBackendError,
    StorageError,
    StorageValidationError,
    UnsupportedSyncError,
)
from strata.storage.locks import KeyedLock
from strata.storage.models import (
    Backend,
    RepositoryRef,
    StorageOptions,
    StoredObject,
    StoredObjectMetadata,
    SyncResult,
    VersionEntry,
)
from strata.storage.process import CommandResult, ProcessExecutor, SubprocessExecutor
from strata.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

SEED_FILE = "README.md"
SEED_COMMIT_MESSAGE = "Initial commit"

_VERSION_PATTERN = re.compile(r"^[0-9a-fA-F]{4,40}$")

# Fields are separated by the ASCII unit separator so subjects may contain "|".
_LOG_FORMAT = "--format=%H%x1f%an%x1f%s%x1f%ct"
_FIELD_SEP = "\x1f"

_NOTHING_TO_COMMIT_MARKERS = (
    "nothing to commit",
    "nothing added to commit",
    "no changes added to commit",
)


@dataclass(frozen=True)
class _CommitInfo:
    sha: str
    author: str
    message: str
    timestamp: datetime | None


def _parse_log_line(line: str) -> _CommitInfo | None:
    parts = line.split(_FIELD_SEP)
    if len(parts) != 4 or not parts[0]:
        return None
    sha, author, message, epoch = parts
    try:
        timestamp: datetime | None = datetime.fromtimestamp(int(epoch), UTC)
    except ValueError:
        timestamp = None
    return _CommitInfo(sha=sha, author=author, message=message, timestamp=timestamp)


class GitStorageProvider(WorkspaceStorage):
    """Git-backed workspace storage.

    Suited to small text and code artifacts: diffable history, authored
    commits, branch support.
    """

    def __init__(
        self,
        config: StorageConfig,
        executor: ProcessExecutor | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        """Initialize the git provider.

        Args:
            config: Storage configuration (repository root, identity, binary).
            executor: Process executor used for git commands. Defaults to a
                SubprocessExecutor bounded by ``config.command_timeout_seconds``.
            locks: Keyed lock shared by everything touching the same repositories.
        """
        self._config = config
        self._executor = executor or SubprocessExecutor(
            timeout_seconds=config.command_timeout_seconds
        )
        self._locks = locks or KeyedLock()

    @property
    def backend(self) -> Backend:
        return Backend.GIT

    @property
    def config(self) -> StorageConfig:
        """Return the storage configuration."""
        return self._config

    def repository_path(self, ref: RepositoryRef) -> Path:
        """Return the working directory of a repository."""
        return self._config.git_root / ref.team_id / ref.workspace_id

    def repository_exists(self, ref: RepositoryRef) -> bool:
        """Return True if the repository has been initialized."""
        return (self.repository_path(ref) / ".git").is_dir()

    # ------------------------------------------------------------------
    # git plumbing
    # ------------------------------------------------------------------

    def _git(
        self,
        repo_dir: Path,
        *args: str,
        operation: str,
        ref: RepositoryRef,
        path: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        try:
            result = self._executor.run([self._config.git_binary, *args], cwd=repo_dir)
        except StorageBackendError as e:
            e.operation = e.operation or operation
            e.path = e.path or path
            e.team_id = e.team_id or ref.team_id
            e.workspace_id = e.workspace_id or ref.workspace_id
            raise
        if check and not result.ok:
            logger.error(
                "git %s failed (exit %d) in %s: %s",
                args[0] if args else "",
                result.returncode,
                ref,
                result.output_text,
            )
            raise StorageBackendError(
                message=f"git {args[0] if args else ''} failed: {result.output_text}",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
            )
        return result

    def _ensure_repository(self, ref: RepositoryRef, operation: str) -> Path:
        """Create and seed the repository if it does not exist yet.

        A ``.git`` directory without a resolvable HEAD is an interrupted
        initialization; it is initialized and seeded again.
        """
        repo_dir = self.repository_path(ref)
        if (repo_dir / ".git").is_dir():
            head = self._git(
                repo_dir, "rev-parse", "--verify", "--quiet", "HEAD",
                operation=operation, ref=ref, check=False,
            )
            if head.ok:
                return repo_dir
            logger.warning("Repository %s has no seed commit, initializing again", ref)

        try:
            repo_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create repository directory: {e}",
                operation=operation,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
                cause=e,
            ) from e

        branch = self._config.default_branch
        self._git(repo_dir, "init", "--quiet", operation=operation, ref=ref)
        self._git(repo_dir, "symbolic-ref", "HEAD", f"refs/heads/{branch}", operation=operation, ref=ref)
        for key, value in (
            ("user.name", self._config.committer_name),
            ("user.email", self._config.committer_email),
            ("commit.gpgsign", "false"),
        ):
            self._git(repo_dir, "config", key, value, operation=operation, ref=ref)

        seed = f"# {ref.workspace_id}\n\nWorkspace repository for team {ref.team_id}.\n"
        self._write_file(repo_dir, SEED_FILE, seed.encode("utf-8"), operation=operation, ref=ref)
        self._git(repo_dir, "add", "--", SEED_FILE, operation=operation, ref=ref)
        self._git(repo_dir, "commit", "--quiet", "-m", SEED_COMMIT_MESSAGE, operation=operation, ref=ref)

        logger.info("Initialized repository %s on branch %s", ref, branch)
        return repo_dir

    def _ensure_branch(self, repo_dir: Path, branch: str, *, operation: str, ref: RepositoryRef) -> None:
        """Check out ``branch``, creating it from the current state if missing."""
        current = self._git(
            repo_dir, "rev-parse", "--abbrev-ref", "HEAD", operation=operation, ref=ref, check=False
        )
        if current.ok and current.stdout_text.strip() == branch:
            return

        probe = self._git(
            repo_dir,
            "rev-parse",
            "--verify",
            "--quiet",
            f"refs/heads/{branch}",
            operation=operation,
            ref=ref,
            check=False,
        )
        if probe.ok:
            self._git(repo_dir, "checkout", "--quiet", branch, operation=operation, ref=ref)
        else:
            logger.info("Creating branch %s in repository %s", branch, ref)
            self._git(repo_dir, "checkout", "--quiet", "-b", branch, operation=operation, ref=ref)

    def _write_file(
        self, repo_dir: Path, path: str, content: bytes, *, operation: str, ref: RepositoryRef
    ) -> None:
        target = repo_dir / path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to write file: {e}",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
                cause=e,
            ) from e

    def _read_file(self, repo_dir: Path, path: str, *, operation: str, ref: RepositoryRef) -> bytes:
        target = repo_dir / path
        if not target.is_file():
            raise ObjectNotFoundError(
                operation=operation, path=path, team_id=ref.team_id, workspace_id=ref.workspace_id
            )
        try:
            return target.read_bytes()
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read file: {e}",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
                cause=e,
            ) from e

    def _last_commit(
        self,
        repo_dir: Path,
        path: str,
        *,
        operation: str,
        ref: RepositoryRef,
        revision: str | None = None,
    ) -> _CommitInfo | None:
        args = ["log", "-1", _LOG_FORMAT]
        if revision:
            args.append(revision)
        args.extend(["--", path])
        result = self._git(repo_dir, *args, operation=operation, ref=ref, path=path, check=False)
        if not result.ok:
            return None
        return _parse_log_line(result.stdout_text.strip())

    def _commit(
        self,
        repo_dir: Path,
        path: str,
        message: str,
        author: str,
        *,
        operation: str,
        ref: RepositoryRef,
        stage: bool = True,
    ) -> str:
        """Commit the staged change for ``path`` and return the commit id.

        Identical content ("nothing to commit") is success and returns the
        last commit that touched the path.
        """
        if stage:
            self._git(repo_dir, "add", "--", path, operation=operation, ref=ref, path=path)

        signature = f"{author} <{self._config.author_email(author)}>"
        result = self._git(
            repo_dir,
            "commit",
            "--quiet",
            "-m",
            message,
            f"--author={signature}",
            operation=operation,
            ref=ref,
            path=path,
            check=False,
        )
        if not result.ok:
            output = result.output_text.lower()
            if not any(marker in output for marker in _NOTHING_TO_COMMIT_MARKERS):
                logger.error("Commit failed in %s for %s: %s", ref, path, result.output_text)
                raise StorageBackendError(
                    message=f"git commit failed: {result.output_text}",
                    operation=operation,
                    path=path,
                    team_id=ref.team_id,
                    workspace_id=ref.workspace_id,
                )
            logger.debug("Nothing to commit for %s in %s", path, ref)
            previous = self._last_commit(repo_dir, path, operation=operation, ref=ref)
            if previous is not None:
                return previous.sha

        head = self._git(repo_dir, "rev-parse", "HEAD", operation=operation, ref=ref, path=path)
        return head.stdout_text.strip()

    def _is_tracked(self, repo_dir: Path, path: str, *, operation: str, ref: RepositoryRef) -> bool:
        """Return True if ``path`` exists in the HEAD commit."""
        result = self._git(
            repo_dir, "cat-file", "-e", f"HEAD:{path}",
            operation=operation, ref=ref, path=path, check=False,
        )
        return result.ok

    def _discard_change(
        self, repo_dir: Path, path: str, *, tracked: bool, operation: str, ref: RepositoryRef
    ) -> None:
        """Restore ``path`` in the index and working tree to its HEAD state.

        Called after a failed write so that neither reads nor the next
        commit see the uncommitted bytes. Errors are logged; the caller
        re-raises the original failure.
        """
        try:
            self._git(
                repo_dir, "reset", "--quiet", "--", path,
                operation=operation, ref=ref, path=path, check=False,
            )
            if tracked:
                self._git(
                    repo_dir, "checkout", "--", path,
                    operation=operation, ref=ref, path=path, check=False,
                )
            else:
                (repo_dir / path).unlink(missing_ok=True)
        except (StorageError, OSError) as e:
            logger.error("Failed to roll back %s in %s: %s", path, ref, e)
            return
        logger.warning("Rolled back uncommitted change to %s in %s", path, ref)

    # ------------------------------------------------------------------
    # unlocked building blocks
    # ------------------------------------------------------------------

    def _branch(self, opts: StorageOptions) -> str:
        return opts.branch or self._config.default_branch

    def _metadata(
        self,
        ref: RepositoryRef,
        path: str,
        content: bytes,
        commit: _CommitInfo | None,
        *,
        branch: str | None,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        backend_specific: dict[str, Any] = {"repository": str(ref)}
        if branch:
            backend_specific["branch"] = branch
        if commit is not None:
            backend_specific["commit_message"] = commit.message
        return build_metadata(
            path,
            content,
            backend=Backend.GIT,
            version=commit.sha if commit else None,
            author=commit.author if commit else None,
            last_modified=commit.timestamp if commit else None,
            content_type=content_type,
            backend_specific=backend_specific,
        )

    def _write_and_commit(
        self,
        ref: RepositoryRef,
        path: str,
        content: bytes,
        *,
        message: str,
        author: str,
        branch: str,
        operation: str,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        repo_dir = self._ensure_repository(ref, operation)
        self._ensure_branch(repo_dir, branch, operation=operation, ref=ref)
        tracked = self._is_tracked(repo_dir, path, operation=operation, ref=ref)
        try:
            self._write_file(repo_dir, path, content, operation=operation, ref=ref)
            version = self._commit(repo_dir, path, message, author, operation=operation, ref=ref)
        except StorageError:
            self._discard_change(repo_dir, path, tracked=tracked, operation=operation, ref=ref)
            raise

        logger.info("Committed %s to %s@%s as %s", path, ref, branch, version[:12])
        return build_metadata(
            path,
            content,
            backend=Backend.GIT,
            version=version,
            author=author,
            last_modified=datetime.now(UTC),
            content_type=content_type,
            backend_specific={
                "repository": str(ref),
                "branch": branch,
                "commit_message": message,
            },
        )

    def _read_current(
        self, ref: RepositoryRef, path: str, *, branch: str, operation: str
    ) -> StoredObject:
        if not self.repository_exists(ref):
            raise ObjectNotFoundError(
                message="Repository not found",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
            )
        repo_dir = self.repository_path(ref)
        self._ensure_branch(repo_dir, branch, operation=operation, ref=ref)
        content = self._read_file(repo_dir, path, operation=operation, ref=ref)
        commit = self._last_commit(repo_dir, path, operation=operation, ref=ref)
        return StoredObject(
            content=content,
            metadata=self._metadata(ref, path, content, commit, branch=branch),
        )

    def _read_version(
        self, ref: RepositoryRef, path: str, version: str, *, operation: str
    ) -> StoredObject:
        if not _VERSION_PATTERN.match(version):
            raise StorageValidationError(
                f"Invalid commit id: {version!r}",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
            )
        if not self.repository_exists(ref):
            raise ObjectNotFoundError(
                message="Repository not found",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
                version=version,
            )
        repo_dir = self.repository_path(ref)
        result = self._git(
            repo_dir,
            "cat-file",
            "blob",
            f"{version}:{path}",
            operation=operation,
            ref=ref,
            path=path,
            check=False,
        )
        if not result.ok:
            raise ObjectNotFoundError(
                message=f"Version {version} not found",
                operation=operation,
                path=path,
                team_id=ref.team_id,
                workspace_id=ref.workspace_id,
                version=version,
            )
        commit = self._last_commit(repo_dir, path, operation=operation, ref=ref, revision=version)
        return StoredObject(
            content=result.stdout,
            metadata=self._metadata(ref, path, result.stdout, commit, branch=None),
        )

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
        """Write a file and commit it.

        The commit message defaults to ``"Update <path>"`` and the author to
        the configured default author.

        Raises:
            StorageValidationError: If options or path are invalid.
            StorageBackendError: If any git step fails.
        """
        path = validate_path(path, operation="store")
        opts = validate_options(options, operation="store", path=path)
        data = ensure_bytes(content)
        ref = opts.repository

        with self._locks.hold(ref):
            return self._write_and_commit(
                ref,
                path,
                data,
                message=opts.commit_message or f"Update {path}",
                author=opts.author or self._config.default_author,
                branch=self._branch(opts),
                operation="store",
                content_type=opts.content_type,
            )

    @traced_storage_operation("retrieve")
    def retrieve(self, path: str, options: OptionsLike = None) -> StoredObject:
        """Read the working-tree file, or the file at ``options.version``."""
        path = validate_path(path, operation="retrieve")
        opts = validate_options(options, operation="retrieve", path=path)
        ref = opts.repository

        with self._locks.hold(ref):
            if opts.version:
                return self._read_version(ref, path, opts.version, operation="retrieve")
            return self._read_current(ref, path, branch=self._branch(opts), operation="retrieve")

    @traced_storage_operation("delete")
    def delete(self, path: str, options: OptionsLike = None) -> None:
        """Remove a file and commit the removal. Absent files are a no-op."""
        path = validate_path(path, operation="delete")
        opts = validate_options(options, operation="delete", path=path)
        ref = opts.repository

        if not self.repository_exists(ref):
            logger.debug("Delete of %s in missing repository %s is a no-op", path, ref)
            return

        with self._locks.hold(ref):
            repo_dir = self.repository_path(ref)
            self._ensure_branch(repo_dir, self._branch(opts), operation="delete", ref=ref)
            target = repo_dir / path
            if not target.is_file():
                logger.debug("Delete of absent %s in %s is a no-op", path, ref)
                return

            author = opts.author or self._config.default_author
            message = opts.commit_message or f"Delete {path}"
            tracked = self._is_tracked(repo_dir, path, operation="delete", ref=ref)
            try:
                self._git(
                    repo_dir, "rm", "--quiet", "--ignore-unmatch", "--", path,
                    operation="delete", ref=ref, path=path,
                )
                if target.exists():
                    # Never committed, so git rm left it in place.
                    try:
                        target.unlink()
                    except OSError as e:
                        raise StorageBackendError(
                            message=f"Failed to remove file: {e}",
                            operation="delete",
                            path=path,
                            team_id=ref.team_id,
                            workspace_id=ref.workspace_id,
                            cause=e,
                        ) from e
                version = self._commit(
                    repo_dir, path, message, author, operation="delete", ref=ref, stage=False
                )
            except StorageError:
                if tracked:
                    self._discard_change(repo_dir, path, tracked=True, operation="delete", ref=ref)
                raise
            logger.info("Deleted %s from %s in %s", path, ref, version[:12])

    @traced_storage_operation("list")
    def list(
        self,
        dir_path: str,
        options: OptionsLike = None,
    ) -> builtins.list[StoredObjectMetadata]:
        """List files under a directory of the working tree, ordered by path.

        Listings carry checksum and size from the working tree; version and
        author are left unset to avoid one history lookup per file.
        """
        dir_path = validate_path(dir_path, operation="list", allow_empty=True)
        opts = validate_options(options, operation="list", path=dir_path)
        ref = opts.repository

        if not self.repository_exists(ref):
            return []

        branch = self._branch(opts)
        with self._locks.hold(ref):
            repo_dir = self.repository_path(ref)
            self._ensure_branch(repo_dir, branch, operation="list", ref=ref)
            base = repo_dir / dir_path if dir_path else repo_dir
            if not base.is_dir():
                return []

            results: builtins.list[StoredObjectMetadata] = []
            try:
                for file in sorted(base.rglob("*")):
                    relative = file.relative_to(repo_dir)
                    if ".git" in relative.parts or not file.is_file():
                        continue
                    content = file.read_bytes()
                    modified = datetime.fromtimestamp(file.stat().st_mtime, UTC)
                    results.append(
                        build_metadata(
                            relative.as_posix(),
                            content,
                            backend=Backend.GIT,
                            version=None,
                            author=None,
                            last_modified=modified,
                            backend_specific={"repository": str(ref), "branch": branch},
                        )
                    )
            except OSError as e:
                raise StorageBackendError(
                    message=f"Failed to list directory: {e}",
                    operation="list",
                    path=dir_path,
                    team_id=ref.team_id,
                    workspace_id=ref.workspace_id,
                    cause=e,
                ) from e

        results.sort(key=lambda m: m.path)
        if opts.max_keys is not None:
            results = results[: opts.max_keys]
        return results

    @traced_storage_operation("exists")
    def exists(self, path: str, options: OptionsLike = None) -> bool:
        """Return True if the file is present in the working tree. Never raises."""
        try:
            path = validate_path(path, operation="exists")
            opts = validate_options(options, operation="exists", path=path)
            ref = opts.repository
            if not self.repository_exists(ref):
                return False
            with self._locks.hold(ref):
                repo_dir = self.repository_path(ref)
                self._ensure_branch(repo_dir, self._branch(opts), operation="exists", ref=ref)
                return (repo_dir / path).is_file()
        except (StorageError, OSError) as e:
            logger.debug("exists() treating error as absent: %s", e)
            return False

    @traced_storage_operation("get_metadata")
    def get_metadata(self, path: str, options: OptionsLike = None) -> StoredObjectMetadata:
        """Return metadata of the current (or pinned) version of a file."""
        path = validate_path(path, operation="get_metadata")
        opts = validate_options(options, operation="get_metadata", path=path)
        ref = opts.repository

        with self._locks.hold(ref):
            if opts.version:
                stored = self._read_version(ref, path, opts.version, operation="get_metadata")
            else:
                stored = self._read_current(
                    ref, path, branch=self._branch(opts), operation="get_metadata"
                )
        return stored.metadata

    @traced_storage_operation("create_version")
    def create_version(
        self,
        path: str,
        content: bytes,
        message: str,
        options: OptionsLike = None,
    ) -> tuple[str, StoredObjectMetadata]:
        """Commit content with an explicit message and return (commit id, metadata)."""
        path = validate_path(path, operation="create_version")
        opts = validate_options(options, operation="create_version", path=path)
        data = ensure_bytes(content)
        ref = opts.repository

        with self._locks.hold(ref):
            metadata = self._write_and_commit(
                ref,
                path,
                data,
                message=message or opts.commit_message or f"Update {path}",
                author=opts.author or self._config.default_author,
                branch=self._branch(opts),
                operation="create_version",
                content_type=opts.content_type,
            )
        return str(metadata.version), metadata

    @traced_storage_operation("list_versions")
    def list_versions(
        self,
        path: str,
        options: OptionsLike = None,
    ) -> builtins.list[VersionEntry]:
        """Return the commits that touched ``path`` on the branch, newest first."""
        path = validate_path(path, operation="list_versions")
        opts = validate_options(options, operation="list_versions", path=path)
        ref = opts.repository

        if not self.repository_exists(ref):
            return []

        with self._locks.hold(ref):
            repo_dir = self.repository_path(ref)
            self._ensure_branch(repo_dir, self._branch(opts), operation="list_versions", ref=ref)
            result = self._git(
                repo_dir, "log", _LOG_FORMAT, "--", path,
                operation="list_versions", ref=ref, path=path,
            )

        entries: builtins.list[VersionEntry] = []
        for line in result.stdout_text.splitlines():
            commit = _parse_log_line(line.strip())
            if commit is None:
                continue
            entries.append(
                VersionEntry(
                    version=commit.sha,
                    author=commit.author,
                    message=commit.message,
                    timestamp=commit.timestamp,
                    backend=Backend.GIT,
                    is_latest=not entries,
                )
            )
        return entries

    @traced_storage_operation("list_branches")
    def list_branches(self, options: OptionsLike = None) -> builtins.list[str]:
        """Return the local branch names of the workspace repository, sorted.

        A repository that was never written to has no branches.
        """
        opts = validate_options(options, operation="list_branches")
        ref = opts.repository

        if not self.repository_exists(ref):
            return []

        with self._locks.hold(ref):
            result = self._git(
                self.repository_path(ref),
                "branch",
                "--list",
                "--format=%(refname:short)",
                operation="list_branches",
                ref=ref,
            )
        return sorted(line.strip() for line in result.stdout_text.splitlines() if line.strip())

    @traced_storage_operation("retrieve_version")
    def retrieve_version(
        self,
        path: str,
        version: str,
        options: OptionsLike = None,
    ) -> StoredObject:
        """Return the exact bytes of ``path`` as of commit ``version``."""
        path = validate_path(path, operation="retrieve_version")
        opts = validate_options(options, operation="retrieve_version", path=path)
        ref = opts.repository

        with self._locks.hold(ref):
            return self._read_version(ref, path, version, operation="retrieve_version")

    @traced_storage_operation("sync")
    def sync(
        self,
        from_backend: Backend | str,
        to_backend: Backend | str,
        path: str,
        options: OptionsLike = None,
    ) -> SyncResult:
        """Replicate a file between two repositories.

        Reads ``path`` from ``options.source_repo`` (default: the repository
        of ``team_id``/``workspace_id``) and commits it into
        ``options.target_repo`` with message ``"Sync from <source>"``.

        Raises:
            UnsupportedSyncError: Unless both backends are git.
            StorageValidationError: If ``target_repo`` is missing or equals the source.
            ObjectNotFoundError: If the source file does not exist.
        """
        source_backend = Backend.parse(from_backend)
        target_backend = Backend.parse(to_backend)
        if not (source_backend is Backend.GIT and target_backend is Backend.GIT):
            raise UnsupportedSyncError(source_backend.value, target_backend.value, path=path)

        path = validate_path(path, operation="sync")
        opts = validate_options(options, operation="sync", path=path)
        source = validate_repository(opts.source_repo or opts.repository, operation="sync", path=path)
        if opts.target_repo is None:
            raise StorageValidationError(
                "Missing required option: target_repo", operation="sync", path=path
            )
        target = validate_repository(opts.target_repo, operation="sync", path=path)
        if source == target:
            raise StorageValidationError(
                "Source and target repository must differ", operation="sync", path=path
            )

        branch = self._branch(opts)
        with self._locks.hold_many(source, target):
            if opts.version:
                source_object = self._read_version(source, path, opts.version, operation="sync")
            else:
                source_object = self._read_current(source, path, branch=branch, operation="sync")
            target_metadata = self._write_and_commit(
                target,
                path,
                source_object.content,
                message=opts.commit_message or f"Sync from {source}",
                author=opts.author or self._config.default_author,
                branch=branch,
                operation="sync",
            )

        logger.info("Synced %s from %s to %s", path, source, target)
        return SyncResult(
            from_backend=Backend.GIT,
            to_backend=Backend.GIT,
            path=path,
            source_metadata=source_object.metadata,
            target_metadata=target_metadata,
            synced_at=datetime.now(UTC),
        )
