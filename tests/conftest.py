"""Pytest configuration and fixtures for Strata tests.

Git-backed tests use the real ``git`` binary inside ``tmp_path`` and are
skipped when it is not installed. Object-backed tests use the in-memory
object client.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from strata.storage.config import StorageConfig
from strata.storage.events import BackupStats, InMemoryEventSink
from tests.fakes import TEAM_ID, WORKSPACE_ID, FakeExecutor


@pytest.fixture(autouse=True)
def isolate_git_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's git configuration out of test repositories."""
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig-global"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for name in (
        "GIT_AUTHOR_NAME",
        "GIT_AUTHOR_EMAIL",
        "GIT_COMMITTER_NAME",
        "GIT_COMMITTER_EMAIL",
        "GIT_DIR",
        "GIT_WORK_TREE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path: Path) -> StorageConfig:
    """Return a storage configuration rooted in the test's temp directory."""
    return StorageConfig(git_root=tmp_path / "repos")


@pytest.fixture
def options() -> dict[str, Any]:
    """Return the minimal valid options record."""
    return {"team_id": TEAM_ID, "workspace_id": WORKSPACE_ID}


@pytest.fixture
def object_client() -> Any:
    """Return an empty in-memory object client."""
    from strata.storage.object_client import InMemoryObjectClient

    return InMemoryObjectClient()


@pytest.fixture
def object_provider(config: StorageConfig, object_client: Any) -> Any:
    """Return an object provider backed by the in-memory client."""
    from strata.storage.object_provider import ObjectStorageProvider

    return ObjectStorageProvider(config, client=object_client)


@pytest.fixture
def git_provider(config: StorageConfig) -> Any:
    """Return a git provider using the real git binary."""
    from strata.storage.git_provider import GitStorageProvider

    return GitStorageProvider(config)


@pytest.fixture
def event_sink() -> InMemoryEventSink:
    """Return an in-memory event sink."""
    return InMemoryEventSink()


@pytest.fixture
def backup_stats() -> BackupStats:
    """Return fresh backup counters."""
    return BackupStats()


@pytest.fixture
def router(
    config: StorageConfig,
    git_provider: Any,
    object_provider: Any,
    event_sink: InMemoryEventSink,
    backup_stats: BackupStats,
) -> Any:
    """Return a hybrid router over real git and the in-memory object client."""
    from strata.storage.hybrid_provider import HybridStorageRouter

    return HybridStorageRouter(
        config,
        git=git_provider,
        objects=object_provider,
        event_sink=event_sink,
        backup_stats=backup_stats,
    )


@pytest.fixture
def fake_executor() -> FakeExecutor:
    """Return a scripted executor that succeeds by default."""
    return FakeExecutor()


@pytest.fixture
def seeded_repo(config: StorageConfig) -> Path:
    """Create a repository directory with a .git marker so init is skipped."""
    repo_dir = config.git_root / TEAM_ID / WORKSPACE_ID
    (repo_dir / ".git").mkdir(parents=True)
    return repo_dir
