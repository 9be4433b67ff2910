"""Construction of Strata storage providers from configuration."""

from __future__ import annotations

import logging

from strata.storage.config import StorageConfig, load_storage_config
from strata.storage.events import BackupStats, StorageEventSink
from strata.storage.git_provider import GitStorageProvider
from strata.storage.hybrid_provider import HybridStorageRouter
from strata.storage.locks import KeyedLock
from strata.storage.object_client import ObjectClient
from strata.storage.object_provider import ObjectStorageProvider
from strata.storage.process import ProcessExecutor

logger = logging.getLogger(__name__)


def create_git_provider(
    config: StorageConfig | None = None,
    *,
    executor: ProcessExecutor | None = None,
    locks: KeyedLock | None = None,
) -> GitStorageProvider:
    """Create a git provider; configuration is loaded from the environment when omitted."""
    return GitStorageProvider(config or load_storage_config(), executor=executor, locks=locks)


def create_object_provider(
    config: StorageConfig | None = None,
    *,
    client: ObjectClient | None = None,
) -> ObjectStorageProvider:
    """Create an object provider; a boto3 client is built when none is given."""
    return ObjectStorageProvider(config or load_storage_config(), client=client)


def create_hybrid_router(
    config: StorageConfig | None = None,
    *,
    executor: ProcessExecutor | None = None,
    client: ObjectClient | None = None,
    event_sink: StorageEventSink | None = None,
    backup_stats: BackupStats | None = None,
) -> HybridStorageRouter:
    """Create a hybrid router wired to fresh git and object providers.

    Args:
        config: Storage configuration. Loaded from ``STRATA_*`` variables when None.
        executor: Process executor for git commands.
        client: Object client for bucket access.
        event_sink: Receives backup outcome events.
        backup_stats: Backup counters to update.

    Returns:
        Configured HybridStorageRouter.

    Raises:
        StorageConfigError: If the environment holds invalid values.
    """
    resolved = config or load_storage_config()
    logger.debug(
        "Creating hybrid router (git_root=%s, bucket_prefix=%s)",
        resolved.git_root,
        resolved.bucket_prefix,
    )
    return HybridStorageRouter(
        resolved,
        git=GitStorageProvider(resolved, executor=executor),
        objects=ObjectStorageProvider(resolved, client=client),
        event_sink=event_sink,
        backup_stats=backup_stats,
    )
