"""Strata hybrid workspace storage.

One storage contract, three implementations:

- GitStorageProvider: git repository per (team, workspace) for text and code
- ObjectStorageProvider: S3-compatible bucket per team for large/binary files
- HybridStorageRouter: routes between the two with read fallback and backups

Configuration is read from ``STRATA_*`` environment variables by
``load_storage_config()`` and passed explicitly to every provider.
"""

from strata.storage.config import StorageConfig, load_storage_config
from strata.storage.contract import WorkspaceStorage
from strata.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
    StorageConfigError,
    StorageError,
    StorageValidationError,
    UnsupportedSyncError,
)
from strata.storage.events import BackupStats, InMemoryEventSink, StorageEventSink
from strata.storage.factory import create_hybrid_router
from strata.storage.git_provider import GitStorageProvider
from strata.storage.hybrid_provider import HybridStorageRouter
from strata.storage.models import (
    Backend,
    RepositoryRef,
    StorageOptions,
    StoredObject,
    StoredObjectMetadata,
    SyncResult,
    VersionEntry,
)
from strata.storage.object_client import Boto3ObjectClient, InMemoryObjectClient, ObjectClient
from strata.storage.object_provider import ObjectStorageProvider

__all__ = [
    "Backend",
    "BackupStats",
    "Boto3ObjectClient",
    "GitStorageProvider",
    "HybridStorageRouter",
    "InMemoryEventSink",
    "InMemoryObjectClient",
    "ObjectClient",
    "ObjectNotFoundError",
    "ObjectStorageProvider",
    "PathTraversalError",
    "RepositoryRef",
    "StorageBackendError",
    "StorageConfig",
    "StorageConfigError",
    "StorageError",
    "StorageEventSink",
    "StorageOptions",
    "StorageValidationError",
    "StoredObject",
    "StoredObjectMetadata",
    "SyncResult",
    "UnsupportedSyncError",
    "VersionEntry",
    "WorkspaceStorage",
    "create_hybrid_router",
    "load_storage_config",
]
