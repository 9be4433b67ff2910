"""Storage configuration for Strata.

Configuration is an explicit, immutable value passed into provider
constructors. ``load_storage_config()`` reads it from the environment once
at startup; providers never consult the environment themselves.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from strata.storage.errors import StorageConfigError

ENV_GIT_ROOT: Final[str] = "STRATA_GIT_ROOT"
ENV_GIT_BINARY: Final[str] = "STRATA_GIT_BINARY"
ENV_GIT_DEFAULT_BRANCH: Final[str] = "STRATA_GIT_DEFAULT_BRANCH"
ENV_GIT_COMMITTER_NAME: Final[str] = "STRATA_GIT_COMMITTER_NAME"
ENV_GIT_COMMITTER_EMAIL: Final[str] = "STRATA_GIT_COMMITTER_EMAIL"
ENV_AUTHOR_EMAIL_DOMAIN: Final[str] = "STRATA_AUTHOR_EMAIL_DOMAIN"
ENV_DEFAULT_AUTHOR: Final[str] = "STRATA_DEFAULT_AUTHOR"
ENV_COMMAND_TIMEOUT_SECONDS: Final[str] = "STRATA_COMMAND_TIMEOUT_SECONDS"
ENV_S3_BUCKET_PREFIX: Final[str] = "STRATA_S3_BUCKET_PREFIX"
ENV_S3_REGION: Final[str] = "STRATA_S3_REGION"
ENV_S3_ENDPOINT_URL: Final[str] = "STRATA_S3_ENDPOINT_URL"
ENV_S3_ACCESS_KEY: Final[str] = "STRATA_S3_ACCESS_KEY"
ENV_S3_SECRET_KEY: Final[str] = "STRATA_S3_SECRET_KEY"
ENV_S3_ENCRYPTION: Final[str] = "STRATA_S3_ENCRYPTION"
ENV_S3_KMS_KEY_ID: Final[str] = "STRATA_S3_KMS_KEY_ID"
ENV_S3_MAX_ATTEMPTS: Final[str] = "STRATA_S3_MAX_ATTEMPTS"
ENV_S3_TIMEOUT_SECONDS: Final[str] = "STRATA_S3_TIMEOUT_SECONDS"
ENV_MAX_GIT_FILE_SIZE: Final[str] = "STRATA_MAX_GIT_FILE_SIZE"
ENV_BACKUP_SIZE_THRESHOLD: Final[str] = "STRATA_BACKUP_SIZE_THRESHOLD"
ENV_DEFAULT_MAX_KEYS: Final[str] = "STRATA_DEFAULT_MAX_KEYS"

MEBIBYTE: Final[int] = 1024 * 1024

DEFAULT_GIT_BINARY: Final[str] = "git"
DEFAULT_BRANCH: Final[str] = "main"
DEFAULT_COMMITTER_NAME: Final[str] = "Strata Workspace"
DEFAULT_COMMITTER_EMAIL: Final[str] = "workspace@strata.local"
DEFAULT_AUTHOR_EMAIL_DOMAIN: Final[str] = "strata.local"
DEFAULT_AUTHOR: Final[str] = "system"
DEFAULT_COMMAND_TIMEOUT_SECONDS: Final[int] = 30
DEFAULT_BUCKET_PREFIX: Final[str] = "strata-workspace"
DEFAULT_S3_REGION: Final[str] = "us-east-1"
DEFAULT_S3_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_S3_TIMEOUT_SECONDS: Final[int] = 30
DEFAULT_MAX_GIT_FILE_SIZE: Final[int] = 10 * MEBIBYTE
DEFAULT_BACKUP_SIZE_THRESHOLD: Final[int] = 1 * MEBIBYTE
DEFAULT_MAX_KEYS: Final[int] = 1000

_VALID_ENCRYPTION = frozenset({"AES256", "aws:kms", "aws:kms:dsse"})


def default_git_root() -> Path:
    """Return the default repository root under the OS temp directory."""
    return Path(tempfile.gettempdir()) / "strata" / "git"


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration (immutable).

    Attributes:
        git_root: Directory holding one repository per (team, workspace).
        git_binary: Version-control executable.
        default_branch: Branch used when an operation names none.
        committer_name: Fixed identity configured in every repository.
        committer_email: Fixed identity e-mail configured in every repository.
        author_email_domain: Domain used to build author e-mail addresses.
        default_author: Author recorded when the caller supplies none.
        command_timeout_seconds: Upper bound for each subprocess call.
        bucket_prefix: Prefix of derived per-team bucket names.
        s3_region: Region for the S3 client.
        s3_endpoint_url: Custom S3 endpoint (MinIO etc.), None for AWS.
        s3_access_key: Access key; None defers to the boto3 credential chain.
        s3_secret_key: Secret key; None defers to the boto3 credential chain.
        s3_encryption: Server-side encryption algorithm, or None.
        s3_kms_key_id: KMS key id for ``aws:kms`` encryption.
        s3_max_attempts: botocore retry attempts.
        s3_timeout_seconds: botocore connect/read timeout.
        max_git_file_size: Content above this size is routed to object storage.
        backup_size_threshold: Git content above this size is backed up.
        default_max_keys: Listing page bound when the caller gives none.
    """

    git_root: Path
    git_binary: str = DEFAULT_GIT_BINARY
    default_branch: str = DEFAULT_BRANCH
    committer_name: str = DEFAULT_COMMITTER_NAME
    committer_email: str = DEFAULT_COMMITTER_EMAIL
    author_email_domain: str = DEFAULT_AUTHOR_EMAIL_DOMAIN
    default_author: str = DEFAULT_AUTHOR
    command_timeout_seconds: int = DEFAULT_COMMAND_TIMEOUT_SECONDS
    bucket_prefix: str = DEFAULT_BUCKET_PREFIX
    s3_region: str = DEFAULT_S3_REGION
    s3_endpoint_url: str | None = None
    s3_access_key: str | None = None
    s3_secret_key: str | None = None
    s3_encryption: str | None = None
    s3_kms_key_id: str | None = None
    s3_max_attempts: int = DEFAULT_S3_MAX_ATTEMPTS
    s3_timeout_seconds: int = DEFAULT_S3_TIMEOUT_SECONDS
    max_git_file_size: int = DEFAULT_MAX_GIT_FILE_SIZE
    backup_size_threshold: int = DEFAULT_BACKUP_SIZE_THRESHOLD
    default_max_keys: int = DEFAULT_MAX_KEYS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in (
            "command_timeout_seconds",
            "s3_max_attempts",
            "s3_timeout_seconds",
            "max_git_file_size",
            "backup_size_threshold",
            "default_max_keys",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise StorageConfigError(f"{name} must be a positive integer, got {value!r}")

        if self.backup_size_threshold > self.max_git_file_size:
            raise StorageConfigError(
                "backup_size_threshold must not exceed max_git_file_size, got "
                f"{self.backup_size_threshold} > {self.max_git_file_size}"
            )
        if not self.default_branch or self.default_branch.startswith("-"):
            raise StorageConfigError(f"Invalid default_branch: {self.default_branch!r}")
        if self.s3_encryption is not None and self.s3_encryption not in _VALID_ENCRYPTION:
            raise StorageConfigError(
                f"s3_encryption must be one of {sorted(_VALID_ENCRYPTION)}, "
                f"got {self.s3_encryption!r}"
            )
        if self.s3_kms_key_id and not (self.s3_encryption or "").startswith("aws:kms"):
            raise StorageConfigError("s3_kms_key_id requires s3_encryption=aws:kms")

    def bucket_for_team(self, team_id: str) -> str:
        """Return the derived bucket name for a team."""
        return f"{self.bucket_prefix}-{team_id}".lower()

    def author_email(self, author: str) -> str:
        """Return the commit e-mail address used for an author name."""
        local_part = "".join(c if c.isalnum() or c in "._-" else "-" for c in author) or "unknown"
        return f"{local_part}@{self.author_email_domain}"


def _get_env_str(key: str, default: str | None = None) -> str | None:
    """Get a stripped string from the environment, or the default."""
    raw = os.environ.get(key)
    if raw is None:
        return default
    raw = raw.strip()
    return raw or default


def _parse_positive_int(env_var: str, default: int) -> int:
    """Parse a positive integer from environment variable.

    Raises:
        StorageConfigError: If value is set but not a positive integer.
    """
    raw = _get_env_str(env_var)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError as e:
        raise StorageConfigError(f"{env_var} must be a positive integer, got '{raw}'") from e

    if value <= 0:
        raise StorageConfigError(f"{env_var} must be a positive integer, got {value}")

    return value


def load_storage_config() -> StorageConfig:
    """Load storage configuration from ``STRATA_*`` environment variables.

    Returns:
        StorageConfig with validated values.

    Raises:
        StorageConfigError: If any value is invalid.
    """
    git_root_raw = _get_env_str(ENV_GIT_ROOT)
    git_root = Path(git_root_raw) if git_root_raw else default_git_root()

    return StorageConfig(
        git_root=git_root,
        git_binary=_get_env_str(ENV_GIT_BINARY, DEFAULT_GIT_BINARY) or DEFAULT_GIT_BINARY,
        default_branch=_get_env_str(ENV_GIT_DEFAULT_BRANCH, DEFAULT_BRANCH) or DEFAULT_BRANCH,
        committer_name=_get_env_str(ENV_GIT_COMMITTER_NAME, DEFAULT_COMMITTER_NAME)
        or DEFAULT_COMMITTER_NAME,
        committer_email=_get_env_str(ENV_GIT_COMMITTER_EMAIL, DEFAULT_COMMITTER_EMAIL)
        or DEFAULT_COMMITTER_EMAIL,
        author_email_domain=_get_env_str(ENV_AUTHOR_EMAIL_DOMAIN, DEFAULT_AUTHOR_EMAIL_DOMAIN)
        or DEFAULT_AUTHOR_EMAIL_DOMAIN,
        default_author=_get_env_str(ENV_DEFAULT_AUTHOR, DEFAULT_AUTHOR) or DEFAULT_AUTHOR,
        command_timeout_seconds=_parse_positive_int(
            ENV_COMMAND_TIMEOUT_SECONDS, DEFAULT_COMMAND_TIMEOUT_SECONDS
        ),
        bucket_prefix=_get_env_str(ENV_S3_BUCKET_PREFIX, DEFAULT_BUCKET_PREFIX)
        or DEFAULT_BUCKET_PREFIX,
        s3_region=_get_env_str(ENV_S3_REGION, DEFAULT_S3_REGION) or DEFAULT_S3_REGION,
        s3_endpoint_url=_get_env_str(ENV_S3_ENDPOINT_URL),
        s3_access_key=_get_env_str(ENV_S3_ACCESS_KEY),
        s3_secret_key=_get_env_str(ENV_S3_SECRET_KEY),
        s3_encryption=_get_env_str(ENV_S3_ENCRYPTION),
        s3_kms_key_id=_get_env_str(ENV_S3_KMS_KEY_ID),
        s3_max_attempts=_parse_positive_int(ENV_S3_MAX_ATTEMPTS, DEFAULT_S3_MAX_ATTEMPTS),
        s3_timeout_seconds=_parse_positive_int(ENV_S3_TIMEOUT_SECONDS, DEFAULT_S3_TIMEOUT_SECONDS),
        max_git_file_size=_parse_positive_int(ENV_MAX_GIT_FILE_SIZE, DEFAULT_MAX_GIT_FILE_SIZE),
        backup_size_threshold=_parse_positive_int(
            ENV_BACKUP_SIZE_THRESHOLD, DEFAULT_BACKUP_SIZE_THRESHOLD
        ),
        default_max_keys=_parse_positive_int(ENV_DEFAULT_MAX_KEYS, DEFAULT_MAX_KEYS),
    )
