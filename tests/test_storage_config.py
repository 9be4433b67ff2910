"""Tests for Strata storage configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from strata.storage.config import (
    DEFAULT_BACKUP_SIZE_THRESHOLD,
    DEFAULT_MAX_GIT_FILE_SIZE,
    ENV_BACKUP_SIZE_THRESHOLD,
    ENV_GIT_ROOT,
    ENV_MAX_GIT_FILE_SIZE,
    ENV_S3_BUCKET_PREFIX,
    ENV_S3_ENCRYPTION,
    ENV_S3_ENDPOINT_URL,
    MEBIBYTE,
    StorageConfig,
    default_git_root,
    load_storage_config,
)
from strata.storage.errors import StorageConfigError

_ALL_ENV_VARS = [
    "STRATA_GIT_ROOT",
    "STRATA_GIT_BINARY",
    "STRATA_GIT_DEFAULT_BRANCH",
    "STRATA_GIT_COMMITTER_NAME",
    "STRATA_GIT_COMMITTER_EMAIL",
    "STRATA_AUTHOR_EMAIL_DOMAIN",
    "STRATA_DEFAULT_AUTHOR",
    "STRATA_COMMAND_TIMEOUT_SECONDS",
    "STRATA_S3_BUCKET_PREFIX",
    "STRATA_S3_REGION",
    "STRATA_S3_ENDPOINT_URL",
    "STRATA_S3_ACCESS_KEY",
    "STRATA_S3_SECRET_KEY",
    "STRATA_S3_ENCRYPTION",
    "STRATA_S3_KMS_KEY_ID",
    "STRATA_S3_MAX_ATTEMPTS",
    "STRATA_S3_TIMEOUT_SECONDS",
    "STRATA_MAX_GIT_FILE_SIZE",
    "STRATA_BACKUP_SIZE_THRESHOLD",
    "STRATA_DEFAULT_MAX_KEYS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start every test without STRATA_* variables."""
    for name in _ALL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadStorageConfig:
    """Tests for loading configuration from the environment."""

    def test_defaults(self) -> None:
        """Defaults apply when nothing is set."""
        config = load_storage_config()

        assert config.git_root == default_git_root()
        assert config.default_branch == "main"
        assert config.max_git_file_size == 10 * MEBIBYTE
        assert config.backup_size_threshold == 1 * MEBIBYTE
        assert config.bucket_prefix == "strata-workspace"
        assert config.s3_endpoint_url is None
        assert config.s3_encryption is None

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """STRATA_* variables override the defaults."""
        monkeypatch.setenv(ENV_GIT_ROOT, str(tmp_path))
        monkeypatch.setenv(ENV_S3_BUCKET_PREFIX, "acme")
        monkeypatch.setenv(ENV_S3_ENDPOINT_URL, "http://localhost:9000")
        monkeypatch.setenv(ENV_MAX_GIT_FILE_SIZE, "2048")
        monkeypatch.setenv(ENV_BACKUP_SIZE_THRESHOLD, "1024")
        monkeypatch.setenv(ENV_S3_ENCRYPTION, "AES256")

        config = load_storage_config()

        assert config.git_root == tmp_path
        assert config.bucket_prefix == "acme"
        assert config.s3_endpoint_url == "http://localhost:9000"
        assert config.max_git_file_size == 2048
        assert config.backup_size_threshold == 1024
        assert config.s3_encryption == "AES256"

    def test_blank_values_fall_back_to_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Whitespace-only values are treated as unset."""
        monkeypatch.setenv(ENV_S3_BUCKET_PREFIX, "   ")

        assert load_storage_config().bucket_prefix == "strata-workspace"

    @pytest.mark.parametrize("raw", ["abc", "0", "-5", "1.5"])
    def test_invalid_integer(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        """Integer settings must be positive integers."""
        monkeypatch.setenv(ENV_MAX_GIT_FILE_SIZE, raw)

        with pytest.raises(StorageConfigError) as exc_info:
            load_storage_config()

        assert ENV_MAX_GIT_FILE_SIZE in str(exc_info.value)


class TestStorageConfigValidation:
    """Tests for StorageConfig validation."""

    def test_backup_threshold_cannot_exceed_git_limit(self, tmp_path: Path) -> None:
        """Backups only apply to git content, so the threshold must fit under the limit."""
        with pytest.raises(StorageConfigError):
            StorageConfig(git_root=tmp_path, max_git_file_size=100, backup_size_threshold=200)

    def test_rejects_non_positive_values(self, tmp_path: Path) -> None:
        """Size and timeout settings must be positive."""
        with pytest.raises(StorageConfigError):
            StorageConfig(git_root=tmp_path, command_timeout_seconds=0)

    def test_rejects_unknown_encryption(self, tmp_path: Path) -> None:
        """Only S3 server-side encryption algorithms are accepted."""
        with pytest.raises(StorageConfigError):
            StorageConfig(git_root=tmp_path, s3_encryption="rot13")

    def test_kms_key_requires_kms_encryption(self, tmp_path: Path) -> None:
        """A KMS key id without aws:kms encryption is a mistake."""
        with pytest.raises(StorageConfigError):
            StorageConfig(git_root=tmp_path, s3_encryption="AES256", s3_kms_key_id="key-1")

        config = StorageConfig(git_root=tmp_path, s3_encryption="aws:kms", s3_kms_key_id="key-1")
        assert config.s3_kms_key_id == "key-1"

    def test_rejects_flag_like_branch(self, tmp_path: Path) -> None:
        """The default branch is passed to git, so it must not look like a flag."""
        with pytest.raises(StorageConfigError):
            StorageConfig(git_root=tmp_path, default_branch="--main")

    def test_defaults_match_constants(self, tmp_path: Path) -> None:
        """Dataclass defaults use the documented thresholds."""
        config = StorageConfig(git_root=tmp_path)

        assert config.max_git_file_size == DEFAULT_MAX_GIT_FILE_SIZE
        assert config.backup_size_threshold == DEFAULT_BACKUP_SIZE_THRESHOLD


class TestDerivedValues:
    """Tests for bucket names and author addresses."""

    def test_bucket_for_team(self, tmp_path: Path) -> None:
        """Bucket names are '<prefix>-<team>' in lower case."""
        config = StorageConfig(git_root=tmp_path, bucket_prefix="Acme")

        assert config.bucket_for_team("Team1") == "acme-team1"

    def test_author_email(self, tmp_path: Path) -> None:
        """Author names are turned into addresses under the configured domain."""
        config = StorageConfig(git_root=tmp_path, author_email_domain="example.org")

        assert config.author_email("alice") == "alice@example.org"
        assert config.author_email("Zoë Smith") == "Zoë-Smith@example.org"
        assert config.author_email("") == "unknown@example.org"
