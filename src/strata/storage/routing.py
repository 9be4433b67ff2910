"""Backend selection heuristics for hybrid storage.

Write selection, evaluated in order (first match wins):
1. Explicit ``force_backend`` option
2. Content larger than ``max_git_file_size`` -> object backend
3. Extension on the text/code allow-list -> git backend
4. Extension on the binary/media allow-list -> object backend
5. Valid UTF-8 without NUL bytes -> git backend
6. Otherwise -> object backend

All functions are pure: the same path, size and content always select the
same backend.
"""

from __future__ import annotations

import codecs
import posixpath
from typing import Final

from strata.storage.config import StorageConfig
from strata.storage.models import Backend, StorageOptions

BACKUP_PREFIX: Final[str] = "backups/git/"

GIT_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {
        ".md", ".ipynb", ".py", ".js", ".ts", ".jsx", ".tsx", ".json",
        ".yaml", ".yml", ".toml", ".txt", ".sql", ".ex", ".exs", ".rs",
        ".go", ".java", ".cpp", ".c", ".h", ".css", ".scss", ".less",
        ".html", ".xml", ".csv", ".r", ".jl", ".sh",
    }
)

OBJECT_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg", ".ico", ".pdf",
        ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".zip", ".tar",
        ".gz", ".7z", ".rar", ".mp4", ".avi", ".mov", ".mp3", ".wav",
        ".flac", ".ogg", ".woff", ".woff2", ".ttf", ".otf", ".eot", ".dmg",
        ".iso", ".exe", ".msi", ".deb", ".rpm",
    }
)

IMPORTANT_EXTENSIONS: Final[frozenset[str]] = frozenset({".ipynb", ".md"})

# Text detection decodes in chunks of this size.
_SCAN_CHUNK_BYTES: Final[int] = 65536


def file_extension(path: str) -> str:
    """Return the lower-cased extension of ``path`` including the dot."""
    return posixpath.splitext(path)[1].lower()


def is_text_content(content: bytes) -> bool:
    """Return True if all of content is valid UTF-8 with no NUL bytes."""
    if b"\x00" in content:
        return False
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        for start in range(0, len(content), _SCAN_CHUNK_BYTES):
            decoder.decode(content[start : start + _SCAN_CHUNK_BYTES])
        decoder.decode(b"", final=True)
    except UnicodeDecodeError:
        return False
    return True


def select_write_backend(
    path: str,
    content: bytes,
    options: StorageOptions,
    config: StorageConfig,
) -> Backend:
    """Select the concrete backend that stores a write.

    Args:
        path: Normalized logical path.
        content: Bytes to be written.
        options: Validated options; ``force_backend`` wins when set.
        config: Storage configuration supplying the size threshold.

    Returns:
        Backend.GIT or Backend.OBJECT.
    """
    if options.force_backend is not None and options.force_backend is not Backend.HYBRID:
        return options.force_backend
    if len(content) > config.max_git_file_size:
        return Backend.OBJECT

    extension = file_extension(path)
    if extension in GIT_EXTENSIONS:
        return Backend.GIT
    if extension in OBJECT_EXTENSIONS:
        return Backend.OBJECT
    if is_text_content(content):
        return Backend.GIT
    return Backend.OBJECT


def select_read_backend(path: str, options: StorageOptions) -> Backend:
    """Select the backend tried first for a read.

    ``force_backend`` and then ``preferred_backend`` take precedence over
    the extension heuristics; ambiguous paths default to git.
    """
    for hint in (options.force_backend, options.preferred_backend):
        if hint is not None and hint is not Backend.HYBRID:
            return hint

    extension = file_extension(path)
    if extension in OBJECT_EXTENSIONS:
        return Backend.OBJECT
    return Backend.GIT


def other_backend(backend: Backend) -> Backend:
    """Return the opposite concrete backend."""
    return Backend.OBJECT if backend is Backend.GIT else Backend.GIT


def should_backup(path: str, content: bytes, config: StorageConfig) -> bool:
    """Return True if a git-stored artifact also gets an object backup copy."""
    if len(content) > config.backup_size_threshold:
        return True
    if file_extension(path) in IMPORTANT_EXTENSIONS:
        return True
    return "README" in path


def backup_path(path: str) -> str:
    """Return the object-backend path of the backup copy of ``path``."""
    return BACKUP_PREFIX + path


def is_backup_path(path: str) -> bool:
    """Return True if ``path`` lies under the internal backup prefix."""
    return path.startswith(BACKUP_PREFIX) or path == BACKUP_PREFIX.rstrip("/")
