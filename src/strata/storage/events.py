"""Storage event sinks and backup counters.

Best-effort backups never fail the primary write, so their outcome is
published separately: as counters on ``BackupStats`` and as structured
events on a ``StorageEventSink``.

Event shape::

    {
        "event_type": "storage.backup.failed",
        "occurred_at": "2026-01-01T00:00:00+00:00",
        "team_id": "t1",
        "workspace_id": "w1",
        "path": "README.md",
        "backup_path": "backups/git/README.md",
        "error_code": "backend_error",
        "error": "..."
    }
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from strata.storage.errors import StorageBackendError

logger = logging.getLogger(__name__)

EVENT_BACKUP_SUCCEEDED: Final[str] = "storage.backup.succeeded"
EVENT_BACKUP_FAILED: Final[str] = "storage.backup.failed"


def build_event(event_type: str, **fields: Any) -> dict[str, Any]:
    """Build an event dict with type and timestamp; None fields are dropped."""
    event: dict[str, Any] = {
        "event_type": event_type,
        "occurred_at": datetime.now(UTC).isoformat(),
    }
    event.update({k: v for k, v in fields.items() if v is not None})
    return event


@runtime_checkable
class StorageEventSink(Protocol):
    """Protocol for storage event sinks."""

    def emit(self, event: dict[str, Any]) -> None:
        """Emit one storage event."""
        ...


class LoggingEventSink:
    """Writes each event as a structured log record.

    Failure events are logged at WARNING, everything else at INFO. The
    event fields are attached to the record via ``extra``.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def emit(self, event: dict[str, Any]) -> None:
        event_type = str(event.get("event_type", "storage.event"))
        level = logging.WARNING if event_type.endswith(".failed") else logging.INFO
        self._logger.log(
            level,
            "%s team_id=%s workspace_id=%s path=%s",
            event_type,
            event.get("team_id"),
            event.get("workspace_id"),
            event.get("path"),
            extra={"storage_event": event},
        )


class InMemoryEventSink:
    """In-memory event sink for testing.

    Thread-safe for concurrent test usage.
    """

    def __init__(self) -> None:
        self._events: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    def emit(self, event: dict[str, Any]) -> None:
        # Round-trip through JSON so tests see what a file sink would store.
        normalized = json.loads(json.dumps(event, sort_keys=True, default=str))
        with self._lock:
            self._events.append(normalized)

    @property
    def events(self) -> list[dict[str, Any]]:
        """Return a copy of all emitted events."""
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        """Return emitted events with the given type."""
        return [e for e in self.events if e.get("event_type") == event_type]

    def clear(self) -> None:
        """Remove all stored events."""
        with self._lock:
            self._events.clear()


class JsonlFileEventSink:
    """Append-only JSONL file sink.

    Appends one line per event with sorted keys and minimal separators.
    Never truncates existing content.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)
        self._lock = threading.Lock()

    @property
    def file_path(self) -> Path:
        """Return the configured file path."""
        return self._file_path

    def emit(self, event: dict[str, Any]) -> None:
        """Append an event to the file.

        Raises:
            StorageBackendError: If serialization or the file write fails.
        """
        try:
            line = json.dumps(event, sort_keys=True, separators=(",", ":"), default=str) + "\n"
        except (TypeError, ValueError) as e:
            raise StorageBackendError(f"Failed to serialize storage event: {e}", cause=e) from e

        with self._lock:
            try:
                self._file_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._file_path, mode="a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as e:
                raise StorageBackendError(
                    f"Failed to write storage event to {self._file_path}: {e}", cause=e
                ) from e


@dataclass(frozen=True)
class BackupSnapshot:
    """Point-in-time copy of backup counters."""

    attempted: int
    succeeded: int
    failed: int

    @property
    def failure_rate(self) -> float:
        """Fraction of attempted backups that failed (0.0 when none attempted)."""
        if self.attempted == 0:
            return 0.0
        return self.failed / self.attempted


class BackupStats:
    """Thread-safe counters for opportunistic backups."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attempted = 0
        self._succeeded = 0
        self._failed = 0

    def record_success(self) -> None:
        with self._lock:
            self._attempted += 1
            self._succeeded += 1

    def record_failure(self) -> None:
        with self._lock:
            self._attempted += 1
            self._failed += 1

    def snapshot(self) -> BackupSnapshot:
        """Return the current counter values."""
        with self._lock:
            return BackupSnapshot(
                attempted=self._attempted,
                succeeded=self._succeeded,
                failed=self._failed,
            )

    def reset(self) -> None:
        with self._lock:
            self._attempted = self._succeeded = self._failed = 0
